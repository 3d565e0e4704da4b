"""
Database access for the docvault pipeline.

This package provides the shared connection pool and the repositories the
pipeline reads from and writes to.
"""

from .connection_manager import ConnectionHealth, DatabaseConnectionManager
from .repositories import (
    ClassificationRuleRepository,
    DocumentRepository,
    SettingsRepository,
    mask_secret,
)

__all__ = [
    "ConnectionHealth",
    "DatabaseConnectionManager",
    "ClassificationRuleRepository",
    "DocumentRepository",
    "SettingsRepository",
    "mask_secret",
]
