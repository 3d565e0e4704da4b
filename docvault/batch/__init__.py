"""
Batch jobs over the document catalog.
"""

from .reextract import ReextractionRunner

__all__ = ["ReextractionRunner"]
