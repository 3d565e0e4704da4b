"""
Custom exceptions for the docvault ingestion pipeline.

Extraction and persistence failures for a single document are recoverable
by the batch runner; only a failure to enumerate the catalog is fatal.
"""

from typing import Any, Optional


class DocVaultException(Exception):
    """Base exception for all docvault-specific errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Extraction Exceptions
# =============================================================================


class ExtractionError(DocVaultException):
    """A document could not be opened or its text could not be recovered."""

    pass


class FileTooLargeError(ExtractionError):
    """Document exceeds the maximum allowed size."""

    def __init__(self, file_size: int, max_size: int, filename: str) -> None:
        """Initialize with size information."""
        message = f"File '{filename}' size ({file_size} bytes) exceeds maximum ({max_size} bytes)"
        super().__init__(message, {"file_size": file_size, "max_size": max_size, "filename": filename})


class CorruptedDocumentError(ExtractionError):
    """Document is corrupted, encrypted or in an unreadable sub-format."""

    pass


class ExtractionTimeoutError(ExtractionError):
    """Extraction did not finish within the configured time budget."""

    def __init__(self, filename: str, timeout: float) -> None:
        """Initialize with timeout information."""
        message = f"Extraction of '{filename}' timed out after {timeout:g} seconds"
        super().__init__(message, {"filename": filename, "timeout": timeout})


# =============================================================================
# Persistence Exceptions
# =============================================================================


class PersistenceError(DocVaultException):
    """Base exception for catalog and rule-store operations."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Failed to connect to the database."""

    pass


class CatalogUnavailableError(PersistenceError):
    """The document catalog could not be enumerated."""

    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(DocVaultException):
    """Configuration error."""

    pass


class MissingConfigurationError(ConfigurationError):
    """Required configuration missing."""

    def __init__(self, config_name: str) -> None:
        """Initialize with config name."""
        message = f"Required configuration '{config_name}' is missing"
        super().__init__(message, {"config_name": config_name})


# =============================================================================
# Insight Provider Exceptions
# =============================================================================


class InsightProviderError(DocVaultException):
    """An LLM provider call failed or returned an unusable response."""

    def __init__(self, provider: str, error: str) -> None:
        """Initialize with provider information."""
        message = f"Insight provider '{provider}' failed: {error}"
        super().__init__(message, {"provider": provider, "error": error})
