"""
Custom exceptions for the statement extraction pipeline.
Every pipeline stage raises its own error kind so callers can tell them apart.
"""
from typing import Any, Dict, Optional


class StatementOCRException(Exception):
    """Base exception for all statement extraction errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for diagnostics
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnreadableFileError(StatementOCRException):
    """Raised when the raw bytes of an input document cannot be read."""

    def __init__(self, document_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Could not read {document_name}.",
            details={"document_name": document_name, **(details or {})}
        )
        self.document_name = document_name


class DocumentOpenError(StatementOCRException):
    """Raised when a PDF is corrupt, encrypted or otherwise unparsable."""

    def __init__(self, document_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Could not read {document_name}. It might be corrupted or password-protected.",
            details={"document_name": document_name, **(details or {})}
        )
        self.document_name = document_name


class PageRenderError(StatementOCRException):
    """Raised when a single PDF page fails to rasterize."""

    def __init__(
        self,
        page_number: int,
        document_name: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            f"An error occurred while rendering page {page_number} from {document_name}. "
            "The page might be corrupted.",
            details={"page_number": page_number, "document_name": document_name, **(details or {})}
        )
        self.page_number = page_number
        self.document_name = document_name


class BackendInitError(StatementOCRException):
    """Raised when the PDF rendering backend fails to load."""
    pass


class EmptyBatchError(StatementOCRException):
    """Raised when the submitted documents produce no pages at all."""
    pass


class EmptyResponseError(StatementOCRException):
    """Raised when the extraction service returns no text."""
    pass


class ServiceError(StatementOCRException):
    """Raised on transport or service-level failure of the extraction call."""
    pass


class MalformedResponseError(StatementOCRException):
    """Raised when the service response is not a valid array of transactions."""

    def __init__(
        self,
        message: str,
        raw_excerpt: str = "",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details={"raw_excerpt": raw_excerpt, **(details or {})})
        self.raw_excerpt = raw_excerpt


class PipelineError(StatementOCRException):
    """Raised when an unexpected failure interrupts a pipeline run."""
    pass


class ConfigurationError(StatementOCRException):
    """Raised when configuration is invalid."""
    pass


class ExportError(StatementOCRException):
    """Raised when transaction export fails."""
    pass
