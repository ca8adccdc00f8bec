"""
Custom exceptions for the ingestion pipeline with structured error context.

Each pipeline phase raises its own exception type so the orchestrator can
record which phase failed and abort only the owning dataset. Every exception
carries a context dictionary for debugging and for the persisted error record.

Exception Hierarchy:
    IngestionException (base)
    ├── TransportError      (remote fetch)
    ├── StorageError        (local filesystem writes)
    ├── ExtractionError     (archive / decompress)
    ├── ChunkingError       (file split)
    ├── LoadError           (bulk insert into staging, carries chunk_number)
    └── SwapError           (staging -> live table promotion)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IngestionException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (dataset, path, url, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class TransportError(IngestionException):
    """
    Raised when a remote file cannot be retrieved.

    Context should include:
        - url: The remote URL
        - status_code: HTTP status code (if a response was received)
    """
    pass


class StorageError(IngestionException):
    """
    Raised when a local artifact cannot be written.

    Context should include:
        - path: Local path that failed
    """
    pass


class ExtractionError(IngestionException):
    """
    Raised when an archive is corrupt or lacks the expected member.

    Context should include:
        - archive_path: Path to the archive
        - expected_member: Name of the file that should have been extracted
    """
    pass


class ChunkingError(IngestionException):
    """
    Raised when a flat file cannot be split into chunks.

    Context should include:
        - file_path: File being split
        - chunk_number: Chunk being written when the failure happened
    """
    pass


class LoadError(IngestionException):
    """
    Raised when a chunk cannot be bulk-loaded into the staging table.

    Context should include:
        - table_name: Staging table
        - chunk_path: Chunk file that failed
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        chunk_number: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.chunk_number = chunk_number
        if chunk_number is not None:
            self.context["chunk_number"] = chunk_number


class SwapError(IngestionException):
    """
    Raised when the staging table cannot be promoted to the live table.

    Context should include:
        - target_table: Live table name
        - staging_table: Staging table name
    """
    pass
