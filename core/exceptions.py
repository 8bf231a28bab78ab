"""Application-wide exception classes."""

from __future__ import annotations


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for persistence-related errors."""
    pass


class RepositoryError(DatabaseError):
    """Raised when a record store operation fails."""
    pass


class RecordNotFoundError(RepositoryError):
    """Raised when a record id is unknown to every partition."""
    pass


class RecordNotPendingError(RepositoryError):
    """Raised when a record exists but is no longer in the pending partition."""

    def __init__(self, record_id: str, status: str) -> None:
        super().__init__(f"Record {record_id} not found in pending (status: {status})")
        self.record_id = record_id
        self.status = status


class RecordConflictError(RepositoryError):
    """Raised when a write was based on a stale record version."""
    pass


class InvalidTransitionError(RepositoryError):
    """Raised when a partition move is not allowed by the lifecycle."""
    pass


class ServiceError(ApplicationError):
    """Base exception for service-level errors."""
    pass


class ReceiptStorageError(ServiceError):
    """Raised when a receipt image cannot be persisted."""
    pass


class LedgerError(ServiceError):
    """Raised when the external ledger rejects or fails a request."""
    pass


class ValidationError(ApplicationError):
    """Raised when data validation fails."""
    pass


class FileValidationError(ValidationError):
    """Raised when file validation fails."""
    pass


class ReceiptValidationError(FileValidationError):
    """Raised when a receipt image has an unsupported type or size."""
    pass


class AuthenticationError(ApplicationError):
    """Raised when authentication fails."""
    pass
