"""Core application components."""

# Import in correct order to avoid circular dependencies
from core.logger import setup_logger, get_logger
from core.constants import (
    TelegramLimits,
    PurchaseMessageFormat,
    SessionDefaults,
    ReceiptLimits,
    LedgerDefaults,
    RaffleDefaults,
    RateLimitDefaults,
    CancelReason,
    PurchaseStatus,
    PushEvent,
)
from core.exceptions import (
    ApplicationError,
    DatabaseError,
    RepositoryError,
    RecordNotFoundError,
    RecordNotPendingError,
    RecordConflictError,
    InvalidTransitionError,
    ServiceError,
    ReceiptStorageError,
    LedgerError,
    ValidationError,
    FileValidationError,
    ReceiptValidationError,
    AuthenticationError,
)

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Constants
    'TelegramLimits',
    'PurchaseMessageFormat',
    'SessionDefaults',
    'ReceiptLimits',
    'LedgerDefaults',
    'RaffleDefaults',
    'RateLimitDefaults',
    'CancelReason',
    'PurchaseStatus',
    'PushEvent',
    # Exceptions
    'ApplicationError',
    'DatabaseError',
    'RepositoryError',
    'RecordNotFoundError',
    'RecordNotPendingError',
    'RecordConflictError',
    'InvalidTransitionError',
    'ServiceError',
    'ReceiptStorageError',
    'LedgerError',
    'ValidationError',
    'FileValidationError',
    'ReceiptValidationError',
    'AuthenticationError',
]
