"""Tests for the application exception hierarchy."""

import pytest

import core
from core.exceptions import (
    ApplicationError,
    DatabaseError,
    FileValidationError,
    ReceiptValidationError,
    RecordNotPendingError,
    RepositoryError,
    ValidationError,
)


def test_exported_exceptions():
    exported = {name for name in core.__all__ if name.endswith("Error")}

    assert exported == {
        "ApplicationError",
        "DatabaseError",
        "RepositoryError",
        "RecordNotFoundError",
        "RecordNotPendingError",
        "RecordConflictError",
        "InvalidTransitionError",
        "ServiceError",
        "ReceiptStorageError",
        "LedgerError",
        "ValidationError",
        "FileValidationError",
        "ReceiptValidationError",
        "AuthenticationError",
    }
    for name in exported:
        assert issubclass(getattr(core, name), ApplicationError)


def test_receipt_validation_is_a_validation_error():
    assert issubclass(ReceiptValidationError, FileValidationError)
    assert issubclass(FileValidationError, ValidationError)


def test_not_pending_carries_the_terminal_status():
    error = RecordNotPendingError("purchase_1_abc", "completed")

    assert isinstance(error, RepositoryError)
    assert isinstance(error, DatabaseError)
    assert error.status == "completed"
    assert "not found in pending" in str(error)

    with pytest.raises(RepositoryError):
        raise error
