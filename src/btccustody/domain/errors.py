from __future__ import annotations

from enum import StrEnum


class ErrorCategory(StrEnum):
    VALIDATION = "validation"
    STATE = "state"
    AUTHORIZATION = "authorization"
    EXTERNAL_VERIFICATION = "external_verification"
    RESOURCE = "resource"
    UNAVAILABLE = "unavailable"


class CustodyError(Exception):
    """Base class for every failure raised by the custody core."""

    category: ErrorCategory = ErrorCategory.VALIDATION


# Validation


class TaskValidationError(CustodyError, ValueError):
    """Raised when creation-time parameters are rejected."""

    category = ErrorCategory.VALIDATION


class InvalidPublicKeyError(TaskValidationError):
    pass


class InvalidAmountError(TaskValidationError):
    pass


class InvalidScheduleError(TaskValidationError):
    pass


class AddressMismatchError(TaskValidationError):
    pass


class AmountMismatchError(TaskValidationError):
    pass


class AddressCodecError(TaskValidationError):
    """Raised when an address string cannot be decoded."""


class InvalidHeaderError(TaskValidationError):
    pass


# State


class TaskStateError(CustodyError):
    """Raised when an operation targets a task in the wrong state."""

    category = ErrorCategory.STATE


class TaskNotFoundError(TaskStateError, LookupError):
    pass


class AddressBusyError(TaskStateError):
    pass


class DeadlineExpiredError(TaskStateError):
    pass


class TimelockNotReachedError(TaskStateError):
    pass


# Authorization


class UnauthorizedActorError(CustodyError, PermissionError):
    category = ErrorCategory.AUTHORIZATION


# External verification


class ExternalVerificationError(CustodyError):
    """Raised when collaborator state does not back the caller's claim."""

    category = ErrorCategory.EXTERNAL_VERIFICATION


class DepositNotRecognizedError(ExternalVerificationError):
    pass


class BlockHashMismatchError(ExternalVerificationError):
    pass


class MerkleProofError(ExternalVerificationError):
    pass


# Resource


class InsufficientReserveError(CustodyError):
    category = ErrorCategory.RESOURCE


class CollaboratorUnavailableError(CustodyError, RuntimeError):
    """Raised when a bridge or bitcoin view cannot be reached after retries."""

    category = ErrorCategory.UNAVAILABLE
