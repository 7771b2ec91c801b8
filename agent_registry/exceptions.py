"""
Exceptions for the agent identity registry.

Every failure is a synchronous rejection of the operation that raised it;
the registry never commits partial state. Errors fall into three families:

- PreconditionViolation: wrong state or invalid input, caller-correctable
- FundsTransferFailure: the funding source refused to move funds
- TimingViolation: the deactivation cooldown has not elapsed yet
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """
    Stable error codes for registry rejections.

    These are the identifiers surfaced to API and chain-entry callers.
    """
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    STAKE_TOO_LOW = "STAKE_TOO_LOW"
    INVALID_NAME = "INVALID_NAME"
    INVALID_SIGNING_KEY = "INVALID_SIGNING_KEY"
    NOT_REGISTERED = "NOT_REGISTERED"
    IDENTITY_DEACTIVATED = "IDENTITY_DEACTIVATED"
    ALREADY_DEACTIVATING = "ALREADY_DEACTIVATING"
    NOT_DEACTIVATING = "NOT_DEACTIVATING"
    NOT_DEACTIVATED = "NOT_DEACTIVATED"
    COOLDOWN_NOT_ELAPSED = "COOLDOWN_NOT_ELAPSED"
    IDENTITY_NOT_FOUND = "IDENTITY_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    ALREADY_VOUCHED = "ALREADY_VOUCHED"
    NO_VOUCH_FOUND = "NO_VOUCH_FOUND"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"


class RegistryError(Exception):
    """Base exception for all registry rejections."""

    code: ErrorCode

    def __init__(self, message: str, identity_key: Optional[str] = None):
        self.identity_key = identity_key
        super().__init__(message)


class PreconditionViolation(RegistryError):
    """Raised when the caller's input or the identity's state forbids the operation."""
    pass


class FundsTransferFailure(RegistryError):
    """Raised when the external funding source fails to move funds."""
    pass


class TimingViolation(RegistryError):
    """Raised when a time-gated operation is attempted too early."""
    pass


class AlreadyRegisteredError(PreconditionViolation):
    """Raised when the caller already owns a live identity."""
    code = ErrorCode.ALREADY_REGISTERED


class StakeTooLowError(PreconditionViolation):
    """Raised when the registration stake is below the configured minimum."""
    code = ErrorCode.STAKE_TOO_LOW

    def __init__(self, message: str, min_stake: int, identity_key: Optional[str] = None):
        self.min_stake = min_stake
        super().__init__(message, identity_key)


class InvalidNameError(PreconditionViolation):
    """Raised for an empty display name."""
    code = ErrorCode.INVALID_NAME


class InvalidSigningKeyError(PreconditionViolation):
    """Raised for a missing, malformed or zero signing key."""
    code = ErrorCode.INVALID_SIGNING_KEY


class NotRegisteredError(PreconditionViolation):
    """Raised when the caller has no live identity."""
    code = ErrorCode.NOT_REGISTERED


class IdentityDeactivatedError(PreconditionViolation):
    """Raised when the target identity is deactivating or withdrawn."""
    code = ErrorCode.IDENTITY_DEACTIVATED


class AlreadyDeactivatingError(PreconditionViolation):
    """Raised when deactivating an identity that is already deactivating."""
    code = ErrorCode.ALREADY_DEACTIVATING


class NotDeactivatingError(PreconditionViolation):
    """Raised when reactivating an identity that is active."""
    code = ErrorCode.NOT_DEACTIVATING


class NotDeactivatedError(PreconditionViolation):
    """Raised when withdrawing stake from an identity that was never deactivated."""
    code = ErrorCode.NOT_DEACTIVATED


class IdentityNotFoundError(PreconditionViolation):
    """Raised when an identity key does not resolve to a record."""
    code = ErrorCode.IDENTITY_NOT_FOUND


class InvalidAmountError(PreconditionViolation):
    """Raised for zero or negative amounts."""
    code = ErrorCode.INVALID_AMOUNT


class AlreadyVouchedError(PreconditionViolation):
    """Raised when the voucher already holds an active vouch on the target."""
    code = ErrorCode.ALREADY_VOUCHED


class NoVouchFoundError(PreconditionViolation):
    """Raised when withdrawing a vouch that does not exist or was already withdrawn."""
    code = ErrorCode.NO_VOUCH_FOUND


class UnauthorizedError(PreconditionViolation):
    """Raised when a non-admin principal calls an administrative operation."""
    code = ErrorCode.UNAUTHORIZED


class TransferFailedError(FundsTransferFailure):
    """Raised when a deposit or release could not be settled."""
    code = ErrorCode.TRANSFER_FAILED


class CooldownNotElapsedError(TimingViolation):
    """Raised when stake withdrawal is attempted before the cooldown ends."""
    code = ErrorCode.COOLDOWN_NOT_ELAPSED

    def __init__(self, message: str, available_at: int, identity_key: Optional[str] = None):
        self.available_at = available_at
        super().__init__(message, identity_key)
