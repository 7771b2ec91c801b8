"""
Agent identity registry.

A ledger of staked, vouchable identities for autonomous agents, with
signature verification against each identity's registered signing key.
"""
from .registry import AgentIdentityRegistry
from .models import Identity, IdentityStatus, Vouch, EventType, RegistryEvent
from .config import RegistryConfig, NetworkConfig
from .accounting import FundingSource, InMemoryToken, StakeAccounting
from .erc20 import ERC20FundingSource
from .clock import Clock, SystemClock, ManualClock
from .events import EventLog
from .store import LedgerStore, JsonFileLedgerStore
from .signatures import SignatureVerifier, sign_digest, recover_signer
from .exceptions import (
    ErrorCode, RegistryError, PreconditionViolation, FundsTransferFailure, TimingViolation,
    AlreadyRegisteredError, StakeTooLowError, InvalidNameError, InvalidSigningKeyError,
    NotRegisteredError, IdentityDeactivatedError, AlreadyDeactivatingError,
    NotDeactivatingError, NotDeactivatedError, CooldownNotElapsedError,
    IdentityNotFoundError, InvalidAmountError, AlreadyVouchedError, NoVouchFoundError,
    UnauthorizedError, TransferFailedError,
)
from .version import __version__

__all__ = [
    "AgentIdentityRegistry",
    "Identity",
    "IdentityStatus",
    "Vouch",
    "EventType",
    "RegistryEvent",
    "RegistryConfig",
    "NetworkConfig",
    "FundingSource",
    "InMemoryToken",
    "StakeAccounting",
    "ERC20FundingSource",
    "Clock",
    "SystemClock",
    "ManualClock",
    "EventLog",
    "LedgerStore",
    "JsonFileLedgerStore",
    "SignatureVerifier",
    "sign_digest",
    "recover_signer",
    "ErrorCode",
    "RegistryError",
    "PreconditionViolation",
    "FundsTransferFailure",
    "TimingViolation",
    "AlreadyRegisteredError",
    "StakeTooLowError",
    "InvalidNameError",
    "InvalidSigningKeyError",
    "NotRegisteredError",
    "IdentityDeactivatedError",
    "AlreadyDeactivatingError",
    "NotDeactivatingError",
    "NotDeactivatedError",
    "CooldownNotElapsedError",
    "IdentityNotFoundError",
    "InvalidAmountError",
    "AlreadyVouchedError",
    "NoVouchFoundError",
    "UnauthorizedError",
    "TransferFailedError",
    "__version__",
]
