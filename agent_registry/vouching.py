"""
Vouch management.

A voucher holds at most one active vouch per target identity. Withdrawn
vouches keep their slot with a zero amount; vouching again for the same
target reuses that slot.
"""
import logging

from .accounting import StakeAccounting
from .clock import Clock
from .events import EventLog
from .exceptions import (
    AlreadyVouchedError, IdentityDeactivatedError, IdentityNotFoundError,
    InvalidAmountError, NoVouchFoundError,
)
from .models import EventType, IdentityStatus, Vouch
from .store import LedgerStore
from .utils import short_key

logger = logging.getLogger(__name__)


class VouchManager:
    """Adds and withdraws staked endorsements on identities."""

    def __init__(self, store: LedgerStore, accounting: StakeAccounting, events: EventLog, clock: Clock):
        self.store = store
        self.accounting = accounting
        self.events = events
        self.clock = clock

    def vouch(self, caller: str, identity_key: str, amount: int) -> None:
        """
        Stake ``amount`` behind ``identity_key``.

        Raises:
            IdentityNotFoundError: Unknown identity key
            IdentityDeactivatedError: Target is deactivating or withdrawn
            InvalidAmountError: amount is not positive
            AlreadyVouchedError: Caller already has an active vouch on the target
            TransferFailedError: The amount could not be pulled
        """
        identity = self.store.get_identity(identity_key)
        if identity is None:
            raise IdentityNotFoundError(f"Identity {short_key(identity_key)} not found", identity_key)
        if identity.status != IdentityStatus.ACTIVE:
            raise IdentityDeactivatedError(
                f"Identity {short_key(identity_key)} is {identity.status.value}", identity_key
            )
        if amount <= 0:
            raise InvalidAmountError(f"Vouch amount must be positive, got {amount}", identity_key)

        now = self.clock.now()
        existing = self.store.get_vouch(caller, identity_key)
        if existing is not None:
            if existing.active:
                raise AlreadyVouchedError(
                    f"{caller} already vouches {existing.amount} for {short_key(identity_key)}",
                    identity_key
                )
            existing.amount = amount
            existing.timestamp = now
        else:
            self.store.append_vouch(identity_key, Vouch(voucher=caller, amount=amount, timestamp=now))

        identity.total_vouches_received += amount
        self.accounting.deposit(caller, amount)

        self.events.append(EventType.VOUCHED, identity_key, now, voucher=caller, amount=amount)
        logger.info(f"{caller} vouched {amount} for {short_key(identity_key)}")

    def withdraw_vouch(self, caller: str, identity_key: str) -> int:
        """
        Withdraw the caller's active vouch and release its amount.

        Returns:
            The released amount

        Raises:
            NoVouchFoundError: No active vouch by caller on the identity
            TransferFailedError: The amount could not be released
        """
        existing = self.store.get_vouch(caller, identity_key)
        if existing is None or not existing.active:
            raise NoVouchFoundError(
                f"{caller} has no active vouch on {short_key(identity_key)}", identity_key
            )

        amount = existing.amount
        existing.amount = 0
        identity = self.store.get_identity(identity_key)
        identity.total_vouches_received -= amount
        self.accounting.release(caller, amount)

        self.events.append(
            EventType.VOUCH_WITHDRAWN, identity_key, self.clock.now(), voucher=caller, amount=amount
        )
        logger.info(f"{caller} withdrew vouch of {amount} from {short_key(identity_key)}")
        return amount
