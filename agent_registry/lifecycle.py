"""
Identity lifecycle state machine.

    Unregistered --register--> Active --deactivate--> Deactivating
    Deactivating --reactivate--> Active
    Deactivating --withdraw_stake (after cooldown)--> Withdrawn

Withdrawn is terminal for the record but frees the owner, who may then
register a fresh identity under a new key. Operations act on the caller's
own identity, found through the owner index.
"""
import logging
from typing import Optional

from .accounting import StakeAccounting
from .clock import Clock
from .events import EventLog
from .exceptions import (
    AlreadyDeactivatingError, AlreadyRegisteredError, CooldownNotElapsedError,
    InvalidNameError, InvalidSigningKeyError, NotDeactivatedError,
    NotDeactivatingError, NotRegisteredError, IdentityDeactivatedError,
    StakeTooLowError,
)
from .models import EventType, Identity, IdentityStatus
from .store import LedgerStore
from .utils import ZERO_ADDRESS, derive_identity_key, normalize_address, short_key

logger = logging.getLogger(__name__)


def _validate_signing_key(signing_key: Optional[str]) -> str:
    if not signing_key:
        raise InvalidSigningKeyError("Signing key is required")
    try:
        signing_key = normalize_address(signing_key)
    except ValueError:
        raise InvalidSigningKeyError(f"Signing key is not a valid address: {signing_key!r}")
    if signing_key == ZERO_ADDRESS:
        raise InvalidSigningKeyError("Signing key cannot be the zero address")
    return signing_key


class IdentityLifecycle:
    """Register, link, rotate, deactivate, reactivate and withdraw identities."""

    def __init__(self, store: LedgerStore, accounting: StakeAccounting, events: EventLog, clock: Clock):
        self.store = store
        self.accounting = accounting
        self.events = events
        self.clock = clock

    def _own_identity(self, caller: str) -> Identity:
        identity_key = self.store.identity_of(caller)
        if identity_key is None:
            raise NotRegisteredError(f"{caller} has no registered identity")
        return self.store.get_identity(identity_key)

    def register(
        self,
        caller: str,
        name: str,
        metadata_pointer: str,
        signing_key: str,
        stake_amount: int
    ) -> str:
        """
        Create an identity owned by ``caller`` and take its stake into custody.

        Returns:
            The new identity key

        Raises:
            AlreadyRegisteredError: Caller already owns a live identity
            StakeTooLowError: stake_amount is below the minimum stake
            InvalidNameError: name is empty
            InvalidSigningKeyError: signing_key is missing or the zero address
            TransferFailedError: The stake could not be pulled
        """
        existing = self.store.identity_of(caller)
        if existing is not None:
            raise AlreadyRegisteredError(f"{caller} already owns identity {short_key(existing)}", existing)
        if stake_amount < self.store.min_stake:
            raise StakeTooLowError(
                f"Stake {stake_amount} is below the minimum of {self.store.min_stake}",
                min_stake=self.store.min_stake
            )
        if not name or not name.strip():
            raise InvalidNameError("Name cannot be empty")
        signing_key = _validate_signing_key(signing_key)

        now = self.clock.now()
        identity_key = derive_identity_key(name, caller, now, self.store.next_nonce())
        while self.store.has_identity(identity_key):
            identity_key = derive_identity_key(name, caller, now, self.store.next_nonce())

        identity = Identity(
            identity_key=identity_key,
            owner=caller,
            signing_key=signing_key,
            name=name,
            metadata_pointer=metadata_pointer or "",
            staked_amount=stake_amount,
            registered_at=now,
        )
        self.store.put_identity(identity)
        self.store.index_owner(caller, identity_key)
        self.accounting.deposit(caller, stake_amount)

        self.events.append(
            EventType.IDENTITY_REGISTERED, identity_key, now,
            owner=caller, name=name, signingKey=signing_key,
            metadataPointer=identity.metadata_pointer, stakedAmount=stake_amount
        )
        logger.info(f"Registered identity {short_key(identity_key)} for {caller} with stake {stake_amount}")
        return identity_key

    def link_platform(self, caller: str, platform: str) -> None:
        """Append a self-asserted platform string to the caller's active identity."""
        identity = self._own_identity(caller)
        if identity.status != IdentityStatus.ACTIVE:
            raise IdentityDeactivatedError(
                f"Identity {short_key(identity.identity_key)} is {identity.status.value}",
                identity.identity_key
            )
        self.store.append_platform(identity.identity_key, platform)
        self.events.append(
            EventType.PLATFORM_LINKED, identity.identity_key, self.clock.now(), platform=platform
        )
        logger.debug(f"Linked platform to {short_key(identity.identity_key)}")

    def update_signing_key(self, caller: str, new_signing_key: str) -> None:
        """Rotate the signing key; allowed while active or deactivating."""
        identity = self._own_identity(caller)
        new_signing_key = _validate_signing_key(new_signing_key)
        old_signing_key = identity.signing_key
        identity.signing_key = new_signing_key
        self.events.append(
            EventType.SIGNING_KEY_UPDATED, identity.identity_key, self.clock.now(),
            oldSigningKey=old_signing_key, newSigningKey=new_signing_key
        )
        logger.info(f"Rotated signing key for {short_key(identity.identity_key)}")

    def deactivate(self, caller: str) -> None:
        """Start the withdrawal cooldown."""
        identity = self._own_identity(caller)
        if identity.deactivated_at is not None:
            raise AlreadyDeactivatingError(
                f"Identity {short_key(identity.identity_key)} is already deactivating",
                identity.identity_key
            )
        now = self.clock.now()
        identity.deactivated_at = now
        self.events.append(EventType.IDENTITY_DEACTIVATED, identity.identity_key, now)
        logger.info(
            f"Deactivated {short_key(identity.identity_key)}; stake withdrawable at "
            f"{now + self.store.deactivation_cooldown}"
        )

    def reactivate(self, caller: str) -> None:
        """Cancel a pending deactivation."""
        identity = self._own_identity(caller)
        if identity.deactivated_at is None:
            raise NotDeactivatingError(
                f"Identity {short_key(identity.identity_key)} is not deactivating",
                identity.identity_key
            )
        identity.deactivated_at = None
        self.events.append(EventType.IDENTITY_REACTIVATED, identity.identity_key, self.clock.now())
        logger.info(f"Reactivated {short_key(identity.identity_key)}")

    def withdraw_stake(self, caller: str) -> int:
        """
        Release the full stake to the owner once the cooldown has elapsed.

        Returns:
            The released amount

        Raises:
            NotRegisteredError: Caller has no live identity
            NotDeactivatedError: The identity was never deactivated
            CooldownNotElapsedError: Called before deactivated_at + cooldown
            TransferFailedError: The stake could not be released
        """
        identity = self._own_identity(caller)
        if identity.deactivated_at is None:
            raise NotDeactivatedError(
                f"Identity {short_key(identity.identity_key)} must be deactivated first",
                identity.identity_key
            )
        now = self.clock.now()
        available_at = identity.deactivated_at + self.store.deactivation_cooldown
        if now < available_at:
            raise CooldownNotElapsedError(
                f"Cooldown ends at {available_at}, {available_at - now}s from now",
                available_at=available_at,
                identity_key=identity.identity_key
            )

        amount = identity.staked_amount
        identity.staked_amount = 0
        identity.withdrawn_at = now
        self.store.clear_owner(caller)
        self.accounting.release(caller, amount)

        self.events.append(EventType.STAKE_WITHDRAWN, identity.identity_key, now, owner=caller, amount=amount)
        logger.info(f"Withdrew stake {amount} from {short_key(identity.identity_key)}")
        return amount
