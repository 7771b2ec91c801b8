"""
AgentIdentityRegistry - entry point for the agent identity registry.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .accounting import FundingSource, StakeAccounting
from .clock import Clock, SystemClock
from .config import RegistryConfig
from .events import EventLog
from .exceptions import InvalidAmountError, RegistryError, UnauthorizedError
from .lifecycle import IdentityLifecycle
from .models import EventType, Identity, Vouch
from .signatures import BytesLike, SignatureVerifier
from .store import JsonFileLedgerStore, LedgerStore
from .utils import ZERO_ADDRESS, normalize_address
from .vouching import VouchManager


class AgentIdentityRegistry:
    """
    Staked identity registry for autonomous agents.

    The registry handles:
    1. Identity lifecycle: register, link platforms, rotate signing keys,
       deactivate, reactivate, withdraw stake after the cooldown
    2. Vouching: third parties stake behind an identity
    3. Signature verification against the current signing key

    Every mutating call is atomic and totally ordered: it runs inside one
    ledger transaction, settles funds through the funding source, and emits
    exactly one event. A rejected call raises a RegistryError subclass and
    commits nothing.

    Callers are identified by address and passed explicitly as ``caller``;
    authenticating them is the host's job (transaction sender, API auth).
    """

    def __init__(
        self,
        funding: FundingSource,
        config: Optional[RegistryConfig] = None,
        store: Optional[LedgerStore] = None,
        events: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the registry

        Args:
            funding: Token the stakes are denominated in
            config: Registry parameters (defaults apply if omitted)
            store: Ledger store (in-memory if omitted)
            events: Event log (in-memory if omitted)
            clock: Timestamp source (system clock if omitted)
            logger: Optional logger instance

        The config only seeds the administrative parameters of a fresh
        ledger; a store that already carries parameters keeps them.
        """
        self.config = config or RegistryConfig()
        self.store = store if store is not None else LedgerStore()
        self.events = events if events is not None else EventLog()
        self.clock = clock or SystemClock()
        self.funding = funding
        self.logger = logger or logging.getLogger(__name__)

        self.accounting = StakeAccounting(self.store, funding, self.logger)
        self.lifecycle = IdentityLifecycle(self.store, self.accounting, self.events, self.clock)
        self.vouching = VouchManager(self.store, self.accounting, self.events, self.clock)
        self.verifier = SignatureVerifier(self.store)

        with self.store.transaction():
            if self.store.min_stake is None:
                self.store.min_stake = self.config.min_stake
            if self.store.deactivation_cooldown is None:
                self.store.deactivation_cooldown = self.config.deactivation_cooldown
            if self.store.admin is None:
                self.store.admin = self.config.admin

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        funding: FundingSource,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None
    ) -> "AgentIdentityRegistry":
        """Build a registry whose ledger and event log live where the config says."""
        store = JsonFileLedgerStore(config.ledger_path) if config.ledger_path else LedgerStore()
        events = EventLog(config.event_log_path)
        return cls(funding, config=config, store=store, events=events, clock=clock, logger=logger)

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """
        Run one registry operation atomically.

        The event mark is taken inside the transaction, after the shared log
        is reloaded, and rollback hooks (event truncation, fund reversals)
        run before the transaction releases its locks, so no other writer can
        append in between.
        """
        try:
            with self.store.transaction():
                self.events.reload()
                mark = len(self.events)
                self.store.on_rollback(lambda: self.events.truncate(mark))
                yield
        except RegistryError as e:
            self.logger.debug(f"{name} rejected ({type(e).__name__}): {e}")
            raise
        except BaseException:
            self.logger.error(f"{name} aborted; ledger and funds rolled back")
            raise

    # ── parameters ────────────────────────────────────────────────────────

    @property
    def min_stake(self) -> int:
        return self.store.min_stake

    @property
    def deactivation_cooldown(self) -> int:
        return self.store.deactivation_cooldown

    @property
    def admin(self) -> str:
        return self.store.admin

    @property
    def custodied_total(self) -> int:
        return self.store.custodied_total

    # ── identity lifecycle ────────────────────────────────────────────────

    def register(
        self,
        caller: str,
        name: str,
        metadata_pointer: str,
        signing_key: str,
        stake_amount: int
    ) -> str:
        """
        Register an identity for ``caller``.

        Args:
            caller: Owning principal
            name: Non-empty display name
            metadata_pointer: Opaque reference to off-ledger profile data
            signing_key: Address whose signatures the identity vouches for
            stake_amount: Stake to take into custody, at least ``min_stake``

        Returns:
            The new identity key
        """
        caller = normalize_address(caller)
        with self._operation("register"):
            return self.lifecycle.register(caller, name, metadata_pointer, signing_key, stake_amount)

    def link_platform(self, caller: str, platform: str) -> None:
        """
        Append a self-asserted platform string to the caller's identity.

        Args:
            caller: Owner of the identity
            platform: Opaque platform handle, e.g. "github:alice"

        Raises:
            NotRegisteredError: Caller owns no live identity
            IdentityDeactivatedError: The identity is not active
        """
        caller = normalize_address(caller)
        with self._operation("link_platform"):
            self.lifecycle.link_platform(caller, platform)

    def update_signing_key(self, caller: str, new_signing_key: str) -> None:
        """
        Rotate the identity's signing key; signatures by the old key stop verifying.

        Args:
            caller: Owner of the identity
            new_signing_key: Address of the new signing key

        Raises:
            NotRegisteredError: Caller owns no live identity
            InvalidSigningKeyError: Key is missing, malformed or the zero address
        """
        caller = normalize_address(caller)
        with self._operation("update_signing_key"):
            self.lifecycle.update_signing_key(caller, new_signing_key)

    def deactivate(self, caller: str) -> None:
        """
        Start the withdrawal cooldown for the caller's identity.

        Raises:
            NotRegisteredError: Caller owns no live identity
            AlreadyDeactivatingError: Deactivation is already pending
        """
        caller = normalize_address(caller)
        with self._operation("deactivate"):
            self.lifecycle.deactivate(caller)

    def reactivate(self, caller: str) -> None:
        """
        Cancel a pending deactivation; the cooldown restarts on the next one.

        Raises:
            NotRegisteredError: Caller owns no live identity
            NotDeactivatingError: The identity is not deactivating
        """
        caller = normalize_address(caller)
        with self._operation("reactivate"):
            self.lifecycle.reactivate(caller)

    def withdraw_stake(self, caller: str) -> int:
        """Withdraw the caller's stake after the cooldown; returns the released amount."""
        caller = normalize_address(caller)
        with self._operation("withdraw_stake"):
            return self.lifecycle.withdraw_stake(caller)

    # ── vouching ──────────────────────────────────────────────────────────

    def vouch(self, caller: str, identity_key: str, amount: int) -> None:
        """
        Stake ``amount`` of the caller's funds behind an active identity.

        Args:
            caller: Voucher
            identity_key: Identity to vouch for
            amount: Positive amount to take into custody

        Raises:
            IdentityNotFoundError: Unknown identity key
            IdentityDeactivatedError: The identity is not active
            InvalidAmountError: amount is not positive
            AlreadyVouchedError: Caller already has an active vouch on it
            TransferFailedError: The amount could not be pulled
        """
        caller = normalize_address(caller)
        with self._operation("vouch"):
            self.vouching.vouch(caller, identity_key, amount)

    def withdraw_vouch(self, caller: str, identity_key: str) -> int:
        """Withdraw the caller's vouch; returns the released amount."""
        caller = normalize_address(caller)
        with self._operation("withdraw_vouch"):
            return self.vouching.withdraw_vouch(caller, identity_key)

    # ── verification ──────────────────────────────────────────────────────

    def verify_signature(self, identity_key: str, message_digest: BytesLike, signature: BytesLike) -> bool:
        """
        True iff ``signature`` over the prefixed ``message_digest`` was made
        by the identity's current signing key. False for unknown identities.
        """
        with self.store.lock:
            return self.verifier.verify(identity_key, message_digest, signature)

    # ── queries ───────────────────────────────────────────────────────────
    # Queries take the store lock so they never observe a half-rolled-back ledger

    def get_identity(self, identity_key: str) -> Identity:
        """Full record, or a zeroed record for unknown keys."""
        with self.store.lock:
            identity = self.store.get_identity(identity_key)
            if identity is None:
                return Identity()
            return identity.model_copy(deep=True)

    def get_identity_by_owner(self, owner: str) -> Optional[str]:
        """Identity key currently owned by ``owner``, or None."""
        owner = normalize_address(owner)
        with self.store.lock:
            return self.store.identity_of(owner)

    def get_linked_platforms(self, identity_key: str) -> List[str]:
        with self.store.lock:
            return self.store.platforms_of(identity_key)

    def get_vouch_count(self, identity_key: str) -> int:
        """
        Number of currently active vouches on the identity.

        This is not the slot count: withdrawn slots stay in the ledger but
        are skipped here. Use ``len(get_vouches(identity_key))`` for the
        number of slots, withdrawn ones included.
        """
        with self.store.lock:
            return sum(1 for vouch in self.store.vouches_of(identity_key) if vouch.active)

    def get_vouches(self, identity_key: str) -> List[Vouch]:
        """Every vouch slot on the identity, withdrawn slots included, in slot order."""
        with self.store.lock:
            return [vouch.model_copy() for vouch in self.store.vouches_of(identity_key)]

    def get_vouch(self, voucher: str, identity_key: str) -> Optional[Vouch]:
        voucher = normalize_address(voucher)
        with self.store.lock:
            vouch = self.store.get_vouch(voucher, identity_key)
            return vouch.model_copy() if vouch is not None else None

    def is_active(self, identity_key: str) -> bool:
        with self.store.lock:
            identity = self.store.get_identity(identity_key)
            return identity is not None and identity.deactivated_at is None and identity.withdrawn_at is None

    def audit(self) -> bool:
        """Check that custody equals all stakes plus all active vouches."""
        with self.store.lock:
            return self.accounting.audit()

    # ── administration ────────────────────────────────────────────────────

    def _require_admin(self, caller: str) -> None:
        if self.store.admin == ZERO_ADDRESS or caller != self.store.admin:
            raise UnauthorizedError(f"{caller} is not the registry admin")

    def set_min_stake(self, caller: str, amount: int) -> None:
        caller = normalize_address(caller)
        with self._operation("set_min_stake"):
            self._require_admin(caller)
            if amount < 0:
                raise InvalidAmountError(f"Minimum stake cannot be negative, got {amount}")
            old = self.store.min_stake
            self.store.min_stake = amount
            self.events.append(EventType.MIN_STAKE_UPDATED, None, self.clock.now(), oldValue=old, newValue=amount)
            self.logger.info(f"Minimum stake changed from {old} to {amount}")

    def set_deactivation_cooldown(self, caller: str, seconds: int) -> None:
        caller = normalize_address(caller)
        with self._operation("set_deactivation_cooldown"):
            self._require_admin(caller)
            if seconds < 0:
                raise InvalidAmountError(f"Cooldown cannot be negative, got {seconds}")
            old = self.store.deactivation_cooldown
            self.store.deactivation_cooldown = seconds
            self.events.append(
                EventType.DEACTIVATION_COOLDOWN_UPDATED, None, self.clock.now(), oldValue=old, newValue=seconds
            )
            self.logger.info(f"Deactivation cooldown changed from {old}s to {seconds}s")

    def transfer_admin(self, caller: str, new_admin: str) -> None:
        caller = normalize_address(caller)
        new_admin = normalize_address(new_admin)
        with self._operation("transfer_admin"):
            self._require_admin(caller)
            old = self.store.admin
            self.store.admin = new_admin
            self.events.append(EventType.ADMIN_TRANSFERRED, None, self.clock.now(), oldAdmin=old, newAdmin=new_admin)
            self.logger.info(f"Registry admin transferred from {old} to {new_admin}")
