"""
Stake accounting for the identity registry.

Funds move between an external funding source and the registry's custody.
The custodied total is tracked in the ledger store so it rolls back with
the rest of the ledger when an operation fails, and it must always equal
the sum of every identity's stake plus every active vouch.
"""
import logging
from typing import Callable, Dict, Optional, Protocol

from .exceptions import InvalidAmountError, TransferFailedError
from .store import LedgerStore
from .utils import normalize_address

logger = logging.getLogger(__name__)

DEFAULT_CUSTODY_ADDRESS = "0x000000000000000000000000000000000000dEaD"


class FundingSource(Protocol):
    """Protocol for the token the registry takes custody of"""
    custody_address: str

    def pull(self, principal: str, amount: int) -> None:
        """Move ``amount`` from ``principal`` into custody or raise TransferFailedError"""
        ...

    def push(self, principal: str, amount: int) -> None:
        """Move ``amount`` from custody to ``principal`` or raise TransferFailedError"""
        ...


class InMemoryToken:
    """
    Fungible token with balances and allowances held in memory.

    Mirrors ERC-20 transferFrom semantics: the registry can only pull what
    the principal has approved for the custody address.
    """

    def __init__(self, custody_address: str = DEFAULT_CUSTODY_ADDRESS, symbol: str = "USDC", decimals: int = 6):
        self.custody_address = normalize_address(custody_address)
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, int] = {}

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Cannot mint a negative amount")
        to = normalize_address(to)
        self._balances[to] = self._balances.get(to, 0) + amount

    def approve(self, owner: str, amount: int) -> None:
        """Set how much the custody address may pull from ``owner``."""
        if amount < 0:
            raise ValueError("Allowance cannot be negative")
        self._allowances[normalize_address(owner)] = amount

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def allowance(self, owner: str) -> int:
        return self._allowances.get(normalize_address(owner), 0)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    def pull(self, principal: str, amount: int) -> None:
        principal = normalize_address(principal)
        allowed = self._allowances.get(principal, 0)
        if allowed < amount:
            raise TransferFailedError(
                f"Insufficient allowance: {principal} approved {allowed}, needs {amount}"
            )
        balance = self._balances.get(principal, 0)
        if balance < amount:
            raise TransferFailedError(
                f"Insufficient balance: {principal} holds {balance}, needs {amount}"
            )
        self._allowances[principal] = allowed - amount
        self._move(principal, self.custody_address, amount)

    def push(self, principal: str, amount: int) -> None:
        principal = normalize_address(principal)
        held = self._balances.get(self.custody_address, 0)
        if held < amount:
            raise TransferFailedError(f"Custody holds {held}, cannot release {amount}")
        self._move(self.custody_address, principal, amount)

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        self._balances[sender] = self._balances.get(sender, 0) - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount


class StakeAccounting:
    """
    Moves stake between principals and custody.

    Each call settles with the funding source first and only then adjusts the
    custodied total, so a refused transfer leaves the ledger untouched.
    Callers run these inside a store transaction; a transfer that settled is
    reversed with the opposite transfer if that transaction rolls back.
    """

    def __init__(self, store: LedgerStore, funding: FundingSource, logger: Optional[logging.Logger] = None):
        self.store = store
        self.funding = funding
        self.logger = logger or logging.getLogger(__name__)

    def deposit(self, principal: str, amount: int) -> None:
        """
        Take ``amount`` from ``principal`` into custody.

        Raises:
            InvalidAmountError: If amount is negative
            TransferFailedError: If the funding source refuses the transfer
        """
        if amount < 0:
            raise InvalidAmountError(f"Deposit amount must be non-negative, got {amount}")
        if amount == 0:
            return
        try:
            self.funding.pull(principal, amount)
        except TransferFailedError as e:
            self.logger.warning(f"Deposit of {amount} from {principal} failed: {e}")
            raise
        self.store.on_rollback(lambda: self._reverse("deposit", self.funding.push, principal, amount))
        self.store.custodied_total += amount
        self.logger.debug(f"Deposited {amount} from {principal}; custody now {self.store.custodied_total}")

    def release(self, principal: str, amount: int) -> None:
        """
        Return ``amount`` from custody to ``principal``.

        Raises:
            InvalidAmountError: If amount is negative or exceeds custody
            TransferFailedError: If the funding source refuses the transfer
        """
        if amount < 0:
            raise InvalidAmountError(f"Release amount must be non-negative, got {amount}")
        if amount > self.store.custodied_total:
            raise InvalidAmountError(
                f"Cannot release {amount}; only {self.store.custodied_total} in custody"
            )
        if amount == 0:
            return
        try:
            self.funding.push(principal, amount)
        except TransferFailedError as e:
            self.logger.warning(f"Release of {amount} to {principal} failed: {e}")
            raise
        self.store.on_rollback(lambda: self._reverse("release", self.funding.pull, principal, amount))
        self.store.custodied_total -= amount
        self.logger.debug(f"Released {amount} to {principal}; custody now {self.store.custodied_total}")

    def _reverse(self, label: str, transfer: Callable[[str, int], None], principal: str, amount: int) -> None:
        """Undo a settled transfer when the operation that made it rolls back."""
        try:
            transfer(principal, amount)
        except TransferFailedError as e:
            self.logger.error(
                f"Could not reverse {label} of {amount} for {principal}; funds need manual settlement: {e}"
            )
            return
        self.logger.warning(f"Reversed {label} of {amount} for {principal} after rollback")

    def expected_custody(self) -> int:
        """Sum of all identity stakes and all active vouch amounts."""
        staked = sum(identity.staked_amount for identity in self.store.identities.values())
        vouched = sum(
            vouch.amount
            for entries in self.store.vouches.values()
            for vouch in entries
        )
        return staked + vouched

    def audit(self) -> bool:
        """Check the conservation invariant, logging any discrepancy."""
        expected = self.expected_custody()
        if expected != self.store.custodied_total:
            self.logger.error(
                f"Custody mismatch: ledger holds {self.store.custodied_total}, "
                f"stakes and vouches sum to {expected}"
            )
            return False
        return True
