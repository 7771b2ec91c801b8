"""
Ledger storage for the identity registry.

Identity records are never deleted. Withdrawal only zeroes the stake and
clears the owner index entry, so historical signature checks keep working.
"""
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Any, Iterator, List, Optional, Tuple, Union

import fasteners
import portalocker

from .models import Identity, Vouch

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class LedgerStore:
    """
    In-memory ledger of identities, owner index, platform links and vouches.

    All mutation must happen inside ``transaction()``. The transaction holds a
    re-entrant lock for its whole lifetime and restores the pre-transaction
    state if the body raises, so an operation either commits fully or leaves
    the ledger untouched.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._rollback_hooks: List[Callable[[], None]] = []
        self._reset()

    def _reset(self) -> None:
        self.identities: Dict[str, Identity] = {}
        self.owner_index: Dict[str, str] = {}
        self.platforms: Dict[str, List[str]] = {}
        self.vouches: Dict[str, List[Vouch]] = {}
        self.vouch_slots: Dict[Tuple[str, str], int] = {}
        self.custodied_total = 0
        self.registration_nonce = 0
        # Administrative parameters; None until seeded from configuration
        self.min_stake: Optional[int] = None
        self.deactivation_cooldown: Optional[int] = None
        self.admin: Optional[str] = None

    @property
    def lock(self):
        return self._lock

    # ── transactions ──────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """Run a block of mutations atomically."""
        with self._lock:
            if self._depth:
                # Nested: the outermost transaction owns rollback and commit
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._begin()
            snapshot = self.to_dict()
            self._depth = 1
            self._rollback_hooks = []
            try:
                yield self
                self._commit()
            except BaseException:
                self._run_rollback_hooks()
                self._load_dict(snapshot)
                logger.debug("Ledger transaction rolled back")
                raise
            finally:
                self._depth = 0
                self._rollback_hooks = []

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """
        Register an undo step for effects outside the ledger (fund transfers,
        emitted events).

        Hooks run newest first if the current transaction rolls back, while
        the transaction's locks are still held. Outside a transaction there
        is nothing to roll back and the hook is dropped.
        """
        with self._lock:
            if self._depth:
                self._rollback_hooks.append(hook)

    def _run_rollback_hooks(self) -> None:
        hooks, self._rollback_hooks = self._rollback_hooks, []
        for hook in reversed(hooks):
            try:
                hook()
            except Exception as e:
                logger.error(f"Rollback step failed: {e}")

    def _begin(self) -> None:
        """Hook run before a transaction takes its snapshot."""

    def _commit(self) -> None:
        """Hook run after a transaction body completes without error."""

    # ── identities ────────────────────────────────────────────────────────

    def get_identity(self, identity_key: str) -> Optional[Identity]:
        return self.identities.get(identity_key)

    def identity_of(self, owner: str) -> Optional[str]:
        return self.owner_index.get(owner)

    def has_identity(self, identity_key: str) -> bool:
        return identity_key in self.identities

    def put_identity(self, identity: Identity) -> None:
        self.identities[identity.identity_key] = identity
        self.platforms.setdefault(identity.identity_key, [])
        self.vouches.setdefault(identity.identity_key, [])

    def index_owner(self, owner: str, identity_key: str) -> None:
        self.owner_index[owner] = identity_key

    def clear_owner(self, owner: str) -> None:
        self.owner_index.pop(owner, None)

    def next_nonce(self) -> int:
        self.registration_nonce += 1
        return self.registration_nonce

    # ── platform links ────────────────────────────────────────────────────

    def platforms_of(self, identity_key: str) -> List[str]:
        return list(self.platforms.get(identity_key, []))

    def append_platform(self, identity_key: str, platform: str) -> None:
        self.platforms.setdefault(identity_key, []).append(platform)

    # ── vouches ───────────────────────────────────────────────────────────

    def vouches_of(self, identity_key: str) -> List[Vouch]:
        return self.vouches.get(identity_key, [])

    def vouch_slot(self, voucher: str, identity_key: str) -> Optional[int]:
        """Index of the voucher's slot on the identity, or None if never vouched."""
        return self.vouch_slots.get((voucher, identity_key))

    def get_vouch(self, voucher: str, identity_key: str) -> Optional[Vouch]:
        slot = self.vouch_slot(voucher, identity_key)
        if slot is None:
            return None
        return self.vouches[identity_key][slot]

    def append_vouch(self, identity_key: str, vouch: Vouch) -> int:
        entries = self.vouches.setdefault(identity_key, [])
        entries.append(vouch)
        slot = len(entries) - 1
        self.vouch_slots[(vouch.voucher, identity_key)] = slot
        return slot

    # ── serialization ─────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STORE_FORMAT_VERSION,
            "identities": {
                key: identity.model_dump(by_alias=True)
                for key, identity in self.identities.items()
            },
            "ownerIndex": dict(self.owner_index),
            "platforms": {key: list(links) for key, links in self.platforms.items()},
            "vouches": {
                key: [v.model_dump(by_alias=True) for v in entries]
                for key, entries in self.vouches.items()
            },
            "custodiedTotal": self.custodied_total,
            "registrationNonce": self.registration_nonce,
            "parameters": {
                "minStake": self.min_stake,
                "deactivationCooldown": self.deactivation_cooldown,
                "admin": self.admin,
            },
        }

    def _load_dict(self, data: Dict[str, Any]) -> None:
        version = data.get("version", STORE_FORMAT_VERSION)
        if version != STORE_FORMAT_VERSION:
            raise ValueError(f"Unsupported ledger format version: {version}")

        self._reset()
        for key, raw in data.get("identities", {}).items():
            self.identities[key] = Identity.model_validate(raw)
        self.owner_index = dict(data.get("ownerIndex", {}))
        self.platforms = {key: list(links) for key, links in data.get("platforms", {}).items()}
        for key, entries in data.get("vouches", {}).items():
            self.vouches[key] = [Vouch.model_validate(v) for v in entries]
            # Slot index is rebuilt from list positions: one slot per voucher
            for slot, vouch in enumerate(self.vouches[key]):
                self.vouch_slots[(vouch.voucher, key)] = slot
        self.custodied_total = int(data.get("custodiedTotal", 0))
        self.registration_nonce = int(data.get("registrationNonce", 0))
        parameters = data.get("parameters", {})
        self.min_stake = parameters.get("minStake")
        self.deactivation_cooldown = parameters.get("deactivationCooldown")
        self.admin = parameters.get("admin")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerStore":
        store = cls()
        store._load_dict(data)
        return store


class JsonFileLedgerStore(LedgerStore):
    """
    Ledger store persisted to a JSON file.

    Transactions are serialized across processes with an inter-process lock;
    each transaction reloads the file before running and writes it back on
    commit. Reads between transactions see the state as of the last
    transaction in this process; call ``reload()`` to pick up writes made by
    other processes.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__()
        self._ensure_dir()
        self._process_lock = fasteners.InterProcessLock(str(self.path) + ".txlock")
        self.reload()

    def _ensure_dir(self) -> None:
        directory = self.path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)

    def _get_lock_path(self) -> str:
        return str(self.path) + ".lock"

    def reload(self) -> None:
        """Load ledger state from disk, starting empty if the file does not exist."""
        with self._lock:
            data = self._read()
            if data is None:
                self._reset()
            else:
                self._load_dict(data)

    def _read(self) -> Optional[Dict[str, Any]]:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            try:
                with open(self.path, "r") as f:
                    return json.load(f)
            except FileNotFoundError:
                return None
            except json.JSONDecodeError as e:
                raise ValueError(f"Corrupt ledger file {self.path}: {e}") from e

    def _write(self, data: Dict[str, Any]) -> None:
        tmp_path = str(self.path) + ".tmp"
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        with self._lock:
            if self._depth:
                with super().transaction() as store:
                    yield store
                return

            with self._process_lock:
                with super().transaction() as store:
                    yield store

    def _begin(self) -> None:
        self.reload()

    def _commit(self) -> None:
        self._write(self.to_dict())
        logger.debug(f"Ledger committed to {self.path}")
