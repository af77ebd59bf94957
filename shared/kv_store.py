"""
Backing key-value store.

This is the contract the versioned record store is built on, plus an
in-memory implementation used by the application, the CLI and the tests.
In production this role is played by a managed table with conditional
writes (e.g. DynamoDB).

Contract:
- Items are plain dicts addressed by (pk, sk)
- Single-item writes are atomic and may carry field preconditions
- Secondary indexes are read by (index pk, sort-key prefix)
- Multi-item all-or-nothing writes are optional (``supports_transactions``)
- Items carrying an ``expiry`` (epoch seconds) are garbage-collected passively

The in-memory store holds one lock for the duration of a single operation
only, which is what makes each write an atomic compare-and-set.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from shared.results import StoreError

logger = logging.getLogger("kv_store")

Item = dict[str, Any]

# Index name -> (partition attribute, sort attribute)
INDEXES: dict[str, tuple[str, str]] = {
    "GSI1": ("gsi1pk", "gsi1sk"),
    "GSI2": ("gsi2pk", "gsi2sk"),
}


class ConditionFailed(Exception):
    """A single-item precondition did not hold. Carries the stored item (or None)."""

    def __init__(self, current: Optional[Item], reason: str = "condition failed"):
        super().__init__(reason)
        self.current = current
        self.reason = reason


class TransactionCanceled(Exception):
    """A multi-item write was rejected; ``reasons`` lines up with the operations."""

    def __init__(self, reasons: list[Optional[str]]):
        super().__init__(f"Transaction cancelled: {reasons}")
        self.reasons = reasons

    @property
    def failed_index(self) -> Optional[int]:
        for i, reason in enumerate(self.reasons):
            if reason is not None:
                return i
        return None


# =============================================================================
# Transaction operations
# =============================================================================

@dataclass
class PutOp:
    item: Item
    if_absent: bool = True


@dataclass
class UpdateOp:
    pk: str
    sk: str
    changes: Item
    conditions: Item = field(default_factory=dict)


@dataclass
class DeleteOp:
    pk: str
    sk: str
    conditions: Item = field(default_factory=dict)


@dataclass
class ConditionCheckOp:
    """Guard an item that the transaction does not write."""
    pk: str
    sk: str
    conditions: Item = field(default_factory=dict)


TransactOp = Union[PutOp, UpdateOp, DeleteOp, ConditionCheckOp]


class KeyValueStore(ABC):
    """Abstract backing store."""

    supports_transactions: bool = False

    @abstractmethod
    def get(self, pk: str, sk: str) -> Optional[Item]: ...

    @abstractmethod
    def put_if_absent(self, item: Item) -> None:
        """Insert ``item``; raises ConditionFailed if the key exists."""

    @abstractmethod
    def put(self, item: Item) -> None: ...

    @abstractmethod
    def conditional_update(self, pk: str, sk: str, changes: Item, conditions: Item) -> Item:
        """
        Merge ``changes`` into the stored item if every ``conditions`` field
        matches. Raises ConditionFailed (carrying the stored item) otherwise.
        """

    @abstractmethod
    def update_fields(self, pk: str, sk: str, changes: Item) -> Optional[Item]:
        """
        Atomically set (possibly dotted) field paths without any precondition.
        Returns the new item, or None if the key does not exist.
        """

    @abstractmethod
    def delete(self, pk: str, sk: str, conditions: Optional[Item] = None) -> Optional[Item]: ...

    @abstractmethod
    def query(self, pk: str, sk_prefix: str = "") -> list[Item]: ...

    @abstractmethod
    def query_index(self, index: str, pk: str, sk_prefix: str = "") -> list[Item]: ...

    def transact_write(self, operations: list[TransactOp]) -> None:
        raise StoreError(f"{type(self).__name__} does not support multi-item transactions")

    def check_conditions(self, pk: str, sk: str, conditions: Item) -> Optional[str]:
        """Non-transactional read-and-compare. Returns the failure reason, if any."""
        current = self.get(pk, sk)
        if current is None:
            return "item does not exist"
        for name, expected in conditions.items():
            if current.get(name) != expected:
                return f"{name} is {current.get(name)!r}, expected {expected!r}"
        return None

    @abstractmethod
    def purge_expired(self, now_epoch: int) -> int: ...


class InMemoryKeyValueStore(KeyValueStore):
    """
    Thread-safe in-memory store.

    Items are deep-copied in and out so callers can never mutate stored state.

    Example usage:
        store = InMemoryKeyValueStore()
        store.put_if_absent({"pk": "FAMILY#f1", "sk": "ITEM#1", "version": 1})
        store.conditional_update("FAMILY#f1", "ITEM#1", {"version": 2}, {"version": 1})
    """

    def __init__(self, supports_transactions: bool = True):
        self.supports_transactions = supports_transactions
        self._items: dict[tuple[str, str], Item] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Single-item operations
    # =========================================================================

    def get(self, pk: str, sk: str) -> Optional[Item]:
        with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    def put_if_absent(self, item: Item) -> None:
        key = self._key_of(item)
        with self._lock:
            if key in self._items:
                raise ConditionFailed(copy.deepcopy(self._items[key]), "item already exists")
            self._items[key] = copy.deepcopy(item)

    def put(self, item: Item) -> None:
        with self._lock:
            self._items[self._key_of(item)] = copy.deepcopy(item)

    def conditional_update(self, pk: str, sk: str, changes: Item, conditions: Item) -> Item:
        with self._lock:
            current = self._items.get((pk, sk))
            reason = self._check(current, conditions, must_exist=True)
            if reason:
                raise ConditionFailed(copy.deepcopy(current), reason)
            current.update(copy.deepcopy(changes))
            return copy.deepcopy(current)

    def update_fields(self, pk: str, sk: str, changes: Item) -> Optional[Item]:
        with self._lock:
            current = self._items.get((pk, sk))
            if current is None:
                return None
            for path, value in changes.items():
                self._set_path(current, path, copy.deepcopy(value))
            return copy.deepcopy(current)

    def delete(self, pk: str, sk: str, conditions: Optional[Item] = None) -> Optional[Item]:
        with self._lock:
            current = self._items.get((pk, sk))
            if conditions:
                reason = self._check(current, conditions, must_exist=True)
                if reason:
                    raise ConditionFailed(copy.deepcopy(current), reason)
            return self._items.pop((pk, sk), None)

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, pk: str, sk_prefix: str = "") -> list[Item]:
        with self._lock:
            matches = [
                item for (item_pk, item_sk), item in self._items.items()
                if item_pk == pk and item_sk.startswith(sk_prefix)
            ]
            matches.sort(key=lambda item: item["sk"])
            return copy.deepcopy(matches)

    def query_index(self, index: str, pk: str, sk_prefix: str = "") -> list[Item]:
        try:
            pk_attr, sk_attr = INDEXES[index]
        except KeyError:
            raise StoreError(f"Unknown index: {index}")
        with self._lock:
            matches = [
                item for item in self._items.values()
                if item.get(pk_attr) == pk and str(item.get(sk_attr, "")).startswith(sk_prefix)
            ]
            matches.sort(key=lambda item: str(item.get(sk_attr, "")))
            return copy.deepcopy(matches)

    # =========================================================================
    # Multi-item transactions
    # =========================================================================

    def transact_write(self, operations: list[TransactOp]) -> None:
        """
        Apply every operation or none of them.

        All preconditions are evaluated before anything is written; if one
        fails the whole batch is cancelled with per-operation reasons.
        """
        if not self.supports_transactions:
            super().transact_write(operations)

        with self._lock:
            reasons: list[Optional[str]] = []
            for op in operations:
                if isinstance(op, PutOp):
                    exists = self._key_of(op.item) in self._items
                    reasons.append("item already exists" if op.if_absent and exists else None)
                else:
                    current = self._items.get((op.pk, op.sk))
                    must_exist = isinstance(op, (UpdateOp, ConditionCheckOp))
                    reasons.append(self._check(current, op.conditions, must_exist=must_exist))

            if any(reasons):
                logger.info(f"Transaction cancelled: {reasons}")
                raise TransactionCanceled(reasons)

            for op in operations:
                if isinstance(op, PutOp):
                    self._items[self._key_of(op.item)] = copy.deepcopy(op.item)
                elif isinstance(op, UpdateOp):
                    self._items[(op.pk, op.sk)].update(copy.deepcopy(op.changes))
                elif isinstance(op, DeleteOp):
                    self._items.pop((op.pk, op.sk), None)

    # =========================================================================
    # Retention
    # =========================================================================

    def purge_expired(self, now_epoch: int) -> int:
        """Remove items whose ``expiry`` has passed. Returns how many were removed."""
        with self._lock:
            expired = [
                key for key, item in self._items.items()
                if item.get("expiry") is not None and item["expiry"] <= now_epoch
            ]
            for key in expired:
                del self._items[key]
        if expired:
            logger.info(f"Purged {len(expired)} expired item(s)")
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._items)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _key_of(item: Item) -> tuple[str, str]:
        try:
            return item["pk"], item["sk"]
        except KeyError:
            raise StoreError("Items must carry 'pk' and 'sk'")

    @staticmethod
    def _check(current: Optional[Item], conditions: Item, must_exist: bool) -> Optional[str]:
        if current is None:
            return "item does not exist" if must_exist or conditions else None
        for name, expected in conditions.items():
            if current.get(name) != expected:
                return f"{name} is {current.get(name)!r}, expected {expected!r}"
        return None

    @staticmethod
    def _set_path(item: Item, path: str, value: Any) -> None:
        parts = path.split(".")
        target = item
        for part in parts[:-1]:
            nxt = target.get(part)
            if not isinstance(nxt, dict):
                nxt = {}
                target[part] = nxt
            target = nxt
        target[parts[-1]] = value
