"""
Versioned record store.

A generic optimistic-concurrency layer over the backing key-value store.
Reads are unguarded; every mutating write is a conditional write on the
version the caller read. There is no separate lock step: the conditional
write is the lock.

Multi-record writes go through ``transact``. When the backend offers
all-or-nothing writes they are used directly. Otherwise the operations are
applied one at a time and undone in reverse order if a later one fails.
In that fallback a concurrent reader may briefly observe the earlier
writes before they are compensated.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar, Union

from shared.kv_store import (
    ConditionCheckOp,
    ConditionFailed,
    KeyValueStore,
    PutOp,
    TransactionCanceled,
    UpdateOp,
)
from shared.models import VersionedRecord, family_key, utc_now
from shared.results import (
    AlreadyExists,
    NotFound,
    Success,
    TransactionAborted,
    VersionConflict,
)

logger = logging.getLogger("record_store")

T = TypeVar("T", bound=VersionedRecord)

Changes = Union[dict[str, Any], Callable[[Any], dict[str, Any]]]


# =============================================================================
# Transaction operations (record level)
# =============================================================================

@dataclass
class CreateRecord:
    """Insert a new record; fails the transaction if the key exists."""
    record: VersionedRecord


@dataclass
class UpdateRecord:
    """Versioned update of an existing record, with optional extra field guards."""
    model: type
    family_id: str
    record_id: str
    expected_version: int
    changes: Changes
    conditions: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckRecord:
    """Require a record to exist with the given field values; writes nothing."""
    model: type
    family_id: str
    record_id: str
    conditions: dict[str, Any] = field(default_factory=dict)


RecordOp = Union[CreateRecord, UpdateRecord, CheckRecord]


class VersionedRecordStore:
    """
    Optimistic-concurrency wrapper around a KeyValueStore.

    Example usage:
        records = VersionedRecordStore(InMemoryKeyValueStore())
        created = records.create(item).value
        result = records.update(InventoryItem, item.family_id, item.id,
                                expected_version=created.version,
                                changes={"quantity": 3})
        if isinstance(result, VersionConflict):
            print(result.current.version)
    """

    def __init__(self, backend: KeyValueStore):
        self.backend = backend

    @property
    def supports_transactions(self) -> bool:
        return self.backend.supports_transactions

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, model: type[T], family_id: str, record_id: str) -> Optional[T]:
        pk, sk = model.key_for(family_id, record_id)
        item = self.backend.get(pk, sk)
        return model.from_item(item) if item is not None else None

    def query(self, model: type[T], family_id: str) -> list[T]:
        """All records of ``model`` within one family."""
        items = self.backend.query(family_key(family_id), f"{model.ENTITY}#")
        return [model.from_item(item) for item in items]

    def query_index(self, model: type[T], index: str, pk: str, sk_prefix: str = "") -> list[T]:
        items = self.backend.query_index(index, pk, sk_prefix)
        return [model.from_item(item) for item in items]

    # =========================================================================
    # Single-record writes
    # =========================================================================

    def create(self, record: T) -> Union[Success[T], AlreadyExists]:
        """Insert ``record`` at version 1. Put-if-absent."""
        try:
            self.backend.put_if_absent(record.to_item())
        except ConditionFailed as e:
            current = type(record).from_item(e.current) if e.current else None
            return AlreadyExists(current=current)
        logger.debug(f"Created {record.sk} in {record.pk}")
        return Success(record)

    def update(
        self,
        model: type[T],
        family_id: str,
        record_id: str,
        expected_version: int,
        changes: Changes,
        conditions: Optional[dict[str, Any]] = None,
    ) -> Union[Success[T], VersionConflict, NotFound]:
        """
        Apply ``changes`` if the stored version equals ``expected_version``.

        ``changes`` is a dict of field values or a callable that receives the
        record as read and returns one. On success the version becomes
        ``expected_version + 1`` and ``updated_at`` is stamped.
        """
        current = self.get(model, family_id, record_id)
        if current is None:
            return NotFound(entity=model.__name__, key=record_id)
        if current.version != expected_version:
            return VersionConflict(current=current)

        updated, diff = self._apply(current, changes)
        guards = {"version": expected_version, **(conditions or {})}
        try:
            item = self.backend.conditional_update(current.pk, current.sk, diff, guards)
        except ConditionFailed as e:
            if e.current is None:
                return NotFound(entity=model.__name__, key=record_id)
            latest = model.from_item(e.current)
            logger.info(
                f"Version conflict on {current.sk}: expected v{expected_version}, "
                f"found v{latest.version}"
            )
            return VersionConflict(current=latest)
        return Success(model.from_item(item))

    def delete(
        self,
        model: type[T],
        family_id: str,
        record_id: str,
        expected_version: Optional[int] = None,
    ) -> Union[Success[T], VersionConflict, NotFound]:
        pk, sk = model.key_for(family_id, record_id)
        conditions = {"version": expected_version} if expected_version is not None else None
        try:
            item = self.backend.delete(pk, sk, conditions)
        except ConditionFailed as e:
            if e.current is None:
                return NotFound(entity=model.__name__, key=record_id)
            return VersionConflict(current=model.from_item(e.current))
        if item is None:
            return NotFound(entity=model.__name__, key=record_id)
        return Success(model.from_item(item))

    def set_fields(self, model: type[T], family_id: str, record_id: str, fields: dict[str, Any]) -> Optional[T]:
        """
        Atomic unversioned field update (dotted paths allowed).

        Used for bookkeeping that must not contend with user edits, such as
        the delivery ledger.
        """
        pk, sk = model.key_for(family_id, record_id)
        item = self.backend.update_fields(pk, sk, fields)
        return model.from_item(item) if item is not None else None

    # =========================================================================
    # Multi-record writes
    # =========================================================================

    def transact(self, operations: list[RecordOp]) -> Union[Success[list[Optional[VersionedRecord]]], TransactionAborted, NotFound]:
        """
        Apply every operation or none.

        Returns the resulting records aligned with ``operations`` (None for checks).
        """
        prepared = []
        for op in operations:
            if isinstance(op, CreateRecord):
                prepared.append((op, None, op.record, op.record.to_item()))
                continue
            if isinstance(op, CheckRecord):
                prepared.append((op, None, None, op.model.key_for(op.family_id, op.record_id)))
                continue
            current = self.get(op.model, op.family_id, op.record_id)
            if current is None:
                return NotFound(entity=op.model.__name__, key=op.record_id)
            if current.version != op.expected_version:
                return TransactionAborted(
                    reason=f"{op.model.__name__} {op.record_id} is at version {current.version}",
                    current=current,
                )
            updated, diff = self._apply(current, op.changes)
            prepared.append((op, current, updated, diff))

        if self.supports_transactions:
            return self._transact_atomic(prepared)
        return self._transact_compensating(prepared)

    def _transact_atomic(self, prepared) -> Union[Success[list[Optional[VersionedRecord]]], TransactionAborted]:
        kv_ops = []
        for op, current, updated, payload in prepared:
            if isinstance(op, CreateRecord):
                kv_ops.append(PutOp(item=payload, if_absent=True))
            elif isinstance(op, CheckRecord):
                pk, sk = payload
                kv_ops.append(ConditionCheckOp(pk=pk, sk=sk, conditions=dict(op.conditions)))
            else:
                guards = {"version": op.expected_version, **op.conditions}
                kv_ops.append(UpdateOp(pk=current.pk, sk=current.sk, changes=payload, conditions=guards))
        try:
            self.backend.transact_write(kv_ops)
        except TransactionCanceled as e:
            current = None
            if e.failed_index is not None:
                op = prepared[e.failed_index][0]
                if isinstance(op, UpdateRecord):
                    current = self.get(op.model, op.family_id, op.record_id)
            return TransactionAborted(reason=f"Transaction cancelled: {e.reasons}", current=current)
        return Success([updated for _, _, updated, _ in prepared])

    def _transact_compensating(self, prepared) -> Union[Success[list[Optional[VersionedRecord]]], TransactionAborted]:
        applied = []
        for op, current, updated, payload in prepared:
            if isinstance(op, CheckRecord):
                pk, sk = payload
                reason = self.backend.check_conditions(pk, sk, op.conditions)
                if reason:
                    logger.warning(f"Compensating {len(applied)} write(s) after failed check on {sk}: {reason}")
                    self._compensate(applied)
                    return TransactionAborted(reason=f"{sk}: {reason}")
                continue
            try:
                if isinstance(op, CreateRecord):
                    self.backend.put_if_absent(payload)
                else:
                    guards = {"version": op.expected_version, **op.conditions}
                    self.backend.conditional_update(current.pk, current.sk, payload, guards)
            except ConditionFailed as e:
                logger.warning(f"Compensating {len(applied)} write(s) after failure on {updated.sk}: {e.reason}")
                self._compensate(applied)
                latest = None
                if isinstance(op, UpdateRecord) and e.current is not None:
                    latest = op.model.from_item(e.current)
                return TransactionAborted(reason=f"{updated.sk}: {e.reason}", current=latest)
            applied.append((op, current, updated))
        return Success([updated for _, _, updated, _ in prepared])

    def _compensate(self, applied) -> None:
        for op, before, after in reversed(applied):
            try:
                if isinstance(op, CreateRecord):
                    self.backend.delete(after.pk, after.sk, {"version": after.version})
                else:
                    restore = before.to_item()
                    self.backend.conditional_update(after.pk, after.sk, restore, {"version": after.version})
            except ConditionFailed as e:
                # Someone touched the record in the window; leave it for an operator.
                logger.error(f"Compensation failed for {after.sk} in {after.pk}, needs review: {e.reason}")

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _apply(current: T, changes: Changes) -> tuple[T, dict[str, Any]]:
        """Build the next version of ``current`` and the stored-field diff."""
        values = changes(current) if callable(changes) else dict(changes)
        values = {k: v for k, v in values.items() if k not in ("id", "family_id", "version", "created_at")}
        data = current.model_dump()
        data.update(values)
        data["version"] = current.version + 1
        data["updated_at"] = utc_now()
        updated = type(current).model_validate(data)

        before = current.to_item()
        after = updated.to_item()
        diff = {k: v for k, v in after.items() if before.get(k) != v}
        return updated, diff
