"""
Typed operation results.

Upward-facing operations never raise on the happy path or on a recoverable
failure. They return either ``Success`` or one of the failure dataclasses
below, and callers branch on ``result.ok`` (or ``isinstance``).

Only unexpected faults (store outage, programming errors) propagate as
exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass
class Success(Generic[T]):
    """Operation completed; ``value`` is the resulting record (or payload)."""
    value: T
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "success"


@dataclass
class Failure:
    """Base for recoverable failures."""
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "failure"

    @property
    def message(self) -> str:
        return self.kind


@dataclass
class VersionConflict(Failure):
    """
    The stored version differs from the one the caller read.

    Always carries the latest stored record so the caller can reconcile.
    """
    current: Any
    kind: ClassVar[str] = "version_conflict"

    @property
    def message(self) -> str:
        return "Item was modified by another user. Please refresh and try again."


@dataclass
class NotFound(Failure):
    entity: str
    key: str
    kind: ClassVar[str] = "not_found"

    @property
    def message(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass
class DuplicateExists(Failure):
    """A conflicting record already exists; the caller may force-override."""
    existing: Any
    kind: ClassVar[str] = "duplicate_exists"

    @property
    def message(self) -> str:
        return "This item is already on your shopping list"


@dataclass
class ValidationFailed(Failure):
    reason: str
    errors: dict[str, str] = field(default_factory=dict)
    kind: ClassVar[str] = "validation_failed"

    @property
    def message(self) -> str:
        return self.reason


@dataclass
class TransactionAborted(Failure):
    """A precondition of a multi-record write failed; nothing was applied."""
    reason: str
    current: Optional[Any] = None
    kind: ClassVar[str] = "transaction_aborted"

    @property
    def message(self) -> str:
        return self.reason


@dataclass
class AlreadyExists(Failure):
    current: Any
    kind: ClassVar[str] = "already_exists"

    @property
    def message(self) -> str:
        return "Record already exists"


@dataclass
class Forbidden(Failure):
    reason: str
    kind: ClassVar[str] = "forbidden"

    @property
    def message(self) -> str:
        return self.reason


Result = Union[
    Success,
    VersionConflict,
    NotFound,
    DuplicateExists,
    ValidationFailed,
    TransactionAborted,
    AlreadyExists,
    Forbidden,
]


# =============================================================================
# Unexpected faults
# =============================================================================

class StoreError(Exception):
    """The backing store failed or was used in an unsupported way."""


class NotifierUnavailable(Exception):
    """A delivery channel could not be reached. Never fails a mutation."""
