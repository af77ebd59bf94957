"""
Entity repositories.

Each repository owns the key layout and access paths of one entity type and
delegates every write to the versioned record store. Repositories return
typed results for writes and plain records (or None) for reads.
"""

from typing import Any, Generic, Optional, TypeVar

from shared.models import (
    Family,
    InventoryItem,
    ItemStatus,
    Member,
    NotificationEvent,
    NotificationStatus,
    NotificationType,
    ShoppingListItem,
    ShoppingStatus,
    Suggestion,
    VersionedRecord,
    family_key,
)
from shared.record_store import Changes, VersionedRecordStore

T = TypeVar("T", bound=VersionedRecord)


class Repository(Generic[T]):
    """Common single-entity operations."""

    model: type[T]

    def __init__(self, records: VersionedRecordStore):
        self.records = records

    def get(self, family_id: str, record_id: str) -> Optional[T]:
        return self.records.get(self.model, family_id, record_id)

    def list_all(self, family_id: str) -> list[T]:
        return self.records.query(self.model, family_id)

    def create(self, record: T):
        return self.records.create(record)

    def update(
        self,
        family_id: str,
        record_id: str,
        expected_version: int,
        changes: Changes,
        conditions: Optional[dict[str, Any]] = None,
    ):
        return self.records.update(self.model, family_id, record_id, expected_version, changes, conditions)

    def delete(self, family_id: str, record_id: str, expected_version: Optional[int] = None):
        return self.records.delete(self.model, family_id, record_id, expected_version)

    def _index(self, family_id: str, suffix: str, sk_prefix: str = "") -> list[T]:
        return self.records.query_index(self.model, "GSI2", f"{family_key(family_id)}#{suffix}", sk_prefix)


class FamilyRepository(Repository[Family]):
    model = Family

    def get_family(self, family_id: str) -> Optional[Family]:
        return self.get(family_id, family_id)

    def list_families(self) -> list[Family]:
        """Every family, for scheduled jobs."""
        return self.records.query_index(Family, "GSI1", "FAMILIES")


class MemberRepository(Repository[Member]):
    model = Member

    def list_members(self, family_id: str, active_only: bool = True) -> list[Member]:
        members = self.list_all(family_id)
        if active_only:
            members = [m for m in members if m.is_active]
        return members

    def find_family_id(self, member_id: str) -> Optional[str]:
        """Look up which family a member belongs to."""
        matches = self.records.query_index(Member, "GSI1", f"MEMBER#{member_id}")
        return matches[0].family_id if matches else None


class InventoryRepository(Repository[InventoryItem]):
    model = InventoryItem

    def list_items(self, family_id: str, status: Optional[str] = None) -> list[InventoryItem]:
        prefix = f"STATUS#{status}#" if status else ""
        return self._index(family_id, "ITEMS", prefix)

    def list_low_stock(self, family_id: str) -> list[InventoryItem]:
        return [i for i in self.list_items(family_id, ItemStatus.ACTIVE.value) if i.is_low_stock]

    def find_active_by_name(self, family_id: str, name: str) -> Optional[InventoryItem]:
        """Case-insensitive name match among active items."""
        wanted = name.strip().lower()
        for item in self.list_items(family_id, ItemStatus.ACTIVE.value):
            if item.name.strip().lower() == wanted:
                return item
        return None


class ShoppingListRepository(Repository[ShoppingListItem]):
    model = ShoppingListItem

    def list_items(
        self,
        family_id: str,
        status: Optional[str] = None,
        store_id: Optional[str] = None,
    ) -> list[ShoppingListItem]:
        if store_id:
            prefix = f"STORE#{store_id}#STATUS#{status or ''}"
            return self._index(family_id, "SHOPPING", prefix)
        items = self._index(family_id, "SHOPPING")
        if status:
            items = [i for i in items if i.status == status]
        return items

    def find_pending_by_item_id(self, family_id: str, item_id: str) -> Optional[ShoppingListItem]:
        for entry in self.list_items(family_id, ShoppingStatus.PENDING.value):
            if entry.item_id == item_id:
                return entry
        return None

    def list_by_item_id(self, family_id: str, item_id: str) -> list[ShoppingListItem]:
        return [entry for entry in self.list_all(family_id) if entry.item_id == item_id]


class SuggestionRepository(Repository[Suggestion]):
    model = Suggestion

    def list_suggestions(self, family_id: str, status: Optional[str] = None) -> list[Suggestion]:
        prefix = f"STATUS#{status}#" if status else ""
        return self._index(family_id, "SUGGESTIONS", prefix)


class NotificationEventRepository(Repository[NotificationEvent]):
    model = NotificationEvent

    def list_events(self, family_id: str, status: Optional[str] = None) -> list[NotificationEvent]:
        prefix = f"STATUS#{status}#" if status else ""
        return self._index(family_id, "NOTIFICATIONS", prefix)

    def list_active(self, family_id: str) -> list[NotificationEvent]:
        return self.list_events(family_id, NotificationStatus.ACTIVE.value)

    def find_active_low_stock(self, family_id: str, item_id: str) -> Optional[NotificationEvent]:
        for event in self.list_active(family_id):
            if event.type == NotificationType.LOW_STOCK and event.item_id == item_id:
                return event
        return None

    def list_for_item(self, family_id: str, item_id: str) -> list[NotificationEvent]:
        return [e for e in self.list_events(family_id) if e.item_id == item_id]
