"""
Shopping list service.

Entries are either linked to an inventory item or free text. At most one
pending entry may link to a given item; a second add returns
DuplicateExists (carrying the existing entry) unless ``force=True``.

Purchased entries carry an ``expiry`` so the store can garbage-collect
them; reverting to pending clears it.

Background reactions to inventory changes:
- rename: refresh the name copy on pending linked entries
- delete: turn linked entries into free text
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

from household.authorization import Action, authorize
from household.reference_data import ReferenceDataLookup
from household.repositories import InventoryRepository, MemberRepository, ShoppingListRepository
from shared import events
from shared.config import Settings
from shared.event_bus import Event, EventBus
from shared.events import EventTypes
from shared.models import (
    ItemStatus,
    MemberContext,
    ShoppingListItem,
    ShoppingStatus,
    utc_now,
)
from shared.results import DuplicateExists, NotFound, Success, ValidationFailed, VersionConflict

logger = logging.getLogger("shopping_list")

EDITABLE_FIELDS = {"name", "store_id", "quantity", "notes"}
UNASSIGNED_STORE = "Unassigned"


def purchase_expiry(now: datetime, ttl_days: int) -> int:
    """Epoch seconds after which a purchased entry may be purged."""
    return int((now + timedelta(days=ttl_days)).timestamp())


def is_valid_quantity(quantity) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity >= 1


class ShoppingListService:
    """Shopping list operations."""

    def __init__(
        self,
        shopping: ShoppingListRepository,
        inventory: InventoryRepository,
        members: MemberRepository,
        event_bus: EventBus,
        settings: Settings,
        reference_data: Optional[ReferenceDataLookup] = None,
    ):
        self.shopping = shopping
        self.inventory = inventory
        self.members = members
        self.event_bus = event_bus
        self.settings = settings
        self.reference_data = reference_data or ReferenceDataLookup()
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        self.event_bus.subscribe(EventTypes.INVENTORY_ITEM_RENAMED, self.handle_item_renamed, background=True)
        self.event_bus.subscribe(EventTypes.INVENTORY_ITEM_DELETED, self.handle_item_deleted, background=True)
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        self.event_bus.unsubscribe(EventTypes.INVENTORY_ITEM_RENAMED, self.handle_item_renamed)
        self.event_bus.unsubscribe(EventTypes.INVENTORY_ITEM_DELETED, self.handle_item_deleted)
        self._running = False

    def _authorize(self, ctx: MemberContext, action: Action):
        member = self.members.get(ctx.family_id, ctx.member_id)
        return authorize(ctx, action, ctx.family_id, member=member)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_entry(self, ctx: MemberContext, entry_id: str):
        decision = self._authorize(ctx, Action.VIEW_FAMILY)
        if not decision:
            return decision.as_failure()
        entry = self.shopping.get(ctx.family_id, entry_id)
        if entry is None:
            return NotFound(entity="ShoppingListItem", key=entry_id)
        return Success(entry)

    def list_entries(self, ctx: MemberContext, status: Optional[str] = None, store_id: Optional[str] = None):
        decision = self._authorize(ctx, Action.VIEW_FAMILY)
        if not decision:
            return decision.as_failure()
        return Success(self.shopping.list_items(ctx.family_id, status, store_id))

    def group_by_store(self, ctx: MemberContext, status: Optional[str] = ShoppingStatus.PENDING.value):
        """Entries keyed by store name, unassigned entries last."""
        result = self.list_entries(ctx, status=status)
        if not result.ok:
            return result
        groups: dict[str, list[ShoppingListItem]] = OrderedDict()
        unassigned = []
        for entry in sorted(result.value, key=lambda e: ((e.store_name or "").lower(), e.name.lower())):
            if entry.store_id:
                groups.setdefault(entry.store_name or entry.store_id, []).append(entry)
            else:
                unassigned.append(entry)
        if unassigned:
            groups[UNASSIGNED_STORE] = unassigned
        return Success(groups)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_to_shopping_list(
        self,
        ctx: MemberContext,
        item_id: Optional[str] = None,
        name: Optional[str] = None,
        store_id: Optional[str] = None,
        quantity: Optional[int] = None,
        notes: Optional[str] = None,
        force: bool = False,
    ):
        """
        Add a linked (``item_id``) or free-text (``name``) entry.

        A linked entry takes the item's name and, unless given, its
        preferred store.
        """
        decision = self._authorize(ctx, Action.MANAGE_SHOPPING_LIST)
        if not decision:
            return decision.as_failure()

        errors = {}
        if not item_id and not (name and name.strip()):
            errors["name"] = "name is required for free-text entries"
        if quantity is not None and not is_valid_quantity(quantity):
            errors["quantity"] = "must be a positive integer"
        if errors:
            return ValidationFailed(reason="Invalid shopping list entry", errors=errors)

        if item_id:
            item = self.inventory.get(ctx.family_id, item_id)
            if item is None:
                return NotFound(entity="InventoryItem", key=item_id)
            if item.status != ItemStatus.ACTIVE:
                return ValidationFailed(reason="Cannot add an archived item to the shopping list",
                                        errors={"item_id": "item is archived"})
            if not force:
                existing = self.shopping.find_pending_by_item_id(ctx.family_id, item_id)
                if existing is not None:
                    logger.info(f"Duplicate shopping list entry for {item_id}: {existing.id}")
                    return DuplicateExists(existing=existing)
            name = item.name
            store_id = store_id or item.preferred_store_id

        entry = ShoppingListItem(
            family_id=ctx.family_id,
            item_id=item_id,
            name=name.strip(),
            store_id=store_id,
            store_name=self.reference_data.store_name(ctx.family_id, store_id),
            quantity=quantity,
            notes=notes,
            added_by=ctx.member_id,
            last_modified_by=ctx.member_id,
        )
        result = self.shopping.create(entry)
        if result.ok:
            logger.info(f"Added '{entry.name}' to shopping list of family {ctx.family_id}")
            self.event_bus.publish(events.shopping_item_added(ctx.family_id, entry.id, item_id))
        return result

    def update_entry(self, ctx: MemberContext, entry_id: str, expected_version: int, **changes):
        decision = self._authorize(ctx, Action.MANAGE_SHOPPING_LIST)
        if not decision:
            return decision.as_failure()

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            return ValidationFailed(reason="Unknown fields", errors={f: "not editable" for f in sorted(unknown)})
        if "name" in changes and not (changes["name"] or "").strip():
            return ValidationFailed(reason="Invalid shopping list entry", errors={"name": "must not be empty"})
        if changes.get("quantity") is not None and not is_valid_quantity(changes["quantity"]):
            return ValidationFailed(reason="Invalid shopping list entry", errors={"quantity": "must be a positive integer"})

        values = dict(changes, last_modified_by=ctx.member_id)
        if "store_id" in changes:
            values["store_name"] = self.reference_data.store_name(ctx.family_id, changes["store_id"])
        return self.shopping.update(ctx.family_id, entry_id, expected_version, values)

    def update_status(self, ctx: MemberContext, entry_id: str, status: str, expected_version: int):
        """Mark purchased (sets expiry) or back to pending (clears it)."""
        decision = self._authorize(ctx, Action.MANAGE_SHOPPING_LIST)
        if not decision:
            return decision.as_failure()
        try:
            status = ShoppingStatus(status)
        except ValueError:
            return ValidationFailed(reason=f"Invalid status: {status}", errors={"status": "pending or purchased"})

        expiry = None
        if status == ShoppingStatus.PURCHASED:
            expiry = purchase_expiry(utc_now(), self.settings.SHOPPING_TTL_DAYS)
        return self.shopping.update(
            ctx.family_id,
            entry_id,
            expected_version,
            {"status": status.value, "expiry": expiry, "last_modified_by": ctx.member_id},
        )

    def remove_entry(self, ctx: MemberContext, entry_id: str, expected_version: Optional[int] = None):
        decision = self._authorize(ctx, Action.MANAGE_SHOPPING_LIST)
        if not decision:
            return decision.as_failure()
        return self.shopping.delete(ctx.family_id, entry_id, expected_version)

    # =========================================================================
    # Background reactions
    # =========================================================================

    def handle_item_renamed(self, event: Event) -> None:
        family_id = event.payload["family_id"]
        new_name = event.payload["new_name"]
        for entry in self.shopping.list_by_item_id(family_id, event.payload["item_id"]):
            if entry.status != ShoppingStatus.PENDING or entry.name == new_name:
                continue
            result = self.shopping.update(family_id, entry.id, entry.version, {"name": new_name})
            if isinstance(result, VersionConflict):
                logger.warning(f"Name refresh for {entry.id} lost a race; leaving '{result.current.name}'")

    def handle_item_deleted(self, event: Event) -> None:
        """Linked entries outlive the item as free text."""
        family_id = event.payload["family_id"]
        for entry in self.shopping.list_by_item_id(family_id, event.payload["item_id"]):
            result = self.shopping.update(family_id, entry.id, entry.version, {"item_id": None})
            if not result.ok:
                logger.warning(f"Could not convert {entry.id} to free text: {result.message}")
            else:
                logger.info(f"Converted shopping list entry {entry.id} to free text")
