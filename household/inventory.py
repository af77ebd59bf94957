"""
Inventory service.

Admins create, edit, adjust, archive and delete tracked items. Every write
is a versioned conditional write; a lost race comes back as
VersionConflict carrying the current item.

After a write commits the service publishes an event:
- InventoryItemChanged -> low-stock lifecycle (inline)
- InventoryItemRenamed -> shopping list name refresh (background)
- InventoryItemDeleted -> low-stock resolution (inline) and free-text
  conversion of linked shopping list entries (background)
"""

import logging
from typing import Optional

from household.authorization import Action, authorize
from household.reference_data import ReferenceDataLookup
from household.repositories import InventoryRepository, MemberRepository
from shared import events
from shared.event_bus import EventBus
from shared.models import InventoryItem, ItemStatus, MemberContext
from shared.results import NotFound, Success, ValidationFailed

logger = logging.getLogger("inventory_service")

EDITABLE_FIELDS = {
    "name",
    "quantity",
    "low_stock_threshold",
    "unit",
    "location_id",
    "preferred_store_id",
    "notes",
}


class InventoryService:
    """Inventory operations for one deployment."""

    def __init__(
        self,
        inventory: InventoryRepository,
        members: MemberRepository,
        event_bus: EventBus,
        reference_data: Optional[ReferenceDataLookup] = None,
    ):
        self.inventory = inventory
        self.members = members
        self.event_bus = event_bus
        self.reference_data = reference_data or ReferenceDataLookup()

    def _authorize(self, ctx: MemberContext, action: Action):
        member = self.members.get(ctx.family_id, ctx.member_id)
        return authorize(ctx, action, ctx.family_id, member=member)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_item(self, ctx: MemberContext, item_id: str):
        decision = self._authorize(ctx, Action.VIEW_FAMILY)
        if not decision:
            return decision.as_failure()
        item = self.inventory.get(ctx.family_id, item_id)
        if item is None:
            return NotFound(entity="InventoryItem", key=item_id)
        return Success(item)

    def list_items(self, ctx: MemberContext, include_archived: bool = False):
        decision = self._authorize(ctx, Action.VIEW_FAMILY)
        if not decision:
            return decision.as_failure()
        status = None if include_archived else ItemStatus.ACTIVE.value
        return Success(self.inventory.list_items(ctx.family_id, status))

    def list_low_stock(self, ctx: MemberContext):
        decision = self._authorize(ctx, Action.VIEW_FAMILY)
        if not decision:
            return decision.as_failure()
        return Success(self.inventory.list_low_stock(ctx.family_id))

    # =========================================================================
    # Writes
    # =========================================================================

    def create_item(
        self,
        ctx: MemberContext,
        name: str,
        quantity: int = 0,
        low_stock_threshold: int = 0,
        unit: Optional[str] = None,
        location_id: Optional[str] = None,
        preferred_store_id: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        decision = self._authorize(ctx, Action.MANAGE_INVENTORY)
        if not decision:
            return decision.as_failure()

        errors = self._validate({"name": name, "quantity": quantity, "low_stock_threshold": low_stock_threshold})
        if errors:
            return ValidationFailed(reason="Invalid inventory item", errors=errors)
        if self.inventory.find_active_by_name(ctx.family_id, name):
            return ValidationFailed(reason=f'An item named "{name.strip()}" already exists',
                                    errors={"name": "must be unique"})

        item = InventoryItem(
            family_id=ctx.family_id,
            name=name.strip(),
            quantity=quantity,
            low_stock_threshold=low_stock_threshold,
            unit=unit,
            location_id=location_id,
            location_name=self.reference_data.location_name(ctx.family_id, location_id),
            preferred_store_id=preferred_store_id,
            preferred_store_name=self.reference_data.store_name(ctx.family_id, preferred_store_id),
            notes=notes,
            created_by=ctx.member_id,
            last_modified_by=ctx.member_id,
        )
        result = self.inventory.create(item)
        if result.ok:
            logger.info(f"Created item {item.id} '{item.name}' in family {ctx.family_id}")
            self.event_bus.publish(events.inventory_item_changed(ctx.family_id, item.id, "created", ctx.member_id))
        return result

    def update_item(self, ctx: MemberContext, item_id: str, expected_version: int, **changes):
        """Edit any of EDITABLE_FIELDS; quantity is a direct set."""
        decision = self._authorize(ctx, Action.MANAGE_INVENTORY)
        if not decision:
            return decision.as_failure()

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            return ValidationFailed(reason="Unknown fields", errors={f: "not editable" for f in sorted(unknown)})
        errors = self._validate(changes)
        if errors:
            return ValidationFailed(reason="Invalid inventory item", errors=errors)

        current = self.inventory.get(ctx.family_id, item_id)
        if current is None:
            return NotFound(entity="InventoryItem", key=item_id)

        values = dict(changes, last_modified_by=ctx.member_id)
        if "name" in values:
            values["name"] = values["name"].strip()
        if "location_id" in changes:
            values["location_name"] = self.reference_data.location_name(ctx.family_id, changes["location_id"])
        if "preferred_store_id" in changes:
            values["preferred_store_name"] = self.reference_data.store_name(ctx.family_id, changes["preferred_store_id"])

        result = self.inventory.update(ctx.family_id, item_id, expected_version, values)
        if not result.ok:
            return result

        updated = result.value
        self.event_bus.publish(events.inventory_item_changed(ctx.family_id, item_id, "updated", ctx.member_id))
        if updated.name != current.name:
            self.event_bus.publish(events.inventory_item_renamed(ctx.family_id, item_id, current.name, updated.name))
        return result

    def adjust_quantity(self, ctx: MemberContext, item_id: str, delta: int, expected_version: int):
        """Apply a signed delta; the result is clamped at zero."""
        decision = self._authorize(ctx, Action.MANAGE_INVENTORY)
        if not decision:
            return decision.as_failure()
        if not isinstance(delta, int) or isinstance(delta, bool):
            return ValidationFailed(reason="delta must be an integer", errors={"delta": "must be an integer"})

        result = self.inventory.update(
            ctx.family_id,
            item_id,
            expected_version,
            lambda item: {"quantity": max(0, item.quantity + delta), "last_modified_by": ctx.member_id},
        )
        if result.ok:
            logger.info(f"Adjusted {item_id} by {delta:+d} -> {result.value.quantity}")
            self.event_bus.publish(
                events.inventory_item_changed(ctx.family_id, item_id, "quantity_adjusted", ctx.member_id)
            )
        return result

    def archive_item(self, ctx: MemberContext, item_id: str, expected_version: int):
        decision = self._authorize(ctx, Action.MANAGE_INVENTORY)
        if not decision:
            return decision.as_failure()

        result = self.inventory.update(
            ctx.family_id,
            item_id,
            expected_version,
            {"status": ItemStatus.ARCHIVED.value, "last_modified_by": ctx.member_id},
        )
        if result.ok:
            self.event_bus.publish(events.inventory_item_changed(ctx.family_id, item_id, "archived", ctx.member_id))
        return result

    def delete_item(self, ctx: MemberContext, item_id: str, expected_version: Optional[int] = None):
        decision = self._authorize(ctx, Action.MANAGE_INVENTORY)
        if not decision:
            return decision.as_failure()

        result = self.inventory.delete(ctx.family_id, item_id, expected_version)
        if result.ok:
            logger.info(f"Deleted item {item_id} from family {ctx.family_id}")
            self.event_bus.publish(events.inventory_item_deleted(ctx.family_id, item_id, result.value.name))
        return result

    @staticmethod
    def _validate(values: dict) -> dict[str, str]:
        errors = {}
        if "name" in values and (not isinstance(values["name"], str) or not values["name"].strip()):
            errors["name"] = "must not be empty"
        for field_name in ("quantity", "low_stock_threshold"):
            if field_name in values:
                value = values[field_name]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    errors[field_name] = "must be a non-negative integer"
        return errors
