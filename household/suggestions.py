"""
Suggestion transaction engine.

Suggesters propose; admins approve or reject. Approval is one atomic
multi-record write:

    add_to_shopping: suggestion -> approved
                     + inventory item must still exist and be active
                     + new linked shopping list entry
    create_item:     suggestion -> approved
                     + new inventory item
                     + new shopping list entry linked to it

The suggestion update is guarded by ``status == pending`` and the expected
version, so two concurrent approvals cannot both win. If any guard fails
nothing is applied and the suggestion stays pending.

Rejection is a single conditional update.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from household.authorization import Action, authorize
from household.repositories import (
    InventoryRepository,
    MemberRepository,
    ShoppingListRepository,
    SuggestionRepository,
)
from shared import events
from shared.event_bus import EventBus
from shared.models import (
    InventoryItem,
    ItemStatus,
    Member,
    MemberContext,
    ShoppingListItem,
    Suggestion,
    SuggestionStatus,
    SuggestionType,
    utc_now,
)
from shared.record_store import CheckRecord, CreateRecord, UpdateRecord, VersionedRecordStore
from shared.results import (
    DuplicateExists,
    NotFound,
    Success,
    ValidationFailed,
    VersionConflict,
)

logger = logging.getLogger("suggestion_service")


@dataclass
class ApprovalOutcome:
    """Everything an approval wrote."""
    suggestion: Suggestion
    shopping_item: ShoppingListItem
    inventory_item: Optional[InventoryItem] = None


class SuggestionService:
    """Create, approve and reject suggestions."""

    def __init__(
        self,
        records: VersionedRecordStore,
        suggestions: SuggestionRepository,
        inventory: InventoryRepository,
        shopping: ShoppingListRepository,
        members: MemberRepository,
        event_bus: EventBus,
    ):
        self.records = records
        self.suggestions = suggestions
        self.inventory = inventory
        self.shopping = shopping
        self.members = members
        self.event_bus = event_bus

    def _caller(self, ctx: MemberContext) -> Optional[Member]:
        return self.members.get(ctx.family_id, ctx.member_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_suggestion(self, ctx: MemberContext, suggestion_id: str):
        decision = authorize(ctx, Action.VIEW_FAMILY, ctx.family_id, member=self._caller(ctx))
        if not decision:
            return decision.as_failure()
        suggestion = self.suggestions.get(ctx.family_id, suggestion_id)
        if suggestion is None:
            return NotFound(entity="Suggestion", key=suggestion_id)
        return Success(suggestion)

    def list_suggestions(self, ctx: MemberContext, status: Optional[str] = None):
        decision = authorize(ctx, Action.VIEW_FAMILY, ctx.family_id, member=self._caller(ctx))
        if not decision:
            return decision.as_failure()
        return Success(self.suggestions.list_suggestions(ctx.family_id, status))

    # =========================================================================
    # Create
    # =========================================================================

    def create_suggestion(
        self,
        ctx: MemberContext,
        type: str,
        item_id: Optional[str] = None,
        proposed_item_name: Optional[str] = None,
        proposed_quantity: Optional[int] = None,
        proposed_threshold: Optional[int] = None,
        notes: Optional[str] = None,
    ):
        caller = self._caller(ctx)
        decision = authorize(ctx, Action.CREATE_SUGGESTION, ctx.family_id, member=caller)
        if not decision:
            return decision.as_failure()
        try:
            suggestion_type = SuggestionType(type)
        except ValueError:
            return ValidationFailed(reason=f"Unknown suggestion type: {type}", errors={"type": "invalid"})

        suggestion = Suggestion(
            family_id=ctx.family_id,
            suggested_by=ctx.member_id,
            suggested_by_name=caller.name if caller else ctx.member_id,
            type=suggestion_type,
            notes=notes,
        )

        if suggestion_type == SuggestionType.ADD_TO_SHOPPING:
            if not item_id:
                return ValidationFailed(reason="item_id is required", errors={"item_id": "required"})
            item = self.inventory.get(ctx.family_id, item_id)
            if item is None:
                return NotFound(entity="InventoryItem", key=item_id)
            if item.status != ItemStatus.ACTIVE:
                return ValidationFailed(reason="Item is archived", errors={"item_id": "item is archived"})
            suggestion.item_id = item.id
            suggestion.item_name_snapshot = item.name
        else:
            errors = self._validate_proposal(proposed_item_name, proposed_quantity, proposed_threshold)
            if errors:
                return ValidationFailed(reason="Invalid item proposal", errors=errors)
            if self.inventory.find_active_by_name(ctx.family_id, proposed_item_name):
                return ValidationFailed(reason=f'An item named "{proposed_item_name.strip()}" already exists',
                                        errors={"proposed_item_name": "must be unique"})
            suggestion.proposed_item_name = proposed_item_name.strip()
            suggestion.proposed_quantity = proposed_quantity
            suggestion.proposed_threshold = proposed_threshold

        result = self.suggestions.create(suggestion)
        if result.ok:
            logger.info(f"{suggestion.suggested_by_name} suggested {suggestion.type} '{suggestion.display_name}'")
        return result

    # =========================================================================
    # Review
    # =========================================================================

    def approve(
        self,
        ctx: MemberContext,
        suggestion_id: str,
        expected_version: Optional[int] = None,
        force: bool = False,
    ):
        """
        Approve a pending suggestion and create what it asked for, atomically.

        Args:
            expected_version: Version the reviewer saw; defaults to the stored one.
            force: Add to the shopping list even if a pending entry already
                links to the item.
        """
        reviewer = self._caller(ctx)
        decision = authorize(ctx, Action.REVIEW_SUGGESTION, ctx.family_id, member=reviewer)
        if not decision:
            return decision.as_failure()

        suggestion, failure = self._load_pending(ctx.family_id, suggestion_id, expected_version)
        if failure is not None:
            return failure

        now = utc_now()
        approve_op = UpdateRecord(
            model=Suggestion,
            family_id=ctx.family_id,
            record_id=suggestion.id,
            expected_version=suggestion.version,
            changes={
                "status": SuggestionStatus.APPROVED.value,
                "reviewed_by": ctx.member_id,
                "reviewed_at": now,
            },
            conditions={"status": SuggestionStatus.PENDING.value},
        )

        if suggestion.type == SuggestionType.ADD_TO_SHOPPING:
            item = self.inventory.get(ctx.family_id, suggestion.item_id)
            if item is None:
                return NotFound(entity="InventoryItem", key=suggestion.item_id)
            if item.status != ItemStatus.ACTIVE:
                return ValidationFailed(reason="Item is archived", errors={"item_id": "item is archived"})
            if not force:
                existing = self.shopping.find_pending_by_item_id(ctx.family_id, item.id)
                if existing is not None:
                    return DuplicateExists(existing=existing)

            entry = self._shopping_entry(ctx, item, f"Added from suggestion by {suggestion.suggested_by_name}")
            operations = [
                approve_op,
                CheckRecord(
                    model=InventoryItem,
                    family_id=ctx.family_id,
                    record_id=item.id,
                    conditions={"status": ItemStatus.ACTIVE.value},
                ),
                CreateRecord(entry),
            ]
            new_item = None
        else:
            if self.inventory.find_active_by_name(ctx.family_id, suggestion.proposed_item_name):
                return ValidationFailed(
                    reason=f'An item named "{suggestion.proposed_item_name}" already exists',
                    errors={"proposed_item_name": "must be unique"},
                )
            new_item = InventoryItem(
                family_id=ctx.family_id,
                name=suggestion.proposed_item_name,
                quantity=suggestion.proposed_quantity or 0,
                low_stock_threshold=suggestion.proposed_threshold or 0,
                notes=f"Created from suggestion by {suggestion.suggested_by_name}",
                created_by=ctx.member_id,
                last_modified_by=ctx.member_id,
            )
            entry = self._shopping_entry(ctx, new_item, f"Added from suggestion by {suggestion.suggested_by_name}")
            operations = [approve_op, CreateRecord(new_item), CreateRecord(entry)]

        result = self.records.transact(operations)
        if not result.ok:
            logger.warning(f"Approval of {suggestion.id} aborted: {result.message}")
            return result

        approved = result.value[0]
        logger.info(f"Suggestion {approved.id} approved by {ctx.member_id}")
        if new_item is not None:
            self.event_bus.publish(events.inventory_item_changed(ctx.family_id, new_item.id, "created", ctx.member_id))
        self.event_bus.publish(events.shopping_item_added(ctx.family_id, entry.id, entry.item_id))
        self.event_bus.publish(
            events.suggestion_reviewed(ctx.family_id, approved.id, SuggestionStatus.APPROVED.value, ctx.member_id)
        )
        return Success(ApprovalOutcome(suggestion=approved, shopping_item=entry, inventory_item=new_item))

    def reject(
        self,
        ctx: MemberContext,
        suggestion_id: str,
        rejection_notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ):
        reviewer = self._caller(ctx)
        decision = authorize(ctx, Action.REVIEW_SUGGESTION, ctx.family_id, member=reviewer)
        if not decision:
            return decision.as_failure()

        suggestion, failure = self._load_pending(ctx.family_id, suggestion_id, expected_version)
        if failure is not None:
            return failure

        result = self.suggestions.update(
            ctx.family_id,
            suggestion.id,
            suggestion.version,
            {
                "status": SuggestionStatus.REJECTED.value,
                "reviewed_by": ctx.member_id,
                "reviewed_at": utc_now(),
                "rejection_notes": rejection_notes,
            },
            conditions={"status": SuggestionStatus.PENDING.value},
        )
        if result.ok:
            logger.info(f"Suggestion {suggestion.id} rejected by {ctx.member_id}")
            self.event_bus.publish(
                events.suggestion_reviewed(ctx.family_id, suggestion.id, SuggestionStatus.REJECTED.value, ctx.member_id)
            )
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_pending(self, family_id: str, suggestion_id: str, expected_version: Optional[int]):
        """Returns (suggestion, None) or (None, failure)."""
        suggestion = self.suggestions.get(family_id, suggestion_id)
        if suggestion is None:
            return None, NotFound(entity="Suggestion", key=suggestion_id)
        if expected_version is not None and suggestion.version != expected_version:
            return None, VersionConflict(current=suggestion)
        if suggestion.status != SuggestionStatus.PENDING:
            return None, ValidationFailed(
                reason=f"Suggestion has already been {suggestion.status}",
                errors={"status": suggestion.status},
            )
        return suggestion, None

    @staticmethod
    def _shopping_entry(ctx: MemberContext, item: InventoryItem, notes: str) -> ShoppingListItem:
        return ShoppingListItem(
            family_id=ctx.family_id,
            item_id=item.id,
            name=item.name,
            store_id=item.preferred_store_id,
            store_name=item.preferred_store_name,
            quantity=1,
            notes=notes,
            added_by=ctx.member_id,
            last_modified_by=ctx.member_id,
        )

    @staticmethod
    def _validate_proposal(name, quantity, threshold) -> dict[str, str]:
        errors = {}
        if not name or not name.strip():
            errors["proposed_item_name"] = "required"
        for field_name, value in (("proposed_quantity", quantity), ("proposed_threshold", threshold)):
            if value is None:
                errors[field_name] = "required"
            elif not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors[field_name] = "must be a non-negative integer"
        return errors
