"""
Tests for domain models and their stored layout.
"""

import pytest
from pydantic import ValidationError

from shared.models import (
    Family,
    InventoryItem,
    ItemStatus,
    Member,
    NotificationEvent,
    NotificationType,
    ShoppingListItem,
    Suggestion,
    SuggestionType,
)


class TestInventoryItem:
    def test_low_stock_at_threshold(self):
        item = InventoryItem(family_id="fam-001", name="Milk", quantity=3, low_stock_threshold=3)

        assert item.is_low_stock is True

    def test_not_low_above_threshold(self):
        item = InventoryItem(family_id="fam-001", name="Milk", quantity=4, low_stock_threshold=3)

        assert item.is_low_stock is False

    def test_archived_is_never_low(self):
        item = InventoryItem(
            family_id="fam-001", name="Flour", quantity=0, low_stock_threshold=1, status=ItemStatus.ARCHIVED
        )

        assert item.is_low_stock is False

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            InventoryItem(family_id="fam-001", name="Milk", quantity=-1)

    def test_stored_layout(self):
        item = InventoryItem(id="item-001", family_id="fam-001", name="Milk", quantity=7)

        stored = item.to_item()

        assert stored["pk"] == "FAMILY#fam-001"
        assert stored["sk"] == "ITEM#item-001"
        assert stored["gsi2pk"] == "FAMILY#fam-001#ITEMS"
        assert stored["gsi2sk"] == "STATUS#active#QUANTITY#0000000007"
        assert stored["status"] == "active"

    def test_round_trip_through_stored_layout(self):
        item = InventoryItem(id="item-001", family_id="fam-001", name="Milk", quantity=7)

        assert InventoryItem.from_item(item.to_item()) == item


class TestFamilyAndMember:
    def test_family_scope_is_its_own_id(self):
        family = Family(id="fam-001", name="Riveras")

        assert family.family_id == "fam-001"
        assert family.sk == "METADATA"
        assert family.index_keys() == {"gsi1pk": "FAMILIES", "gsi1sk": "FAMILY#fam-001"}

    def test_member_global_lookup_key(self):
        member = Member(id="mem-001", family_id="fam-001", name="Alice", role="admin")

        assert member.is_admin
        assert member.index_keys()["gsi1pk"] == "MEMBER#mem-001"

    def test_member_defaults(self):
        member = Member(family_id="fam-001", name="Casey")

        assert member.role == "suggester"
        assert member.is_active
        assert member.timezone == "UTC"
        assert member.notification_preferences == {}


class TestOtherRecords:
    def test_shopping_item_without_store_is_unassigned(self):
        entry = ShoppingListItem(family_id="fam-001", name="Bread")

        assert entry.index_keys()["gsi2sk"] == "STORE#UNASSIGNED#STATUS#pending"

    def test_suggestion_display_name(self):
        suggestion = Suggestion(
            family_id="fam-001",
            suggested_by="mem-003",
            suggested_by_name="Casey",
            type=SuggestionType.CREATE_ITEM,
            proposed_item_name="Oat Milk",
        )

        assert suggestion.display_name == "Oat Milk"
        assert suggestion.status == "pending"

    def test_event_relevance(self):
        family_wide = NotificationEvent(family_id="fam-001", type=NotificationType.LOW_STOCK)
        addressed = NotificationEvent(
            family_id="fam-001", type=NotificationType.SUGGESTION_RESPONSE, recipient_id="mem-003"
        )

        assert family_wide.is_relevant_to("mem-001")
        assert addressed.is_relevant_to("mem-003")
        assert not addressed.is_relevant_to("mem-001")
