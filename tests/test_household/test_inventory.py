"""
Tests for the inventory service.
"""

from household.app import HouseholdApp
from shared.events import EventTypes
from shared.results import Forbidden, NotFound, Success, ValidationFailed, VersionConflict


class TestReads:
    def test_list_excludes_archived_by_default(self, hh: HouseholdApp, casey_ctx):
        result = hh.inventory.list_items(casey_ctx)

        assert result.ok
        assert {i.name for i in result.value} == {"Milk", "Eggs", "Coffee"}

    def test_list_including_archived(self, hh: HouseholdApp, alice_ctx):
        result = hh.inventory.list_items(alice_ctx, include_archived=True)

        assert "Flour" in {i.name for i in result.value}

    def test_low_stock_view(self, hh: HouseholdApp, alice_ctx):
        result = hh.inventory.list_low_stock(alice_ctx)

        assert [i.name for i in result.value] == ["Coffee"]

    def test_other_family_cannot_read(self, hh: HouseholdApp, erin_ctx, milk_item_id):
        result = hh.inventory.get_item(erin_ctx, milk_item_id)

        assert isinstance(result, NotFound)


class TestCreate:
    def test_create_item(self, hh: HouseholdApp, alice_ctx):
        result = hh.inventory.create_item(
            alice_ctx, "Butter", quantity=2, low_stock_threshold=1, preferred_store_id="store-001"
        )

        assert isinstance(result, Success)
        assert result.value.version == 1
        assert result.value.preferred_store_name == "Corner Market"
        assert result.value.created_by == "mem-001"

    def test_names_are_unique_case_insensitively(self, hh: HouseholdApp, alice_ctx):
        result = hh.inventory.create_item(alice_ctx, "  milk ", quantity=1)

        assert isinstance(result, ValidationFailed)
        assert "name" in result.errors

    def test_archived_name_can_be_reused(self, hh: HouseholdApp, alice_ctx):
        assert hh.inventory.create_item(alice_ctx, "Flour", quantity=3).ok

    def test_suggester_cannot_create(self, hh: HouseholdApp, casey_ctx):
        result = hh.inventory.create_item(casey_ctx, "Butter")

        assert isinstance(result, Forbidden)

    def test_negative_quantity_rejected(self, hh: HouseholdApp, alice_ctx):
        result = hh.inventory.create_item(alice_ctx, "Butter", quantity=-1)

        assert isinstance(result, ValidationFailed)
        assert "quantity" in result.errors


class TestUpdates:
    def test_adjust_quantity(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -2, expected_version=1)

        assert result.value.quantity == 3
        assert result.value.version == 2
        assert result.value.last_modified_by == "mem-001"

    def test_adjust_clamps_at_zero(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -50, expected_version=1)

        assert result.value.quantity == 0

    def test_stale_version_returns_conflict_with_current(self, hh: HouseholdApp, alice_ctx, bob_ctx, milk_item_id):
        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -1, expected_version=1)

        result = hh.inventory.update_item(bob_ctx, milk_item_id, 1, quantity=10)

        assert isinstance(result, VersionConflict)
        assert result.current.quantity == 4
        assert result.message == "Item was modified by another user. Please refresh and try again."

    def test_unknown_fields_rejected(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.update_item(alice_ctx, milk_item_id, 1, status="archived")

        assert isinstance(result, ValidationFailed)

    def test_rename_publishes_renamed_event(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        hh.event_bus.clear_event_log()

        hh.inventory.update_item(alice_ctx, milk_item_id, 1, name="Whole Milk")

        types = [e.event_type for e in hh.event_bus.get_event_log()]
        assert EventTypes.INVENTORY_ITEM_CHANGED in types
        assert EventTypes.INVENTORY_ITEM_RENAMED in types

    def test_location_change_refreshes_display_name(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.update_item(alice_ctx, milk_item_id, 1, location_id="loc-002")

        assert result.value.location_name == "Pantry"

    def test_archive(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.archive_item(alice_ctx, milk_item_id, expected_version=1)

        assert result.value.status == "archived"
        assert milk_item_id not in {i.id for i in hh.inventory.list_items(alice_ctx).value}

    def test_delete(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        result = hh.inventory.delete_item(alice_ctx, milk_item_id, expected_version=1)

        assert result.ok
        assert isinstance(hh.inventory.get_item(alice_ctx, milk_item_id), NotFound)
