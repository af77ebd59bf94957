"""
Tests for the low-stock lifecycle.

The manager runs inline after inventory writes: it creates one active event
per low item, resolves it when the item recovers, and starts a new event on
the next crossing.
"""

from household.app import HouseholdApp
from shared.events import EventTypes
from shared.models import NotificationType


def active_low_stock(hh: HouseholdApp, family_id: str, item_id: str):
    return [
        e for e in hh.notifications.list_active(family_id)
        if e.type == NotificationType.LOW_STOCK and e.item_id == item_id
    ]


class TestLowStockCreation:
    def test_crossing_threshold_creates_event(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -2, expected_version=1)

        events = active_low_stock(hh, "fam-001", milk_item_id)
        assert len(events) == 1
        assert events[0].item_name == "Milk"
        assert events[0].current_quantity == 3
        assert events[0].threshold == 3
        assert events[0].recipient_id is None

    def test_second_crossing_while_active_is_noop(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        first = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -2, expected_version=1).value
        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -1, expected_version=first.version)

        assert len(active_low_stock(hh, "fam-001", milk_item_id)) == 1

    def test_create_is_idempotent(self, hh: HouseholdApp, coffee_item_id):
        coffee = hh.inventory_items.get("fam-001", coffee_item_id)

        event, is_new = hh.low_stock.create_low_stock_notification(coffee)

        assert is_new is False
        assert event.id == "notif-001"

    def test_racing_evaluations_create_one_event(self, hh: HouseholdApp, alice_ctx, milk_item_id, monkeypatch):
        first = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -2, expected_version=1).value
        [created] = active_low_stock(hh, "fam-001", milk_item_id)

        # A second evaluation that did its reads before the first one wrote.
        monkeypatch.setattr(hh.notifications, "find_active_low_stock", lambda family_id, item_id: None)
        monkeypatch.setattr(hh.notifications, "list_for_item", lambda family_id, item_id: [])
        event, is_new = hh.low_stock.create_low_stock_notification(first)

        assert is_new is False
        assert event.id == created.id
        monkeypatch.undo()
        assert len(active_low_stock(hh, "fam-001", milk_item_id)) == 1

    def test_each_crossing_gets_its_own_id(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        low = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -2, expected_version=1).value
        restocked = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, 5, expected_version=low.version).value
        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -6, expected_version=restocked.version)

        ids = {e.id for e in hh.notifications.list_for_item("fam-001", milk_item_id)}
        assert ids == {"lowstock-item-001-1", "lowstock-item-001-2"}

    def test_new_event_is_announced(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        hh.event_bus.clear_event_log()

        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -3, expected_version=1)

        created = [e for e in hh.event_bus.get_event_log() if e.event_type == EventTypes.NOTIFICATION_CREATED]
        assert len(created) == 1
        assert created[0].payload["notification_type"] == "low_stock"

    def test_not_low_creates_nothing(self, hh: HouseholdApp, alice_ctx, milk_item_id):
        hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -1, expected_version=1)

        assert active_low_stock(hh, "fam-001", milk_item_id) == []


class TestLowStockResolution:
    def test_restock_resolves(self, hh: HouseholdApp, alice_ctx, coffee_item_id):
        hh.inventory.adjust_quantity(alice_ctx, coffee_item_id, 5, expected_version=1)

        assert active_low_stock(hh, "fam-001", coffee_item_id) == []
        resolved = hh.notifications.get("fam-001", "notif-001")
        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None

    def test_resolve_then_retrigger_creates_new_event(self, hh: HouseholdApp, alice_ctx, coffee_item_id):
        restocked = hh.inventory.adjust_quantity(alice_ctx, coffee_item_id, 5, expected_version=1).value
        hh.inventory.adjust_quantity(alice_ctx, coffee_item_id, -6, expected_version=restocked.version)

        events = active_low_stock(hh, "fam-001", coffee_item_id)
        assert len(events) == 1
        assert events[0].id != "notif-001"
        assert hh.notifications.get("fam-001", "notif-001").status == "resolved"

    def test_archive_resolves(self, hh: HouseholdApp, alice_ctx, coffee_item_id):
        hh.inventory.archive_item(alice_ctx, coffee_item_id, expected_version=1)

        assert active_low_stock(hh, "fam-001", coffee_item_id) == []

    def test_delete_resolves(self, hh: HouseholdApp, alice_ctx, coffee_item_id):
        hh.inventory.delete_item(alice_ctx, coffee_item_id)

        assert active_low_stock(hh, "fam-001", coffee_item_id) == []

    def test_adding_to_shopping_list_resolves(self, hh: HouseholdApp, alice_ctx, coffee_item_id):
        hh.shopping_list.add_to_shopping_list(alice_ctx, item_id=coffee_item_id)

        assert active_low_stock(hh, "fam-001", coffee_item_id) == []

    def test_resolving_resolved_event_is_noop(self, hh: HouseholdApp):
        event = hh.notifications.get("fam-001", "notif-001")
        resolved = hh.low_stock.resolve(event)

        again = hh.low_stock.resolve(resolved)

        assert again.version == resolved.version

    def test_manual_resolve_by_id(self, hh: HouseholdApp):
        result = hh.low_stock.resolve_notification("fam-001", "notif-001")

        assert result.ok
        assert result.value.status == "resolved"
        assert result.value.resolved_at is not None

    def test_manual_resolve_missing_event(self, hh: HouseholdApp):
        result = hh.low_stock.resolve_notification("fam-001", "notif-999")

        assert result.kind == "not_found"

    def test_resolve_retries_after_concurrent_ledger_free_update(self, hh: HouseholdApp):
        stale = hh.notifications.get("fam-001", "notif-001")
        hh.notifications.update("fam-001", "notif-001", stale.version, {"current_quantity": 0})

        resolved = hh.low_stock.resolve(stale)

        assert resolved.status == "resolved"
        assert resolved.current_quantity == 0

    def test_handler_failure_never_fails_the_write(self, hh: HouseholdApp, alice_ctx, milk_item_id, monkeypatch):
        def broken(item):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(hh.low_stock, "create_low_stock_notification", broken)

        result = hh.inventory.adjust_quantity(alice_ctx, milk_item_id, -4, expected_version=1)

        assert result.ok
        assert result.value.quantity == 1
