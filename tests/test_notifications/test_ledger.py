"""
Tests for the per-event delivery ledger.
"""

from datetime import timedelta

from household.app import HouseholdApp
from notifications.ledger import DeliveryLedger, ledger_key


class TestDeliveryLedger:
    def test_key_format(self):
        assert ledger_key("EMAIL", "DAILY") == "EMAIL:DAILY"

    def test_fresh_event_is_undelivered(self, hh: HouseholdApp):
        event = hh.notifications.get("fam-001", "notif-001")

        assert not DeliveryLedger.has_been_delivered(event, "EMAIL", "DAILY")

    def test_mark_records_members_without_bumping_version(self, hh: HouseholdApp, now):
        event = hh.notifications.get("fam-001", "notif-001")

        updated = hh.ledger.mark_delivered(event, "EMAIL", "DAILY", ["mem-001", "mem-002"], sent_at=now, run_id="run-1")

        assert updated.version == event.version
        entry = updated.delivery_ledger["EMAIL:DAILY"]
        assert entry.last_sent_at == now
        assert entry.digest_run_id == "run-1"
        assert set(entry.recipients) == {"mem-001", "mem-002"}
        assert hh.ledger.has_been_delivered(updated, "EMAIL", "DAILY", "mem-001")
        assert not hh.ledger.has_been_delivered(updated, "EMAIL", "DAILY", "mem-003")
        assert not hh.ledger.has_been_delivered(updated, "EMAIL", "WEEKLY")

    def test_marks_accumulate_recipients(self, hh: HouseholdApp, now):
        event = hh.notifications.get("fam-001", "notif-001")
        hh.ledger.mark_delivered(event, "EMAIL", "DAILY", ["mem-001"], sent_at=now)

        updated = hh.ledger.mark_delivered(event, "EMAIL", "DAILY", ["mem-002"], sent_at=now + timedelta(hours=1))

        entry = updated.delivery_ledger["EMAIL:DAILY"]
        assert set(entry.recipients) == {"mem-001", "mem-002"}
        assert entry.last_sent_at == now + timedelta(hours=1)

    def test_ledger_survives_lifecycle_update(self, hh: HouseholdApp, now):
        event = hh.notifications.get("fam-001", "notif-001")
        hh.ledger.mark_delivered(event, "EMAIL", "IMMEDIATE", ["mem-001"], sent_at=now)

        resolved = hh.low_stock.resolve(event)

        assert resolved.status == "resolved"
        assert hh.ledger.has_been_delivered(resolved, "EMAIL", "IMMEDIATE", "mem-001")

    def test_sent_within(self, hh: HouseholdApp, now):
        event = hh.notifications.get("fam-001", "notif-001")
        updated = hh.ledger.mark_delivered(event, "SMS", "IMMEDIATE", ["mem-002"], sent_at=now)

        window = timedelta(minutes=15)
        assert hh.ledger.sent_within(updated, "SMS", "IMMEDIATE", window, now=now + timedelta(minutes=5))
        assert not hh.ledger.sent_within(updated, "SMS", "IMMEDIATE", window, now=now + timedelta(hours=1))
        assert not hh.ledger.sent_within(updated, "SMS", "IMMEDIATE", window, now=now, member_id="mem-001")

    def test_vanished_event(self, hh: HouseholdApp):
        event = hh.notifications.get("fam-001", "notif-001")
        hh.notifications.delete("fam-001", "notif-001")

        assert hh.ledger.mark_delivered(event, "EMAIL", "DAILY", ["mem-001"]) is None
