"""
Delivery ledger.

Each NotificationEvent embeds a map ``"{CHANNEL}:{FREQUENCY}"`` ->
LedgerEntry recording when that cadence was last delivered and to which
members. Marking is a single-record atomic field update: it does not bump
the record version, so it never contends with lifecycle changes, and it
needs no cross-record transaction.

An entry is only ever written after the Notifier confirmed the send.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from shared.models import Channel, Frequency, NotificationEvent, utc_now
from shared.record_store import VersionedRecordStore

logger = logging.getLogger("delivery_ledger")


def ledger_key(channel: str, frequency: str) -> str:
    return f"{Channel(channel).value}:{Frequency(frequency).value}"


class DeliveryLedger:
    """Idempotency bookkeeping for deliveries."""

    def __init__(self, records: VersionedRecordStore):
        self.records = records

    @staticmethod
    def has_been_delivered(
        event: NotificationEvent,
        channel: str,
        frequency: str,
        member_id: Optional[str] = None,
    ) -> bool:
        """
        True if the slot was delivered (to ``member_id`` specifically, when given).
        """
        entry = event.delivery_ledger.get(ledger_key(channel, frequency))
        if entry is None:
            return False
        if member_id is None:
            return True
        return member_id in entry.recipients

    @staticmethod
    def sent_within(
        event: NotificationEvent,
        channel: str,
        frequency: str,
        window: timedelta,
        now: Optional[datetime] = None,
        member_id: Optional[str] = None,
    ) -> bool:
        """True if the slot was delivered within ``window`` of ``now``."""
        entry = event.delivery_ledger.get(ledger_key(channel, frequency))
        if entry is None:
            return False
        sent_at = entry.last_sent_at
        if member_id is not None:
            sent_at = entry.recipients.get(member_id)
            if sent_at is None:
                return False
        return (now or utc_now()) - sent_at <= window

    def mark_delivered(
        self,
        event: NotificationEvent,
        channel: str,
        frequency: str,
        member_ids: Iterable[str],
        sent_at: Optional[datetime] = None,
        run_id: Optional[str] = None,
    ) -> Optional[NotificationEvent]:
        """
        Record a confirmed delivery. Returns the updated event, or None if
        the event no longer exists.
        """
        sent_at = sent_at or utc_now()
        key = ledger_key(channel, frequency)
        fields = {
            f"delivery_ledger.{key}.last_sent_at": sent_at,
            f"delivery_ledger.{key}.digest_run_id": run_id,
        }
        for member_id in member_ids:
            fields[f"delivery_ledger.{key}.recipients.{member_id}"] = sent_at

        updated = self.records.set_fields(NotificationEvent, event.family_id, event.id, fields)
        if updated is None:
            logger.warning(f"Event {event.id} vanished before ledger mark {key}")
        else:
            logger.debug(f"Ledger {key} marked on {event.id}")
        return updated
