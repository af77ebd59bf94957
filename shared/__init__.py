"""
Shared infrastructure for the household inventory system.

This package contains code used by the household services and the
notification pipeline:
- Domain models (Family, Member, InventoryItem, Suggestion, ...)
- Key-value backend and the versioned record store on top of it
- Typed operation results
- Event bus for post-commit side effects
- Mock notification channels (Email, SMS) and message templates
"""

from shared.models import (
    Family,
    Member,
    MemberContext,
    InventoryItem,
    ShoppingListItem,
    Suggestion,
    NotificationEvent,
    LedgerEntry,
)
from shared.kv_store import InMemoryKeyValueStore, KeyValueStore
from shared.record_store import VersionedRecordStore
from shared.event_bus import Event, EventBus
from shared.channels import EmailChannel, SMSChannel, NotificationChannels, SendResult

__all__ = [
    "Family",
    "Member",
    "MemberContext",
    "InventoryItem",
    "ShoppingListItem",
    "Suggestion",
    "NotificationEvent",
    "LedgerEntry",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "VersionedRecordStore",
    "Event",
    "EventBus",
    "EmailChannel",
    "SMSChannel",
    "NotificationChannels",
    "SendResult",
]
