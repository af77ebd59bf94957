"""
Notification delivery.

- Preferences decide which cadences a member wants per type and channel
- The router sends IMMEDIATE deliveries as events appear
- The digest aggregator batches DAILY and WEEKLY deliveries
- The ledger on each event makes every delivery happen at most once
"""

from notifications.preferences import PreferenceResolver, PreferencesService
from notifications.ledger import DeliveryLedger
from notifications.router import DeliveryRouter
from notifications.digest import DigestAggregator

__all__ = [
    "PreferenceResolver",
    "PreferencesService",
    "DeliveryLedger",
    "DeliveryRouter",
    "DigestAggregator",
]
