"""
Application wiring.

Builds one store, one event bus and every service on top of them, and
subscribes the post-commit reactions. The API, the CLI and the tests all
start from a HouseholdApp so they share the same graph.
"""

import logging
from pathlib import Path
from typing import Optional

from household.inventory import InventoryService
from household.low_stock import LowStockManager
from household.reference_data import ReferenceDataLookup
from household.repositories import (
    FamilyRepository,
    InventoryRepository,
    MemberRepository,
    NotificationEventRepository,
    ShoppingListRepository,
    SuggestionRepository,
)
from household.shopping_list import ShoppingListService
from household.suggestion_responses import SuggestionResponseNotifier
from household.suggestions import SuggestionService
from notifications.digest import DigestAggregator
from notifications.ledger import DeliveryLedger
from notifications.preferences import PreferenceResolver, PreferencesService
from notifications.queue_preview import QueuePreviewer
from notifications.router import DeliveryRouter
from shared.channels import NotificationChannels
from shared.config import Settings, get_settings
from shared.event_bus import EventBus
from shared.fixtures import default_data_dir, load_fixtures
from shared.kv_store import InMemoryKeyValueStore, KeyValueStore
from shared.record_store import VersionedRecordStore

logger = logging.getLogger("household_app")


class HouseholdApp:
    """
    Example usage:
        app = HouseholdApp(settings)
        app.start()
        app.inventory.adjust_quantity(ctx, "item-001", -3, expected_version=1)
        app.digest.run("DAILY")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[KeyValueStore] = None,
        channels: Optional[NotificationChannels] = None,
        data_dir: Optional[Path] = None,
    ):
        self.settings = settings or get_settings()
        self.data_dir = Path(data_dir or self.settings.DATA_DIR or default_data_dir())

        self.backend = backend or InMemoryKeyValueStore(
            supports_transactions=self.settings.STORE_SUPPORTS_TRANSACTIONS
        )
        self.records = VersionedRecordStore(self.backend)
        self.event_bus = EventBus(
            inline_background=self.settings.BACKGROUND_TASKS_INLINE,
            max_workers=self.settings.BACKGROUND_WORKERS,
            event_log_size=self.settings.EVENT_LOG_SIZE,
        )
        self.channels = channels or NotificationChannels(self.settings)
        self.reference_data = ReferenceDataLookup.from_fixtures(self.data_dir)

        # Repositories
        self.families = FamilyRepository(self.records)
        self.members = MemberRepository(self.records)
        self.inventory_items = InventoryRepository(self.records)
        self.shopping_items = ShoppingListRepository(self.records)
        self.suggestion_records = SuggestionRepository(self.records)
        self.notifications = NotificationEventRepository(self.records)

        # Household services
        self.inventory = InventoryService(self.inventory_items, self.members, self.event_bus, self.reference_data)
        self.shopping_list = ShoppingListService(
            self.shopping_items, self.inventory_items, self.members, self.event_bus,
            self.settings, self.reference_data,
        )
        self.suggestions = SuggestionService(
            self.records, self.suggestion_records, self.inventory_items,
            self.shopping_items, self.members, self.event_bus,
        )
        self.low_stock = LowStockManager(self.inventory_items, self.notifications, self.event_bus)
        self.suggestion_responses = SuggestionResponseNotifier(
            self.suggestion_records, self.members, self.notifications, self.event_bus,
        )

        # Notification delivery
        self.resolver = PreferenceResolver(self.settings.DEFAULT_FREQUENCY)
        self.preferences = PreferencesService(self.members, self.resolver, self.settings)
        self.ledger = DeliveryLedger(self.records)
        self.router = DeliveryRouter(
            self.families, self.members, self.notifications, self.resolver, self.preferences,
            self.channels, self.ledger, self.low_stock, self.event_bus, self.settings,
        )
        self.digest = DigestAggregator(
            self.families, self.members, self.notifications, self.resolver, self.preferences,
            self.channels, self.ledger, self.settings, on_delivered=self.router.settle,
        )
        self.queue = QueuePreviewer(
            self.families, self.members, self.notifications, self.resolver, self.ledger, self.settings,
        )
        self._started = False

    def start(self, seed: Optional[bool] = None) -> "HouseholdApp":
        """
        Subscribe every reaction, then optionally seed the store.

        Seeding happens after subscription but publishes nothing, so fixture
        records never trigger notifications.
        """
        if self._started:
            return self
        self.low_stock.start()
        self.shopping_list.start()
        self.suggestion_responses.start()
        self.router.start()
        self._started = True

        if self.settings.SEED_FIXTURES if seed is None else seed:
            load_fixtures(self.records, self.data_dir)
        logger.info(f"{self.settings.APP_NAME} started")
        return self

    def stop(self) -> None:
        if not self._started:
            return
        self.router.stop()
        self.suggestion_responses.stop()
        self.shopping_list.stop()
        self.low_stock.stop()
        self.event_bus.shutdown()
        self._started = False


_default_app: Optional[HouseholdApp] = None


def get_app() -> HouseholdApp:
    """Get the default application singleton."""
    global _default_app
    if _default_app is None:
        _default_app = HouseholdApp().start()
    return _default_app


def reset_app(settings: Optional[Settings] = None, **kwargs) -> HouseholdApp:
    """Replace the default application (useful for testing)."""
    global _default_app
    if _default_app is not None:
        _default_app.stop()
    _default_app = HouseholdApp(settings, **kwargs).start()
    return _default_app
