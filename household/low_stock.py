"""
Low-stock lifecycle manager.

Runs inline after every inventory quantity/status mutation:

    low stock and no active event   -> create one (NotificationCreated)
    low stock and an active event   -> no-op, return the existing event
    not low stock (or archived)     -> resolve the active event, if any

A resolved event is never reopened; the next crossing creates a new one.
Each crossing gets a deterministic id (`lowstock-{item}-{n}`) written with
put-if-absent, so two evaluations racing on the same crossing create one
event between them.

This manager never sends anything. Its failures are contained by the event
bus and never fail the inventory write that triggered it.
"""

import logging
from typing import Optional

from household.repositories import InventoryRepository, NotificationEventRepository
from shared import events
from shared.event_bus import Event, EventBus
from shared.events import EventTypes
from shared.models import (
    InventoryItem,
    NotificationEvent,
    NotificationStatus,
    NotificationType,
    utc_now,
)
from shared.results import NotFound, Result, Success, VersionConflict

logger = logging.getLogger("low_stock")

MAX_RESOLVE_ATTEMPTS = 3


def low_stock_event_id(item_id: str, crossing: int) -> str:
    return f"lowstock-{item_id}-{crossing}"


class LowStockManager:
    """Creates and resolves low-stock NotificationEvents."""

    def __init__(
        self,
        inventory: InventoryRepository,
        notifications: NotificationEventRepository,
        event_bus: EventBus,
    ):
        self.inventory = inventory
        self.notifications = notifications
        self.event_bus = event_bus
        self._running = False

    def start(self) -> None:
        if self._running:
            return
        self.event_bus.subscribe(EventTypes.INVENTORY_ITEM_CHANGED, self.handle_item_changed)
        self.event_bus.subscribe(EventTypes.INVENTORY_ITEM_DELETED, self.handle_item_deleted)
        self.event_bus.subscribe(EventTypes.SHOPPING_ITEM_ADDED, self.handle_shopping_item_added)
        self._running = True
        logger.info("Low-stock manager started")

    def stop(self) -> None:
        if not self._running:
            return
        self.event_bus.unsubscribe(EventTypes.INVENTORY_ITEM_CHANGED, self.handle_item_changed)
        self.event_bus.unsubscribe(EventTypes.INVENTORY_ITEM_DELETED, self.handle_item_deleted)
        self.event_bus.unsubscribe(EventTypes.SHOPPING_ITEM_ADDED, self.handle_shopping_item_added)
        self._running = False

    # =========================================================================
    # Event handlers
    # =========================================================================

    def handle_item_changed(self, event: Event) -> None:
        family_id = event.payload["family_id"]
        item_id = event.payload["item_id"]
        item = self.inventory.get(family_id, item_id)
        if item is None:
            self.resolve_for_item(family_id, item_id)
            return
        self.evaluate(item)

    def handle_item_deleted(self, event: Event) -> None:
        self.resolve_for_item(event.payload["family_id"], event.payload["item_id"])

    def handle_shopping_item_added(self, event: Event) -> None:
        """An item going on the shopping list is being dealt with."""
        item_id = event.payload.get("item_id")
        if item_id:
            self.resolve_for_item(event.payload["family_id"], item_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def evaluate(self, item: InventoryItem) -> Optional[NotificationEvent]:
        """
        Bring the item's low-stock event in line with its current state.

        Returns the active event when the item is low, otherwise None.
        """
        if item.is_low_stock:
            notification, _ = self.create_low_stock_notification(item)
            return notification
        self.resolve_for_item(item.family_id, item.id)
        return None

    def create_low_stock_notification(self, item: InventoryItem) -> tuple[NotificationEvent, bool]:
        """Returns (event, is_new). An existing active event is reused as-is."""
        existing = self.notifications.find_active_low_stock(item.family_id, item.id)
        if existing is not None:
            logger.debug(f"Low-stock event {existing.id} already active for {item.id}")
            return existing, False

        crossing = 1 + sum(
            1 for e in self.notifications.list_for_item(item.family_id, item.id)
            if e.type == NotificationType.LOW_STOCK
        )
        notification = NotificationEvent(
            id=low_stock_event_id(item.id, crossing),
            family_id=item.family_id,
            type=NotificationType.LOW_STOCK,
            item_id=item.id,
            item_name=item.name,
            current_quantity=item.quantity,
            threshold=item.low_stock_threshold,
        )
        created = self.notifications.create(notification)
        if not created.ok:
            logger.info(f"Low-stock event {notification.id} was created concurrently, reusing it")
            return created.current, False
        logger.info(
            f"Low stock: '{item.name}' at {item.quantity} (threshold {item.low_stock_threshold}), "
            f"event {notification.id}"
        )
        self.event_bus.publish(
            events.notification_created(item.family_id, notification.id, NotificationType.LOW_STOCK.value)
        )
        return notification, True

    def resolve_for_item(self, family_id: str, item_id: str) -> list[NotificationEvent]:
        resolved = []
        for notification in self.notifications.list_active(family_id):
            if notification.type == NotificationType.LOW_STOCK and notification.item_id == item_id:
                resolved.append(self.resolve(notification))
        return resolved

    def resolve_notification(self, family_id: str, event_id: str) -> Result:
        """Manual resolve from an admin. Works for any event type."""
        notification = self.notifications.get(family_id, event_id)
        if notification is None:
            return NotFound(entity="NotificationEvent", key=event_id)
        return Success(self.resolve(notification))

    def resolve(self, notification: NotificationEvent) -> NotificationEvent:
        """Mark resolved. Resolving an already-resolved event is a no-op."""
        current = notification
        for _ in range(MAX_RESOLVE_ATTEMPTS):
            if current.status == NotificationStatus.RESOLVED:
                return current
            result = self.notifications.update(
                current.family_id,
                current.id,
                current.version,
                {"status": NotificationStatus.RESOLVED.value, "resolved_at": utc_now()},
            )
            if result.ok:
                logger.info(f"Resolved {current.type} event {current.id}")
                return result.value
            if not isinstance(result, VersionConflict):
                logger.warning(f"Could not resolve event {current.id}: {result.message}")
                return current
            current = result.current
        logger.warning(f"Gave up resolving event {notification.id} after {MAX_RESOLVE_ATTEMPTS} conflicts")
        return current
