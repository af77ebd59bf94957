"""
Domain events published after a write commits.

Events are named in past tense and carry enough identifiers for a
subscriber to re-read what it needs. Helper functions build properly
structured Event objects.
"""

from typing import Optional

from shared.event_bus import Event


class EventTypes:
    """Constants for event type names."""
    # Inventory events
    INVENTORY_ITEM_CHANGED = "InventoryItemChanged"
    INVENTORY_ITEM_RENAMED = "InventoryItemRenamed"
    INVENTORY_ITEM_DELETED = "InventoryItemDeleted"

    # Shopping list events
    SHOPPING_ITEM_ADDED = "ShoppingItemAdded"

    # Suggestion events
    SUGGESTION_REVIEWED = "SuggestionReviewed"

    # Notification events
    NOTIFICATION_CREATED = "NotificationCreated"


# =============================================================================
# Inventory Events
# =============================================================================

def inventory_item_changed(
    family_id: str,
    item_id: str,
    change: str,
    actor_id: Optional[str] = None,
    source: str = "inventory-service",
) -> Event:
    """
    Published after any quantity or status mutation of an inventory item.

    ``change`` is one of: created, updated, quantity_adjusted, archived.
    """
    return Event(
        event_type=EventTypes.INVENTORY_ITEM_CHANGED,
        source=source,
        payload={
            "family_id": family_id,
            "item_id": item_id,
            "change": change,
            "actor_id": actor_id,
        },
    )


def inventory_item_renamed(
    family_id: str,
    item_id: str,
    old_name: str,
    new_name: str,
    source: str = "inventory-service",
) -> Event:
    return Event(
        event_type=EventTypes.INVENTORY_ITEM_RENAMED,
        source=source,
        payload={
            "family_id": family_id,
            "item_id": item_id,
            "old_name": old_name,
            "new_name": new_name,
        },
    )


def inventory_item_deleted(
    family_id: str,
    item_id: str,
    item_name: str,
    source: str = "inventory-service",
) -> Event:
    return Event(
        event_type=EventTypes.INVENTORY_ITEM_DELETED,
        source=source,
        payload={"family_id": family_id, "item_id": item_id, "item_name": item_name},
    )


# =============================================================================
# Shopping List Events
# =============================================================================

def shopping_item_added(
    family_id: str,
    shopping_item_id: str,
    item_id: Optional[str],
    source: str = "shopping-list-service",
) -> Event:
    """Published after an entry is added to the shopping list."""
    return Event(
        event_type=EventTypes.SHOPPING_ITEM_ADDED,
        source=source,
        payload={
            "family_id": family_id,
            "shopping_item_id": shopping_item_id,
            "item_id": item_id,
        },
    )


# =============================================================================
# Suggestion Events
# =============================================================================

def suggestion_reviewed(
    family_id: str,
    suggestion_id: str,
    decision: str,
    reviewer_id: str,
    source: str = "suggestion-service",
) -> Event:
    """Published after a suggestion is approved or rejected."""
    return Event(
        event_type=EventTypes.SUGGESTION_REVIEWED,
        source=source,
        payload={
            "family_id": family_id,
            "suggestion_id": suggestion_id,
            "decision": decision,
            "reviewer_id": reviewer_id,
        },
    )


# =============================================================================
# Notification Events
# =============================================================================

def notification_created(
    family_id: str,
    notification_id: str,
    notification_type: str,
    source: str = "notification-events",
) -> Event:
    """Published when a new NotificationEvent is stored and ready for routing."""
    return Event(
        event_type=EventTypes.NOTIFICATION_CREATED,
        source=source,
        payload={
            "family_id": family_id,
            "notification_id": notification_id,
            "notification_type": notification_type,
        },
    )
