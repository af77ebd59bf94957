"""
Suggestion response events.

When a suggestion is reviewed, its author gets a NotificationEvent addressed
to them alone. Like the low-stock manager this only records the event; the
delivery router decides how and when it goes out.
"""

import logging
from typing import Optional

from household.repositories import (
    MemberRepository,
    NotificationEventRepository,
    SuggestionRepository,
)
from shared import events
from shared.event_bus import Event, EventBus
from shared.events import EventTypes
from shared.models import NotificationEvent, NotificationType

logger = logging.getLogger("suggestion_responses")


class SuggestionResponseNotifier:
    """Turns SuggestionReviewed into a suggestion_response NotificationEvent."""

    def __init__(
        self,
        suggestions: SuggestionRepository,
        members: MemberRepository,
        notifications: NotificationEventRepository,
        event_bus: EventBus,
    ):
        self.suggestions = suggestions
        self.members = members
        self.notifications = notifications
        self.event_bus = event_bus
        self._running = False

    def start(self) -> None:
        if not self._running:
            self.event_bus.subscribe(EventTypes.SUGGESTION_REVIEWED, self.handle_suggestion_reviewed)
            self._running = True

    def stop(self) -> None:
        if self._running:
            self.event_bus.unsubscribe(EventTypes.SUGGESTION_REVIEWED, self.handle_suggestion_reviewed)
            self._running = False

    def handle_suggestion_reviewed(self, event: Event) -> None:
        self.record_response(event.payload["family_id"], event.payload["suggestion_id"])

    def record_response(self, family_id: str, suggestion_id: str) -> Optional[NotificationEvent]:
        suggestion = self.suggestions.get(family_id, suggestion_id)
        if suggestion is None or suggestion.reviewed_by is None:
            logger.warning(f"No reviewed suggestion {suggestion_id} in family {family_id}")
            return None

        reviewer = self.members.get(family_id, suggestion.reviewed_by)
        notification = NotificationEvent(
            family_id=family_id,
            type=NotificationType.SUGGESTION_RESPONSE,
            recipient_id=suggestion.suggested_by,
            item_id=suggestion.item_id,
            item_name=suggestion.display_name,
            suggestion_id=suggestion.id,
            suggestion_type=suggestion.type,
            decision=suggestion.status,
            reviewer_name=reviewer.name if reviewer else None,
            rejection_notes=suggestion.rejection_notes,
        )
        self.notifications.create(notification)
        logger.info(f"Suggestion {suggestion.id} {suggestion.status}; notifying {suggestion.suggested_by}")
        self.event_bus.publish(
            events.notification_created(family_id, notification.id, NotificationType.SUGGESTION_RESPONSE.value)
        )
        return notification
