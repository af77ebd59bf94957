"""
Notification message templates.

Two families of messages:
- immediate: one event, one message (email subject/text/html, or SMS text)
- digest: every pending event for one member batched into one email

Templates are plain strings with {variable} placeholders. Anything that
ends up in HTML is escaped first.
"""

import html
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shared.models import (
    Frequency,
    NotificationEvent,
    NotificationType,
    SuggestionStatus,
    SuggestionType,
)


@dataclass
class RenderedMessage:
    subject: Optional[str]
    body_text: str
    body_html: Optional[str] = None


@dataclass
class NotificationTemplate:
    """
    A notification template with email and SMS variants.

    SMS templates must be concise (ideally under 160 characters).
    """
    notification_type: NotificationType
    email_subject: str
    email_body: str
    sms_body: str

    def render_email(self, **kwargs) -> RenderedMessage:
        body_text = self.email_body.format(**kwargs)
        escaped = {k: html.escape(str(v)) for k, v in kwargs.items()}
        body_html = "".join(
            f"<p>{line}</p>" for line in self.email_body.format(**escaped).split("\n\n") if line.strip()
        )
        return RenderedMessage(
            subject=self.email_subject.format(**kwargs),
            body_text=body_text,
            body_html=body_html.replace("\n", "<br>"),
        )

    def render_sms(self, **kwargs) -> RenderedMessage:
        return RenderedMessage(subject=None, body_text=self.sms_body.format(**kwargs))


# =============================================================================
# Immediate Templates
# =============================================================================

TEMPLATES: dict[NotificationType, NotificationTemplate] = {

    NotificationType.LOW_STOCK: NotificationTemplate(
        notification_type=NotificationType.LOW_STOCK,
        email_subject="Low stock: {item_name}",
        email_body="""Hi {member_name},

{item_name} is running low. There are {quantity} left (alert threshold: {threshold}).

Add it to the shopping list so it gets picked up on the next trip.

{unsubscribe_line}""",
        sms_body="Low stock: {item_name} ({quantity} left, threshold {threshold}).",
    ),

    NotificationType.SUGGESTION_RESPONSE: NotificationTemplate(
        notification_type=NotificationType.SUGGESTION_RESPONSE,
        email_subject="Your suggestion was {decision}: {item_name}",
        email_body="""Hi {member_name},

{reviewer_name} {decision} your suggestion to {action}.
{notes_line}
{unsubscribe_line}""",
        sms_body="{reviewer_name} {decision} your suggestion: {item_name}.",
    ),
}


def get_template(notification_type: str) -> NotificationTemplate:
    """
    Raises:
        KeyError: If no template exists for the type
    """
    return TEMPLATES[NotificationType(notification_type)]


def suggestion_action(event: NotificationEvent) -> str:
    if event.suggestion_type == SuggestionType.CREATE_ITEM:
        return f'start tracking "{event.item_name}"'
    return f'add "{event.item_name}" to the shopping list'


def event_context(event: NotificationEvent, member_name: str, unsubscribe_url: Optional[str] = None) -> dict:
    """Template variables for one event."""
    context = {
        "member_name": member_name,
        "item_name": event.item_name,
        "quantity": event.current_quantity if event.current_quantity is not None else 0,
        "threshold": event.threshold if event.threshold is not None else 0,
        "decision": event.decision or "",
        "reviewer_name": event.reviewer_name or "An admin",
        "action": suggestion_action(event),
        "notes_line": f"\nNotes: {event.rejection_notes}\n" if event.rejection_notes else "",
        "unsubscribe_line": f"Unsubscribe from all emails: {unsubscribe_url}" if unsubscribe_url else "",
    }
    return context


def render_notification(
    event: NotificationEvent,
    channel: str,
    member_name: str,
    unsubscribe_url: Optional[str] = None,
) -> RenderedMessage:
    """
    Render a single event for a channel.

    Raises:
        ValueError: If channel is not recognized
    """
    template = get_template(event.type)
    context = event_context(event, member_name, unsubscribe_url)
    if channel == "EMAIL":
        return template.render_email(**context)
    elif channel == "SMS":
        return template.render_sms(**context)
    raise ValueError(f"Unknown channel: {channel}")


# =============================================================================
# Digest Template
# =============================================================================

SECTION_TITLES = {
    NotificationType.LOW_STOCK: "Low Stock Alert",
    NotificationType.SUGGESTION_RESPONSE: "Suggestion",
}


def format_relative_date(when: datetime, now: datetime) -> str:
    """'today', 'yesterday' or 'N days ago'."""
    days = (now.date() - when.date()).days
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    return f"{days} days ago"


def describe_event(event: NotificationEvent) -> str:
    if event.type == NotificationType.LOW_STOCK:
        return f"{event.item_name}: {event.current_quantity} left (threshold {event.threshold})"
    decision = "approved" if event.decision == SuggestionStatus.APPROVED else "rejected"
    line = f"{event.item_name}: your suggestion was {decision}"
    if event.rejection_notes:
        line += f" ({event.rejection_notes})"
    return line


def render_digest(
    member_name: str,
    frequency: str,
    events: list[NotificationEvent],
    now: datetime,
    unsubscribe_url: Optional[str] = None,
) -> RenderedMessage:
    """
    Batch every event into one email, grouped by notification type.

    Subject: "Your Daily Inventory Summary - 3 items need attention"
    """
    cadence = "Weekly" if frequency == Frequency.WEEKLY else "Daily"
    count = len(events)
    noun = "item" if count == 1 else "items"
    subject = f"Your {cadence} Inventory Summary - {count} {noun} need{'s' if count == 1 else ''} attention"

    text_lines = [f"Hi {member_name},", "", f"Here is your {cadence.lower()} summary.", ""]
    html_parts = [
        f"<p>Hi {html.escape(member_name)},</p>",
        f"<p>Here is your {cadence.lower()} summary.</p>",
    ]

    for notification_type, title in SECTION_TITLES.items():
        group = [e for e in events if e.type == notification_type]
        if not group:
            continue
        text_lines.append(f"{title} ({len(group)})")
        html_parts.append(f"<h3>{html.escape(title)} ({len(group)})</h3><ul>")
        for event in group:
            line = f"{describe_event(event)} - {format_relative_date(event.created_at, now)}"
            text_lines.append(f"  - {line}")
            html_parts.append(f"<li>{html.escape(line)}</li>")
        text_lines.append("")
        html_parts.append("</ul>")

    if unsubscribe_url:
        text_lines.append(f"Unsubscribe from all emails: {unsubscribe_url}")
        html_parts.append(f'<p><a href="{html.escape(unsubscribe_url, quote=True)}">Unsubscribe from all emails</a></p>')

    return RenderedMessage(subject=subject, body_text="\n".join(text_lines), body_html="\n".join(html_parts))
