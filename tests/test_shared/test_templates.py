"""
Tests for notification templates.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shared.models import NotificationEvent, NotificationType, SuggestionStatus, SuggestionType
from shared.templates import format_relative_date, render_digest, render_notification

NOW = datetime(2026, 1, 6, 8, 0, tzinfo=timezone.utc)


def low_stock(name="Milk", quantity=2, threshold=3, created_at=NOW) -> NotificationEvent:
    return NotificationEvent(
        family_id="fam-001",
        type=NotificationType.LOW_STOCK,
        item_id="item-001",
        item_name=name,
        current_quantity=quantity,
        threshold=threshold,
        created_at=created_at,
    )


def suggestion_response(decision=SuggestionStatus.REJECTED, notes="We have plenty") -> NotificationEvent:
    return NotificationEvent(
        family_id="fam-001",
        type=NotificationType.SUGGESTION_RESPONSE,
        recipient_id="mem-003",
        item_name="Milk",
        suggestion_id="sug-001",
        suggestion_type=SuggestionType.ADD_TO_SHOPPING,
        decision=decision,
        reviewer_name="Alice",
        rejection_notes=notes,
        created_at=NOW,
    )


class TestImmediateTemplates:
    def test_low_stock_email(self):
        message = render_notification(low_stock(), "EMAIL", "Bob", "https://x.test/unsubscribe?token=t")

        assert message.subject == "Low stock: Milk"
        assert "Hi Bob" in message.body_text
        assert "2 left" in message.body_text
        assert "unsubscribe?token=t" in message.body_text

    def test_html_body_is_escaped(self):
        message = render_notification(low_stock(name="<b>Milk</b>"), "EMAIL", "Bob")

        assert "<b>Milk</b>" not in message.body_html
        assert "&lt;b&gt;Milk&lt;/b&gt;" in message.body_html

    def test_low_stock_sms_is_short(self):
        message = render_notification(low_stock(), "SMS", "Bob")

        assert message.subject is None
        assert len(message.body_text) <= 160

    def test_suggestion_rejection_includes_notes(self):
        message = render_notification(suggestion_response(), "EMAIL", "Casey")

        assert message.subject == "Your suggestion was rejected: Milk"
        assert "Alice rejected your suggestion" in message.body_text
        assert "We have plenty" in message.body_text

    def test_unknown_channel_raises(self):
        with pytest.raises(ValueError):
            render_notification(low_stock(), "PIGEON", "Bob")


class TestDigestTemplate:
    def test_subject_counts_items(self):
        message = render_digest("Alice", "DAILY", [low_stock(), low_stock(name="Eggs")], NOW)

        assert message.subject == "Your Daily Inventory Summary - 2 items need attention"

    def test_singular_subject(self):
        message = render_digest("Casey", "WEEKLY", [low_stock()], NOW)

        assert message.subject == "Your Weekly Inventory Summary - 1 item needs attention"

    def test_events_are_grouped_by_type(self):
        message = render_digest(
            "Casey", "DAILY",
            [low_stock(), suggestion_response(decision=SuggestionStatus.APPROVED, notes=None)],
            NOW,
        )

        assert "Low Stock Alert (1)" in message.body_text
        assert "Suggestion (1)" in message.body_text
        assert "your suggestion was approved" in message.body_text

    def test_unsubscribe_link_in_both_bodies(self):
        message = render_digest("Alice", "DAILY", [low_stock()], NOW, "https://x.test/unsubscribe?token=abc")

        assert "token=abc" in message.body_text
        assert 'href="https://x.test/unsubscribe?token=abc"' in message.body_html


class TestRelativeDates:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(hours=1), "today"),
            (timedelta(days=1), "yesterday"),
            (timedelta(days=4), "4 days ago"),
        ],
    )
    def test_format_relative_date(self, delta, expected):
        assert format_relative_date(NOW - delta, NOW) == expected
