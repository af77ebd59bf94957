"""
Tests for notification channels.

These tests verify that the mock email and SMS channels log messages,
track history, and report permanent vs transient failures.
"""

import pytest

from shared.channels import (
    EmailChannel,
    FailureKind,
    NotificationChannels,
    SMSChannel,
)
from shared.config import Settings
from shared.models import Channel
from shared.results import NotifierUnavailable


@pytest.fixture
def email_channel() -> EmailChannel:
    return EmailChannel(Settings(EMAIL_FROM_ADDRESS="home@example.com", EMAIL_FROM_NAME="Home"))


@pytest.fixture
def sms_channel() -> SMSChannel:
    return SMSChannel()


class TestEmailChannel:
    """Tests for the mock email channel."""

    def test_send_email_success(self, email_channel: EmailChannel):
        result = email_channel.send("test@example.com", "Test Subject", "Body", "<p>Body</p>")

        assert result.success is True
        assert result.channel == Channel.EMAIL
        assert result.recipient == "test@example.com"
        assert result.body_html == "<p>Body</p>"
        assert result.error is None

    def test_sender_comes_from_settings(self, email_channel: EmailChannel):
        assert email_channel.from_addr == "Home <home@example.com>"

    def test_tracks_sent_messages(self, email_channel: EmailChannel):
        email_channel.send("a@example.com", "Subject A", "Body A")
        email_channel.send("b@example.com", "Subject B", "Body B")

        assert email_channel.get_sent_count() == 2
        assert len(email_channel.find_messages_to("a@example.com")) == 1

    def test_invalid_address_fails_permanently(self, email_channel: EmailChannel):
        result = email_channel.send("not-an-address", "Hi", "Body")

        assert result.success is False
        assert result.failure_kind == FailureKind.PERMANENT
        assert email_channel.get_successful_sends() == []

    def test_rejected_recipient_fails_permanently(self, email_channel: EmailChannel):
        email_channel.rejected_recipients.add("bounce@example.com")

        result = email_channel.send("bounce@example.com", "Hi", "Body")

        assert result.failure_kind == FailureKind.PERMANENT

    def test_fail_rate_produces_transient_failures(self):
        channel = EmailChannel(fail_rate=1.0)

        result = channel.send("test@example.com", "Hi", "Body")

        assert result.success is False
        assert result.failure_kind == FailureKind.TRANSIENT

    def test_unavailable_transport_raises(self, email_channel: EmailChannel):
        email_channel.unavailable = True

        with pytest.raises(NotifierUnavailable):
            email_channel.send("test@example.com", "Hi", "Body")

    def test_clear_history(self, email_channel: EmailChannel):
        email_channel.send("test@example.com", "Test", "Body")
        email_channel.clear_history()

        assert email_channel.get_sent_count() == 0


class TestSMSChannel:
    """Tests for the mock SMS channel."""

    def test_send_sms_success(self, sms_channel: SMSChannel):
        result = sms_channel.send("+15551234567", None, "Low stock: Milk")

        assert result.success is True
        assert result.channel == Channel.SMS
        assert result.subject is None

    def test_long_message_still_sends(self, sms_channel: SMSChannel):
        result = sms_channel.send("+15551234567", None, "A" * 200)

        assert result.success is True

    def test_invalid_number_fails_permanently(self, sms_channel: SMSChannel):
        result = sms_channel.send("call me maybe", None, "Hi")

        assert result.failure_kind == FailureKind.PERMANENT


class TestNotificationChannels:
    """Tests for the channel facade."""

    def test_get_by_channel(self):
        channels = NotificationChannels()

        assert isinstance(channels.get(Channel.EMAIL), EmailChannel)
        assert isinstance(channels.get("SMS"), SMSChannel)

    def test_unknown_channel_raises(self):
        with pytest.raises(ValueError, match="Unknown channel"):
            NotificationChannels().get("PIGEON")

    def test_send_and_count_across_channels(self):
        channels = NotificationChannels()
        channels.send(Channel.EMAIL, "a@example.com", "Hi", "Body")
        channels.send(Channel.SMS, "+15550000", None, "Body")

        assert channels.get_total_sent_count() == 2
        channels.clear_all_history()
        assert channels.get_all_sent_messages() == []
