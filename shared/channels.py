"""
Notifier channels.

Every channel implements the same sink contract:

    send(recipient, subject, body_text, body_html) -> SendResult

The physical transport is out of scope; these channels log the send and
keep a history for test assertions. In production they would wrap SES,
SendGrid, Twilio, SNS, ...

Design decisions:
- A failed send returns a SendResult with ``failure_kind`` PERMANENT
  (recipient invalid / rejected) or TRANSIENT (try again later)
- An unreachable transport raises NotifierUnavailable instead
- The sender identity comes from Settings at construction time
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from shared.config import Settings
from shared.models import Channel, utc_now
from shared.results import NotifierUnavailable

# Configure logging for notification channels
logger = logging.getLogger("notifications")
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter(
    "%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S"
))
logger.addHandler(handler)
logger.setLevel(logging.INFO)


class FailureKind(str, Enum):
    """Why a send failed. Both kinds leave the delivery ledger untouched."""
    PERMANENT = "permanent"
    TRANSIENT = "transient"


@dataclass
class SendResult:
    """Result of a send attempt, kept for debugging and tests."""
    success: bool
    channel: Channel
    recipient: str
    subject: Optional[str]
    body_text: str
    body_html: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        if self.channel == Channel.EMAIL:
            return f"{status} EMAIL to {self.recipient}: {self.subject}"
        return f"{status} SMS to {self.recipient}: {self.body_text[:50]}..."


class Notifier(ABC):
    """Abstract delivery sink with send history."""

    channel: Channel

    def __init__(self, fail_rate: float = 0.0):
        """
        Args:
            fail_rate: Probability of a transient send failure (0.0 to 1.0), for testing.
        """
        self.fail_rate = fail_rate
        self.unavailable = False
        self.rejected_recipients: set[str] = set()
        self.sent_messages: list[SendResult] = []

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: Optional[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> SendResult: ...

    def _failure(self, recipient, subject, body_text, body_html, kind: FailureKind, error: str) -> SendResult:
        result = SendResult(
            success=False,
            channel=self.channel,
            recipient=recipient,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            error=error,
            failure_kind=kind,
        )
        logger.error(f"[{self.channel.value} FAILED] To: {recipient} | {kind.value}: {error}")
        self.sent_messages.append(result)
        return result

    def _check_available(self) -> None:
        if self.unavailable:
            raise NotifierUnavailable(f"{self.channel.value} transport unavailable")

    def get_sent_count(self) -> int:
        """Get the number of send attempts (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[SendResult]:
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_messages_to(self, recipient: str) -> list[SendResult]:
        """All successful messages sent to a specific recipient."""
        return [m for m in self.sent_messages if m.recipient == recipient and m.success]


class EmailChannel(Notifier):
    """
    Mock email channel.

    Addresses without an ``@`` or listed in ``rejected_recipients`` fail
    permanently; ``fail_rate`` produces transient failures.
    """

    channel = Channel.EMAIL

    def __init__(self, settings: Optional[Settings] = None, fail_rate: float = 0.0):
        super().__init__(fail_rate=fail_rate)
        settings = settings or Settings()
        self.from_addr = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"

    def send(
        self,
        recipient: str,
        subject: Optional[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> SendResult:
        """
        Send an email (mock implementation).

        Raises:
            NotifierUnavailable: If the transport is down
        """
        self._check_available()
        subject = subject or "(no subject)"

        if "@" not in recipient or recipient in self.rejected_recipients:
            return self._failure(recipient, subject, body_text, body_html,
                                 FailureKind.PERMANENT, "Recipient address rejected")
        if random.random() < self.fail_rate:
            return self._failure(recipient, subject, body_text, body_html,
                                 FailureKind.TRANSIENT, "Simulated email delivery failure")

        result = SendResult(
            success=True,
            channel=Channel.EMAIL,
            recipient=recipient,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
        )
        logger.info(f"[EMAIL] From: {self.from_addr} | To: {recipient} | Subject: {subject}")
        logger.debug(f"[EMAIL BODY] {body_text}")
        self.sent_messages.append(result)
        return result


class SMSChannel(Notifier):
    """
    Mock SMS channel.

    SMS has no subject and no HTML body; both are ignored.
    """

    # SMS typically have character limits
    MAX_LENGTH = 160

    channel = Channel.SMS

    def send(
        self,
        recipient: str,
        subject: Optional[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> SendResult:
        self._check_available()

        if len(body_text) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(body_text)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )

        if not recipient.lstrip("+").replace("-", "").isdigit() or recipient in self.rejected_recipients:
            return self._failure(recipient, None, body_text, None,
                                 FailureKind.PERMANENT, "Invalid phone number")
        if random.random() < self.fail_rate:
            return self._failure(recipient, None, body_text, None,
                                 FailureKind.TRANSIENT, "Simulated SMS delivery failure")

        result = SendResult(
            success=True,
            channel=Channel.SMS,
            recipient=recipient,
            subject=None,
            body_text=body_text,
        )
        logger.info(f"[SMS] To: {recipient} | Message: {body_text}")
        self.sent_messages.append(result)
        return result


class NotificationChannels:
    """
    Facade over every configured channel.

    The router and the digest aggregator look channels up by name here.
    """

    def __init__(self, settings: Optional[Settings] = None, email_fail_rate: float = 0.0, sms_fail_rate: float = 0.0):
        self.email = EmailChannel(settings=settings, fail_rate=email_fail_rate)
        self.sms = SMSChannel(fail_rate=sms_fail_rate)

    def get(self, channel: str) -> Notifier:
        """
        Raises:
            ValueError: If channel is not recognized
        """
        if channel == Channel.EMAIL:
            return self.email
        elif channel == Channel.SMS:
            return self.sms
        else:
            raise ValueError(f"Unknown channel: {channel}")

    def send(
        self,
        channel: str,
        recipient: str,
        subject: Optional[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> SendResult:
        return self.get(channel).send(recipient, subject, body_text, body_html)

    def get_all_sent_messages(self) -> list[SendResult]:
        return self.email.sent_messages + self.sms.sent_messages

    def get_total_sent_count(self) -> int:
        return self.email.get_sent_count() + self.sms.get_sent_count()

    def clear_all_history(self):
        self.email.clear_history()
        self.sms.clear_history()
