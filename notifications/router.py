"""
Delivery router.

For an active NotificationEvent and each candidate recipient, per enabled
channel:

    effective set empty         -> skipped, no ledger write
    IMMEDIATE in set            -> send now; on confirmed success mark
                                   "{CHANNEL}:IMMEDIATE" for that member
    DAILY / WEEKLY in set       -> deferred (left unmarked for the digest)

A send failure is logged and leaves the ledger untouched, so the event is
picked up again by the next sweep, manual resend or digest.

Candidates are every active family member (family-wide events) or the single
addressee. A member without an address for a channel is skipped on it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from household.repositories import (
    FamilyRepository,
    MemberRepository,
    NotificationEventRepository,
)
from household.low_stock import LowStockManager
from notifications.ledger import DeliveryLedger
from notifications.preferences import PreferenceResolver, PreferencesService
from shared.channels import NotificationChannels
from shared.config import Settings
from shared.event_bus import Event, EventBus
from shared.events import EventTypes
from shared.models import (
    Channel,
    Frequency,
    Member,
    NotificationEvent,
    NotificationType,
    utc_now,
)
from shared.results import NotFound, NotifierUnavailable, Success
from shared.templates import render_notification

logger = logging.getLogger("delivery_router")

DIGEST_FREQUENCIES = (Frequency.DAILY, Frequency.WEEKLY)


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    DEFERRED = "deferred"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RecipientDecision:
    member_id: str
    channel: str
    outcome: DeliveryOutcome
    frequency: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class RoutingReport:
    event_id: str
    decisions: list[RecipientDecision] = field(default_factory=list)

    def count(self, outcome: DeliveryOutcome) -> int:
        return sum(1 for d in self.decisions if d.outcome == outcome)

    @property
    def sent(self) -> int:
        return self.count(DeliveryOutcome.SENT)

    @property
    def failed(self) -> int:
        return self.count(DeliveryOutcome.FAILED)

    @property
    def deferred(self) -> int:
        return self.count(DeliveryOutcome.DEFERRED)

    def for_member(self, member_id: str) -> list[RecipientDecision]:
        return [d for d in self.decisions if d.member_id == member_id]


@dataclass
class SweepReport:
    events_routed: int = 0
    sent: int = 0
    failed: int = 0
    errored: int = 0


def contact_for(member: Member, channel: str) -> Optional[str]:
    if channel == Channel.EMAIL:
        return member.email
    if channel == Channel.SMS:
        return member.phone
    return None


class DeliveryRouter:
    """
    Decides per recipient whether an event goes out now, waits for a digest,
    or is suppressed.
    """

    def __init__(
        self,
        families: FamilyRepository,
        members: MemberRepository,
        notifications: NotificationEventRepository,
        resolver: PreferenceResolver,
        preferences: PreferencesService,
        channels: NotificationChannels,
        ledger: DeliveryLedger,
        low_stock: LowStockManager,
        event_bus: EventBus,
        settings: Settings,
    ):
        self.families = families
        self.members = members
        self.notifications = notifications
        self.resolver = resolver
        self.preferences = preferences
        self.channels = channels
        self.ledger = ledger
        self.low_stock = low_stock
        self.event_bus = event_bus
        self.settings = settings
        self.enabled_channels = [Channel(c) for c in settings.ENABLED_CHANNELS]
        self.digest_channel = Channel(settings.DIGEST_CHANNEL)
        self._running = False

    def start(self) -> None:
        if not self._running:
            self.event_bus.subscribe(EventTypes.NOTIFICATION_CREATED, self.handle_notification_created)
            self._running = True

    def stop(self) -> None:
        if self._running:
            self.event_bus.unsubscribe(EventTypes.NOTIFICATION_CREATED, self.handle_notification_created)
            self._running = False

    def handle_notification_created(self, event: Event) -> None:
        notification = self.notifications.get(event.payload["family_id"], event.payload["notification_id"])
        if notification is not None:
            self.route(notification)

    # =========================================================================
    # Routing
    # =========================================================================

    def candidate_recipients(self, event: NotificationEvent) -> list[Member]:
        if event.recipient_id is not None:
            member = self.members.get(event.family_id, event.recipient_id)
            return [member] if member is not None and member.is_active else []
        return self.members.list_members(event.family_id, active_only=True)

    def route(self, event: NotificationEvent, now: Optional[datetime] = None) -> RoutingReport:
        report = RoutingReport(event_id=event.id)
        if not event.is_active:
            logger.info(f"Event {event.id} is resolved; nothing to route")
            return report

        now = now or utc_now()
        for member in self.candidate_recipients(event):
            for channel in self.enabled_channels:
                report.decisions.extend(self._route_one(event, member, channel, now))

        logger.info(
            f"Routed {event.type} event {event.id}: sent={report.sent} "
            f"deferred={report.deferred} failed={report.failed}"
        )
        self.settle(event)
        return report

    def _route_one(self, event: NotificationEvent, member: Member, channel: Channel, now: datetime) -> list[RecipientDecision]:
        frequencies = self.resolver.resolve_for_event_type(member, event.type, channel)
        address = contact_for(member, channel)
        if not frequencies or not address:
            reason = "no delivery preference" if not frequencies else f"no {channel.value} address"
            return [RecipientDecision(member.id, channel.value, DeliveryOutcome.SKIPPED, detail=reason)]

        decisions = []
        if Frequency.IMMEDIATE in frequencies:
            decisions.append(self._send_immediate(event, member, channel, address, now))

        if channel == self.digest_channel:
            for frequency in DIGEST_FREQUENCIES:
                if frequency in frequencies:
                    decisions.append(RecipientDecision(member.id, channel.value, DeliveryOutcome.DEFERRED, frequency.value))
        elif not decisions:
            decisions.append(RecipientDecision(member.id, channel.value, DeliveryOutcome.SKIPPED,
                                               detail=f"{channel.value} has no digest"))
        return decisions

    def _send_immediate(self, event: NotificationEvent, member: Member, channel: Channel, address: str, now: datetime) -> RecipientDecision:
        frequency = Frequency.IMMEDIATE.value
        if self.ledger.has_been_delivered(event, channel, Frequency.IMMEDIATE, member.id):
            return RecipientDecision(member.id, channel.value, DeliveryOutcome.ALREADY_SENT, frequency)

        unsubscribe_url = self.preferences.create_unsubscribe_url(member) if channel == Channel.EMAIL else None
        message = render_notification(event, channel.value, member.name, unsubscribe_url)
        try:
            result = self.channels.send(channel, address, message.subject, message.body_text, message.body_html)
        except NotifierUnavailable as e:
            logger.error(f"{channel.value} unavailable for event {event.id} -> {member.id}: {e}")
            return RecipientDecision(member.id, channel.value, DeliveryOutcome.FAILED, frequency, str(e))

        if not result.success:
            logger.warning(
                f"Immediate {channel.value} for event {event.id} to {member.id} failed "
                f"({result.failure_kind.value if result.failure_kind else 'unknown'}): {result.error}"
            )
            return RecipientDecision(member.id, channel.value, DeliveryOutcome.FAILED, frequency, result.error)

        self.ledger.mark_delivered(event, channel, Frequency.IMMEDIATE, [member.id], sent_at=now)
        return RecipientDecision(member.id, channel.value, DeliveryOutcome.SENT, frequency)

    def settle(self, event: NotificationEvent) -> None:
        """
        A suggestion response is one-shot: once every cadence its addressee
        wants has been delivered, it is resolved.
        """
        if event.type != NotificationType.SUGGESTION_RESPONSE:
            return
        latest = self.notifications.get(event.family_id, event.id)
        if latest is None or not latest.is_active:
            return
        for member in self.candidate_recipients(latest):
            for channel in self.enabled_channels:
                if not contact_for(member, channel):
                    continue
                for frequency in self.resolver.resolve_for_event_type(member, latest.type, channel):
                    if channel != self.digest_channel and frequency != Frequency.IMMEDIATE:
                        continue
                    if not self.ledger.has_been_delivered(latest, channel, frequency, member.id):
                        return
        self.low_stock.resolve(latest)

    # =========================================================================
    # Retries
    # =========================================================================

    def resend(self, family_id: str, event_id: str):
        """Manual resend: re-route one event, skipping members already delivered."""
        event = self.notifications.get(family_id, event_id)
        if event is None:
            return NotFound(entity="NotificationEvent", key=event_id)
        return Success(self.route(event))

    def sweep(self, now: Optional[datetime] = None, family_id: Optional[str] = None) -> SweepReport:
        """
        Re-route every active event of every family, or only of ``family_id``.

        Members already ledgered for IMMEDIATE are not sent to again, so this
        only retries earlier failures and picks up events whose recipients
        changed preferences. One family's failure does not stop the others.
        """
        report = SweepReport()
        now = now or utc_now()
        window = timedelta(minutes=self.settings.IMMEDIATE_WINDOW_MINUTES)
        family_ids = [family_id] if family_id else [f.id for f in self.families.list_families()]
        for fid in family_ids:
            try:
                for event in self.notifications.list_active(fid):
                    if now - event.created_at > window and not self._has_immediate_gap(event):
                        continue
                    routed = self.route(event, now=now)
                    report.events_routed += 1
                    report.sent += routed.sent
                    report.failed += routed.failed
            except Exception as e:
                report.errored += 1
                logger.error(f"Immediate sweep failed for family {fid}: {e}")
        logger.info(
            f"Immediate sweep: routed={report.events_routed} sent={report.sent} "
            f"failed={report.failed} errored={report.errored}"
        )
        return report

    def _has_immediate_gap(self, event: NotificationEvent) -> bool:
        """Some recipient wants IMMEDIATE on some channel and has not had it."""
        for member in self.candidate_recipients(event):
            for channel in self.enabled_channels:
                if not contact_for(member, channel):
                    continue
                wanted = self.resolver.resolve_for_event_type(member, event.type, channel)
                if Frequency.IMMEDIATE in wanted and not self.ledger.has_been_delivered(
                    event, channel, Frequency.IMMEDIATE, member.id
                ):
                    return True
        return False
