"""
Digest aggregator for the DAILY and WEEKLY cadences.

For every family and every eligible member, batch the active events that
member wants at this cadence and has not yet received into one email. Each
collected event is ledgered only after the send is confirmed, so a rerun of
the same cadence never repeats a delivery and a failed send is retried next
time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from household.repositories import (
    FamilyRepository,
    MemberRepository,
    NotificationEventRepository,
)
from notifications.ledger import DeliveryLedger
from notifications.preferences import SUPPORTED_TYPES, PreferenceResolver, PreferencesService
from shared.channels import NotificationChannels
from shared.config import Settings
from shared.models import (
    Channel,
    Frequency,
    Member,
    NotificationEvent,
    new_id,
    utc_now,
)
from shared.results import NotifierUnavailable
from shared.templates import render_digest

logger = logging.getLogger("digest")

DIGEST_CADENCES = (Frequency.DAILY, Frequency.WEEKLY)


@dataclass
class DigestRunReport:
    frequency: str
    run_id: str
    started_at: datetime
    targeted: int = 0
    sent: int = 0
    skipped: int = 0
    errored: int = 0
    events_delivered: int = 0
    errors: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{self.frequency} digest {self.run_id}: targeted={self.targeted} sent={self.sent} "
            f"skipped={self.skipped} errored={self.errored}"
        )


class DigestAggregator:
    """
    Example usage:
        aggregator = DigestAggregator(...)
        report = aggregator.run(Frequency.DAILY)
        print(report.summary())
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
        settings: Settings,
        on_delivered: Optional[Callable[[NotificationEvent], None]] = None,
    ):
        self.families = families
        self.members = members
        self.notifications = notifications
        self.resolver = resolver
        self.preferences = preferences
        self.channels = channels
        self.ledger = ledger
        self.settings = settings
        self.on_delivered = on_delivered

    def is_member_eligible(self, member: Member, frequency: Frequency) -> bool:
        """Active, has email, not unsubscribed, and wants this cadence for some type."""
        if not member.is_active or not member.email or member.unsubscribe_all_email:
            return False
        return any(frequency in self.resolver.resolve(member, t, Channel.EMAIL) for t in SUPPORTED_TYPES)

    def collect_for_member(
        self,
        member: Member,
        frequency: Frequency,
        events: list[NotificationEvent],
    ) -> list[NotificationEvent]:
        collected = []
        for event in events:
            if not event.is_active or not event.is_relevant_to(member.id):
                continue
            if frequency not in self.resolver.resolve_for_event_type(member, event.type, Channel.EMAIL):
                continue
            if self.ledger.has_been_delivered(event, Channel.EMAIL, frequency, member.id):
                continue
            if self.settings.IMMEDIATE_SUPPRESSES_DIGEST and self.ledger.has_been_delivered(
                event, Channel.EMAIL, Frequency.IMMEDIATE, member.id
            ):
                continue
            collected.append(event)
        return collected

    def run(
        self,
        frequency: str,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None,
        family_id: Optional[str] = None,
    ) -> DigestRunReport:
        """
        Run one digest pass over every family, or only over ``family_id``.

        The scheduler runs all families; an admin-triggered run is limited to
        the admin's own family.

        Raises:
            ValueError: If frequency is not DAILY or WEEKLY
        """
        frequency = Frequency(frequency)
        if frequency not in DIGEST_CADENCES:
            raise ValueError(f"Digest cadence must be DAILY or WEEKLY, got {frequency.value}")

        now = now or utc_now()
        report = DigestRunReport(frequency=frequency.value, run_id=run_id or new_id(), started_at=now)
        logger.info(f"Starting {frequency.value} digest run {report.run_id}")

        family_ids = [family_id] if family_id else [f.id for f in self.families.list_families()]
        for fid in family_ids:
            try:
                self._run_family(fid, frequency, now, report)
            except Exception as e:
                report.errored += 1
                report.errors.append(f"family {fid}: {e}")
                logger.error(f"Digest failed for family {fid}: {e}")

        logger.info(report.summary())
        return report

    def _run_family(self, family_id: str, frequency: Frequency, now: datetime, report: DigestRunReport) -> None:
        events = self.notifications.list_active(family_id)
        for member in self.members.list_members(family_id, active_only=True):
            if not self.is_member_eligible(member, frequency):
                continue
            report.targeted += 1
            try:
                self._deliver(member, frequency, events, now, report)
            except Exception as e:
                report.errored += 1
                report.errors.append(f"member {member.id}: {e}")
                logger.error(f"Digest for member {member.id} failed: {e}")

    def _deliver(
        self,
        member: Member,
        frequency: Frequency,
        events: list[NotificationEvent],
        now: datetime,
        report: DigestRunReport,
    ) -> None:
        collected = self.collect_for_member(member, frequency, events)
        if not collected:
            report.skipped += 1
            return
        if report.sent >= self.settings.MAX_EMAILS_PER_RUN:
            report.skipped += 1
            logger.warning(f"Email cap {self.settings.MAX_EMAILS_PER_RUN} reached; {member.id} deferred to next run")
            return

        message = render_digest(
            member.name,
            frequency.value,
            collected,
            now,
            self.preferences.create_unsubscribe_url(member),
        )
        try:
            result = self.channels.send(Channel.EMAIL, member.email, message.subject, message.body_text, message.body_html)
        except NotifierUnavailable as e:
            report.errored += 1
            report.errors.append(f"member {member.id}: {e}")
            logger.error(f"Email unavailable for {member.id} digest: {e}")
            return

        if not result.success:
            report.errored += 1
            report.errors.append(f"member {member.id}: {result.error}")
            logger.warning(f"Digest to {member.id} failed: {result.error}")
            return

        report.sent += 1
        for event in collected:
            self.ledger.mark_delivered(event, Channel.EMAIL, frequency, [member.id], sent_at=now, run_id=report.run_id)
            report.events_delivered += 1
            if self.on_delivered is not None:
                self.on_delivered(event)
