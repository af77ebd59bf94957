"""
Delivery queue preview.

Answers "who would get what, and when" for every active event without
sending anything or touching the ledger.
"""

from dataclasses import dataclass, field
from typing import Optional

from household.repositories import (
    FamilyRepository,
    MemberRepository,
    NotificationEventRepository,
)
from notifications.ledger import DeliveryLedger
from notifications.preferences import PreferenceResolver
from notifications.router import contact_for
from shared.config import Settings
from shared.models import Channel, Frequency


@dataclass
class QueueEntry:
    family_id: str
    event_id: str
    event_type: str
    item_name: str
    member_id: str
    member_name: str
    channel: str
    frequency: str


@dataclass
class QueuePreview:
    immediate: list[QueueEntry] = field(default_factory=list)
    daily: list[QueueEntry] = field(default_factory=list)
    weekly: list[QueueEntry] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            Frequency.IMMEDIATE.value: len(self.immediate),
            Frequency.DAILY.value: len(self.daily),
            Frequency.WEEKLY.value: len(self.weekly),
        }

    def bucket(self, frequency: Frequency) -> list[QueueEntry]:
        return {
            Frequency.IMMEDIATE: self.immediate,
            Frequency.DAILY: self.daily,
            Frequency.WEEKLY: self.weekly,
        }[frequency]


class QueuePreviewer:
    def __init__(
        self,
        families: FamilyRepository,
        members: MemberRepository,
        notifications: NotificationEventRepository,
        resolver: PreferenceResolver,
        ledger: DeliveryLedger,
        settings: Settings,
    ):
        self.families = families
        self.members = members
        self.notifications = notifications
        self.resolver = resolver
        self.ledger = ledger
        self.enabled_channels = [Channel(c) for c in settings.ENABLED_CHANNELS]
        self.digest_channel = Channel(settings.DIGEST_CHANNEL)

    def preview_delivery_queue(self, family_id: Optional[str] = None) -> QueuePreview:
        preview = QueuePreview()
        family_ids = [family_id] if family_id else [f.id for f in self.families.list_families()]
        for fid in family_ids:
            members = self.members.list_members(fid, active_only=True)
            for event in self.notifications.list_active(fid):
                for member in members:
                    if not event.is_relevant_to(member.id):
                        continue
                    for channel in self.enabled_channels:
                        if not contact_for(member, channel):
                            continue
                        for frequency in self.resolver.resolve_for_event_type(member, event.type, channel):
                            if frequency != Frequency.IMMEDIATE and channel != self.digest_channel:
                                continue
                            if self.ledger.has_been_delivered(event, channel, frequency, member.id):
                                continue
                            preview.bucket(frequency).append(QueueEntry(
                                family_id=fid,
                                event_id=event.id,
                                event_type=event.type,
                                item_name=event.item_name,
                                member_id=member.id,
                                member_name=member.name,
                                channel=channel.value,
                                frequency=frequency.value,
                            ))
        return preview
