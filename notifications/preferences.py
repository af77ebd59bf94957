"""
Notification preferences.

A member's preferences map ``"{TYPE}:{CHANNEL}"`` to a set of frequencies.
Stored values may be a single frequency, a comma-separated string or a
list; ``normalize_frequencies`` is the one place that deals with that.
Everything downstream works with ``frozenset[Frequency]``.

Resolution for (member, type, channel):
1. EMAIL and the member unsubscribed from all email -> empty set
2. key absent -> {system default}
3. otherwise the normalized stored value (NONE filtered out)
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from household.authorization import Action, authorize
from household.repositories import MemberRepository
from shared.config import Settings
from shared.models import (
    Channel,
    Frequency,
    Member,
    MemberContext,
    PreferenceType,
)
from shared.results import NotFound, Success, ValidationFailed
from shared.tokens import InvalidToken, create_unsubscribe_token, verify_unsubscribe_token

logger = logging.getLogger("preferences")

SUPPORTED_TYPES = [PreferenceType.LOW_STOCK, PreferenceType.SUGGESTION]
SUPPORTED_CHANNELS = [Channel.EMAIL, Channel.SMS]
FREQUENCY_ORDER = [Frequency.IMMEDIATE, Frequency.DAILY, Frequency.WEEKLY]

NOTIFICATION_TYPE_ALIASES = {
    "SUGGESTION_RESPONSE": PreferenceType.SUGGESTION,
}


def preference_type_for(notification_type: str) -> Optional[PreferenceType]:
    """
    Map an event type (``low_stock``, ``suggestion_response``, ...) onto the
    preference type it is governed by.
    """
    raw = notification_type.value if isinstance(notification_type, Enum) else str(notification_type)
    normalized = re.sub(r"[^A-Z0-9]+", "_", raw.upper()).strip("_")
    if normalized in NOTIFICATION_TYPE_ALIASES:
        return NOTIFICATION_TYPE_ALIASES[normalized]
    try:
        return PreferenceType(normalized)
    except ValueError:
        return None


def preference_key(preference_type: str, channel: str) -> str:
    return f"{PreferenceType(preference_type).value}:{Channel(channel).value}"


def normalize_frequencies(value: Any) -> frozenset[Frequency]:
    """
    Normalize a stored preference value.

    Accepts None, a Frequency, a string (optionally comma-separated) or any
    iterable of those. Unknown values and NONE are dropped.
    """
    if value is None:
        return frozenset()
    if isinstance(value, str):
        candidates: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        candidates = value
    else:
        candidates = [value]

    result = set()
    for candidate in candidates:
        raw = candidate.value if isinstance(candidate, Enum) else str(candidate)
        try:
            frequency = Frequency(raw.strip().upper())
        except ValueError:
            logger.debug(f"Ignoring unknown frequency {candidate!r}")
            continue
        if frequency != Frequency.NONE:
            result.add(frequency)
    return frozenset(result)


def ordered(frequencies: Iterable[Frequency]) -> list[str]:
    """Stable display / storage order."""
    present = set(frequencies)
    return [f.value for f in FREQUENCY_ORDER if f in present]


class PreferenceResolver:
    """
    Resolves effective delivery frequencies.

    Example usage:
        resolver = PreferenceResolver(Frequency.DAILY)
        resolver.resolve(member, "LOW_STOCK", "EMAIL")  # frozenset({Frequency.DAILY})
    """

    def __init__(self, default_frequency: Frequency = Frequency.DAILY):
        self.default = normalize_frequencies(default_frequency)

    def resolve(self, member: Member, preference_type: str, channel: str) -> frozenset[Frequency]:
        channel = Channel(channel)
        if channel == Channel.EMAIL and member.unsubscribe_all_email:
            return frozenset()
        key = preference_key(preference_type, channel)
        if key not in member.notification_preferences:
            return self.default
        return normalize_frequencies(member.notification_preferences[key])

    def resolve_for_event_type(self, member: Member, notification_type: str, channel: str) -> frozenset[Frequency]:
        preference_type = preference_type_for(notification_type)
        if preference_type is None:
            return frozenset()
        return self.resolve(member, preference_type, channel)

    def resolve_matrix(self, member: Member) -> dict[str, frozenset[Frequency]]:
        return {
            preference_key(t, c): self.resolve(member, t, c)
            for t in SUPPORTED_TYPES
            for c in SUPPORTED_CHANNELS
        }


# =============================================================================
# Preferences service
# =============================================================================

@dataclass
class PreferencesView:
    """What a member (or their admin) sees and edits."""
    member_id: str
    version: int
    default_frequency: str
    unsubscribe_all_email: bool
    timezone: str
    preferences: dict[str, list[str]] = field(default_factory=dict)


class PreferencesService:
    """Read and update notification preferences; process unsubscribe links."""

    def __init__(self, members: MemberRepository, resolver: PreferenceResolver, settings: Settings):
        self.members = members
        self.resolver = resolver
        self.settings = settings

    def _view(self, member: Member) -> PreferencesView:
        return PreferencesView(
            member_id=member.id,
            version=member.version,
            default_frequency=Frequency(self.settings.DEFAULT_FREQUENCY).value,
            unsubscribe_all_email=member.unsubscribe_all_email,
            timezone=member.timezone,
            preferences={key: ordered(value) for key, value in self.resolver.resolve_matrix(member).items()},
        )

    def get_preferences(self, ctx: MemberContext, member_id: str):
        caller = self.members.get(ctx.family_id, ctx.member_id)
        decision = authorize(ctx, Action.MANAGE_PREFERENCES, ctx.family_id, member=caller, target_member_id=member_id)
        if not decision:
            return decision.as_failure()
        member = self.members.get(ctx.family_id, member_id)
        if member is None:
            return NotFound(entity="Member", key=member_id)
        return Success(self._view(member))

    def update_preferences(
        self,
        ctx: MemberContext,
        member_id: str,
        expected_version: int,
        preferences: Optional[dict[str, Any]] = None,
        unsubscribe_all_email: Optional[bool] = None,
        timezone: Optional[str] = None,
    ):
        """
        Merge ``preferences`` into the member's stored map.

        Keys must be ``"{TYPE}:{CHANNEL}"`` with supported parts. Values are
        normalized and stored as ordered lists; NONE (or an empty list)
        stores an empty list, which means "no delivery".
        """
        caller = self.members.get(ctx.family_id, ctx.member_id)
        decision = authorize(ctx, Action.MANAGE_PREFERENCES, ctx.family_id, member=caller, target_member_id=member_id)
        if not decision:
            return decision.as_failure()

        updates: dict[str, list[str]] = {}
        errors = {}
        for key, value in (preferences or {}).items():
            type_part, _, channel_part = key.partition(":")
            try:
                normalized_key = preference_key(type_part.upper(), channel_part.upper())
            except ValueError:
                errors[key] = "unsupported preference key"
                continue
            updates[normalized_key] = ordered(normalize_frequencies(value))
        if errors:
            return ValidationFailed(reason="Invalid preferences", errors=errors)

        def merge(member: Member) -> dict:
            changes: dict[str, Any] = {"notification_preferences": {**member.notification_preferences, **updates}}
            if unsubscribe_all_email is not None:
                changes["unsubscribe_all_email"] = unsubscribe_all_email
            if timezone is not None:
                changes["timezone"] = timezone
            return changes

        result = self.members.update(ctx.family_id, member_id, expected_version, merge)
        if not result.ok:
            return result
        logger.info(f"Updated notification preferences for {member_id}")
        return Success(self._view(result.value))

    # =========================================================================
    # Unsubscribe links
    # =========================================================================

    def create_unsubscribe_url(self, member: Member) -> str:
        token = create_unsubscribe_token(
            member.id,
            member.family_id,
            self.settings.UNSUBSCRIBE_SECRET,
            self.settings.UNSUBSCRIBE_TOKEN_TTL_DAYS,
        )
        return f"{self.settings.FRONTEND_URL.rstrip('/')}/unsubscribe?token={token}"

    def unsubscribe(self, token: str):
        """Apply an ``unsubscribe_all`` token: every EMAIL key becomes empty."""
        try:
            claims = verify_unsubscribe_token(token, self.settings.UNSUBSCRIBE_SECRET)
        except InvalidToken as e:
            logger.warning(f"Rejected unsubscribe token: {e}")
            return ValidationFailed(reason=str(e), errors={"token": "invalid"})

        member = self.members.get(claims.family_id, claims.member_id)
        if member is None:
            return NotFound(entity="Member", key=claims.member_id)

        def apply_unsubscribe(current: Member) -> dict:
            prefs = dict(current.notification_preferences)
            for preference_type in SUPPORTED_TYPES:
                prefs[preference_key(preference_type, Channel.EMAIL)] = []
            return {"notification_preferences": prefs, "unsubscribe_all_email": True}

        result = self.members.update(member.family_id, member.id, member.version, apply_unsubscribe)
        if result.ok:
            logger.info(f"Member {member.id} unsubscribed from all email")
        return result
