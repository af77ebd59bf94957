"""
Tests for preference normalization, resolution and the preferences service.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from household.app import HouseholdApp
from notifications.preferences import (
    PreferenceResolver,
    normalize_frequencies,
    preference_type_for,
)
from shared.models import Frequency, Member, PreferenceType
from shared.results import Forbidden, ValidationFailed


def member(**kwargs) -> Member:
    return Member(id="mem-x", family_id="fam-001", name="Xan", email="xan@example.com", **kwargs)


class TestNormalize:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, set()),
            ("DAILY", {Frequency.DAILY}),
            ("immediate, weekly", {Frequency.IMMEDIATE, Frequency.WEEKLY}),
            (["IMMEDIATE", "DAILY"], {Frequency.IMMEDIATE, Frequency.DAILY}),
            (Frequency.WEEKLY, {Frequency.WEEKLY}),
            ("NONE", set()),
            (["DAILY", "NONE", "HOURLY"], {Frequency.DAILY}),
            ([], set()),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_frequencies(value) == frozenset(expected)

    def test_event_types_map_to_preference_types(self):
        assert preference_type_for("low_stock") == PreferenceType.LOW_STOCK
        assert preference_type_for("suggestion_response") == PreferenceType.SUGGESTION
        assert preference_type_for("birthday") is None


class TestResolver:
    resolver = PreferenceResolver(Frequency.DAILY)

    def test_missing_key_uses_default(self):
        assert self.resolver.resolve(member(), "LOW_STOCK", "EMAIL") == {Frequency.DAILY}

    def test_stored_value_wins(self):
        m = member(notification_preferences={"LOW_STOCK:EMAIL": ["IMMEDIATE", "DAILY"]})

        assert self.resolver.resolve(m, "LOW_STOCK", "EMAIL") == {Frequency.IMMEDIATE, Frequency.DAILY}

    def test_explicit_none_means_no_delivery(self):
        m = member(notification_preferences={"LOW_STOCK:SMS": "NONE"})

        assert self.resolver.resolve(m, "LOW_STOCK", "SMS") == frozenset()

    def test_unsubscribe_all_email_overrides_preferences(self):
        m = member(
            unsubscribe_all_email=True,
            notification_preferences={"LOW_STOCK:EMAIL": "IMMEDIATE"},
        )

        assert self.resolver.resolve(m, "LOW_STOCK", "EMAIL") == frozenset()
        assert self.resolver.resolve(m, "LOW_STOCK", "SMS") == {Frequency.DAILY}

    def test_unknown_event_type_resolves_to_nothing(self):
        assert self.resolver.resolve_for_event_type(member(), "birthday", "EMAIL") == frozenset()


class TestPreferencesService:
    def test_view_lists_every_key(self, hh: HouseholdApp, casey_ctx):
        view = hh.preferences.get_preferences(casey_ctx, "mem-003").value

        assert view.preferences == {
            "LOW_STOCK:EMAIL": ["WEEKLY"],
            "LOW_STOCK:SMS": ["DAILY"],
            "SUGGESTION:EMAIL": ["IMMEDIATE"],
            "SUGGESTION:SMS": ["DAILY"],
        }
        assert view.default_frequency == "DAILY"
        assert view.timezone == "America/Chicago"

    def test_member_updates_own_preferences(self, hh: HouseholdApp, casey_ctx):
        result = hh.preferences.update_preferences(
            casey_ctx, "mem-003", 1, {"low_stock:email": "daily,immediate"}, timezone="Europe/Lisbon"
        )

        assert result.value.preferences["LOW_STOCK:EMAIL"] == ["IMMEDIATE", "DAILY"]
        assert result.value.preferences["SUGGESTION:EMAIL"] == ["IMMEDIATE"]
        stored = hh.members.get("fam-001", "mem-003")
        assert stored.notification_preferences["LOW_STOCK:EMAIL"] == ["IMMEDIATE", "DAILY"]
        assert stored.timezone == "Europe/Lisbon"

    def test_admin_updates_someone_else(self, hh: HouseholdApp, alice_ctx):
        result = hh.preferences.update_preferences(alice_ctx, "mem-003", 1, {"SUGGESTION:EMAIL": "NONE"})

        assert result.value.preferences["SUGGESTION:EMAIL"] == []

    def test_suggester_cannot_update_others(self, hh: HouseholdApp, casey_ctx):
        result = hh.preferences.update_preferences(casey_ctx, "mem-001", 1, {"LOW_STOCK:EMAIL": "NONE"})

        assert isinstance(result, Forbidden)

    def test_invalid_key_rejected(self, hh: HouseholdApp, casey_ctx):
        result = hh.preferences.update_preferences(casey_ctx, "mem-003", 1, {"BIRTHDAY:PIGEON": "DAILY"})

        assert isinstance(result, ValidationFailed)
        assert "BIRTHDAY:PIGEON" in result.errors

    def test_stale_version(self, hh: HouseholdApp, casey_ctx):
        hh.preferences.update_preferences(casey_ctx, "mem-003", 1, {"LOW_STOCK:EMAIL": "DAILY"})

        result = hh.preferences.update_preferences(casey_ctx, "mem-003", 1, {"LOW_STOCK:EMAIL": "IMMEDIATE"})

        assert not result.ok
        assert result.current.version == 2


class TestUnsubscribe:
    def test_unsubscribe_link_round_trip(self, hh: HouseholdApp):
        alice = hh.members.get("fam-001", "mem-001")
        url = hh.preferences.create_unsubscribe_url(alice)

        assert url.startswith("https://household.test/unsubscribe?token=")
        token = parse_qs(urlparse(url).query)["token"][0]

        result = hh.preferences.unsubscribe(token)

        assert result.ok
        updated = hh.members.get("fam-001", "mem-001")
        assert updated.unsubscribe_all_email is True
        assert updated.notification_preferences["LOW_STOCK:EMAIL"] == []
        assert updated.notification_preferences["SUGGESTION:EMAIL"] == []
        assert hh.resolver.resolve(updated, "LOW_STOCK", "EMAIL") == frozenset()

    def test_bad_token(self, hh: HouseholdApp):
        result = hh.preferences.unsubscribe("not-a-token")

        assert isinstance(result, ValidationFailed)
        assert result.errors == {"token": "invalid"}
