"""
Shared pytest fixtures for the household inventory tests.

Every test gets a fresh application seeded from the JSON fixtures in data/,
with background side effects run inline so assertions are deterministic.

Seeded family fam-001:
- Alice (admin)      LOW_STOCK:EMAIL = IMMEDIATE + DAILY
- Bob (admin)        no preferences (system default DAILY), has a phone
- Casey (suggester)  LOW_STOCK:EMAIL = WEEKLY, SUGGESTION:EMAIL = IMMEDIATE
- Dana (suggester)   unsubscribed from all email
- Milk 5/3, Eggs 12/6 (pending on the shopping list), Coffee 1/2 (low,
  active event notif-001), Flour (archived)
- sug-001: Casey asks for Milk on the list; sug-002: Casey proposes Oat Milk

Seeded family fam-002:
- Erin (admin)       LOW_STOCK:SMS = IMMEDIATE, LOW_STOCK:EMAIL = NONE
- Rice 4/2
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from household.app import HouseholdApp
from shared.config import Settings
from shared.models import Channel, MemberContext, MemberRole


@pytest.fixture
def data_dir() -> Path:
    """Path to the fixture data directory."""
    return Path(__file__).parent.parent / "data"


def make_settings(**overrides) -> Settings:
    values = dict(
        BACKGROUND_TASKS_INLINE=True,
        ENABLED_CHANNELS=[Channel.EMAIL, Channel.SMS],
        UNSUBSCRIBE_SECRET="test-secret",
        FRONTEND_URL="https://household.test",
        SEED_FIXTURES=True,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def hh(settings: Settings, data_dir: Path) -> HouseholdApp:
    """
    Fresh, seeded application for each test.

    Uses a backend with multi-item transactions.
    """
    app = HouseholdApp(settings, data_dir=data_dir).start()
    yield app
    app.stop()


@pytest.fixture(params=[True, False], ids=["transactional", "compensating"])
def hh_any_backend(request, data_dir: Path) -> HouseholdApp:
    """The same seeded application, once per backend transaction mode."""
    app = HouseholdApp(make_settings(STORE_SUPPORTS_TRANSACTIONS=request.param), data_dir=data_dir).start()
    yield app
    app.stop()


@pytest.fixture
def app_factory(data_dir: Path):
    """Build started, seeded applications with settings overrides."""
    apps = []

    def build(**overrides) -> HouseholdApp:
        app = HouseholdApp(make_settings(**overrides), data_dir=data_dir).start()
        apps.append(app)
        return app

    yield build
    for app in apps:
        app.stop()


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 6, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Caller contexts
# =============================================================================

@pytest.fixture
def alice_ctx() -> MemberContext:
    """Alice: admin of fam-001."""
    return MemberContext(member_id="mem-001", family_id="fam-001", role=MemberRole.ADMIN)


@pytest.fixture
def bob_ctx() -> MemberContext:
    """Bob: admin of fam-001."""
    return MemberContext(member_id="mem-002", family_id="fam-001", role=MemberRole.ADMIN)


@pytest.fixture
def casey_ctx() -> MemberContext:
    """Casey: suggester in fam-001."""
    return MemberContext(member_id="mem-003", family_id="fam-001", role=MemberRole.SUGGESTER)


@pytest.fixture
def dana_ctx() -> MemberContext:
    """Dana: suggester in fam-001, unsubscribed from email."""
    return MemberContext(member_id="mem-004", family_id="fam-001", role=MemberRole.SUGGESTER)


@pytest.fixture
def erin_ctx() -> MemberContext:
    """Erin: admin of fam-002."""
    return MemberContext(member_id="mem-101", family_id="fam-002", role=MemberRole.ADMIN)


# =============================================================================
# Record IDs
# =============================================================================

@pytest.fixture
def milk_item_id() -> str:
    """Milk: 5 on hand, threshold 3, preferred store Corner Market."""
    return "item-001"


@pytest.fixture
def eggs_item_id() -> str:
    """Eggs: 12 on hand, already pending on the shopping list (shop-001)."""
    return "item-002"


@pytest.fixture
def coffee_item_id() -> str:
    """Coffee: 1 on hand, threshold 2, low stock with active event notif-001."""
    return "item-003"


@pytest.fixture
def flour_item_id() -> str:
    """Flour: archived."""
    return "item-004"
