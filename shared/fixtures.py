"""
JSON fixture loading.

Seeds a record store from the files in ``data/``. Used by the API, the
CLI and the test suite so every entry point starts from the same family.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from shared.models import (
    Family,
    InventoryItem,
    Member,
    NotificationEvent,
    ShoppingListItem,
    Suggestion,
)
from shared.record_store import VersionedRecordStore

logger = logging.getLogger("fixtures")

FIXTURE_FILES = [
    ("families.json", Family),
    ("members.json", Member),
    ("inventory.json", InventoryItem),
    ("shopping_list.json", ShoppingListItem),
    ("suggestions.json", Suggestion),
    ("notifications.json", NotificationEvent),
]


def default_data_dir() -> Path:
    """./data relative to the project root."""
    return Path(__file__).parent.parent / "data"


def _load_json(data_dir: Path, filename: str) -> list[dict]:
    """Load a JSON fixture file; missing files are empty."""
    filepath = data_dir / filename
    if not filepath.exists():
        return []
    with open(filepath, "r") as f:
        return json.load(f)


def load_fixtures(records: VersionedRecordStore, data_dir: Optional[Path] = None) -> int:
    """
    Insert every fixture record. Returns how many were created.

    Records that already exist are left untouched.
    """
    data_dir = Path(data_dir) if data_dir else default_data_dir()
    created = 0
    for filename, model in FIXTURE_FILES:
        for raw in _load_json(data_dir, filename):
            if records.create(model.model_validate(raw)).ok:
                created += 1
    logger.info(f"Loaded {created} fixture record(s) from {data_dir}")
    return created
