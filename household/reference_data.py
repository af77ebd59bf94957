"""
Read-only reference data (stores and storage locations).

Only display names are needed, to denormalize onto inventory and shopping
list records. A lookup that fails degrades to None and never blocks the
operation that asked for it.
"""

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("reference_data")


class ReferenceDataLookup:
    """
    Name lookups keyed by (family_id, kind, id).

    Example usage:
        lookup = ReferenceDataLookup.from_fixtures(Path("data"))
        lookup.store_name("fam-001", "store-001")  # "Corner Market"
    """

    def __init__(self, names: Optional[dict[tuple[str, str, str], str]] = None):
        self._names = names or {}

    @classmethod
    def from_fixtures(cls, data_dir: Path) -> "ReferenceDataLookup":
        filepath = Path(data_dir) / "reference_data.json"
        if not filepath.exists():
            return cls()
        with open(filepath, "r") as f:
            data = json.load(f)
        names = {}
        for kind in ("stores", "locations"):
            for entry in data.get(kind, []):
                names[(entry["family_id"], kind, entry["id"])] = entry["name"]
        return cls(names)

    def store_name(self, family_id: str, store_id: Optional[str]) -> Optional[str]:
        return self._safe_lookup(family_id, "stores", store_id)

    def location_name(self, family_id: str, location_id: Optional[str]) -> Optional[str]:
        return self._safe_lookup(family_id, "locations", location_id)

    def _resolve(self, family_id: str, kind: str, ref_id: str) -> Optional[str]:
        return self._names.get((family_id, kind, ref_id))

    def _safe_lookup(self, family_id: str, kind: str, ref_id: Optional[str]) -> Optional[str]:
        if not ref_id:
            return None
        try:
            return self._resolve(family_id, kind, ref_id)
        except Exception as e:
            logger.warning(f"Could not resolve {kind} {ref_id} for family {family_id}: {e}")
            return None
