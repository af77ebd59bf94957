"""
Domain models for the household inventory system.

Every persisted entity is a versioned record owned by exactly one family.
Records are stored as plain dicts in a single logical table keyed by
(pk, sk), with two secondary access paths:

- GSI1: global lookups (member -> family, list all families)
- GSI2: per-family listings ordered by status (and quantity / store / time)

Design decisions:
- Using Pydantic for validation and serialization
- Enum values are stored as plain strings (use_enum_values)
- Index attributes are derived from the model on every write, never edited by hand
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def family_key(family_id: str) -> str:
    return f"FAMILY#{family_id}"


# =============================================================================
# Enums
# =============================================================================

class MemberRole(str, Enum):
    """Family member roles."""
    ADMIN = "admin"               # Manages inventory, shopping list, reviews suggestions
    SUGGESTER = "suggester"       # May only propose changes


class MemberStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class ItemStatus(str, Enum):
    """Inventory item lifecycle. Archived is terminal for notifications."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class ShoppingStatus(str, Enum):
    PENDING = "pending"
    PURCHASED = "purchased"


class SuggestionType(str, Enum):
    ADD_TO_SHOPPING = "add_to_shopping"   # Put an existing item on the list
    CREATE_ITEM = "create_item"           # Track a brand new item


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    """Kinds of notification events."""
    LOW_STOCK = "low_stock"
    SUGGESTION_RESPONSE = "suggestion_response"


class NotificationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class Channel(str, Enum):
    """Delivery channels. Values are used verbatim in preference and ledger keys."""
    EMAIL = "EMAIL"
    SMS = "SMS"


class Frequency(str, Enum):
    """
    Delivery cadences.

    NONE means "no delivery" and never survives normalization.
    """
    NONE = "NONE"
    IMMEDIATE = "IMMEDIATE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class PreferenceType(str, Enum):
    """Notification types as they appear in preference keys."""
    LOW_STOCK = "LOW_STOCK"
    SUGGESTION = "SUGGESTION"


# =============================================================================
# Versioned record base
# =============================================================================

class VersionedRecord(BaseModel):
    """
    Base for every persisted entity.

    Every mutating write must supply the version it read; the store rejects
    the write when the stored version differs.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    ENTITY: ClassVar[str] = ""

    id: str = Field(default_factory=new_id, description="Unique record identifier")
    family_id: str = Field(..., description="Owning family scope")
    version: int = Field(default=1, ge=1, description="Optimistic concurrency version")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def sort_key(cls, record_id: str) -> str:
        return f"{cls.ENTITY}#{record_id}"

    @classmethod
    def key_for(cls, family_id: str, record_id: str) -> tuple[str, str]:
        return family_key(family_id), cls.sort_key(record_id)

    @property
    def pk(self) -> str:
        return family_key(self.family_id)

    @property
    def sk(self) -> str:
        return self.sort_key(self.id)

    def index_keys(self) -> dict[str, str]:
        """Secondary index attributes derived from the current field values."""
        return {}

    def to_item(self) -> dict[str, Any]:
        """Serialize to the stored item layout (fields + keys + index attributes)."""
        item = self.model_dump()
        item["pk"] = self.pk
        item["sk"] = self.sk
        item.update(self.index_keys())
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]):
        return cls.model_validate(item)


# =============================================================================
# Family & members
# =============================================================================

class Family(VersionedRecord):
    """A household. Every other record is scoped to one."""
    ENTITY: ClassVar[str] = "FAMILY"

    name: str = Field(..., description="Display name of the household")

    @model_validator(mode="before")
    @classmethod
    def _family_scope_is_own_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "id" in data and not data.get("family_id"):
            data = {**data, "family_id": data["id"]}
        return data

    @classmethod
    def sort_key(cls, record_id: str) -> str:
        return "METADATA"

    def index_keys(self) -> dict[str, str]:
        return {"gsi1pk": "FAMILIES", "gsi1sk": family_key(self.id)}


class Member(VersionedRecord):
    """
    A family member and their notification preferences.

    ``notification_preferences`` is kept exactly as stored: a map of
    ``"{TYPE}:{CHANNEL}"`` to either a single frequency string or a list of
    them. It is normalized once, by the preference resolver.
    """
    ENTITY: ClassVar[str] = "MEMBER"

    email: Optional[str] = Field(default=None, description="Email address for EMAIL channel")
    phone: Optional[str] = Field(default=None, description="Phone number for SMS channel")
    name: str = Field(..., description="Display name")
    role: MemberRole = Field(default=MemberRole.SUGGESTER)
    status: MemberStatus = Field(default=MemberStatus.ACTIVE)
    notification_preferences: dict[str, Any] = Field(default_factory=dict)
    unsubscribe_all_email: bool = Field(default=False, description="Global email opt-out")
    timezone: str = Field(default="UTC", description="IANA timezone name")

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    def index_keys(self) -> dict[str, str]:
        return {"gsi1pk": f"MEMBER#{self.id}", "gsi1sk": family_key(self.family_id)}


class MemberContext(BaseModel):
    """Resolved caller identity supplied by the authentication layer."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    member_id: str
    family_id: str
    role: MemberRole


# =============================================================================
# Inventory & shopping list
# =============================================================================

class InventoryItem(VersionedRecord):
    """A tracked household item."""
    ENTITY: ClassVar[str] = "ITEM"

    name: str = Field(..., min_length=1, description="Item name")
    quantity: int = Field(default=0, ge=0, description="Units on hand")
    low_stock_threshold: int = Field(default=0, ge=0, description="Alert at or below this quantity")
    status: ItemStatus = Field(default=ItemStatus.ACTIVE)
    unit: Optional[str] = None
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    preferred_store_id: Optional[str] = None
    preferred_store_name: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None

    @property
    def is_low_stock(self) -> bool:
        return self.status == ItemStatus.ACTIVE and self.quantity <= self.low_stock_threshold

    def index_keys(self) -> dict[str, str]:
        return {
            "gsi2pk": f"{family_key(self.family_id)}#ITEMS",
            "gsi2sk": f"STATUS#{self.status}#QUANTITY#{self.quantity:010d}",
        }


class ShoppingListItem(VersionedRecord):
    """
    An entry on the family shopping list.

    ``item_id`` links to an inventory item; None means free text.
    ``expiry`` (epoch seconds) is set only while purchased.
    """
    ENTITY: ClassVar[str] = "SHOPPING"

    item_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    store_id: Optional[str] = None
    store_name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    status: ShoppingStatus = Field(default=ShoppingStatus.PENDING)
    expiry: Optional[int] = Field(default=None, description="TTL in epoch seconds")
    added_by: Optional[str] = None
    last_modified_by: Optional[str] = None

    def index_keys(self) -> dict[str, str]:
        return {
            "gsi2pk": f"{family_key(self.family_id)}#SHOPPING",
            "gsi2sk": f"STORE#{self.store_id or 'UNASSIGNED'}#STATUS#{self.status}",
        }


# =============================================================================
# Suggestions
# =============================================================================

class Suggestion(VersionedRecord):
    """A change proposed by a suggester, awaiting admin review."""
    ENTITY: ClassVar[str] = "SUGGESTION"

    suggested_by: str
    suggested_by_name: str
    type: SuggestionType
    status: SuggestionStatus = Field(default=SuggestionStatus.PENDING)

    # add_to_shopping payload
    item_id: Optional[str] = None
    item_name_snapshot: Optional[str] = None

    # create_item payload
    proposed_item_name: Optional[str] = None
    proposed_quantity: Optional[int] = Field(default=None, ge=0)
    proposed_threshold: Optional[int] = Field(default=None, ge=0)

    notes: Optional[str] = None
    rejection_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.item_name_snapshot or self.proposed_item_name or ""

    def index_keys(self) -> dict[str, str]:
        return {
            "gsi2pk": f"{family_key(self.family_id)}#SUGGESTIONS",
            "gsi2sk": f"STATUS#{self.status}#CREATED#{self.created_at.isoformat()}",
        }


# =============================================================================
# Notification events
# =============================================================================

class LedgerEntry(BaseModel):
    """One ``"{CHANNEL}:{FREQUENCY}"`` slot of an event's delivery ledger."""
    last_sent_at: datetime
    digest_run_id: Optional[str] = None
    recipients: dict[str, datetime] = Field(
        default_factory=dict,
        description="member_id -> time this member was delivered to",
    )


class NotificationEvent(VersionedRecord):
    """
    Something members may need to hear about.

    ``recipient_id`` None means every eligible family member; otherwise the
    event is addressed to that one member.
    """
    ENTITY: ClassVar[str] = "NOTIFICATION"

    type: NotificationType
    status: NotificationStatus = Field(default=NotificationStatus.ACTIVE)
    recipient_id: Optional[str] = None

    # Subject snapshot
    item_id: Optional[str] = None
    item_name: str = ""
    current_quantity: Optional[int] = None
    threshold: Optional[int] = None
    suggestion_id: Optional[str] = None
    suggestion_type: Optional[SuggestionType] = None
    decision: Optional[SuggestionStatus] = None
    reviewer_name: Optional[str] = None
    rejection_notes: Optional[str] = None

    resolved_at: Optional[datetime] = None
    delivery_ledger: dict[str, LedgerEntry] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == NotificationStatus.ACTIVE

    def is_relevant_to(self, member_id: str) -> bool:
        return self.recipient_id is None or self.recipient_id == member_id

    def index_keys(self) -> dict[str, str]:
        return {
            "gsi2pk": f"{family_key(self.family_id)}#NOTIFICATIONS",
            "gsi2sk": f"STATUS#{self.status}#CREATED#{self.created_at.isoformat()}",
        }
