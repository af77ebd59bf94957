"""
Request bodies for the HTTP adapter.

Responses are the domain records themselves (or the typed failure body),
so only inbound payloads are modelled here.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class CreateItemRequest(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=0, ge=0)
    unit: Optional[str] = None
    location_id: Optional[str] = None
    preferred_store_id: Optional[str] = None
    notes: Optional[str] = None


class UpdateItemRequest(BaseModel):
    """Only the fields actually sent are changed."""
    expected_version: int = Field(..., ge=1)
    name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    location_id: Optional[str] = None
    preferred_store_id: Optional[str] = None
    notes: Optional[str] = None


class AdjustQuantityRequest(BaseModel):
    delta: int
    expected_version: int = Field(..., ge=1)


class VersionedRequest(BaseModel):
    expected_version: int = Field(..., ge=1)


class AddShoppingItemRequest(BaseModel):
    item_id: Optional[str] = None
    name: Optional[str] = None
    store_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    force: bool = False


class UpdateShoppingItemRequest(BaseModel):
    expected_version: int = Field(..., ge=1)
    name: Optional[str] = None
    store_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class ShoppingStatusRequest(BaseModel):
    status: str = Field(..., description="pending or purchased")
    expected_version: int = Field(..., ge=1)


class CreateSuggestionRequest(BaseModel):
    type: str = Field(..., description="add_to_shopping or create_item")
    item_id: Optional[str] = None
    proposed_item_name: Optional[str] = None
    proposed_quantity: Optional[int] = Field(default=None, ge=0)
    proposed_threshold: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ApproveSuggestionRequest(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)
    force: bool = False


class RejectSuggestionRequest(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)
    rejection_notes: Optional[str] = None


class UpdatePreferencesRequest(BaseModel):
    expected_version: int = Field(..., ge=1)
    preferences: dict[str, Any] = Field(
        default_factory=dict,
        description='"{TYPE}:{CHANNEL}" -> frequency or list of frequencies',
    )
    unsubscribe_all_email: Optional[bool] = None
    timezone: Optional[str] = None


class UnsubscribeRequest(BaseModel):
    token: str
