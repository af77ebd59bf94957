"""
FastAPI adapter for the household inventory system.

The caller identity comes from headers set by an upstream authorizer
(``X-Member-Id``, ``X-Family-Id``, ``X-Member-Role``); nothing here verifies
credentials. Every route calls one service operation and maps its typed
result onto an HTTP response:

    Success            -> 200 / 201
    VersionConflict    -> 409 (body carries ``current``)
    DuplicateExists    -> 409 (body carries ``existing``)
    NotFound           -> 404
    ValidationFailed   -> 400
    TransactionAborted -> 409
    Forbidden          -> 403

Run with:
    uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

from api.schemas import (
    AddShoppingItemRequest,
    AdjustQuantityRequest,
    ApproveSuggestionRequest,
    CreateItemRequest,
    CreateSuggestionRequest,
    RejectSuggestionRequest,
    ShoppingStatusRequest,
    UnsubscribeRequest,
    UpdateItemRequest,
    UpdatePreferencesRequest,
    UpdateShoppingItemRequest,
    VersionedRequest,
)
from household.app import HouseholdApp, get_app
from household.authorization import Action, authorize
from shared.models import Frequency, MemberContext
from shared.results import (
    AlreadyExists,
    DuplicateExists,
    Forbidden,
    NotFound,
    Success,
    TransactionAborted,
    ValidationFailed,
    VersionConflict,
)

STATUS_CODES = {
    VersionConflict: 409,
    DuplicateExists: 409,
    AlreadyExists: 409,
    TransactionAborted: 409,
    NotFound: 404,
    ValidationFailed: 400,
    Forbidden: 403,
}


def respond(result, status_code: int = 200) -> JSONResponse:
    """Turn a typed result into a JSON response."""
    if result.ok:
        return JSONResponse(status_code=status_code, content=jsonable_encoder(result.value))

    body: dict[str, Any] = {"error": result.kind, "message": result.message}
    if isinstance(result, (VersionConflict, AlreadyExists)):
        body["current"] = result.current
    elif isinstance(result, DuplicateExists):
        body["existing"] = result.existing
    elif isinstance(result, ValidationFailed):
        body["errors"] = result.errors
    elif isinstance(result, TransactionAborted) and result.current is not None:
        body["current"] = result.current
    return JSONResponse(status_code=STATUS_CODES.get(type(result), 400), content=jsonable_encoder(body))


# =============================================================================
# Dependencies
# =============================================================================

def household() -> HouseholdApp:
    return get_app()


def member_context(
    x_member_id: str = Header(...),
    x_family_id: str = Header(...),
    x_member_role: str = Header("suggester"),
) -> MemberContext:
    try:
        return MemberContext(member_id=x_member_id, family_id=x_family_id, role=x_member_role.lower())
    except ValidationError:
        raise HTTPException(status_code=400, detail=f"Invalid member role: {x_member_role}")


def require(action: Action, ctx: MemberContext, hh: HouseholdApp) -> None:
    decision = authorize(ctx, action, ctx.family_id, member=hh.members.get(ctx.family_id, ctx.member_id))
    if not decision:
        raise HTTPException(status_code=403, detail=decision.reason)


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logging.info("Starting Household Inventory API")
    get_app()
    yield
    logging.info("Shutting down")


app = FastAPI(
    title="Household Inventory API",
    description="""
    Shared household inventory, shopping list and suggestions with
    notification delivery.

    ## Endpoints

    - `/inventory/*` - Tracked items, quantities and low-stock view
    - `/shopping-list/*` - Shopping list entries
    - `/suggestions/*` - Propose, approve and reject changes
    - `/members/{id}/preferences` - Notification preferences
    - `/notifications/*` - Notification events, manual resend and resolve
    - `/admin/*` - Queue preview, digest runs and the immediate sweep
    """,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "household-inventory"}


# =============================================================================
# Inventory
# =============================================================================

@app.get("/inventory", tags=["Inventory"])
def list_inventory(
    include_archived: bool = False,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.inventory.list_items(ctx, include_archived=include_archived))


@app.get("/inventory/low-stock", tags=["Inventory"])
def list_low_stock(ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    return respond(hh.inventory.list_low_stock(ctx))


@app.post("/inventory", tags=["Inventory"])
def create_item(
    request: CreateItemRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.inventory.create_item(ctx, **request.model_dump()), status_code=201)


@app.get("/inventory/{item_id}", tags=["Inventory"])
def get_item(item_id: str, ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    return respond(hh.inventory.get_item(ctx, item_id))


@app.patch("/inventory/{item_id}", tags=["Inventory"])
def update_item(
    item_id: str,
    request: UpdateItemRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
    return respond(hh.inventory.update_item(ctx, item_id, request.expected_version, **changes))


@app.post("/inventory/{item_id}/adjust", tags=["Inventory"])
def adjust_quantity(
    item_id: str,
    request: AdjustQuantityRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.inventory.adjust_quantity(ctx, item_id, request.delta, request.expected_version))


@app.post("/inventory/{item_id}/archive", tags=["Inventory"])
def archive_item(
    item_id: str,
    request: VersionedRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.inventory.archive_item(ctx, item_id, request.expected_version))


@app.delete("/inventory/{item_id}", tags=["Inventory"])
def delete_item(
    item_id: str,
    expected_version: Optional[int] = None,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.inventory.delete_item(ctx, item_id, expected_version))


# =============================================================================
# Shopping list
# =============================================================================

@app.get("/shopping-list", tags=["Shopping List"])
def list_shopping(
    status: Optional[str] = None,
    store_id: Optional[str] = None,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.shopping_list.list_entries(ctx, status=status, store_id=store_id))


@app.get("/shopping-list/by-store", tags=["Shopping List"])
def shopping_by_store(ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    return respond(hh.shopping_list.group_by_store(ctx))


@app.post("/shopping-list", tags=["Shopping List"])
def add_to_shopping_list(
    request: AddShoppingItemRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.shopping_list.add_to_shopping_list(ctx, **request.model_dump()), status_code=201)


@app.patch("/shopping-list/{entry_id}", tags=["Shopping List"])
def update_shopping_entry(
    entry_id: str,
    request: UpdateShoppingItemRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
    return respond(hh.shopping_list.update_entry(ctx, entry_id, request.expected_version, **changes))


@app.post("/shopping-list/{entry_id}/status", tags=["Shopping List"])
def update_shopping_status(
    entry_id: str,
    request: ShoppingStatusRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.shopping_list.update_status(ctx, entry_id, request.status, request.expected_version))


@app.delete("/shopping-list/{entry_id}", tags=["Shopping List"])
def remove_shopping_entry(
    entry_id: str,
    expected_version: Optional[int] = None,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.shopping_list.remove_entry(ctx, entry_id, expected_version))


# =============================================================================
# Suggestions
# =============================================================================

@app.get("/suggestions", tags=["Suggestions"])
def list_suggestions(
    status: Optional[str] = None,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.suggestions.list_suggestions(ctx, status=status))


@app.post("/suggestions", tags=["Suggestions"])
def create_suggestion(
    request: CreateSuggestionRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.suggestions.create_suggestion(ctx, **request.model_dump()), status_code=201)


@app.get("/suggestions/{suggestion_id}", tags=["Suggestions"])
def get_suggestion(
    suggestion_id: str,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.suggestions.get_suggestion(ctx, suggestion_id))


@app.post("/suggestions/{suggestion_id}/approve", tags=["Suggestions"])
def approve_suggestion(
    suggestion_id: str,
    request: ApproveSuggestionRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.suggestions.approve(ctx, suggestion_id, request.expected_version, force=request.force))


@app.post("/suggestions/{suggestion_id}/reject", tags=["Suggestions"])
def reject_suggestion(
    suggestion_id: str,
    request: RejectSuggestionRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.suggestions.reject(ctx, suggestion_id, request.rejection_notes, request.expected_version))


# =============================================================================
# Preferences
# =============================================================================

@app.get("/members/{member_id}/preferences", tags=["Preferences"])
def get_preferences(
    member_id: str,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.preferences.get_preferences(ctx, member_id))


@app.put("/members/{member_id}/preferences", tags=["Preferences"])
def update_preferences(
    member_id: str,
    request: UpdatePreferencesRequest,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    return respond(hh.preferences.update_preferences(
        ctx,
        member_id,
        request.expected_version,
        preferences=request.preferences,
        unsubscribe_all_email=request.unsubscribe_all_email,
        timezone=request.timezone,
    ))


@app.post("/unsubscribe", tags=["Preferences"])
def unsubscribe(request: UnsubscribeRequest, hh: HouseholdApp = Depends(household)):
    """Follow an unsubscribe link. The signed token is the only credential."""
    result = hh.preferences.unsubscribe(request.token)
    if not result.ok:
        return respond(result)
    return {"status": "unsubscribed", "member_id": result.value.id}


# =============================================================================
# Notifications
# =============================================================================

@app.get("/notifications", tags=["Notifications"])
def list_notifications(
    status: Optional[str] = None,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    """Admins see every event of the family; others see what is addressed to them."""
    require(Action.VIEW_FAMILY, ctx, hh)
    notifications = hh.notifications.list_events(ctx.family_id, status)
    caller = hh.members.get(ctx.family_id, ctx.member_id)
    if caller is None or not caller.is_admin:
        notifications = [n for n in notifications if n.is_relevant_to(ctx.member_id)]
    return respond(Success(notifications))


@app.post("/notifications/{event_id}/resend", tags=["Notifications"])
def resend_notification(
    event_id: str,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    require(Action.MANAGE_DELIVERY, ctx, hh)
    return respond(hh.router.resend(ctx.family_id, event_id))


@app.post("/notifications/{event_id}/resolve", tags=["Notifications"])
def resolve_notification(
    event_id: str,
    ctx: MemberContext = Depends(member_context),
    hh: HouseholdApp = Depends(household),
):
    require(Action.MANAGE_DELIVERY, ctx, hh)
    return respond(hh.low_stock.resolve_notification(ctx.family_id, event_id))


# =============================================================================
# Scheduled jobs (admin triggers)
# =============================================================================

@app.get("/admin/queue-preview", tags=["Admin"])
def queue_preview(ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    require(Action.MANAGE_DELIVERY, ctx, hh)
    preview = hh.queue.preview_delivery_queue(ctx.family_id)
    return {
        "counts": preview.counts,
        "immediate": jsonable_encoder(preview.immediate),
        "daily": jsonable_encoder(preview.daily),
        "weekly": jsonable_encoder(preview.weekly),
    }


@app.post("/admin/digest/{frequency}", tags=["Admin"])
def run_digest(frequency: str, ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    require(Action.MANAGE_DELIVERY, ctx, hh)
    try:
        cadence = Frequency(frequency.upper())
        report = hh.digest.run(cadence, family_id=ctx.family_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return jsonable_encoder(report)


@app.post("/admin/dispatch", tags=["Admin"])
def dispatch_immediate(ctx: MemberContext = Depends(member_context), hh: HouseholdApp = Depends(household)):
    require(Action.MANAGE_DELIVERY, ctx, hh)
    return jsonable_encoder(hh.router.sweep(family_id=ctx.family_id))
