"""
Authorization decisions.

Every mutating operation asks ``authorize`` first and only touches state
when the decision allows it. Services never interleave role checks with
their state transitions.

Rules:
- any active member of the family may read family data
- inventory and shopping list changes are admin-only
- only active suggesters create suggestions
- only active admins review suggestions
- only admins trigger deliveries (resend, digest runs, sweeps)
- members manage their own preferences; admins manage anyone's in the family
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.models import Member, MemberContext, MemberRole
from shared.results import Forbidden


class Action(str, Enum):
    VIEW_FAMILY = "view_family"
    MANAGE_INVENTORY = "manage_inventory"
    MANAGE_SHOPPING_LIST = "manage_shopping_list"
    CREATE_SUGGESTION = "create_suggestion"
    REVIEW_SUGGESTION = "review_suggestion"
    MANAGE_PREFERENCES = "manage_preferences"
    MANAGE_DELIVERY = "manage_delivery"


@dataclass
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed

    def as_failure(self) -> Forbidden:
        return Forbidden(reason=self.reason)


ALLOW = Decision(True)


def authorize(
    ctx: MemberContext,
    action: Action,
    family_id: str,
    member: Optional[Member] = None,
    target_member_id: Optional[str] = None,
) -> Decision:
    """
    Decide whether ``ctx`` may perform ``action`` in ``family_id``.

    Args:
        member: The caller's stored member record. When given, its role and
            status override the (possibly stale) role in ``ctx``.
        target_member_id: Member whose data is being changed (preferences).
    """
    if ctx.family_id != family_id:
        return Decision(False, "You do not have access to this family")

    role = ctx.role
    if member is not None:
        if not member.is_active:
            return Decision(False, "Your membership is not active")
        role = member.role

    if action == Action.VIEW_FAMILY:
        return ALLOW

    if action in (
        Action.MANAGE_INVENTORY,
        Action.MANAGE_SHOPPING_LIST,
        Action.REVIEW_SUGGESTION,
        Action.MANAGE_DELIVERY,
    ):
        if role != MemberRole.ADMIN:
            return Decision(False, "Only admins can perform this action")
        return ALLOW

    if action == Action.CREATE_SUGGESTION:
        if role != MemberRole.SUGGESTER:
            return Decision(False, "Only suggesters can create suggestions")
        return ALLOW

    if action == Action.MANAGE_PREFERENCES:
        if target_member_id == ctx.member_id or role == MemberRole.ADMIN:
            return ALLOW
        return Decision(False, "You can only change your own preferences")

    return Decision(False, f"Unknown action: {action}")
