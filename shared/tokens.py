"""
Signed unsubscribe tokens.

Format: ``base64url(json claims) + "." + hex(HMAC-SHA256(secret, encoded claims))``.
The only action issued today is ``unsubscribe_all``.
"""

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from shared.models import utc_now

UNSUBSCRIBE_ALL = "unsubscribe_all"


class InvalidToken(ValueError):
    """Token is malformed, tampered with, or expired."""


@dataclass
class UnsubscribeClaims:
    member_id: str
    family_id: str
    action: str
    expires_at: int  # epoch seconds


def _sign(secret: str, encoded: str) -> str:
    return hmac.new(secret.encode(), encoded.encode(), hashlib.sha256).hexdigest()


def create_unsubscribe_token(
    member_id: str,
    family_id: str,
    secret: str,
    ttl_days: int = 14,
    now: Optional[datetime] = None,
) -> str:
    now = now or utc_now()
    claims = {
        "member_id": member_id,
        "family_id": family_id,
        "action": UNSUBSCRIBE_ALL,
        "exp": int((now + timedelta(days=ttl_days)).timestamp()),
    }
    encoded = base64.urlsafe_b64encode(json.dumps(claims, separators=(",", ":")).encode()).decode().rstrip("=")
    return f"{encoded}.{_sign(secret, encoded)}"


def verify_unsubscribe_token(token: str, secret: str, now: Optional[datetime] = None) -> UnsubscribeClaims:
    """
    Raises:
        InvalidToken: If the token cannot be trusted
    """
    encoded, _, signature = token.partition(".")
    if not encoded or not signature:
        raise InvalidToken("Malformed token")
    if not hmac.compare_digest(_sign(secret, encoded), signature):
        raise InvalidToken("Invalid signature")

    try:
        padded = encoded + "=" * (-len(encoded) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded.encode()))
        result = UnsubscribeClaims(
            member_id=claims["member_id"],
            family_id=claims["family_id"],
            action=claims["action"],
            expires_at=int(claims["exp"]),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidToken(f"Malformed claims: {e}")

    if result.action != UNSUBSCRIBE_ALL:
        raise InvalidToken(f"Unsupported action: {result.action}")
    if (now or utc_now()).timestamp() > result.expires_at:
        raise InvalidToken("Token expired")
    return result
