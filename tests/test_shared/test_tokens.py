"""
Tests for signed unsubscribe tokens.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shared.tokens import (
    UNSUBSCRIBE_ALL,
    InvalidToken,
    create_unsubscribe_token,
    verify_unsubscribe_token,
)

SECRET = "test-secret"
NOW = datetime(2026, 1, 6, 8, 0, tzinfo=timezone.utc)


class TestUnsubscribeTokens:
    def test_valid_token_yields_claims(self):
        token = create_unsubscribe_token("mem-001", "fam-001", SECRET, now=NOW)

        claims = verify_unsubscribe_token(token, SECRET, now=NOW)

        assert claims.member_id == "mem-001"
        assert claims.family_id == "fam-001"
        assert claims.action == UNSUBSCRIBE_ALL

    def test_wrong_secret_rejected(self):
        token = create_unsubscribe_token("mem-001", "fam-001", SECRET, now=NOW)

        with pytest.raises(InvalidToken, match="signature"):
            verify_unsubscribe_token(token, "other-secret", now=NOW)

    def test_tampered_claims_rejected(self):
        token = create_unsubscribe_token("mem-001", "fam-001", SECRET, now=NOW)
        other = create_unsubscribe_token("mem-002", "fam-001", SECRET, now=NOW)
        forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

        with pytest.raises(InvalidToken):
            verify_unsubscribe_token(forged, SECRET, now=NOW)

    def test_expired_token_rejected(self):
        token = create_unsubscribe_token("mem-001", "fam-001", SECRET, ttl_days=14, now=NOW)

        with pytest.raises(InvalidToken, match="expired"):
            verify_unsubscribe_token(token, SECRET, now=NOW + timedelta(days=15))

    @pytest.mark.parametrize("token", ["", "no-dot", ".sig", "abc."])
    def test_malformed_tokens_rejected(self, token):
        with pytest.raises(InvalidToken):
            verify_unsubscribe_token(token, SECRET, now=NOW)
