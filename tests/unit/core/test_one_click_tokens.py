"""Tests for one-click token signing and verification."""

import calendar
from datetime import datetime, timedelta

import pytest
from jose import jwt

from claimflow.core.approval.errors import ValidationError
from claimflow.core.one_click import TOKEN_KIND, TokenError, TokenErrorKind, decode_token, issue_token


class TestIssueToken:

    def test_payload(self, settings):
        token = issue_token("ZFL202601", "Dana.Manager@Corp.com", "Accepted", settings)
        payload = decode_token(token, settings)

        assert payload["kind"] == TOKEN_KIND
        assert payload["unique_number"] == "ZFL202601"
        assert payload["approver"] == "dana.manager@corp.com"
        assert payload["action"] == "Accepted"
        assert len(payload["jti"]) == 24

    def test_expires_after_seven_days(self, settings):
        now = datetime.utcnow()
        token = issue_token("ZFL202601", "a@corp.com", "Rejected", settings, now=now)
        claims = jwt.get_unverified_claims(token)
        expected = calendar.timegm((now + timedelta(days=7)).utctimetuple())
        assert abs(claims["exp"] - expected) <= 1

    def test_unique_jti_per_token(self, settings):
        first = decode_token(issue_token("ZFL202601", "a@corp.com", "Accepted", settings), settings)
        second = decode_token(issue_token("ZFL202601", "a@corp.com", "Accepted", settings), settings)
        assert first["jti"] != second["jti"]

    def test_invalid_action(self, settings):
        with pytest.raises(ValidationError):
            issue_token("ZFL202601", "a@corp.com", "Approve", settings)


class TestDecodeToken:

    def test_garbage(self, settings):
        with pytest.raises(TokenError) as exc:
            decode_token("not-a-token", settings)
        assert exc.value.kind == TokenErrorKind.INVALID_TOKEN

    def test_wrong_secret(self, settings):
        token = issue_token("ZFL202601", "a@corp.com", "Accepted", settings)
        other = settings.model_copy(update={"secret_key": "another-secret"})
        with pytest.raises(TokenError) as exc:
            decode_token(token, other)
        assert exc.value.kind == TokenErrorKind.INVALID_TOKEN

    def test_expired(self, settings):
        token = issue_token(
            "ZFL202601", "a@corp.com", "Accepted", settings,
            now=datetime.utcnow() - timedelta(days=8),
        )
        with pytest.raises(TokenError) as exc:
            decode_token(token, settings)
        assert exc.value.kind == TokenErrorKind.INVALID_TOKEN

    def test_wrong_kind(self, settings):
        token = jwt.encode(
            {
                "kind": "session",
                "jti": "abc",
                "unique_number": "ZFL202601",
                "approver": "a@corp.com",
                "action": "Accepted",
                "exp": datetime.utcnow() + timedelta(days=1),
            },
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        with pytest.raises(TokenError):
            decode_token(token, settings)

    def test_missing_claim(self, settings):
        token = jwt.encode(
            {"kind": TOKEN_KIND, "unique_number": "ZFL202601", "exp": datetime.utcnow() + timedelta(days=1)},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        with pytest.raises(TokenError):
            decode_token(token, settings)

    def test_error_message(self):
        assert str(TokenError(TokenErrorKind.ALREADY_USED)) == "This link was already used."
