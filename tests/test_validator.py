"""
tests/test_validator.py -- Token validation, guard decisions and sign-out.

The validator is the security-critical read path: malformed tokens must be
rejected without storage access, storage failures must never read as "no
session", and the expiry boundary is inclusive (now == expiry is expired).
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

import core.auth as auth
from conftest import utc
from core.auth import Allow, Deny, SessionStatus, guard, sign_out, validate_token
from core.config import settings
from core.errors import StorageUnavailable
from core.issuer import issue_session
from models.session import Session as SessionModel

NOW = utc(2026, 3, 1, 9, 0, 0)


@pytest.fixture
def issued(db, identity):
    return issue_session(db, identity, now=NOW, lifetime_seconds=3600)


def _explode(*args, **kwargs):
    raise AssertionError("storage must not be consulted")


class TestValidate:
    def test_active_before_expiry(self, db, issued) -> None:
        result = validate_token(db, issued.token, now=NOW + timedelta(minutes=30))
        assert result.status is SessionStatus.ACTIVE
        assert result.session.id == issued.id
        assert result.user.id == issued.user_id

    def test_expired_at_the_expiry_instant(self, db, issued) -> None:
        result = validate_token(db, issued.token, now=NOW + timedelta(hours=1))
        assert result.status is SessionStatus.EXPIRED
        assert result.user is None and result.session is None

    def test_expired_row_still_present_until_swept(self, db, issued) -> None:
        validate_token(db, issued.token, now=NOW + timedelta(days=2))
        assert db.query(SessionModel).count() == 1

    def test_unknown_token_is_absent(self, db, issued) -> None:
        assert validate_token(db, "A" * 43, now=NOW).status is SessionStatus.ABSENT

    @pytest.mark.parametrize(
        "token",
        ["", "short", "A" * 42, "A" * 44, "A" * 42 + "!", "A" * 42 + " ", None, 12345],
    )
    def test_malformed_tokens_skip_storage(self, db, monkeypatch, token) -> None:
        monkeypatch.setattr(auth, "get_session_by_token", _explode)
        assert validate_token(db, token).status is SessionStatus.MALFORMED

    def test_case_variant_of_a_real_token_is_absent(self, db, issued) -> None:
        variant = issued.token.swapcase()
        if variant == issued.token:
            pytest.skip("token has no letters to swap")
        assert validate_token(db, variant, now=NOW).status is SessionStatus.ABSENT

    def test_validation_does_not_mutate_by_default(self, db, issued) -> None:
        before = issued.expires_at
        validate_token(db, issued.token, now=NOW + timedelta(minutes=59))
        db.expire_all()
        assert db.get(SessionModel, issued.id).expires_at == before

    def test_renewal_extends_expiry_when_enabled(self, db, identity, monkeypatch) -> None:
        monkeypatch.setattr(settings, "SESSION_LIFETIME_SECONDS", 3600)
        monkeypatch.setattr(settings, "SESSION_UPDATE_AGE_SECONDS", 600)
        s = issue_session(db, identity, now=NOW)

        later = NOW + timedelta(minutes=20)
        result = validate_token(db, s.token, now=later, renew=True)

        assert result.active
        db.expire_all()
        renewed = db.get(SessionModel, s.id).expires_at
        assert renewed.replace(tzinfo=None) == (later + timedelta(hours=1)).replace(tzinfo=None)

    def test_renewal_waits_for_update_age(self, db, identity, monkeypatch) -> None:
        monkeypatch.setattr(settings, "SESSION_LIFETIME_SECONDS", 3600)
        monkeypatch.setattr(settings, "SESSION_UPDATE_AGE_SECONDS", 600)
        s = issue_session(db, identity, now=NOW)
        original = s.expires_at

        validate_token(db, s.token, now=NOW + timedelta(minutes=5), renew=True)

        db.expire_all()
        assert db.get(SessionModel, s.id).expires_at == original

    def test_storage_failure_is_not_absent(self, db, issued, monkeypatch) -> None:
        calls = {"n": 0}

        def unreachable(*args, **kwargs):
            calls["n"] += 1
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(auth, "get_session_by_token", unreachable)
        with pytest.raises(StorageUnavailable):
            validate_token(db, issued.token, now=NOW)
        assert calls["n"] == settings.STORAGE_RETRY_ATTEMPTS


class TestGuard:
    def test_active_session_is_allowed(self, db, issued) -> None:
        decision = guard(db, issued.token, now=NOW)
        assert isinstance(decision, Allow)
        assert decision.user.id == issued.user_id

    @pytest.mark.parametrize("token", [None, "", "A" * 43])
    def test_missing_or_unknown_is_denied(self, db, issued, token) -> None:
        decision = guard(db, token, now=NOW)
        assert decision == Deny("unauthenticated")

    def test_expired_is_denied_the_same_way(self, db, issued) -> None:
        assert guard(db, issued.token, now=NOW + timedelta(hours=2)) == Deny("unauthenticated")


class TestSignOut:
    def test_sign_out_makes_token_absent(self, db, issued) -> None:
        token = issued.token
        sign_out(db, token)
        assert validate_token(db, token, now=NOW).status is SessionStatus.ABSENT

    def test_sign_out_twice_is_fine(self, db, issued) -> None:
        token = issued.token
        sign_out(db, token)
        sign_out(db, token)
        assert db.query(SessionModel).count() == 0

    def test_sign_out_leaves_other_sessions_alone(self, db, identity, issued) -> None:
        other = issue_session(db, identity, now=NOW)
        sign_out(db, issued.token)
        assert validate_token(db, other.token, now=NOW).active

    def test_malformed_sign_out_skips_storage(self, db, monkeypatch) -> None:
        monkeypatch.setattr(auth, "get_session_by_token", _explode)
        sign_out(db, "")
        sign_out(db, None)

    def test_sign_out_storage_failure_surfaces(self, db, issued, monkeypatch) -> None:
        def unreachable(*args, **kwargs):
            raise OperationalError("DELETE", {}, Exception("connection refused"))

        monkeypatch.setattr(auth, "delete_session", unreachable)
        with pytest.raises(StorageUnavailable):
            sign_out(db, issued.token)
