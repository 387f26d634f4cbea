"""Tests for signed session tokens."""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from gitmanager.auth.session import ALGORITHM, InvalidSessionError, SessionManager

START = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self):
        self.now = START

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    return SessionManager("test-secret", clock=clock)


def test_requires_secret():
    with pytest.raises(ValueError):
        SessionManager("")


def test_issue_and_decode_round_trip(sessions):
    claims = sessions.decode(sessions.issue("gho_token", 42))
    assert claims.access_token == "gho_token"
    assert claims.user_id == 42
    assert claims.issued_at == START
    assert claims.expires_at == START + timedelta(days=30)


def test_token_carries_expected_claim_names(sessions):
    payload = jwt.get_unverified_claims(sessions.issue("gho_token", 42))
    assert set(payload) == {"accessToken", "userId", "iat", "exp"}


def test_missing_token_is_rejected(sessions):
    with pytest.raises(InvalidSessionError):
        sessions.decode(None)
    with pytest.raises(InvalidSessionError):
        sessions.decode("")


def test_tampered_or_foreign_token_is_rejected(sessions):
    token = sessions.issue("gho_token", 42)
    with pytest.raises(InvalidSessionError):
        sessions.decode(token[:-2] + "xx")
    other = SessionManager("other-secret").issue("gho_token", 42)
    with pytest.raises(InvalidSessionError):
        sessions.decode(other)


def test_token_without_required_claims_is_rejected(sessions):
    token = jwt.encode({"userId": 1, "iat": 0, "exp": 2**31}, "test-secret", algorithm=ALGORITHM)
    with pytest.raises(InvalidSessionError):
        sessions.decode(token)


def test_expired_token_is_rejected(sessions, clock):
    token = sessions.issue("gho_token", 42)
    clock.now = START + timedelta(days=30)
    with pytest.raises(InvalidSessionError):
        sessions.decode(token)


def test_refresh_after_a_day(sessions, clock):
    claims = sessions.decode(sessions.issue("gho_token", 42))
    assert sessions.needs_refresh(claims) is False

    clock.now = START + timedelta(hours=24)
    assert sessions.needs_refresh(claims) is True

    refreshed = sessions.decode(sessions.refresh(claims))
    assert refreshed.access_token == "gho_token"
    assert refreshed.user_id == 42
    assert refreshed.expires_at == clock.now + timedelta(days=30)
