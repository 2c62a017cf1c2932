from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from core.config import settings
from core.errors import ConfigurationError
from core.tokens import issue_access_token, validate_access_token


def _user(**overrides):
    fields = dict(id=42, username="alice", email="alice@garden.example", role="Staff")
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_issue_then_validate_returns_canonical_claims():
    token, expires_at = issue_access_token(_user())

    claims, ok = validate_access_token(token)

    assert ok
    assert claims["sub"] == "42"
    assert claims["name"] == "alice"
    assert claims["email"] == "alice@garden.example"
    assert claims["role"] == "Staff"
    assert claims["iss"] == settings.jwt_issuer
    assert claims["aud"] == settings.jwt_audience
    assert claims["jti"]
    assert claims["exp"] - claims["iat"] == settings.access_token_expire_minutes * 60
    assert expires_at == datetime.fromtimestamp(claims["exp"], tz=timezone.utc)


def test_header_carries_key_id():
    token, _ = issue_access_token(_user())
    assert jwt.get_unverified_header(token)["kid"] == settings.jwt_key_id


def test_each_token_gets_a_unique_jti():
    first, _ = issue_access_token(_user())
    second, _ = issue_access_token(_user())
    assert validate_access_token(first)[0]["jti"] != validate_access_token(second)[0]["jti"]


def test_expired_token_fails_even_with_valid_signature():
    past = datetime.now(timezone.utc) - timedelta(minutes=settings.access_token_expire_minutes, seconds=5)
    token, _ = issue_access_token(_user(), now=past)

    assert validate_access_token(token) == (None, False)


def test_wrong_secret_fails():
    token = jwt.encode(
        {
            "sub": "1",
            "jti": "x",
            "iat": datetime.now(timezone.utc),
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        },
        "some-other-secret-of-reasonable-length-000000",
        algorithm="HS256",
    )
    assert validate_access_token(token) == (None, False)


@pytest.mark.parametrize("field, value", [("iss", "someone-else"), ("aud", "other-audience")])
def test_wrong_issuer_or_audience_fails(field, value):
    claims = {
        "sub": "1",
        "jti": "x",
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    claims[field] = value
    token = jwt.encode(claims, settings.secret_key, algorithm="HS256")

    assert validate_access_token(token) == (None, False)


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "x" * 500, None])
def test_malformed_input_never_raises(garbage):
    assert validate_access_token(garbage) == (None, False)


def test_issue_without_secret_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "secret_key", "")

    with pytest.raises(ConfigurationError):
        issue_access_token(_user())


def test_validate_without_secret_is_just_invalid(monkeypatch):
    token, _ = issue_access_token(_user())
    monkeypatch.setattr(settings, "secret_key", "")

    assert validate_access_token(token) == (None, False)
