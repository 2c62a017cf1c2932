import re

import pyotp

from core.config import settings
from core.tokens import validate_access_token
from conftest import PASSWORD, bearer, login, post_with_refresh_cookie, register


def _max_age(response) -> int:
    return int(re.search(r"max-age=(\d+)", response.headers["set-cookie"], re.I).group(1))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def test_register_returns_access_token_and_sets_refresh_cookie(client):
    response = register(client)

    assert response.status_code == 200
    body = response.json()
    assert body["tokenType"] == "bearer"
    assert body["user"]["username"] == "alice"
    assert body["user"]["role"] == "Viewer"
    assert "refreshToken" not in body
    assert "passwordHash" not in body["user"]

    claims, ok = validate_access_token(body["accessToken"])
    assert ok
    assert claims["sub"] == str(body["user"]["id"])

    cookie = response.headers["set-cookie"].lower()
    assert cookie.startswith("refreshtoken=")
    assert "httponly" in cookie
    assert "secure" in cookie
    assert "samesite=strict" in cookie
    assert response.cookies["refreshToken"] not in response.text


def test_register_rejects_duplicates(client):
    register(client)

    assert register(client, email="other@garden.example").status_code == 400
    response = register(client, username="alice2", email="alice@garden.example")
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already exists"


def test_register_rejects_weak_password(client):
    response = register(client, password="short")
    assert response.status_code == 400
    assert "8 characters" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_success(client, create_user):
    user = create_user()

    response = login(client)

    assert response.status_code == 200
    claims, ok = validate_access_token(response.json()["accessToken"])
    assert ok and claims["sub"] == str(user.id)
    assert response.cookies.get("refreshToken")
    assert _max_age(response) > (settings.refresh_token_expire_days - 1) * 86400


def test_wrong_password_and_unknown_user_look_the_same(client, create_user):
    create_user()

    wrong = login(client, password="Wrong1234")
    unknown = login(client, username="ghost")

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_lockout_after_repeated_failures(client, create_user):
    create_user()
    for _ in range(settings.max_failed_login_attempts):
        assert login(client, password="Wrong1234").status_code == 401

    response = login(client)

    assert response.status_code == 403
    assert "locked" in response.json()["detail"].lower()


def test_inactive_account_cannot_login(client, create_user):
    create_user(is_active=False)
    assert login(client).status_code == 401


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------


def test_refresh_rotates_cookie_and_rejects_replay(client):
    first = register(client).cookies["refreshToken"]

    rotated = post_with_refresh_cookie(client, "/auth/refresh-token", first)
    assert rotated.status_code == 200
    second = rotated.cookies["refreshToken"]
    assert second != first
    assert validate_access_token(rotated.json()["accessToken"])[1]

    replay = post_with_refresh_cookie(client, "/auth/refresh-token", first)
    assert replay.status_code == 400

    assert post_with_refresh_cookie(client, "/auth/refresh-token", second).status_code == 200


def test_refresh_without_cookie_is_rejected(client):
    client.cookies.clear()
    response = client.post("/auth/refresh-token")
    assert response.status_code == 400
    assert response.json()["detail"] == "Refresh token is missing"


def test_logout_revokes_refresh_token(client):
    registered = register(client)
    access = registered.json()["accessToken"]
    refresh = registered.cookies["refreshToken"]

    response = post_with_refresh_cookie(client, "/auth/logout", refresh, headers=bearer(access))
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out"}
    assert _max_age(response) == 0

    assert post_with_refresh_cookie(client, "/auth/refresh-token", refresh).status_code == 400


def test_logout_without_cookie_still_succeeds(client):
    access = register(client).json()["accessToken"]
    client.cookies.clear()

    assert client.post("/auth/logout", headers=bearer(access)).status_code == 200


def test_logout_requires_authentication(client):
    assert client.post("/auth/logout").status_code == 401


# ---------------------------------------------------------------------------
# Two-factor
# ---------------------------------------------------------------------------


def _enable_two_factor(client, access):
    setup = client.get("/auth/setup-2fa", headers=bearer(access))
    assert setup.status_code == 200
    body = setup.json()
    assert body["provisioningUri"].startswith("otpauth://totp/")
    assert body["qrCode"]
    totp = pyotp.TOTP(body["secret"])

    enabled = client.post("/auth/enable-2fa", json={"code": totp.now()}, headers=bearer(access))
    assert enabled.status_code == 200
    return totp


def test_two_factor_login_flow(client):
    access = register(client).json()["accessToken"]
    totp = _enable_two_factor(client, access)
    client.cookies.clear()

    challenge = login(client)
    assert challenge.status_code == 200
    assert challenge.json() == {"requiresTwoFactor": True, "username": "alice"}
    assert "set-cookie" not in challenge.headers

    verified = client.post(
        "/auth/verify-2fa",
        json={"username": "alice", "code": totp.now(), "rememberMe": True},
    )
    assert verified.status_code == 200
    assert validate_access_token(verified.json()["accessToken"])[1]
    assert verified.json()["user"]["twoFactorEnabled"] is True
    assert _max_age(verified) > (settings.refresh_token_remember_days - 1) * 86400


def test_verify_two_factor_without_pending_login(client):
    access = register(client).json()["accessToken"]
    totp = _enable_two_factor(client, access)

    response = client.post("/auth/verify-2fa", json={"username": "alice", "code": totp.now()})
    assert response.status_code == 401


def test_verify_two_factor_with_wrong_code(client):
    access = register(client).json()["accessToken"]
    totp = _enable_two_factor(client, access)
    login(client)
    wrong = f"{(int(totp.now()) + 1) % 1_000_000:06d}"

    response = client.post("/auth/verify-2fa", json={"username": "alice", "code": wrong})
    assert response.status_code == 401

    # The challenge survives a single bad code
    response = client.post("/auth/verify-2fa", json={"username": "alice", "code": totp.now()})
    assert response.status_code == 200


def test_enable_two_factor_with_bad_code(client):
    access = register(client).json()["accessToken"]
    client.get("/auth/setup-2fa", headers=bearer(access))

    response = client.post("/auth/enable-2fa", json={"code": "abcdef"}, headers=bearer(access))
    assert response.status_code == 400

    me = client.get("/auth/me", headers=bearer(access)).json()
    assert me["twoFactorEnabled"] is False


def test_disable_two_factor(client):
    access = register(client).json()["accessToken"]
    totp = _enable_two_factor(client, access)

    response = client.post("/auth/disable-2fa", json={"code": totp.now()}, headers=bearer(access))
    assert response.status_code == 200

    client.cookies.clear()
    assert "accessToken" in login(client).json()


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


def test_auth_history_lists_own_events_newest_first(client):
    access = register(client).json()["accessToken"]
    login(client, password="Wrong1234")
    register(client, username="bob")

    response = client.get("/auth/auth-history", headers=bearer(access))

    assert response.status_code == 200
    events = [(row["event"], row["outcome"]) for row in response.json()]
    assert events == [("login", "failure"), ("register", "success")]


def test_me_returns_profile(client):
    access = register(client).json()["accessToken"]

    response = client.get("/auth/me", headers=bearer(access))

    assert response.status_code == 200
    assert response.json()["email"] == "alice@garden.example"
    assert "twoFactorSecret" not in response.json()


def test_bare_jwt_in_authorization_header_is_accepted(client):
    access = register(client).json()["accessToken"]

    assert client.get("/auth/me", headers={"Authorization": access}).status_code == 200
    assert client.get("/auth/me", headers={"Authorization": "not-a-jwt"}).status_code == 401


def test_change_password_revokes_sessions(client):
    registered = register(client)
    access = registered.json()["accessToken"]
    refresh = registered.cookies["refreshToken"]

    response = client.put(
        "/auth/change-password",
        json={"oldPassword": PASSWORD, "newPassword": "N3wPassword"},
        headers=bearer(access),
    )
    assert response.status_code == 200

    assert post_with_refresh_cookie(client, "/auth/refresh-token", refresh).status_code == 400
    assert login(client).status_code == 401
    assert login(client, password="N3wPassword").status_code == 200


def test_change_password_with_wrong_old_password(client):
    access = register(client).json()["accessToken"]

    response = client.put(
        "/auth/change-password",
        json={"oldPassword": "Wrong1234", "newPassword": "N3wPassword"},
        headers=bearer(access),
    )
    assert response.status_code == 400


def test_security_headers_present(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]
    assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "max-age=31536000" in response.headers["Strict-Transport-Security"]


def test_wrong_two_factor_codes_lock_the_account_across_logins(client):
    access = register(client).json()["accessToken"]
    totp = _enable_two_factor(client, access)
    wrong = f"{(int(totp.now()) + 1) % 1_000_000:06d}"
    client.cookies.clear()

    def _bad_code():
        response = client.post("/auth/verify-2fa", json={"username": "alice", "code": wrong})
        assert response.status_code == 401

    assert login(client).json()["requiresTwoFactor"] is True
    for _ in range(settings.max_failed_login_attempts - 1):
        _bad_code()

    # A fresh password login must not wipe the count of bad codes
    assert login(client).json()["requiresTwoFactor"] is True
    _bad_code()

    response = login(client)
    assert response.status_code == 403
    assert "locked" in response.json()["detail"].lower()


def test_malformed_register_body_is_400(client):
    response = client.post("/auth/register", json={"username": "bob"})

    assert response.status_code == 400
    assert "email" in response.json()["detail"]
    assert "password" in response.json()["detail"]
