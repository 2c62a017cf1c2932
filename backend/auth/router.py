# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login, two-factor, token refresh, logout.

Token delivery contract
-----------------------
* The access token is only ever returned in the JSON body; clients send it
  back as ``Authorization: Bearer <token>``.
* The refresh token is only ever set as the ``refreshToken`` cookie
  (HttpOnly, Secure, SameSite=Strict) and is never echoed in a body.

Login answers the *same* 401 whether the username is unknown or the password
is wrong, so the endpoint cannot be used to enumerate accounts.
"""

from typing import Union

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from auth import service
from auth.schemas import (
    AuthLogRow,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    TwoFactorChallengeResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    UserInfoResponse,
    VerifyTwoFactorRequest,
)
from core.cache import TTLCache
from core.config import settings
from core.errors import InvalidRefreshTokenError
from core.security import get_client_ip, get_current_user, get_user_agent, require_admin
from core.timeutil import utcnow
from database import get_db
from models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refreshToken"


def get_pending_logins(request: Request) -> TTLCache:
    """Dependency: the app-wide store of logins waiting for a 2FA code."""
    return request.app.state.pending_logins


def _set_refresh_cookie(response: Response, tokens: service.IssuedTokens) -> None:
    max_age = int((tokens.refresh_expires_at - utcnow()).total_seconds())
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=max(max_age, 0),
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
    )


def _token_response(response: Response, tokens: service.IssuedTokens) -> TokenResponse:
    _set_refresh_cookie(response, tokens)
    return TokenResponse(
        access_token=tokens.access_token,
        expires_at=tokens.access_expires_at,
        user=UserInfoResponse.model_validate(tokens.user),
    )


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=TokenResponse)
def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Create a Viewer account and return its first token pair."""
    tokens = service.register(
        db,
        body.username,
        body.email,
        body.password,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(response, tokens)


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=Union[TokenResponse, TwoFactorChallengeResponse])
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    pending: TTLCache = Depends(get_pending_logins),
):
    """Authenticate; answers a 2FA challenge instead of tokens when enabled."""
    result = service.login(
        db,
        pending,
        body.username,
        body.password,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    if isinstance(result, service.TwoFactorChallenge):
        return TwoFactorChallengeResponse(username=result.username)
    return _token_response(response, result)


# ---------------------------------------------------------------------------
# POST /auth/verify-2fa
# ---------------------------------------------------------------------------


@router.post("/verify-2fa", response_model=TokenResponse)
def verify_two_factor(
    body: VerifyTwoFactorRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    pending: TTLCache = Depends(get_pending_logins),
):
    tokens = service.verify_two_factor(
        db,
        pending,
        body.username,
        body.code,
        remember_me=body.remember_me,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(response, tokens)


# ---------------------------------------------------------------------------
# POST /auth/refresh-token
# ---------------------------------------------------------------------------


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Exchange the cookie's refresh token for a new pair (cookie rotated)."""
    old_token = request.cookies.get(REFRESH_COOKIE)
    if not old_token:
        raise InvalidRefreshTokenError("missing", "Refresh token is missing")

    tokens = service.refresh(
        db,
        old_token,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _token_response(response, tokens)


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service.logout(
        db,
        request.cookies.get(REFRESH_COOKIE),
        user=current_user,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    response.delete_cookie(
        REFRESH_COOKIE,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
    )
    return MessageResponse(message="Logged out")


# ---------------------------------------------------------------------------
# Two-factor management
# ---------------------------------------------------------------------------


@router.get("/setup-2fa", response_model=TwoFactorSetupResponse)
def setup_two_factor(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start 2FA enrolment; the secret stays pending until ``enable-2fa``."""
    setup = service.setup_two_factor(
        db, current_user, ip=get_client_ip(request), user_agent=get_user_agent(request)
    )
    return TwoFactorSetupResponse(
        secret=setup.secret,
        provisioning_uri=setup.provisioning_uri,
        qr_code=setup.qr_code,
    )


@router.post("/enable-2fa", response_model=MessageResponse)
def enable_two_factor(
    body: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service.enable_two_factor(
        db, current_user, body.code, ip=get_client_ip(request), user_agent=get_user_agent(request)
    )
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/disable-2fa", response_model=MessageResponse)
def disable_two_factor(
    body: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service.disable_two_factor(
        db, current_user, body.code, ip=get_client_ip(request), user_agent=get_user_agent(request)
    )
    return MessageResponse(message="Two-factor authentication disabled")


# ---------------------------------------------------------------------------
# GET /auth/auth-history
# ---------------------------------------------------------------------------


@router.get("/auth-history", response_model=list[AuthLogRow])
def auth_history(
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The current user's authentication events, newest first."""
    return service.auth_history(db, current_user, limit)


# ---------------------------------------------------------------------------
# POST /auth/unlock-user/{username}
# ---------------------------------------------------------------------------


@router.post("/unlock-user/{username}", response_model=MessageResponse)
def unlock_user(
    username: str,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service.unlock_user(
        db, username, admin, ip=get_client_ip(request), user_agent=get_user_agent(request)
    )
    return MessageResponse(message="User unlocked")


# ---------------------------------------------------------------------------
# PUT /auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the authenticated user's password.  Every refresh token of the
    account is revoked, so other sessions must sign in again.
    """
    service.change_password(
        db,
        current_user,
        body.old_password,
        body.new_password,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return MessageResponse(message="Password changed successfully")


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserInfoResponse)
def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's public profile (no secrets)."""
    return current_user
