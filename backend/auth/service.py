# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Auth service – composes the credential validator, two-factor verifier,
token codec and refresh-token store into the user-facing flows.

Login flow
----------
    AwaitingCredentials
        ├─ bad credentials ──────────────▶ Rejected   (AuthenticationError)
        ├─ account locked ───────────────▶ Locked     (LockedError)
        ├─ ok, 2FA off ──────────────────▶ Authenticated (IssuedTokens)
        └─ ok, 2FA on ───▶ AwaitingCode   (TwoFactorChallenge)
                               ├─ valid code ─▶ Authenticated
                               └─ bad code ───▶ Rejected (InvalidCodeError)

Every transition appends an ``AuthLog`` row.  Failures are committed before
the error is raised so the audit trail and lockout counters survive the
failed request.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import credentials, refresh_tokens, two_factor
from auth.credentials import CredentialResult
from core.cache import TTLCache
from core.config import settings
from core.errors import (
    AuthenticationError,
    ConflictError,
    DuplicateEmailError,
    DuplicateUsernameError,
    InvalidCodeError,
    InvalidRefreshTokenError,
    LockedError,
    ValidationError,
)
from core.logger import logger
from core.security import hash_password, verify_password
from core.timeutil import utcnow
from core.tokens import issue_access_token
from models.auth_log import AuthLog
from models.user import User


@dataclass
class IssuedTokens:
    user: User
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class TwoFactorChallenge:
    username: str


LoginResult = Union[IssuedTokens, TwoFactorChallenge]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")


def validate_password_policy(pw: str) -> Optional[str]:
    """
    Return an error string if the password does not meet the minimum policy,
    or None if it is acceptable.

    Policy: >= 8 chars, at least one uppercase, one lowercase, one digit.
    """
    if len(pw) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", pw):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", pw):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", pw):
        return "Password must contain at least one digit"
    return None


def record_event(
    db: Session,
    event: str,
    outcome: str,
    user: Optional[User] = None,
    username: Optional[str] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    detail: Optional[str] = None,
) -> AuthLog:
    """Stage an audit row.  The caller commits."""
    row = AuthLog(
        user_id=user.id if user is not None else None,
        username=user.username if user is not None else username,
        event=event,
        outcome=outcome,
        detail=detail,
        ip_address=ip,
        user_agent=(user_agent or "")[:512] or None,
    )
    db.add(row)
    return row


def _issue_tokens(
    db: Session,
    user: User,
    ip: Optional[str],
    user_agent: Optional[str],
    remember_me: bool = False,
) -> IssuedTokens:
    days = settings.refresh_token_remember_days if remember_me else settings.refresh_token_expire_days
    refresh_token, row = refresh_tokens.issue(db, user.id, ip, user_agent, ttl=timedelta(days=days))
    access_token, access_expires_at = issue_access_token(user)
    return IssuedTokens(
        user=user,
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=row.expires_at,
    )


def _challenge_key(username: str) -> str:
    return f"2fa:{username}"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register(
    db: Session,
    username: str,
    email: str,
    password: str,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> IssuedTokens:
    """Create a Viewer account and sign it in."""
    username = username.strip()
    email = email.strip().lower()

    if not _USERNAME_RE.match(username):
        raise ValidationError("Username must be 3-64 letters, digits, '.', '_' or '-'")
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    err = validate_password_policy(password)
    if err:
        raise ValidationError(err)

    if db.query(User).filter(User.username == username).first():
        raise DuplicateUsernameError()
    if db.query(User).filter(User.email == email).first():
        raise DuplicateEmailError()

    password_hash, salt = hash_password(password)
    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        salt=salt,
        role="Viewer",
        is_active=True,
        two_factor_enabled=False,
        failed_login_count=0,
        last_login=utcnow(),
    )
    db.add(user)
    try:
        db.flush()  # get user.id before issuing tokens
    except IntegrityError:
        # Lost a race with a concurrent registration of the same name
        db.rollback()
        raise ConflictError("Username or email already exists")

    tokens = _issue_tokens(db, user, ip, user_agent)
    record_event(db, "register", "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()
    logger.info("Registered user '%s' (id=%d)", user.username, user.id)
    return tokens


# ---------------------------------------------------------------------------
# Login / two-factor
# ---------------------------------------------------------------------------


def login(
    db: Session,
    challenges: TTLCache,
    username: str,
    password: str,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> LoginResult:
    """
    Check credentials.  Returns tokens, or a ``TwoFactorChallenge`` when the
    account has two-factor enabled (no refresh token is issued yet).
    """
    check = credentials.verify_credentials(db, username, password)
    user = check.user

    if check.result is CredentialResult.LOCKED:
        record_event(db, "login", "locked", user=user, ip=ip, user_agent=user_agent)
        db.commit()
        raise LockedError(locked_until=check.locked_until)

    if check.result is CredentialResult.INACTIVE:
        record_event(db, "login", "failure", user=user, ip=ip, user_agent=user_agent,
                     detail="account disabled")
        db.commit()
        raise AuthenticationError("Account disabled")

    if check.result is not CredentialResult.SUCCESS:
        outcome = "locked" if check.locked_until is not None else "failure"
        record_event(db, "login", outcome, user=user, username=username, ip=ip,
                     user_agent=user_agent, detail=check.result.value)
        db.commit()
        raise AuthenticationError()

    if user.two_factor_enabled:
        challenges.set(
            _challenge_key(user.username),
            {"user_id": user.id, "ip": ip, "user_agent": user_agent},
            settings.two_factor_challenge_minutes * 60,
        )
        record_event(db, "login", "success", user=user, ip=ip, user_agent=user_agent,
                     detail="two-factor required")
        db.commit()
        return TwoFactorChallenge(username=user.username)

    tokens = _issue_tokens(db, user, ip, user_agent)
    record_event(db, "login", "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()
    return tokens


def verify_two_factor(
    db: Session,
    challenges: TTLCache,
    username: str,
    code: str,
    remember_me: bool = False,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> IssuedTokens:
    """Complete a pending login.  Tokens are issued only on a valid code."""
    key = _challenge_key(username)
    pending = challenges.get(key)
    user = db.query(User).filter(User.username == username).first()

    if pending is None or user is None or user.id != pending["user_id"] or not user.is_active:
        record_event(db, "verify_2fa", "failure", user=user, username=username, ip=ip,
                     user_agent=user_agent, detail="no pending login")
        db.commit()
        raise InvalidCodeError(status_code=401)

    if credentials.is_locked(user):
        challenges.delete(key)
        record_event(db, "verify_2fa", "locked", user=user, ip=ip, user_agent=user_agent)
        db.commit()
        raise LockedError(locked_until=user.lockout_until)

    if not two_factor.verify_code(user, code):
        tripped = credentials.record_failure(user)
        if tripped:
            challenges.delete(key)
        record_event(db, "verify_2fa", "locked" if tripped else "failure", user=user,
                     ip=ip, user_agent=user_agent, detail="invalid code")
        db.commit()
        raise InvalidCodeError(status_code=401)

    challenges.delete(key)
    credentials.record_success(user)
    tokens = _issue_tokens(db, user, ip, user_agent, remember_me=remember_me)
    record_event(db, "verify_2fa", "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()
    return tokens


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------


def refresh(
    db: Session,
    old_token: str,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> IssuedTokens:
    """
    Rotate *old_token* and mint a new access token from the user's current
    row (role or email may have changed since the original login).
    """
    result = refresh_tokens.rotate(db, old_token, ip, user_agent)
    if not result.ok:
        db.rollback()
        owner = db.get(User, result.row.user_id) if result.row is not None else None
        logger.warning("Refresh token rejected (%s) from %s", result.status.value, ip)
        record_event(db, "refresh", "failure", user=owner, ip=ip, user_agent=user_agent,
                     detail=result.status.value)
        db.commit()
        raise InvalidRefreshTokenError(result.status.value)

    user = db.get(User, result.row.user_id)
    if user is None or not user.is_active:
        db.rollback()
        refresh_tokens.revoke(db, old_token)
        record_event(db, "refresh", "failure", user=user, ip=ip, user_agent=user_agent,
                     detail="account disabled")
        db.commit()
        raise InvalidRefreshTokenError("inactive")

    access_token, access_expires_at = issue_access_token(user)
    record_event(db, "refresh", "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()
    return IssuedTokens(
        user=user,
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=result.token,
        refresh_expires_at=result.row.expires_at,
    )


def logout(
    db: Session,
    refresh_token: Optional[str],
    user: Optional[User] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Revoke the refresh token.  Always succeeds."""
    detail = None
    if refresh_token:
        row = refresh_tokens.revoke(db, refresh_token)
        if row is None:
            detail = "unknown token"
    else:
        detail = "no token"
    record_event(db, "logout", "success", user=user, ip=ip, user_agent=user_agent, detail=detail)
    db.commit()


# ---------------------------------------------------------------------------
# Two-factor management (authenticated user)
# ---------------------------------------------------------------------------


def setup_two_factor(db: Session, user: User, ip=None, user_agent=None) -> two_factor.TwoFactorSetup:
    setup = two_factor.setup_secret(db, user)
    record_event(db, "setup_2fa", "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()
    return setup


def enable_two_factor(db: Session, user: User, code: str, ip=None, user_agent=None) -> None:
    _toggle_two_factor(db, user, code, two_factor.enable, "enable_2fa", ip, user_agent)


def disable_two_factor(db: Session, user: User, code: str, ip=None, user_agent=None) -> None:
    _toggle_two_factor(db, user, code, two_factor.disable, "disable_2fa", ip, user_agent)


def _toggle_two_factor(db, user, code, action, event, ip, user_agent) -> None:
    try:
        action(db, user, code)
    except InvalidCodeError:
        db.rollback()
        record_event(db, event, "failure", user=user, ip=ip, user_agent=user_agent)
        db.commit()
        raise
    record_event(db, event, "success", user=user, ip=ip, user_agent=user_agent)
    db.commit()


# ---------------------------------------------------------------------------
# Account maintenance
# ---------------------------------------------------------------------------


def auth_history(db: Session, user: User, limit: int = 100) -> list[AuthLog]:
    return (
        db.query(AuthLog)
        .filter(AuthLog.user_id == user.id)
        .order_by(AuthLog.created_at.desc(), AuthLog.id.desc())
        .limit(limit)
        .all()
    )


def unlock_user(db: Session, username: str, admin: User, ip=None, user_agent=None) -> User:
    target = credentials.unlock_user(db, username)
    record_event(db, "unlock", "success", user=target, ip=ip, user_agent=user_agent,
                 detail=f"by {admin.username}")
    db.commit()
    logger.info("Admin '%s' unlocked '%s'", admin.username, target.username)
    return target


def change_password(
    db: Session,
    user: User,
    old_password: str,
    new_password: str,
    ip=None,
    user_agent=None,
) -> None:
    """
    Verify the old password before accepting the new one, then revoke every
    refresh token so other sessions must sign in again.
    """
    if not verify_password(old_password, user.password_hash):
        record_event(db, "change_password", "failure", user=user, ip=ip, user_agent=user_agent)
        db.commit()
        raise ValidationError("Old password is incorrect")

    err = validate_password_policy(new_password)
    if err:
        raise ValidationError(err)

    user.password_hash, user.salt = hash_password(new_password)
    revoked = refresh_tokens.revoke_all_for_user(db, user.id)
    record_event(db, "change_password", "success", user=user, ip=ip, user_agent=user_agent,
                 detail=f"revoked {revoked} refresh token(s)")
    db.commit()
