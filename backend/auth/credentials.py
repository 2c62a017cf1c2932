# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Credential validator – username/password check plus account lockout.

Outcomes are returned as a ``CredentialResult`` rather than raised; the auth
service decides how each one maps to an HTTP answer.  Nothing here commits:
the caller commits the user-row changes together with the audit entry.

Lockout policy
--------------
* Every wrong password bumps ``failed_login_count``.
* Reaching ``max_failed_login_attempts`` sets ``lockout_until`` to
  now + ``lockout_minutes``.
* While locked, attempts are refused before the password is even checked,
  so a correct password does not help.
* A successful login resets both fields; with 2FA enabled that happens
  only after the code is verified, so wrong codes keep counting.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.errors import NotFoundError
from core.logger import logger
from core.security import burn_password_check, verify_password
from core.timeutil import utcnow
from models.user import User


class CredentialResult(str, enum.Enum):
    SUCCESS = "success"
    WRONG_PASSWORD = "wrong_password"
    USER_NOT_FOUND = "user_not_found"
    LOCKED = "locked"
    INACTIVE = "inactive"


@dataclass
class CredentialCheck:
    result: CredentialResult
    user: Optional[User] = None
    locked_until: Optional[datetime] = None


def is_locked(user: User, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return user.lockout_until is not None and user.lockout_until > now


def verify_credentials(
    db: Session,
    username: str,
    plaintext: str,
    now: Optional[datetime] = None,
) -> CredentialCheck:
    """Check *username* / *plaintext* and update the lockout bookkeeping."""
    now = now or utcnow()
    user = db.query(User).filter(User.username == username).first()

    if user is None:
        burn_password_check(plaintext)
        return CredentialCheck(CredentialResult.USER_NOT_FOUND)

    if is_locked(user, now):
        return CredentialCheck(CredentialResult.LOCKED, user, user.lockout_until)

    if user.lockout_until is not None:
        # Window elapsed, start counting afresh
        user.lockout_until = None
        user.failed_login_count = 0

    if not verify_password(plaintext, user.password_hash):
        record_failure(user, now)
        return CredentialCheck(CredentialResult.WRONG_PASSWORD, user, user.lockout_until)

    if not user.is_active:
        return CredentialCheck(CredentialResult.INACTIVE, user)

    # With 2FA on, the counter is only reset once the code is verified
    if not user.two_factor_enabled:
        record_success(user, now)
    return CredentialCheck(CredentialResult.SUCCESS, user)


def record_failure(user: User, now: Optional[datetime] = None) -> bool:
    """
    Count one failed attempt (wrong password or wrong 2FA code).  Returns True
    when this attempt tripped the lockout.
    """
    now = now or utcnow()
    user.failed_login_count = (user.failed_login_count or 0) + 1
    if user.failed_login_count < settings.max_failed_login_attempts:
        return False
    user.lockout_until = now + timedelta(minutes=settings.lockout_minutes)
    logger.warning(
        "Account '%s' locked until %s after %d failed attempts",
        user.username,
        user.lockout_until.isoformat(),
        user.failed_login_count,
    )
    return True


def record_success(user: User, now: Optional[datetime] = None) -> None:
    user.failed_login_count = 0
    user.lockout_until = None
    user.last_login = now or utcnow()


def unlock_user(db: Session, username: str) -> User:
    """Administrative override: clear the failure counter and lockout."""
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFoundError("User not found")
    user.failed_login_count = 0
    user.lockout_until = None
    return user
