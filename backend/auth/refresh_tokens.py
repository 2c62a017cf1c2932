# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Refresh-token store.

Tokens are 384-bit ``secrets.token_urlsafe`` strings.  Only their SHA-256
digest is persisted, so a database dump cannot be replayed.

Rotation
--------
``rotate`` opens its transaction with a single conditional UPDATE that
revokes the presented token only if it is still active.  The successor row
is inserted only when exactly one row changed, and the caller commits both
together.  The row lock taken by the UPDATE serialises concurrent rotations
of the same token: the loser sees ``revoked_at`` already set and gets
``REVOKED``.  The session must not have read anything earlier in the same
transaction (SQLite would refuse to upgrade the lock).
"""

import enum
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from core.config import settings
from core.timeutil import utcnow
from models.refresh_token import RefreshToken


class RotationStatus(str, enum.Enum):
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


@dataclass
class RotationResult:
    status: RotationStatus
    token: Optional[str] = None
    row: Optional[RefreshToken] = None

    @property
    def ok(self) -> bool:
        return self.status is RotationStatus.ROTATED


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _new_row(user_id, ip, user_agent, ttl, now) -> tuple[str, RefreshToken]:
    token = secrets.token_urlsafe(48)
    row = RefreshToken(
        token_hash=hash_token(token),
        user_id=user_id,
        issued_at=now,
        expires_at=now + ttl,
        ip_address=ip,
        user_agent=(user_agent or "")[:512] or None,
    )
    return token, row


def issue(
    db: Session,
    user_id: int,
    ip: Optional[str],
    user_agent: Optional[str],
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> tuple[str, RefreshToken]:
    """Create and stage a new refresh token.  Returns (plaintext, row)."""
    now = now or utcnow()
    ttl = ttl or timedelta(days=settings.refresh_token_expire_days)
    token, row = _new_row(user_id, ip, user_agent, ttl, now)
    db.add(row)
    db.flush()
    return token, row


def rotate(
    db: Session,
    old_token: str,
    ip: Optional[str],
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RotationResult:
    """
    Exchange *old_token* for a successor.  On success the predecessor is
    revoked and points at the successor; the caller must commit.
    """
    now = now or utcnow()
    old_hash = hash_token(old_token)
    new_token = secrets.token_urlsafe(48)
    new_hash = hash_token(new_token)

    revoked = db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token_hash == old_hash,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .values(revoked_at=now, replaced_by_hash=new_hash)
        .execution_options(synchronize_session=False)
    )

    old = (
        db.query(RefreshToken)
        .populate_existing()
        .filter(RefreshToken.token_hash == old_hash)
        .first()
    )
    if revoked.rowcount != 1:
        if old is None:
            return RotationResult(RotationStatus.NOT_FOUND)
        if old.is_revoked:
            return RotationResult(RotationStatus.REVOKED, row=old)
        return RotationResult(RotationStatus.EXPIRED, row=old)

    # Successor keeps the lifetime length of its predecessor (remember-me
    # sessions stay long-lived across rotations).
    ttl = old.expires_at - old.issued_at
    row = RefreshToken(
        token_hash=new_hash,
        user_id=old.user_id,
        issued_at=now,
        expires_at=now + ttl,
        ip_address=ip,
        user_agent=(user_agent or old.user_agent or "")[:512] or None,
    )
    db.add(row)
    db.flush()
    return RotationResult(RotationStatus.ROTATED, token=new_token, row=row)


def revoke(db: Session, token: str, now: Optional[datetime] = None) -> Optional[RefreshToken]:
    """
    Mark *token* revoked.  Idempotent: an unknown or already revoked token is
    left alone.  Returns the row when one exists.
    """
    now = now or utcnow()
    row = db.query(RefreshToken).filter(RefreshToken.token_hash == hash_token(token)).first()
    if row is not None and not row.is_revoked:
        row.revoked_at = now
    return row


def revoke_all_for_user(db: Session, user_id: int, now: Optional[datetime] = None) -> int:
    """Revoke every still-open token of *user_id*.  Returns the count."""
    now = now or utcnow()
    result = db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def is_active(db: Session, token: str, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    row = db.query(RefreshToken).filter(RefreshToken.token_hash == hash_token(token)).first()
    return row is not None and row.revoked_at is None and row.expires_at > now
