# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""User ORM model."""

from sqlalchemy import Column, Integer, String, Boolean, Enum, DateTime, Text

from core.timeutil import utcnow
from database import Base

ROLES = ("Admin", "Staff", "Viewer")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    # passlib embeds the salt in the hash string; the column is kept so the
    # schema carries an explicit salt field.
    salt = Column(String(255), nullable=False)
    role = Column(Enum(*ROLES, name="user_role"), nullable=False, default="Viewer")

    # Two-factor: base64 AES-GCM ciphertext + nonce of the TOTP secret.
    # secret NULL                → not set up
    # secret set, enabled False  → awaiting first confirmation
    # secret set, enabled True   → active
    two_factor_secret = Column(Text, nullable=True)
    two_factor_secret_iv = Column(String(64), nullable=True)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)

    # Lockout bookkeeping (naive UTC)
    failed_login_count = Column(Integer, nullable=False, default=0)
    lockout_until = Column(DateTime, nullable=True)

    # Soft delete: users are deactivated, never removed
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
