# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""AuthLog ORM model – append-only trail of every authentication event."""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey

from core.timeutil import utcnow
from database import Base

OUTCOMES = ("success", "failure", "locked")


class AuthLog(Base):
    __tablename__ = "auth_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # NULL when the attempt named a username that does not exist
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    username = Column(String(64), nullable=True, index=True)
    event = Column(String(32), nullable=False, index=True)   # e.g. "login"
    outcome = Column(Enum(*OUTCOMES, name="auth_outcome"), nullable=False)
    detail = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
