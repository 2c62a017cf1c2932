# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""RefreshToken ORM model – server-side half of the refresh-token pair."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index

from database import Base


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # SHA-256 hex of the opaque token; the plaintext only exists in the cookie
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    # Successor in the rotation chain
    replaced_by_hash = Column(String(64), nullable=True)
    ip_address = Column(String(45), nullable=True)  # supports IPv6
    user_agent = Column(String(512), nullable=True)

    __table_args__ = (
        Index("idx_refresh_tokens_user_active", "user_id", "revoked_at"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
