import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from db.session import Base
from utils.clock import utcnow


class RefreshToken(Base):
    """One refresh session. Rows are revoked, never deleted."""

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    # sha256 hex of the token's jti; the raw jti is never stored
    hashed_token = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_by_ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_token_id = Column(String(36), ForeignKey("refresh_tokens.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked_at"),
    )

    def is_active(self, now=None) -> bool:
        now = now or utcnow()
        return self.revoked_at is None and self.expires_at > now
