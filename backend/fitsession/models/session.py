"""Refresh session persistence model."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, Index

from fitsession.core.database import Base


class RefreshSession(Base):
    """Server-side session holding an encrypted identity-provider refresh token."""

    __tablename__ = "refresh_sessions"

    session_id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    encrypted_refresh_token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_refresh_sessions_created_at", "created_at"),
        Index("idx_refresh_sessions_user_revoked", "user_id", "revoked"),
    )

    def __repr__(self):
        return f"<RefreshSession(session_id='{self.session_id[:8]}...', user_id='{self.user_id}', revoked={self.revoked})>"
