"""Refresh-session lifecycle: store, refresh with rotation, clear, revoke, cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import BaseModel

from fitsession.core.cipher import TokenCipher
from fitsession.core.exceptions import AuthenticationError, DecryptionError, StoreUnavailableError, UpstreamError
from fitsession.core.metrics import DEFENSIVE_REVOCATIONS, SESSION_OPERATIONS
from fitsession.schemas.session import (
    AccessTokenResponse,
    CleanupRefreshTokensCommand,
    CleanupResponse,
    ClearRefreshCommand,
    OkResponse,
    RefreshCommand,
    RevokeSessionCommand,
    RevokeUserSessionsCommand,
    RevokeUserSessionsResponse,
    StoreRefreshCommand,
    StoreRefreshResponse,
)
from fitsession.services.identity_provider import IdentityProviderClient
from fitsession.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def _short(session_id: str) -> str:
    return f"{session_id[:8]}..."


@dataclass(frozen=True)
class CookieDirective:
    """Set the session cookie to ``session_id``, or clear it when None."""
    session_id: Optional[str] = None

    @property
    def clears(self) -> bool:
        return self.session_id is None


@dataclass
class SessionOutcome:
    body: BaseModel
    cookie: Optional[CookieDirective] = None


@dataclass(frozen=True)
class CleanupReport:
    aged_out: int
    expired: int
    revoked: int

    @property
    def total(self) -> int:
        return self.aged_out + self.expired + self.revoked


class SessionService:
    """
    Session protocol over a store, a cipher and the identity provider.

    Per-session states: Active -> Revoked (terminal). An Active session past
    its ``expires_at`` is treated as Revoked without touching storage.
    """

    def __init__(
        self,
        store: SessionStore,
        cipher: TokenCipher,
        identity_provider: IdentityProviderClient,
        session_ttl_days: int = 30,
        retention_days: int = 30,
        revoked_retention_days: int = 1,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.cipher = cipher
        self.identity_provider = identity_provider
        self.session_ttl_days = session_ttl_days
        self.retention_days = retention_days
        self.revoked_retention_days = revoked_retention_days
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, store, cipher, identity_provider) -> "SessionService":
        return cls(
            store,
            cipher,
            identity_provider,
            session_ttl_days=settings.SESSION_TTL_DAYS,
            retention_days=settings.REFRESH_TOKEN_RETENTION_DAYS,
            revoked_retention_days=settings.REVOKED_SESSION_RETENTION_DAYS,
        )

    def store_refresh(self, user_id: str, refresh_token: str) -> str:
        now = self.clock()
        expires_at = now + timedelta(days=self.session_ttl_days) if self.session_ttl_days > 0 else None
        encrypted = self.cipher.encrypt(refresh_token)
        session_id = self.store.create(user_id, encrypted, expires_at=expires_at, now=now)
        logger.info("Session %s created for user %s", _short(session_id), user_id)
        return session_id

    def _revoke_defensively(self, session_id: str, reason: str) -> None:
        self.store.mark_revoked(session_id, now=self.clock())
        DEFENSIVE_REVOCATIONS.labels(reason).inc()
        logger.warning("Session %s revoked after %s", _short(session_id), reason)

    def refresh(self, session_id: Optional[str]) -> AccessTokenResponse:
        """
        Exchange the stored refresh token for a new access token.

        Raises:
            AuthenticationError: No cookie, unknown, revoked or expired session
            DecryptionError: Stored ciphertext unreadable (session revoked)
            UpstreamError: Provider rejected the token (session revoked)
        """
        if not session_id:
            raise AuthenticationError("No session")

        record = self.store.get(session_id)
        now = self.clock()
        if record is None:
            raise AuthenticationError("Session not found")
        if record.revoked:
            raise AuthenticationError("Session revoked")
        if record.is_expired(now):
            raise AuthenticationError("Session expired")

        try:
            refresh_token = self.cipher.decrypt(record.encrypted_refresh_token)
        except DecryptionError:
            self._revoke_defensively(session_id, "decryption_failure")
            raise

        try:
            grant = self.identity_provider.refresh(refresh_token)
        except UpstreamError:
            self._revoke_defensively(session_id, "provider_rejection")
            raise

        rotated = None
        if grant.refresh_token and grant.refresh_token != refresh_token:
            rotated = self.cipher.encrypt(grant.refresh_token)
        try:
            self.store.update_after_refresh(session_id, last_used_at=self.clock(), new_encrypted_token=rotated)
        except StoreUnavailableError:
            # A rotated token that was not persisted leaves the stored one stale
            logger.warning(
                "Session %s could not be updated after refresh (rotated=%s)",
                _short(session_id),
                rotated is not None,
            )
            try:
                self._revoke_defensively(session_id, "store_failure")
            except StoreUnavailableError:
                logger.error("Session %s could not be revoked after a failed update", _short(session_id))
            raise

        logger.debug("Session %s refreshed (rotated=%s)", _short(session_id), rotated is not None)
        return AccessTokenResponse(access_token=grant.access_token, expires_at=grant.expires_at)

    def clear_refresh(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        found = self.store.mark_revoked(session_id, now=self.clock())
        if found:
            logger.info("Session %s cleared by client", _short(session_id))
        return found

    def revoke_session(self, session_id: str) -> bool:
        found = self.store.mark_revoked(session_id, now=self.clock())
        logger.info("Session %s revoked by admin (found=%s)", _short(session_id), found)
        return found

    def revoke_user_sessions(self, user_id: str) -> int:
        count = self.store.mark_revoked_for_user(user_id, now=self.clock())
        logger.info("Revoked %d session(s) for user %s", count, user_id)
        return count

    def cleanup_refresh_tokens(
        self,
        days: Optional[int] = None,
        revoked_retention_days: Optional[int] = None,
    ) -> CleanupReport:
        """
        Delete sessions created more than ``days`` ago, sessions already
        past ``expires_at``, and revoked sessions older than the revoked
        retention window.
        """
        now = self.clock()
        days = self.retention_days if days is None else days
        revoked_days = self.revoked_retention_days if revoked_retention_days is None else revoked_retention_days

        report = CleanupReport(
            aged_out=self.store.delete_older_than(now - timedelta(days=days)),
            expired=self.store.delete_expired(now),
            revoked=self.store.delete_revoked_before(now - timedelta(days=revoked_days)),
        )
        logger.info(
            "Session cleanup removed %d row(s) (aged_out=%d expired=%d revoked=%d, days=%d)",
            report.total,
            report.aged_out,
            report.expired,
            report.revoked,
            days,
        )
        return report

    def execute(self, command, session_cookie: Optional[str] = None) -> SessionOutcome:
        """Run one typed command. Admin authorization happens before this call."""
        action = command.action
        try:
            outcome = self._dispatch(command, session_cookie)
        except Exception:
            SESSION_OPERATIONS.labels(action, "error").inc()
            raise
        SESSION_OPERATIONS.labels(action, "ok").inc()
        return outcome

    def _dispatch(self, command, session_cookie: Optional[str]) -> SessionOutcome:
        if isinstance(command, StoreRefreshCommand):
            session_id = self.store_refresh(command.user_id, command.refresh_token)
            return SessionOutcome(
                StoreRefreshResponse(session_id=session_id),
                cookie=CookieDirective(session_id),
            )

        if isinstance(command, RefreshCommand):
            return SessionOutcome(self.refresh(session_cookie))

        if isinstance(command, ClearRefreshCommand):
            self.clear_refresh(session_cookie)
            return SessionOutcome(OkResponse(), cookie=CookieDirective(None))

        if isinstance(command, RevokeSessionCommand):
            self.revoke_session(command.session_id)
            return SessionOutcome(OkResponse())

        if isinstance(command, RevokeUserSessionsCommand):
            count = self.revoke_user_sessions(command.user_id)
            return SessionOutcome(RevokeUserSessionsResponse(revoked=count))

        if isinstance(command, CleanupRefreshTokensCommand):
            report = self.cleanup_refresh_tokens(command.days, command.revoked_retention_days)
            return SessionOutcome(CleanupResponse(deleted=report.total))

        raise TypeError(f"Unsupported session command: {type(command).__name__}")
