"""Session persistence: relational store for deployments, in-memory store for local runs."""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy import delete, or_, and_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fitsession.core.database import Database
from fitsession.core.exceptions import (
    ConfigurationError,
    SessionCreationError,
    StoreUnavailableError,
)
from fitsession.models.session import RefreshSession

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    user_id: str
    encrypted_refresh_token: str
    created_at: datetime
    last_used_at: datetime
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and not self.is_expired(now)

    def __repr__(self) -> str:
        # The ciphertext stays out of reprs and therefore out of logs.
        return (
            f"SessionRecord(session_id='{self.session_id[:8]}...', user_id='{self.user_id}', "
            f"revoked={self.revoked}, expires_at={self.expires_at})"
        )


class SessionIdCollision(Exception):
    """Raised by a backend insert when the session id is already taken."""


class SessionStore:
    """
    CRUD over session records.

    Subclasses implement the storage primitives; id allocation with bounded
    collision retry lives here so both backends behave identically.
    """

    def __init__(
        self,
        max_create_attempts: int = 3,
        id_factory: Callable[[], str] = new_session_id,
    ):
        self.max_create_attempts = max(1, max_create_attempts)
        self.id_factory = id_factory

    def create(
        self,
        user_id: str,
        encrypted_token: str,
        expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utcnow()
        for attempt in range(1, self.max_create_attempts + 1):
            record = SessionRecord(
                session_id=self.id_factory(),
                user_id=user_id,
                encrypted_refresh_token=encrypted_token,
                created_at=now,
                last_used_at=now,
                expires_at=expires_at,
            )
            try:
                self._insert(record)
            except SessionIdCollision:
                logger.warning(
                    "Session id collision on attempt %d/%d", attempt, self.max_create_attempts
                )
                continue
            return record.session_id

        raise SessionCreationError(self.max_create_attempts)

    def _insert(self, record: SessionRecord) -> None:
        raise NotImplementedError

    def get(self, session_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError

    def mark_revoked(self, session_id: str, now: Optional[datetime] = None) -> bool:
        """Return True if the session exists (revoked before or now)."""
        raise NotImplementedError

    def mark_revoked_for_user(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Return the number of sessions newly revoked."""
        raise NotImplementedError

    def update_after_refresh(
        self,
        session_id: str,
        last_used_at: datetime,
        new_encrypted_token: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def delete_older_than(self, threshold: datetime) -> int:
        raise NotImplementedError

    def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError

    def delete_revoked_before(self, threshold: datetime) -> int:
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class InMemorySessionStore(SessionStore):
    """Process-local store for development. Refused in production."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._lock = threading.Lock()
        self._records: Dict[str, SessionRecord] = {}

    def _insert(self, record: SessionRecord) -> None:
        with self._lock:
            if record.session_id in self._records:
                raise SessionIdCollision(record.session_id)
            self._records[record.session_id] = record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(session_id)

    def mark_revoked(self, session_id: str, now: Optional[datetime] = None) -> bool:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return False
            if not record.revoked:
                self._records[session_id] = replace(record, revoked=True, revoked_at=now or utcnow())
            return True

    def mark_revoked_for_user(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        count = 0
        with self._lock:
            for session_id, record in self._records.items():
                if record.user_id == user_id and not record.revoked:
                    self._records[session_id] = replace(record, revoked=True, revoked_at=now)
                    count += 1
        return count

    def update_after_refresh(
        self,
        session_id: str,
        last_used_at: datetime,
        new_encrypted_token: Optional[str] = None,
    ) -> None:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return
            changes = {"last_used_at": last_used_at}
            if new_encrypted_token is not None:
                changes["encrypted_refresh_token"] = new_encrypted_token
            self._records[session_id] = replace(record, **changes)

    def _delete_where(self, predicate: Callable[[SessionRecord], bool]) -> int:
        with self._lock:
            doomed = [sid for sid, record in self._records.items() if predicate(record)]
            for sid in doomed:
                del self._records[sid]
            return len(doomed)

    def delete_older_than(self, threshold: datetime) -> int:
        return self._delete_where(lambda r: r.created_at < threshold)

    def delete_expired(self, now: datetime) -> int:
        return self._delete_where(lambda r: r.is_expired(now))

    def delete_revoked_before(self, threshold: datetime) -> int:
        return self._delete_where(
            lambda r: r.revoked and (r.revoked_at or r.created_at) < threshold
        )

    def __len__(self) -> int:
        return len(self._records)


class SqlSessionStore(SessionStore):
    """Relational store; atomicity comes from the database (PK constraint, single-statement updates)."""

    def __init__(self, database: Database, **kwargs):
        super().__init__(**kwargs)
        self.database = database

    @staticmethod
    def _to_record(row: RefreshSession) -> SessionRecord:
        return SessionRecord(
            session_id=row.session_id,
            user_id=row.user_id,
            encrypted_refresh_token=row.encrypted_refresh_token,
            created_at=as_utc(row.created_at),
            last_used_at=as_utc(row.last_used_at),
            revoked=bool(row.revoked),
            revoked_at=as_utc(row.revoked_at),
            expires_at=as_utc(row.expires_at),
        )

    def _insert(self, record: SessionRecord) -> None:
        with self.database.session() as db:
            db.add(
                RefreshSession(
                    session_id=record.session_id,
                    user_id=record.user_id,
                    encrypted_refresh_token=record.encrypted_refresh_token,
                    created_at=record.created_at,
                    last_used_at=record.last_used_at,
                    revoked=False,
                    expires_at=record.expires_at,
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise SessionIdCollision(record.session_id) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Session insert failed: %s", type(exc).__name__)
                raise StoreUnavailableError(detail=type(exc).__name__) from exc

    def _execute(self, statement) -> int:
        with self.database.session() as db:
            try:
                result = db.execute(statement)
                db.commit()
                return result.rowcount or 0
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Session store write failed: %s", type(exc).__name__)
                raise StoreUnavailableError(detail=type(exc).__name__) from exc

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self.database.session() as db:
            try:
                row = db.get(RefreshSession, session_id)
            except SQLAlchemyError as exc:
                logger.error("Session lookup failed: %s", type(exc).__name__)
                raise StoreUnavailableError(detail=type(exc).__name__) from exc
            return self._to_record(row) if row is not None else None

    def mark_revoked(self, session_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        self._execute(
            update(RefreshSession)
            .where(RefreshSession.session_id == session_id, RefreshSession.revoked == False)  # noqa: E712
            .values(revoked=True, revoked_at=now)
        )
        return self.get(session_id) is not None

    def mark_revoked_for_user(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        return self._execute(
            update(RefreshSession)
            .where(RefreshSession.user_id == user_id, RefreshSession.revoked == False)  # noqa: E712
            .values(revoked=True, revoked_at=now)
        )

    def update_after_refresh(
        self,
        session_id: str,
        last_used_at: datetime,
        new_encrypted_token: Optional[str] = None,
    ) -> None:
        values = {"last_used_at": last_used_at}
        if new_encrypted_token is not None:
            values["encrypted_refresh_token"] = new_encrypted_token
        self._execute(
            update(RefreshSession)
            .where(RefreshSession.session_id == session_id)
            .values(**values)
        )

    def delete_older_than(self, threshold: datetime) -> int:
        return self._execute(delete(RefreshSession).where(RefreshSession.created_at < threshold))

    def delete_expired(self, now: datetime) -> int:
        return self._execute(
            delete(RefreshSession).where(
                RefreshSession.expires_at.is_not(None),
                RefreshSession.expires_at <= now,
            )
        )

    def delete_revoked_before(self, threshold: datetime) -> int:
        return self._execute(
            delete(RefreshSession).where(
                RefreshSession.revoked == True,  # noqa: E712
                or_(
                    RefreshSession.revoked_at < threshold,
                    and_(RefreshSession.revoked_at.is_(None), RefreshSession.created_at < threshold),
                ),
            )
        )

    def ping(self) -> bool:
        try:
            return self.database.ping()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(detail=type(exc).__name__) from exc


def build_session_store(settings, database: Optional[Database] = None) -> SessionStore:
    """
    Select the backend named by SESSION_STORE_BACKEND.

    Raises:
        ConfigurationError: memory backend in production, or database
            backend without a database
    """
    backend = settings.SESSION_STORE_BACKEND
    attempts = settings.SESSION_CREATE_MAX_ATTEMPTS

    if backend == "memory":
        if settings.is_production:
            raise ConfigurationError("The in-memory session store is for local development only.")
        logger.warning("Using in-memory session store; sessions are lost on restart.")
        return InMemorySessionStore(max_create_attempts=attempts)

    if backend == "database":
        if database is None:
            raise ConfigurationError("SESSION_STORE_BACKEND=database requires a configured database")
        return SqlSessionStore(database, max_create_attempts=attempts)

    raise ConfigurationError(f"Unknown SESSION_STORE_BACKEND: {backend}")
