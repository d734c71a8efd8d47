"""Audit trail for admin session actions."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from fitsession.core.database import Database
from fitsession.models.audit import AuditEvent

logger = logging.getLogger("fitsession.audit")


class AuditService:
    """Persist immutable audit trail entries; log-only without a database."""

    def __init__(self, database: Optional[Database] = None):
        self.database = database

    def log_event(
        self,
        *,
        actor: Optional[str],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        logger.info(
            "audit action=%s actor=%s target=%s:%s ip=%s",
            action,
            actor,
            target_type,
            target_id,
            ip_address,
        )
        if self.database is None:
            return

        event = AuditEvent(
            actor=actor,
            action=action,
            target_type=target_type,
            target_id=target_id,
            ip_address=ip_address,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False),
            created_at=datetime.now(timezone.utc),
        )
        with self.database.session() as db:
            try:
                db.add(event)
                db.commit()
            except SQLAlchemyError:
                # The audited action already happened; losing the row must not fail it.
                db.rollback()
                logger.exception("Failed to persist audit event %s", action)

    def delete_older_than(self, threshold: datetime) -> int:
        if self.database is None:
            return 0
        with self.database.session() as db:
            result = db.execute(delete(AuditEvent).where(AuditEvent.created_at < threshold))
            db.commit()
            return result.rowcount or 0
