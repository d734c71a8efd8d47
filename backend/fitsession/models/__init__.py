"""Database models"""

from fitsession.models.session import RefreshSession
from fitsession.models.audit import AuditEvent

__all__ = ["RefreshSession", "AuditEvent"]
