"""Generic API response schemas"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    message: str
    details: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)


class HealthResponse(BaseModel):
    """Health check response"""
    ok: bool
    status: str
    version: str
    timestamp: str = Field(default_factory=_now_iso)
    readiness: Dict[str, Any] = {}
