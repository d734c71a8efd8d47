"""API dependencies - app-scoped services and admin authorization"""

import json
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fitsession.config import Settings
from fitsession.core.exceptions import AuthorizationError, ValidationError
from fitsession.core.security import AdminDecision, verify_admin_credential
from fitsession.services.audit_service import AuditService
from fitsession.services.rate_limiter import SlidingWindowLimiter
from fitsession.services.session_service import SessionService

# Bearer scheme; absence is handled per action, not globally
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


def get_rate_limiter(request: Request) -> SlidingWindowLimiter:
    return request.app.state.rate_limiter


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Read the request body as a JSON object. An empty body is an empty object.

    Raises:
        ValidationError: If the body is not valid JSON or not an object
    """
    raw = await request.body()
    if not raw or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> AdminDecision:
    """
    Admin authorization check

    Raises:
        AuthorizationError: 401 without a bearer credential, 403 when refused
    """
    if credentials is None or not credentials.credentials:
        raise AuthorizationError("Admin credentials required", status_code=401)

    decision = verify_admin_credential(credentials.credentials, settings)
    if not decision.allowed:
        raise AuthorizationError("Admin access required")
    return decision
