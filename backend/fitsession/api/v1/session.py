"""Session routes - the single action-dispatched auth endpoint"""

import logging
from typing import Any, Dict, Optional

import pydantic
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials

from fitsession.api.cookies import apply_cookie
from fitsession.api.deps import (
    bearer_scheme,
    client_ip,
    get_audit_service,
    get_rate_limiter,
    get_session_service,
    get_settings,
    read_json_body,
    require_admin,
)
from fitsession.config import Settings
from fitsession.core.exceptions import (
    BaseAPIException,
    RateLimitExceededError,
    StoreUnavailableError,
    ValidationError,
)
from fitsession.schemas.response import ErrorResponse
from fitsession.schemas.session import ADMIN_ACTIONS, SessionAction, parse_command
from fitsession.services.audit_service import AuditService
from fitsession.services.rate_limiter import SlidingWindowLimiter
from fitsession.services.session_service import CookieDirective, SessionService

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMITED_ACTIONS = frozenset({SessionAction.STORE_REFRESH, SessionAction.REFRESH})


def _resolve_action(raw: Optional[str]) -> SessionAction:
    if not raw:
        raise ValidationError("Missing action")
    try:
        return SessionAction(raw.strip())
    except ValueError:
        raise ValidationError("Unknown action", details={"action": raw})


def _validation_details(exc: pydantic.ValidationError) -> Dict[str, Any]:
    fields = []
    for error in exc.errors():
        # The first location element is the union tag
        loc = [str(part) for part in error["loc"]]
        fields.append({
            "field": ".".join(loc[1:] if len(loc) > 1 else loc),
            "message": error["msg"],
            "type": error["type"],
        })
    return {"errors": fields}


@router.post("", status_code=status.HTTP_200_OK)
def session_action(
    request: Request,
    response: Response,
    action: Optional[str] = None,
    body: Dict[str, Any] = Depends(read_json_body),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    service: SessionService = Depends(get_session_service),
    audit: AuditService = Depends(get_audit_service),
    limiter: SlidingWindowLimiter = Depends(get_rate_limiter),
):
    """
    Dispatch one session action

    Args:
        action: Query parameter naming the action
        body: JSON body, empty for cookie-driven actions

    Returns:
        The action's response body; store_refresh and clear_refresh also
        set or clear the session cookie
    """
    resolved = _resolve_action(action)
    ip = client_ip(request)

    if resolved in RATE_LIMITED_ACTIONS and not limiter.hit(f"{resolved.value}:{ip}"):
        raise RateLimitExceededError("Too many session requests. Please wait a minute.")

    is_admin = resolved in ADMIN_ACTIONS
    decision = require_admin(credentials, settings) if is_admin else None

    try:
        command = parse_command(resolved, body)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid request", details=_validation_details(exc))

    session_cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    try:
        outcome = service.execute(command, session_cookie=session_cookie)
    except StoreUnavailableError as exc:
        if resolved != SessionAction.CLEAR_REFRESH:
            exc.expose_details = is_admin
            raise
        # Logout always clears the cookie, even when the revoke did not persist
        logger.error("clear_refresh could not revoke the session: %s", exc.details.get("detail") or exc.message)
        failed = JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(message=exc.message, path=request.url.path).model_dump(exclude_none=True),
        )
        apply_cookie(failed, CookieDirective(None), settings)
        return failed
    except BaseAPIException as exc:
        if is_admin:
            exc.expose_details = True
        raise

    if outcome.cookie is not None:
        apply_cookie(response, outcome.cookie, settings)

    result = outcome.body.model_dump()
    if is_admin:
        audit.log_event(
            actor=decision.identity,
            action=f"session.{resolved.value}",
            target_type="user" if resolved == SessionAction.REVOKE_USER_SESSIONS else "session",
            target_id=getattr(command, "user_id", None) or getattr(command, "session_id", None),
            ip_address=ip,
            metadata={"method": decision.method, "result": result},
        )
    return result
