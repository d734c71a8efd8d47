"""Pydantic schemas for API validation"""

from fitsession.schemas.session import (
    SessionAction,
    ADMIN_ACTIONS,
    SessionCommand,
    StoreRefreshCommand,
    RefreshCommand,
    ClearRefreshCommand,
    RevokeSessionCommand,
    RevokeUserSessionsCommand,
    CleanupRefreshTokensCommand,
    StoreRefreshResponse,
    AccessTokenResponse,
    OkResponse,
    RevokeUserSessionsResponse,
    CleanupResponse,
    parse_command,
)
from fitsession.schemas.response import ErrorResponse, HealthResponse

__all__ = [
    "SessionAction", "ADMIN_ACTIONS", "SessionCommand",
    "StoreRefreshCommand", "RefreshCommand", "ClearRefreshCommand",
    "RevokeSessionCommand", "RevokeUserSessionsCommand", "CleanupRefreshTokensCommand",
    "StoreRefreshResponse", "AccessTokenResponse", "OkResponse",
    "RevokeUserSessionsResponse", "CleanupResponse", "parse_command",
    "ErrorResponse", "HealthResponse",
]
