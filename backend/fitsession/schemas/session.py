"""Session action commands and responses.

A single endpoint receives ``?action=<name>``; each action has its own
command model, selected through the ``action`` discriminator.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class SessionAction(str, Enum):
    """Session protocol actions"""
    STORE_REFRESH = "store_refresh"
    REFRESH = "refresh"
    CLEAR_REFRESH = "clear_refresh"
    REVOKE_SESSION = "revoke_session"
    REVOKE_USER_SESSIONS = "revoke_user_sessions"
    CLEANUP_REFRESH_TOKENS = "cleanup_refresh_tokens"


ADMIN_ACTIONS = frozenset({
    SessionAction.REVOKE_SESSION,
    SessionAction.REVOKE_USER_SESSIONS,
    SessionAction.CLEANUP_REFRESH_TOKENS,
})


class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Identifiers only; refresh tokens are opaque and stored exactly as issued
    @field_validator("user_id", "session_id", mode="before", check_fields=False)
    @classmethod
    def _strip_identifiers(cls, v):
        return v.strip() if isinstance(v, str) else v


class StoreRefreshCommand(_Command):
    """Bind a freshly issued refresh token to a new server-side session"""
    action: Literal["store_refresh"] = "store_refresh"
    user_id: str = Field(..., min_length=1, max_length=128, validation_alias=AliasChoices("userId", "user_id"))
    refresh_token: str = Field(..., min_length=1)

    def __repr__(self) -> str:
        return f"StoreRefreshCommand(user_id='{self.user_id}')"


class RefreshCommand(_Command):
    action: Literal["refresh"] = "refresh"


class ClearRefreshCommand(_Command):
    action: Literal["clear_refresh"] = "clear_refresh"


class RevokeSessionCommand(_Command):
    action: Literal["revoke_session"] = "revoke_session"
    session_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("session_id", "sessionId"))


class RevokeUserSessionsCommand(_Command):
    action: Literal["revoke_user_sessions"] = "revoke_user_sessions"
    user_id: str = Field(..., min_length=1, max_length=128, validation_alias=AliasChoices("userId", "user_id"))


class CleanupRefreshTokensCommand(_Command):
    action: Literal["cleanup_refresh_tokens"] = "cleanup_refresh_tokens"
    days: Optional[int] = Field(None, ge=0, le=3650)
    revoked_retention_days: Optional[int] = Field(None, ge=0, le=3650)


SessionCommand = Annotated[
    Union[
        StoreRefreshCommand,
        RefreshCommand,
        ClearRefreshCommand,
        RevokeSessionCommand,
        RevokeUserSessionsCommand,
        CleanupRefreshTokensCommand,
    ],
    Field(discriminator="action"),
]

_command_adapter: TypeAdapter = TypeAdapter(SessionCommand)


def parse_command(action: SessionAction, body: Optional[Dict[str, Any]]):
    """Validate a request body against the command model for ``action``.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid
    """
    payload = dict(body or {})
    payload["action"] = action.value
    return _command_adapter.validate_python(payload)


class StoreRefreshResponse(BaseModel):
    ok: bool = True
    session_id: str


class AccessTokenResponse(BaseModel):
    """The only credential a refresh ever hands back"""
    access_token: str
    expires_at: Optional[int] = None


class OkResponse(BaseModel):
    ok: bool = True


class RevokeUserSessionsResponse(BaseModel):
    ok: bool = True
    revoked: int


class CleanupResponse(BaseModel):
    ok: bool = True
    deleted: int
