"""Admin authorization gate - static service token or role-bearing signed token"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from jose import JWTError, jwt

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"admin", "service"})


@dataclass(frozen=True)
class AdminDecision:
    allowed: bool
    identity: Optional[str] = None
    method: Optional[str] = None


DENIED = AdminDecision(allowed=False)


def decode_admin_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[Dict[str, Any]]:
    """
    Decode and verify a signed admin token

    Args:
        token: JWT token string
        secret: Signing secret
        algorithm: Expected signing algorithm

    Returns:
        Optional[Dict]: Decoded claims or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_aud": False},
        )
    except (JWTError, ValueError, TypeError):
        return None
    return payload if isinstance(payload, dict) else None


def _role_of(claims: Dict[str, Any]) -> Optional[str]:
    role = claims.get("role")
    if isinstance(role, str) and role in ADMIN_ROLES:
        return role
    roles = claims.get("roles")
    if isinstance(roles, list):
        for candidate in roles:
            if isinstance(candidate, str) and candidate in ADMIN_ROLES:
                return candidate
    app_metadata = claims.get("app_metadata")
    if isinstance(app_metadata, dict):
        nested = app_metadata.get("role")
        if isinstance(nested, str):
            return nested
    return role if isinstance(role, str) else None


def verify_admin_credential(credential: Optional[str], settings) -> AdminDecision:
    """
    Decide whether a bearer credential may run admin session operations.

    A signed token qualifies through `role`, a `roles` list, or
    `app_metadata.role`.

    Each path is enabled only by its own secret; with neither configured
    every credential is refused. Malformed input is refused, never raised.
    """
    if not credential or not isinstance(credential, str):
        return DENIED

    admin_token = settings.ADMIN_API_TOKEN
    if admin_token and hmac.compare_digest(credential.encode("utf-8"), admin_token.encode("utf-8")):
        return AdminDecision(allowed=True, identity="admin-api-token", method="static_token")

    signing_secret = settings.ADMIN_JWT_SECRET
    if not signing_secret:
        return DENIED

    claims = decode_admin_token(credential, signing_secret, settings.ADMIN_JWT_ALGORITHM)
    if claims is None:
        return DENIED

    role = _role_of(claims)
    if role not in ADMIN_ROLES:
        logger.warning("Signed token without admin role refused (role=%s)", role)
        return DENIED

    identity = claims.get("sub") or claims.get("id")
    return AdminDecision(
        allowed=True,
        identity=str(identity) if identity is not None else role,
        method="signed_token",
    )
