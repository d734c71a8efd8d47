"""Identity provider (Supabase auth) token-refresh client."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from fitsession.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_at: Optional[int]
    refresh_token: Optional[str] = None

    def __repr__(self) -> str:
        return f"TokenGrant(expires_at={self.expires_at}, rotated={self.refresh_token is not None})"


class IdentityProviderClient:
    """
    Exchanges a refresh token for a fresh access token.

    One POST per call, no retry: a failure is reported immediately so the
    caller can revoke the session.
    """

    TOKEN_PATH = "/auth/v1/token"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._client = httpx.Client(
            base_url=self.base_url or "http://identity-provider.invalid",
            timeout=timeout,
            follow_redirects=False,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings) -> "IdentityProviderClient":
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_KEY,
            timeout=settings.IDENTITY_PROVIDER_TIMEOUT,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Call the provider's refresh grant.

        Raises:
            UpstreamError: On transport failure, non-2xx status, unreadable
                body, or a body without an access token
        """
        if not self.configured:
            raise UpstreamError(detail="identity provider is not configured")

        try:
            response = self._client.post(
                self.TOKEN_PATH,
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Identity provider rejected refresh (status=%s)", exc.response.status_code)
            raise UpstreamError(detail=f"provider returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Identity provider unreachable: %s", type(exc).__name__)
            raise UpstreamError(detail=f"provider request failed: {type(exc).__name__}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(detail="provider returned a non-JSON body") from exc

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise UpstreamError(detail="provider response has no access_token")

        return TokenGrant(
            access_token=str(payload["access_token"]),
            expires_at=self._resolve_expiry(payload),
            refresh_token=payload.get("refresh_token") or None,
        )

    @staticmethod
    def _resolve_expiry(payload: dict) -> Optional[int]:
        expires_at = payload.get("expires_at")
        if expires_at is not None:
            try:
                return int(expires_at)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric expires_at from identity provider")
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                return int(time.time()) + int(expires_in)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric expires_in from identity provider")
        return None

    def close(self) -> None:
        self._client.close()
