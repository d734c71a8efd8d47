from typing import Optional

import pytest

from fitsession.config import Settings
from fitsession.core.database import Database
from fitsession.core.exceptions import UpstreamError
from fitsession.services.identity_provider import TokenGrant

TEST_SECRET = "test-refresh-token-secret-0123456789abcdef"


def make_settings(**overrides) -> Settings:
    values = {
        "REFRESH_TOKEN_SECRET": TEST_SECRET,
        "SESSION_STORE_BACKEND": "memory",
        "ENVIRONMENT": "development",
        "SUPABASE_URL": "https://idp.example.test",
        "SUPABASE_SERVICE_KEY": "service-key",
        "LOG_FILE": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeIdentityProvider:
    """Scripted provider: hands out grants in order, or raises when told to reject."""

    configured = True

    def __init__(self, *grants: TokenGrant):
        self.grants = list(grants)
        self.calls = []
        self.reject_with: Optional[str] = None
        self.closed = False

    def refresh(self, refresh_token: str) -> TokenGrant:
        self.calls.append(refresh_token)
        if self.reject_with is not None:
            raise UpstreamError(detail=self.reject_with)
        if not self.grants:
            raise UpstreamError(detail="no grant scripted")
        return self.grants.pop(0)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def sqlite_database():
    database = Database("sqlite://")
    database.init()
    database.create_all()
    try:
        yield database
    finally:
        database.shutdown()
