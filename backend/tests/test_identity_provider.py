import json
import time

import httpx
import pytest

from fitsession.core.exceptions import UpstreamError
from fitsession.services.identity_provider import IdentityProviderClient


def _client(handler, base_url="https://idp.example.test", key="service-key"):
    return IdentityProviderClient(base_url, key, timeout=2.0, transport=httpx.MockTransport(handler))


def test_refresh_posts_grant_to_token_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["grant_type"] = request.url.params.get("grant_type")
        seen["apikey"] = request.headers.get("apikey")
        seen["authorization"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"access_token": "at-1", "expires_at": 1234, "refresh_token": "rt-def"})

    grant = _client(handler).refresh("rt-abc")

    assert seen == {
        "method": "POST",
        "path": "/auth/v1/token",
        "grant_type": "refresh_token",
        "apikey": "service-key",
        "authorization": "Bearer service-key",
        "body": {"refresh_token": "rt-abc"},
    }
    assert grant.access_token == "at-1"
    assert grant.expires_at == 1234
    assert grant.refresh_token == "rt-def"
    assert "at-1" not in repr(grant)


def test_expires_in_becomes_absolute_expiry():
    def handler(request):
        return httpx.Response(200, json={"access_token": "at-1", "expires_in": 3600})

    before = int(time.time())
    grant = _client(handler).refresh("rt-abc")
    assert before + 3600 <= grant.expires_at <= int(time.time()) + 3600
    assert grant.refresh_token is None


@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"error": "invalid_grant"}),
    httpx.Response(401, json={"error": "unauthorized"}),
    httpx.Response(503, text="unavailable"),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json={"token_type": "bearer"}),
    httpx.Response(200, json=["access_token"]),
])
def test_unusable_responses_raise_upstream_error(response):
    with pytest.raises(UpstreamError) as exc:
        _client(lambda request: response).refresh("rt-abc")
    assert exc.value.status_code == 401


def test_transport_failure_raises_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        _client(handler).refresh("rt-abc")


def test_unconfigured_provider_rejects_without_calling_out():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"access_token": "at-1"})

    client = _client(handler, base_url="", key="")
    assert client.configured is False
    with pytest.raises(UpstreamError):
        client.refresh("rt-abc")
    assert calls == []
