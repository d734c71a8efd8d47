from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from fitsession.core.security import verify_admin_credential
from conftest import make_settings

JWT_SECRET = "admin-jwt-signing-secret"


def _signed(claims, secret=JWT_SECRET, algorithm="HS256"):
    payload = {"exp": datetime.now(timezone.utc) + timedelta(minutes=5), **claims}
    return jwt.encode(payload, secret, algorithm=algorithm)


@pytest.mark.parametrize("credential", [None, "", "anything", _signed({"role": "admin"})])
def test_closed_when_nothing_is_configured(credential):
    decision = verify_admin_credential(credential, make_settings())
    assert decision.allowed is False


def test_static_token_path():
    settings = make_settings(ADMIN_API_TOKEN="static-admin-token")

    decision = verify_admin_credential("static-admin-token", settings)
    assert decision.allowed is True
    assert decision.method == "static_token"

    assert verify_admin_credential("static-admin-tokeN", settings).allowed is False
    assert verify_admin_credential("static-admin-token-extra", settings).allowed is False


@pytest.mark.parametrize("claims", [
    {"sub": "ops-1", "role": "admin"},
    {"sub": "svc", "role": "service"},
    {"sub": "ops-2", "role": "authenticated", "app_metadata": {"role": "admin"}},
])
def test_signed_token_with_admin_role(claims):
    settings = make_settings(ADMIN_JWT_SECRET=JWT_SECRET)
    decision = verify_admin_credential(_signed(claims), settings)
    assert decision.allowed is True
    assert decision.method == "signed_token"
    assert decision.identity == claims["sub"]


@pytest.mark.parametrize("claims", [
    {"sub": "user-1", "role": "authenticated"},
    {"sub": "user-1"},
    {"sub": "user-1", "app_metadata": {"role": "user"}},
])
def test_signed_token_without_admin_role_is_refused(claims):
    settings = make_settings(ADMIN_JWT_SECRET=JWT_SECRET)
    assert verify_admin_credential(_signed(claims), settings).allowed is False


def test_signed_token_path_disabled_without_its_secret():
    settings = make_settings(ADMIN_API_TOKEN="static-admin-token")
    assert verify_admin_credential(_signed({"role": "admin"}), settings).allowed is False


def test_bad_signatures_and_expiry_are_refused():
    settings = make_settings(ADMIN_JWT_SECRET=JWT_SECRET)
    forged = _signed({"role": "admin"}, secret="some-other-secret")
    expired = jwt.encode(
        {"role": "admin", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        JWT_SECRET,
        algorithm="HS256",
    )
    assert verify_admin_credential(forged, settings).allowed is False
    assert verify_admin_credential(expired, settings).allowed is False


@pytest.mark.parametrize("garbage", ["a.b.c", "Bearer x", "....", "éé", 12345])
def test_malformed_credentials_never_raise(garbage):
    settings = make_settings(ADMIN_API_TOKEN="static-admin-token", ADMIN_JWT_SECRET=JWT_SECRET)
    assert verify_admin_credential(garbage, settings).allowed is False


@pytest.mark.parametrize("claims,identity", [
    ({"id": "u1", "roles": ["admin"]}, "u1"),
    ({"id": "u2", "roles": ["user", "service"]}, "u2"),
    ({"roles": ["admin"]}, "admin"),
])
def test_signed_token_with_roles_list(claims, identity):
    settings = make_settings(ADMIN_JWT_SECRET=JWT_SECRET)
    decision = verify_admin_credential(_signed(claims), settings)
    assert decision.allowed is True
    assert decision.identity == identity


@pytest.mark.parametrize("claims", [
    {"id": "u1", "roles": ["user"]},
    {"id": "u1", "roles": []},
    {"id": "u1", "roles": "admin"},
    {"id": "u1", "roles": [{"name": "admin"}]},
])
def test_roles_claim_without_admin_entry_is_refused(claims):
    settings = make_settings(ADMIN_JWT_SECRET=JWT_SECRET)
    assert verify_admin_credential(_signed(claims), settings).allowed is False
