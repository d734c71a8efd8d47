from datetime import datetime, timedelta, timezone

import pytest

from fitsession.core.cipher import TokenCipher
from fitsession.core.exceptions import AuthenticationError, DecryptionError, StoreUnavailableError, UpstreamError
from fitsession.schemas.session import SessionAction, parse_command
from fitsession.services.identity_provider import TokenGrant
from fitsession.services.session_service import SessionService
from fitsession.services.session_store import InMemorySessionStore
from conftest import FakeIdentityProvider, TEST_SECRET


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _service(*grants, ttl_days=30):
    clock = Clock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))
    provider = FakeIdentityProvider(*grants)
    service = SessionService(
        InMemorySessionStore(),
        TokenCipher(TEST_SECRET),
        provider,
        session_ttl_days=ttl_days,
        clock=clock,
    )
    return service, provider, clock


def test_store_refresh_encrypts_token_at_rest():
    service, _, clock = _service()
    session_id = service.store_refresh("user-1", "rt-abc")

    record = service.store.get(session_id)
    assert record.user_id == "user-1"
    assert "rt-abc" not in record.encrypted_refresh_token
    assert service.cipher.decrypt(record.encrypted_refresh_token) == "rt-abc"
    assert record.expires_at == clock.now + timedelta(days=30)


def test_zero_ttl_means_no_expiry():
    service, _, _ = _service(ttl_days=0)
    session_id = service.store_refresh("user-1", "rt-abc")
    assert service.store.get(session_id).expires_at is None


def test_refresh_returns_access_token_and_rotates():
    service, provider, clock = _service(
        TokenGrant("at-1", 1234, refresh_token="rt-def"),
        TokenGrant("at-2", 5678),
    )
    session_id = service.store_refresh("user-1", "rt-abc")

    clock.now += timedelta(minutes=10)
    result = service.refresh(session_id)
    assert result.model_dump() == {"access_token": "at-1", "expires_at": 1234}

    record = service.store.get(session_id)
    assert service.cipher.decrypt(record.encrypted_refresh_token) == "rt-def"
    assert record.last_used_at == clock.now

    assert service.refresh(session_id).access_token == "at-2"
    assert provider.calls == ["rt-abc", "rt-def"]
    # No rotation offered: the stored token stays
    assert service.cipher.decrypt(service.store.get(session_id).encrypted_refresh_token) == "rt-def"


@pytest.mark.parametrize("session_id", [None, "", "unknown-session"])
def test_refresh_without_a_valid_session(session_id):
    service, provider, _ = _service(TokenGrant("at-1", 1))
    with pytest.raises(AuthenticationError) as exc:
        service.refresh(session_id)
    assert exc.value.status_code == 401
    assert provider.calls == []


def test_refresh_after_clear_is_rejected():
    service, provider, _ = _service(TokenGrant("at-1", 1))
    session_id = service.store_refresh("user-1", "rt-abc")

    assert service.clear_refresh(session_id) is True
    with pytest.raises(AuthenticationError):
        service.refresh(session_id)
    assert provider.calls == []


def test_refresh_after_expiry_is_rejected_without_mutation():
    service, provider, clock = _service(TokenGrant("at-1", 1), ttl_days=1)
    session_id = service.store_refresh("user-1", "rt-abc")

    clock.now += timedelta(days=1, seconds=1)
    with pytest.raises(AuthenticationError):
        service.refresh(session_id)
    assert service.store.get(session_id).revoked is False
    assert provider.calls == []


def test_decrypt_failure_revokes_session():
    service, provider, _ = _service(TokenGrant("at-1", 1))
    session_id = service.store.create("user-1", TokenCipher("another-secret").encrypt("rt-abc"))

    with pytest.raises(DecryptionError) as exc:
        service.refresh(session_id)
    assert exc.value.status_code == 401
    assert service.store.get(session_id).revoked is True
    assert provider.calls == []


def test_provider_rejection_revokes_session():
    service, provider, _ = _service()
    provider.reject_with = "provider returned 400"
    session_id = service.store_refresh("user-1", "rt-abc")

    with pytest.raises(UpstreamError):
        service.refresh(session_id)
    assert service.store.get(session_id).revoked is True

    provider.reject_with = None
    with pytest.raises(AuthenticationError):
        service.refresh(session_id)
    assert provider.calls == ["rt-abc"]


def test_clear_without_cookie_is_a_no_op():
    service, _, _ = _service()
    assert service.clear_refresh(None) is False
    assert service.clear_refresh("missing") is False


def test_admin_revocations_are_idempotent():
    service, _, _ = _service()
    first = service.store_refresh("user-1", "rt-a")
    service.store_refresh("user-1", "rt-b")
    other = service.store_refresh("user-2", "rt-c")

    assert service.revoke_session(first) is True
    assert service.revoke_session(first) is True
    assert service.revoke_session("missing") is False

    assert service.revoke_user_sessions("user-1") == 1
    assert service.revoke_user_sessions("user-1") == 0
    assert service.store.get(other).revoked is False


def test_cleanup_counts_every_category():
    service, _, clock = _service(ttl_days=0)
    start = clock.now

    clock.now = start - timedelta(days=45)
    service.store_refresh("user-1", "rt-old")
    clock.now = start - timedelta(days=3)
    revoked = service.store_refresh("user-1", "rt-revoked")
    service.revoke_session(revoked)
    service.store.create("user-1", "blob", expires_at=start - timedelta(hours=1), now=start - timedelta(days=2))
    clock.now = start
    live = service.store_refresh("user-2", "rt-live")

    report = service.cleanup_refresh_tokens()
    assert (report.aged_out, report.expired, report.revoked) == (1, 1, 1)
    assert report.total == 3
    assert service.store.get(live) is not None

    clock.now = start + timedelta(seconds=1)
    assert service.cleanup_refresh_tokens(days=0).total == 1


def test_execute_dispatches_typed_commands():
    service, _, clock = _service(TokenGrant("at-1", 99))

    stored = service.execute(parse_command(SessionAction.STORE_REFRESH, {"userId": "user-1", "refresh_token": "rt-abc"}))
    session_id = stored.body.session_id
    assert stored.cookie.session_id == session_id

    refreshed = service.execute(parse_command(SessionAction.REFRESH, {}), session_cookie=session_id)
    assert refreshed.cookie is None
    assert refreshed.body.access_token == "at-1"

    cleared = service.execute(parse_command(SessionAction.CLEAR_REFRESH, None), session_cookie=session_id)
    assert cleared.cookie.clears is True
    assert cleared.body.model_dump() == {"ok": True}

    revoked = service.execute(parse_command(SessionAction.REVOKE_USER_SESSIONS, {"userId": "user-1"}))
    assert revoked.body.model_dump() == {"ok": True, "revoked": 0}

    clock.now += timedelta(seconds=1)
    cleaned = service.execute(parse_command(SessionAction.CLEANUP_REFRESH_TOKENS, {"days": 0}))
    assert cleaned.body.model_dump() == {"ok": True, "deleted": 1}


@pytest.mark.parametrize("action,body", [
    (SessionAction.STORE_REFRESH, {"userId": "user-1", "refresh_token": "rt-abc"}),
    (SessionAction.REFRESH, None),
    (SessionAction.CLEAR_REFRESH, {}),
    (SessionAction.REVOKE_SESSION, {"sessionId": "abc"}),
    (SessionAction.REVOKE_USER_SESSIONS, {"user_id": "user-1"}),
    (SessionAction.CLEANUP_REFRESH_TOKENS, {"days": 7}),
])
def test_every_action_parses_to_its_command(action, body):
    command = parse_command(action, body)
    assert command.action == action.value


def test_identifiers_are_trimmed_but_refresh_token_is_kept_verbatim():
    command = parse_command(SessionAction.STORE_REFRESH, {"userId": " user-1 ", "refresh_token": " rt-abc\n"})
    assert command.user_id == "user-1"
    assert command.refresh_token == " rt-abc\n"

    revoke = parse_command(SessionAction.REVOKE_SESSION, {"session_id": "  abc  "})
    assert revoke.session_id == "abc"


def test_padded_refresh_token_reaches_provider_unchanged():
    service, provider, _ = _service(TokenGrant("at-1", 1))
    command = parse_command(SessionAction.STORE_REFRESH, {"userId": "user-1", "refresh_token": " rt-abc "})
    session_id = service.execute(command).body.session_id

    service.refresh(session_id)
    assert provider.calls == [" rt-abc "]


def test_failed_update_after_refresh_revokes_session(monkeypatch, caplog):
    service, provider, _ = _service(TokenGrant("at-1", 1, refresh_token="rt-def"))
    session_id = service.store_refresh("user-1", "rt-abc")

    def unavailable(*args, **kwargs):
        raise StoreUnavailableError(detail="OperationalError")

    monkeypatch.setattr(service.store, "update_after_refresh", unavailable)
    with caplog.at_level("WARNING", logger="fitsession.services.session_service"):
        with pytest.raises(StoreUnavailableError):
            service.refresh(session_id)

    assert provider.calls == ["rt-abc"]
    assert service.store.get(session_id).revoked is True
    assert f"Session {session_id[:8]}... could not be updated after refresh" in caplog.text


def test_failed_update_is_still_raised_when_revoke_also_fails(monkeypatch):
    service, _, _ = _service(TokenGrant("at-1", 1))
    session_id = service.store_refresh("user-1", "rt-abc")

    def unavailable(*args, **kwargs):
        raise StoreUnavailableError(detail="OperationalError")

    monkeypatch.setattr(service.store, "update_after_refresh", unavailable)
    monkeypatch.setattr(service.store, "mark_revoked", unavailable)
    with pytest.raises(StoreUnavailableError):
        service.refresh(session_id)
