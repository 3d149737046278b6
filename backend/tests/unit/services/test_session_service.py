# tests/unit/services/test_session_service.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta

import pytest
from session_tokens.services._shared.errors import InvalidTokenError, StorageError
from session_tokens.services._shared.ports import InMemoryRefreshTokenStore
from session_tokens.services.sessions.dto import IssuedSession, RefreshToken, SessionConfig
from session_tokens.services.sessions.service import SessionService, generate_token_value


@dataclass(frozen=True)
class _User:
    id: int
    email: str


_URL_SAFE = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"

ALICE = _User(id=42, email="a@x.com")
BOB = _User(id=7, email="b@x.com")


# ------------------------------ Doubles ----------------------------------- #
class FailingCreateStore(InMemoryRefreshTokenStore):
    """create() always fails as if the database timed out."""

    def create(self, token: RefreshToken) -> RefreshToken:
        raise StorageError("create", "timeout")


class FailingInvalidateStore(InMemoryRefreshTokenStore):
    """invalidate() always fails; everything else works."""

    def invalidate(self, value: str) -> bool:
        raise StorageError("invalidate", "timeout")


class UntouchableStore(InMemoryRefreshTokenStore):
    def __getattribute__(self, name):
        if name in {"create", "get_by_token", "invalidate", "invalidate_all_for_user"}:
            raise AssertionError(f"store.{name} must not be called")
        return super().__getattribute__(name)


class SpyCodec:
    """Wraps a real codec and records sign() calls."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.signed: list[tuple[int, str]] = []

    def sign(self, user_id: int, email: str) -> str:
        self.signed.append((user_id, email))
        return self.inner.sign(user_id, email)

    def verify(self, token: str):
        return self.inner.verify(token)


class RacingStore(InMemoryRefreshTokenStore):
    """Holds both readers at a barrier so they see the token as active together."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = threading.Barrier(parties)
        self.armed = False

    def get_by_token(self, value: str) -> RefreshToken:
        token = super().get_by_token(value)
        if self.armed:
            self.barrier.wait(timeout=5)
        return token


def _service(codec, store, session_config, clock) -> SessionService:
    return SessionService(codec=codec, store=store, config=session_config, clock=clock)


# -------------------------------- Issue ----------------------------------- #
def test_issue_session_persists_valid_refresh_and_signs_access(session_service, memory_store, clock):
    issued = session_service.issue_session(ALICE)

    assert isinstance(issued, IssuedSession)
    assert issued.token_type == "Bearer"
    assert issued.expires_in == 15 * 60

    stored = memory_store.get_by_token(issued.refresh_token.token)
    assert stored.is_valid is True
    assert stored.user_id == ALICE.id
    assert stored.expires_at == clock.now + timedelta(days=7)
    assert stored.id == issued.refresh_token.id

    claims = session_service.validate_access(issued.access_token)
    assert claims.user_id == ALICE.id
    assert claims.email == ALICE.email


def test_as_response_matches_wire_format(session_service):
    issued = session_service.issue_session(ALICE)

    body = issued.as_response()

    assert body == {
        "access_token": issued.access_token,
        "refresh_token": issued.refresh_token.token,
        "expires_in": 900,
        "token_type": "Bearer",
    }


def test_refresh_values_are_fresh_and_url_safe(session_service):
    values = {session_service.issue_session(ALICE).refresh_token.token for _ in range(20)}

    assert len(values) == 20
    assert all(len(v) >= 43 and set(v) <= set(_URL_SAFE) for v in values)


def test_generate_token_value_encodes_32_bytes():
    assert len(generate_token_value()) == 43


def test_issue_is_all_or_nothing_when_store_fails(codec, session_config, clock):
    """A store failure leaves the caller with no access token at all."""
    spy = SpyCodec(codec)
    service = _service(spy, FailingCreateStore(), session_config, clock)

    with pytest.raises(StorageError):
        service.issue_session(ALICE)

    assert spy.signed == []


def test_token_factory_failure_propagates(codec, memory_store, session_config, clock):
    def broken() -> str:
        raise OSError("entropy source unavailable")

    service = SessionService(
        codec=codec, store=memory_store, config=session_config, token_factory=broken, clock=clock
    )

    with pytest.raises(OSError):
        service.issue_session(ALICE)
    assert memory_store.tokens_for_user(ALICE.id) == []


# ------------------------------- Validate --------------------------------- #
def test_validate_access_never_touches_the_store(codec, session_config, clock):
    service = _service(codec, UntouchableStore(), session_config, clock)
    token = codec.sign(ALICE.id, ALICE.email)

    assert service.validate_access(token).user_id == ALICE.id


def test_validate_access_rejects_garbage(session_service):
    with pytest.raises(InvalidTokenError):
        session_service.validate_access("garbage")


# -------------------------------- Rotate ---------------------------------- #
def test_scenario_issue_validate_rotate_then_reuse(session_service):
    at1_rt1 = session_service.issue_session(ALICE)
    assert session_service.validate_access(at1_rt1.access_token).subject == "42"

    at2_rt2 = session_service.rotate(at1_rt1.refresh_token.token, "a@x.com")
    assert at2_rt2.refresh_token.token != at1_rt1.refresh_token.token
    assert session_service.validate_access(at2_rt2.access_token).email == "a@x.com"

    with pytest.raises(InvalidTokenError):
        session_service.rotate(at1_rt1.refresh_token.token, "a@x.com")


def test_scenario_refresh_ttl_elapsed(codec, memory_store, clock):
    config = SessionConfig(secret="s", refresh_ttl=timedelta(seconds=1))
    service = _service(codec, memory_store, config, clock)
    issued = service.issue_session(ALICE)

    clock.advance(seconds=2)

    with pytest.raises(InvalidTokenError):
        service.rotate(issued.refresh_token.token, ALICE.email)


def test_rotate_invalidates_old_and_keeps_new_valid(session_service, memory_store):
    issued = session_service.issue_session(ALICE)

    rotated = session_service.rotate(issued.refresh_token.token, ALICE.email)

    assert memory_store.get_by_token(issued.refresh_token.token).is_valid is False
    assert memory_store.get_by_token(rotated.refresh_token.token).is_valid is True
    assert rotated.refresh_token.user_id == ALICE.id


def test_rotate_uses_email_hint_for_new_access_token(session_service):
    issued = session_service.issue_session(ALICE)

    rotated = session_service.rotate(issued.refresh_token.token, "renamed@x.com")

    assert session_service.validate_access(rotated.access_token).email == "renamed@x.com"


def test_rotate_unknown_token_is_invalid(session_service):
    with pytest.raises(InvalidTokenError):
        session_service.rotate("never-issued", ALICE.email)


def test_rotate_revoked_token_is_invalid(session_service):
    issued = session_service.issue_session(ALICE)
    assert session_service.revoke(issued.refresh_token.token) is True

    with pytest.raises(InvalidTokenError):
        session_service.rotate(issued.refresh_token.token, ALICE.email)


def test_rotate_lookup_failure_propagates_as_storage_error(codec, session_config, clock):
    class Broken(InMemoryRefreshTokenStore):
        def get_by_token(self, value: str) -> RefreshToken:
            raise StorageError("get_by_token", "timeout")

    service = _service(codec, Broken(), session_config, clock)

    with pytest.raises(StorageError):
        service.rotate("whatever", ALICE.email)


def test_rotate_succeeds_when_old_token_invalidation_fails(codec, session_config, clock, caplog):
    """Invalidating the superseded token is best effort: log and keep the new session."""
    store = FailingInvalidateStore()
    service = _service(codec, store, session_config, clock)
    issued = service.issue_session(ALICE)

    with caplog.at_level(logging.ERROR):
        rotated = service.rotate(issued.refresh_token.token, ALICE.email)

    assert store.get_by_token(rotated.refresh_token.token).is_valid is True
    assert any(getattr(r, "event", None) == "refresh_token.invalidate_failed" for r in caplog.records)


def test_rotation_race_loser_gets_invalid_and_its_token_is_withdrawn(codec, session_config, clock):
    """Two rotations of one token: exactly one live session comes out."""
    store = RacingStore(parties=2)
    service = _service(codec, store, session_config, clock)
    old = service.issue_session(ALICE).refresh_token.token
    store.armed = True

    results: list[IssuedSession] = []
    errors: list[Exception] = []

    def attempt() -> None:
        try:
            results.append(service.rotate(old, ALICE.email))
        except InvalidTokenError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(results) == 1
    assert len(errors) == 1
    live = [t for t in store.tokens_for_user(ALICE.id) if t.is_valid]
    assert [t.token for t in live] == [results[0].refresh_token.token]


# -------------------------------- Revoke ---------------------------------- #
def test_revoke_all_then_rotate_any_prior_token_is_invalid(session_service):
    first = session_service.issue_session(ALICE)
    second = session_service.issue_session(ALICE)
    other = session_service.issue_session(BOB)

    assert session_service.revoke_all(ALICE.id) == 2

    for issued in (first, second):
        with pytest.raises(InvalidTokenError):
            session_service.rotate(issued.refresh_token.token, ALICE.email)
    # Other users are unaffected
    session_service.rotate(other.refresh_token.token, BOB.email)


def test_revoke_all_is_idempotent(session_service):
    session_service.issue_session(ALICE)

    assert session_service.revoke_all(ALICE.id) == 1
    assert session_service.revoke_all(ALICE.id) == 0


def test_revoke_all_propagates_storage_errors(codec, session_config, clock):
    class Broken(InMemoryRefreshTokenStore):
        def invalidate_all_for_user(self, user_id: int) -> int:
            raise StorageError("invalidate_all_for_user", "down")

    service = _service(codec, Broken(), session_config, clock)

    with pytest.raises(StorageError):
        service.revoke_all(ALICE.id)


def test_access_token_survives_revocation_until_expiry(session_service):
    """Revocation blocks refresh only; issued access tokens remain valid."""
    issued = session_service.issue_session(ALICE)
    session_service.revoke_all(ALICE.id)

    assert session_service.validate_access(issued.access_token).user_id == ALICE.id
