import secrets
import threading
from datetime import datetime, timedelta

import pytest

from kidpoints.exceptions import UnauthorizedError
from kidpoints.models import AuthDecision, Credentials
from kidpoints.ops import StructuredLogger
from kidpoints.security import TOKEN_LENGTH, AuthGate, SessionStore
from kidpoints.storage import InMemoryStorage

NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture()
def sessions() -> SessionStore:
    return SessionStore(InMemoryStorage(), lifetime=timedelta(days=365))


def test_issue_returns_fixed_length_hex_token(sessions: SessionStore) -> None:
    session = sessions.issue(at=NOW)

    assert len(session.token) == TOKEN_LENGTH == 64
    int(session.token, 16)
    assert session.created_at == NOW
    assert session.expires_at == NOW + timedelta(days=365)
    assert sessions.is_valid(session.token, at=NOW)


def test_tokens_are_unique(sessions: SessionStore) -> None:
    tokens = {sessions.issue(at=NOW).token for _ in range(50)}

    assert len(tokens) == 50


def test_validity_flips_exactly_at_expiry(sessions: SessionStore) -> None:
    session = sessions.issue(at=NOW)

    assert sessions.is_valid(session.token, at=session.expires_at - timedelta(microseconds=1))
    assert not sessions.is_valid(session.token, at=session.expires_at)
    assert not sessions.is_valid(session.token, at=session.expires_at + timedelta(seconds=1))


@pytest.mark.parametrize("token", [None, "", "not-a-token", secrets.token_hex(32), 12345, b"bytes"])
def test_is_valid_fails_closed_on_bad_input(sessions: SessionStore, token) -> None:
    sessions.issue(at=NOW)

    assert sessions.is_valid(token, at=NOW) is False


def test_purge_expired_only_removes_past_sessions() -> None:
    storage = InMemoryStorage()
    logger = StructuredLogger()
    sessions = SessionStore(storage, lifetime=timedelta(hours=1), logger=logger)
    old = sessions.issue(at=NOW - timedelta(hours=2))
    fresh = sessions.issue(at=NOW)

    assert sessions.purge_expired(at=NOW) == 1
    assert sessions.purge_expired(at=NOW) == 0
    assert storage.get_session(old.token) is None
    assert sessions.is_valid(fresh.token, at=NOW)
    assert logger.events("sessions_purged")[0]["count"] == 1


def test_purge_running_alongside_issue_keeps_valid_sessions() -> None:
    sessions = SessionStore(InMemoryStorage(), lifetime=timedelta(days=1))
    issued = []

    def issue_many() -> None:
        for _ in range(200):
            issued.append(sessions.issue())

    def purge_many() -> None:
        for _ in range(200):
            sessions.purge_expired()

    workers = [threading.Thread(target=issue_many), threading.Thread(target=purge_many)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert len(issued) == 200
    assert all(sessions.is_valid(session.token) for session in issued)


def test_session_lifetime_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SessionStore(InMemoryStorage(), lifetime=timedelta(0))


def test_issue_logs_only_token_prefix() -> None:
    logger = StructuredLogger()
    sessions = SessionStore(InMemoryStorage(), logger=logger)

    session = sessions.issue()

    entry = logger.events("session_issued")[0]
    assert entry["token_prefix"] == session.token[:8]
    assert session.token not in str(entry)


@pytest.fixture()
def gate(sessions: SessionStore) -> AuthGate:
    return AuthGate(sessions, "parent123")


def test_valid_token_allows_without_secret(gate: AuthGate, sessions: SessionStore) -> None:
    token = sessions.issue().token

    assert gate.authorize(Credentials(token=token)) is AuthDecision.ALLOW


def test_secret_is_trimmed_before_comparison(gate: AuthGate) -> None:
    assert gate.authorize(Credentials(secret="  parent123\t")) is AuthDecision.ALLOW
    assert gate.authorize(Credentials(secret="parent1234")) is AuthDecision.DENY


def test_invalid_token_falls_back_to_secret(gate: AuthGate) -> None:
    credentials = Credentials(token=secrets.token_hex(32), secret="parent123")

    assert gate.authorize(credentials) is AuthDecision.ALLOW


def test_expired_token_falls_back_to_secret(gate: AuthGate, sessions: SessionStore) -> None:
    session = sessions.issue(at=NOW)
    later = session.expires_at + timedelta(days=1)

    assert gate.authorize(Credentials(token=session.token), at=later) is AuthDecision.DENY
    assert gate.authorize(Credentials(token=session.token, secret="parent123"), at=later) is AuthDecision.ALLOW


@pytest.mark.parametrize(
    "credentials",
    [
        Credentials(),
        Credentials(token="", secret=""),
        Credentials(token=secrets.token_hex(32), secret="wrong"),
        Credentials(secret="   "),
    ],
)
def test_deny_when_both_channels_absent_or_wrong(gate: AuthGate, credentials: Credentials) -> None:
    assert gate.authorize(credentials) is AuthDecision.DENY
    with pytest.raises(UnauthorizedError):
        gate.require(credentials)


def test_empty_configured_secret_never_matches(sessions: SessionStore) -> None:
    gate = AuthGate(sessions, "  ")

    assert gate.authorize(Credentials(secret="")) is AuthDecision.DENY
    assert gate.authorize(Credentials(secret="  ")) is AuthDecision.DENY


def test_login_issues_session_for_correct_secret(gate: AuthGate) -> None:
    session = gate.login(" parent123 ")

    assert gate.authorize(Credentials(token=session.token)) is AuthDecision.ALLOW


def test_login_rejects_wrong_secret(gate: AuthGate) -> None:
    with pytest.raises(UnauthorizedError, match="Incorrect password"):
        gate.login("nope")
