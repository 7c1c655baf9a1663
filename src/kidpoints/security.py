"""Session tokens and the shared-password gate protecting mutations.

There is exactly one identity: whoever knows the shared password, or holds a
token issued in exchange for it, may change anything.  Tokens carry no user
information.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta
from secrets import token_hex
from typing import Optional

from .exceptions import UnauthorizedError
from .models import AuthDecision, Credentials, Session, utcnow
from .ops import StructuredLogger
from .storage import LedgerStorage

TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2
DEFAULT_SESSION_DAYS = 365


class SessionStore:
    """Issue, persist and validate opaque bearer tokens."""

    def __init__(
        self,
        storage: LedgerStorage,
        *,
        lifetime: timedelta = timedelta(days=DEFAULT_SESSION_DAYS),
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        if lifetime <= timedelta(0):
            raise ValueError("Session lifetime must be positive.")
        self._storage = storage
        self._lifetime = lifetime
        self._logger = logger or StructuredLogger()

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, *, at: Optional[datetime] = None) -> Session:
        """Create and persist a new session expiring ``lifetime`` from now."""

        now = at or utcnow()
        session = Session(token=token_hex(TOKEN_BYTES), created_at=now, expires_at=now + self._lifetime)
        self._storage.add_session(session)
        self._logger.log(
            "session_issued",
            token_prefix=session.token[:8],
            expires_at=session.expires_at.isoformat(),
        )
        return session

    def is_valid(self, token: object, *, at: Optional[datetime] = None) -> bool:
        """Return ``True`` only for a known, unexpired token. Never raises."""

        if not isinstance(token, str) or not token:
            return False
        session = self._storage.get_session(token)
        if session is None:
            return False
        return not session.is_expired(at=at)

    def purge_expired(self, *, at: Optional[datetime] = None) -> int:
        """Delete sessions already past expiry; safe to call at any time."""

        removed = self._storage.delete_sessions_expired(at or utcnow())
        if removed:
            self._logger.log("sessions_purged", count=removed)
        return removed


class AuthGate:
    """Decide whether a mutating request may proceed.

    A valid session token wins; otherwise the shared secret is compared after
    trimming surrounding whitespace.  A present but invalid token still falls
    back to the secret check.
    """

    def __init__(
        self,
        sessions: SessionStore,
        secret: str,
        *,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._sessions = sessions
        self._secret = (secret or "").strip()
        self._logger = logger or StructuredLogger()

    def secret_matches(self, candidate: object) -> bool:
        if not self._secret or not isinstance(candidate, str):
            return False
        return hmac.compare_digest(candidate.strip().encode("utf-8"), self._secret.encode("utf-8"))

    def authorize(self, credentials: Credentials, *, at: Optional[datetime] = None) -> AuthDecision:
        if credentials.token and self._sessions.is_valid(credentials.token, at=at):
            return AuthDecision.ALLOW
        if self.secret_matches(credentials.secret):
            return AuthDecision.ALLOW
        return AuthDecision.DENY

    def require(self, credentials: Credentials, *, at: Optional[datetime] = None) -> None:
        """Raise :class:`UnauthorizedError` unless ``credentials`` are accepted."""

        if self.authorize(credentials, at=at) is AuthDecision.DENY:
            self._logger.log(
                "auth_denied",
                token_present=bool(credentials.token),
                secret_present=bool(credentials.secret),
            )
            raise UnauthorizedError("Unauthorized")

    def login(self, secret: object, *, at: Optional[datetime] = None) -> Session:
        """Exchange the shared secret for a freshly issued session."""

        if not self.secret_matches(secret):
            self._logger.log("auth_denied", token_present=False, secret_present=bool(secret))
            raise UnauthorizedError("Incorrect password")
        return self._sessions.issue(at=at)


__all__ = ["AuthGate", "DEFAULT_SESSION_DAYS", "SessionStore", "TOKEN_LENGTH"]
