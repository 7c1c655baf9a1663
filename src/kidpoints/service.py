"""High level service wiring the points tracker components together."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .ledger import LedgerService
from .models import (
    BalanceChange,
    BalancePolicy,
    Category,
    Credentials,
    HistoryRow,
    Session,
    Subject,
    utcnow,
)
from .ops import StructuredLogger
from .queries import DEFAULT_HISTORY_LIMIT, QueryFacade
from .registry import EntityRegistry
from .security import DEFAULT_SESSION_DAYS, AuthGate, SessionStore
from .storage import LedgerStorage


class PointsTracker:
    """Guard every mutation with the :class:`AuthGate` and serve reads openly.

    Mutating methods take the caller's :class:`~kidpoints.models.Credentials`
    first and raise :class:`~kidpoints.exceptions.UnauthorizedError` before
    any validation or storage work happens.
    """

    __slots__ = (
        "_storage",
        "_logger",
        "_sessions",
        "_gate",
        "_registry",
        "_ledger",
        "_queries",
    )

    def __init__(
        self,
        storage: LedgerStorage,
        *,
        secret: str,
        session_lifetime: timedelta = timedelta(days=DEFAULT_SESSION_DAYS),
        balance_policy: BalancePolicy = BalancePolicy.UNCLAMPED,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._storage = storage
        self._logger = logger or StructuredLogger()
        self._sessions = SessionStore(storage, lifetime=session_lifetime, logger=self._logger)
        self._gate = AuthGate(self._sessions, secret, logger=self._logger)
        self._registry = EntityRegistry(storage, logger=self._logger)
        self._ledger = LedgerService(storage, policy=balance_policy, clock=clock, logger=self._logger)
        self._queries = QueryFacade(storage, default_limit=history_limit)

    @property
    def storage(self) -> LedgerStorage:
        return self._storage

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def gate(self) -> AuthGate:
        return self._gate

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    @property
    def queries(self) -> QueryFacade:
        return self._queries

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def login(self, secret: object) -> Session:
        return self._gate.login(secret)

    def validate_session(self, token: object) -> bool:
        return self._sessions.is_valid(token)

    def purge_expired_sessions(self) -> int:
        return self._sessions.purge_expired()

    def startup(self) -> None:
        """Housekeeping run once when the application boots."""

        self._sessions.purge_expired()
        self._registry.seed_defaults()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_subject(
        self,
        credentials: Credentials,
        name: Optional[str] = None,
        *,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Subject:
        self._gate.require(credentials)
        return self._registry.create_subject(name, label=label, color=color)

    def update_subject(
        self,
        credentials: Credentials,
        subject_id: int,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Subject:
        self._gate.require(credentials)
        return self._registry.update_subject(subject_id, name=name, label=label, color=color)

    def remove_subject(self, credentials: Credentials, subject_id: int) -> None:
        self._gate.require(credentials)
        self._registry.remove_subject(subject_id)

    def apply_delta(
        self,
        credentials: Credentials,
        subject_id: int,
        delta: int,
        category: Optional[str] = None,
        note: Optional[str] = None,
    ) -> BalanceChange:
        self._gate.require(credentials)
        return self._ledger.apply_delta(subject_id, delta, category, note)

    def create_category(
        self,
        credentials: Credentials,
        name: str,
        color: str,
        is_positive: bool = True,
    ) -> Category:
        self._gate.require(credentials)
        return self._registry.create_category(name, color, is_positive)

    def rename_category(self, credentials: Credentials, old: str, new: str) -> Category:
        self._gate.require(credentials)
        return self._registry.rename_category(old, new)

    def remove_category(self, credentials: Credentials, name: str) -> None:
        self._gate.require(credentials)
        self._registry.remove_category(name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_subjects(self) -> List[Subject]:
        return self._queries.list_subjects()

    def get_subject(self, subject_id: int) -> Subject:
        return self._queries.get_subject(subject_id)

    def list_categories(self) -> List[Category]:
        return self._queries.list_categories()

    def list_history(self, subject_id: Optional[int] = None, limit: Optional[int] = None) -> List[HistoryRow]:
        return self._queries.list_history(subject_id=subject_id, limit=limit)


__all__ = ["PointsTracker"]
