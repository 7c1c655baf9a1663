"""Read-only projections served without authentication."""

from __future__ import annotations

from typing import Dict, List, Optional

from .exceptions import InvalidInputError, SubjectNotFoundError
from .models import Category, HistoryRow, Subject
from .storage import LedgerStorage

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


class QueryFacade:
    def __init__(self, storage: LedgerStorage, *, default_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._storage = storage
        self._default_limit = default_limit

    def list_subjects(self) -> List[Subject]:
        return self._storage.list_subjects()

    def get_subject(self, subject_id: int) -> Subject:
        subject = self._storage.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
        return subject

    def balances(self) -> Dict[int, int]:
        return {subject.id: subject.balance for subject in self._storage.list_subjects()}

    def list_categories(self) -> List[Category]:
        return self._storage.list_categories()

    def list_history(self, subject_id: Optional[int] = None, limit: Optional[int] = None) -> List[HistoryRow]:
        """Return ledger entries newest first, optionally for one kid only.

        ``limit`` defaults to the facade's default and is clamped to
        :data:`MAX_HISTORY_LIMIT`.
        """

        if limit is None:
            limit = self._default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidInputError(f"Limit must be a positive whole number, got {limit!r}.")
        return self._storage.list_entries(subject_id=subject_id, limit=min(limit, MAX_HISTORY_LIMIT))


__all__ = ["DEFAULT_HISTORY_LIMIT", "MAX_HISTORY_LIMIT", "QueryFacade"]
