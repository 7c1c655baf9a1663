"""Storage boundary for the Kid Points core.

The core never touches a database directly.  Every component receives a
:class:`LedgerStorage` and only uses the operations defined here, which keeps
the ledger logic identical whether records live in process memory
(:class:`InMemoryStorage`, used by tests and demos) or in SQLite through
SQLModel (:class:`kidpoints.webapp.persistence.SqlLedgerStorage`).

The one operation with cross-record atomicity is :meth:`LedgerStorage.apply_delta`:
appending the history entry and moving the balance must both happen or
neither.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .exceptions import DuplicateCategoryError, SubjectNotFoundError
from .models import (
    BalanceChange,
    Category,
    HistoryRemovalPolicy,
    HistoryRow,
    LedgerEntry,
    Session,
    Subject,
)

SubjectFactory = Callable[[int], Subject]


class LedgerStorage(ABC):
    """Durable keyed storage for kids, tags, ledger entries and sessions."""

    def __init__(self, *, removal_policy: HistoryRemovalPolicy = HistoryRemovalPolicy.RETAIN) -> None:
        self.removal_policy = HistoryRemovalPolicy(removal_policy)

    # ------------------------------------------------------------------
    # Kids
    # ------------------------------------------------------------------
    @abstractmethod
    def add_subject(self, describe: SubjectFactory) -> Subject:
        """Allocate a new id, build the kid with ``describe(id)`` and store it."""

    @abstractmethod
    def get_subject(self, subject_id: int) -> Optional[Subject]:
        ...

    @abstractmethod
    def list_subjects(self) -> List[Subject]:
        """Return every kid ordered by ascending id."""

    @abstractmethod
    def update_subject(
        self,
        subject_id: int,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Subject]:
        """Apply the given fields; return ``None`` when the kid is unknown."""

    @abstractmethod
    def delete_subject(self, subject_id: int) -> bool:
        """Remove a kid, honouring :attr:`removal_policy` for its history."""

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------
    @abstractmethod
    def add_category(self, name: str, color: str, is_positive: bool) -> Category:
        """Store a tag, raising :class:`DuplicateCategoryError` on a name clash."""

    @abstractmethod
    def get_category(self, name: str) -> Optional[Category]:
        ...

    @abstractmethod
    def list_categories(self) -> List[Category]:
        """Return the active tags in alphabetical order."""

    @abstractmethod
    def rename_category(self, old: str, new: str) -> Optional[Category]:
        """Rename a tag in place; ``None`` when ``old`` is unknown."""

    @abstractmethod
    def delete_category(self, name: str) -> bool:
        ...

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    @abstractmethod
    def apply_delta(
        self,
        subject_id: int,
        delta: int,
        category: str,
        note: str,
        *,
        at: datetime,
        floor: Optional[int] = None,
    ) -> BalanceChange:
        """Append an entry and add ``delta`` to the balance as one unit of work.

        ``at`` is the requested timestamp; implementations raise it to the
        newest stored entry's timestamp so history stays non-decreasing.  When
        ``floor`` is given the stored balance never drops below it.
        """

    @abstractmethod
    def list_entries(self, *, subject_id: Optional[int] = None, limit: int) -> List[HistoryRow]:
        """Return history newest first, joined with kid display fields."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    @abstractmethod
    def add_session(self, session: Session) -> None:
        ...

    @abstractmethod
    def get_session(self, token: str) -> Optional[Session]:
        ...

    @abstractmethod
    def delete_sessions_expired(self, at: datetime) -> int:
        """Delete sessions with ``expires_at <= at`` and return how many went."""


class InMemoryStorage(LedgerStorage):
    """Process-local storage guarded by a single re-entrant lock."""

    def __init__(self, *, removal_policy: HistoryRemovalPolicy = HistoryRemovalPolicy.RETAIN) -> None:
        super().__init__(removal_policy=removal_policy)
        self._lock = threading.RLock()
        self._subjects: Dict[int, Subject] = {}
        self._categories: Dict[str, Category] = {}
        self._entries: List[LedgerEntry] = []
        self._sessions: Dict[str, Session] = {}
        self._next_subject_id = 1
        self._next_category_id = 1
        self._next_entry_id = 1

    def add_subject(self, describe: SubjectFactory) -> Subject:
        with self._lock:
            subject_id = self._next_subject_id
            subject = replace(describe(subject_id), id=subject_id, balance=0)
            self._subjects[subject_id] = subject
            self._next_subject_id += 1
            return replace(subject)

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        with self._lock:
            subject = self._subjects.get(subject_id)
            return replace(subject) if subject else None

    def list_subjects(self) -> List[Subject]:
        with self._lock:
            return [replace(self._subjects[key]) for key in sorted(self._subjects)]

    def update_subject(
        self,
        subject_id: int,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Subject]:
        with self._lock:
            subject = self._subjects.get(subject_id)
            if subject is None:
                return None
            if name is not None:
                subject.name = name
            if label is not None:
                subject.label = label
            if color is not None:
                subject.color = color
            return replace(subject)

    def delete_subject(self, subject_id: int) -> bool:
        with self._lock:
            if self._subjects.pop(subject_id, None) is None:
                return False
            if self.removal_policy is HistoryRemovalPolicy.CASCADE:
                self._entries = [entry for entry in self._entries if entry.subject_id != subject_id]
            return True

    def add_category(self, name: str, color: str, is_positive: bool) -> Category:
        with self._lock:
            if name in self._categories:
                raise DuplicateCategoryError(f"Tag '{name}' already exists.")
            category = Category(id=self._next_category_id, name=name, color=color, is_positive=is_positive)
            self._categories[name] = category
            self._next_category_id += 1
            return replace(category)

    def get_category(self, name: str) -> Optional[Category]:
        with self._lock:
            category = self._categories.get(name)
            return replace(category) if category else None

    def list_categories(self) -> List[Category]:
        with self._lock:
            return [replace(self._categories[name]) for name in sorted(self._categories)]

    def rename_category(self, old: str, new: str) -> Optional[Category]:
        with self._lock:
            category = self._categories.get(old)
            if category is None:
                return None
            if new == old:
                return replace(category)
            if new in self._categories:
                raise DuplicateCategoryError(f"Tag '{new}' already exists.")
            del self._categories[old]
            category.name = new
            self._categories[new] = category
            return replace(category)

    def delete_category(self, name: str) -> bool:
        with self._lock:
            return self._categories.pop(name, None) is not None

    def apply_delta(
        self,
        subject_id: int,
        delta: int,
        category: str,
        note: str,
        *,
        at: datetime,
        floor: Optional[int] = None,
    ) -> BalanceChange:
        with self._lock:
            subject = self._subjects.get(subject_id)
            if subject is None:
                raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
            if self._entries:
                at = max(at, self._entries[-1].created_at)
            entry = LedgerEntry(
                id=self._next_entry_id,
                subject_id=subject_id,
                delta=delta,
                category=category,
                note=note,
                created_at=at,
            )
            balance = subject.balance + delta
            if floor is not None and balance < floor:
                balance = floor
            # Entry and balance change together under the lock.
            self._entries.append(entry)
            self._next_entry_id += 1
            subject.balance = balance
            return BalanceChange(new_balance=balance, entry=entry, subject=replace(subject))

    def list_entries(self, *, subject_id: Optional[int] = None, limit: int) -> List[HistoryRow]:
        with self._lock:
            entries = self._entries
            if subject_id is not None:
                entries = [entry for entry in entries if entry.subject_id == subject_id]
            newest = sorted(entries, key=lambda entry: (entry.created_at, entry.id), reverse=True)[:limit]
            rows: List[HistoryRow] = []
            for entry in newest:
                subject = self._subjects.get(entry.subject_id)
                if subject is None:
                    rows.append(HistoryRow(entry=entry))
                else:
                    rows.append(
                        HistoryRow(
                            entry=entry,
                            subject_name=subject.name,
                            subject_label=subject.label,
                            subject_color=subject.color,
                        )
                    )
            return rows

    def add_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.token] = session

    def get_session(self, token: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(token)

    def delete_sessions_expired(self, at: datetime) -> int:
        with self._lock:
            expired = [token for token, session in self._sessions.items() if session.expires_at <= at]
            for token in expired:
                self._sessions.pop(token, None)
            return len(expired)


__all__ = ["InMemoryStorage", "LedgerStorage", "SubjectFactory"]
