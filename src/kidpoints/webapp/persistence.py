"""Persistence and SQLModel definitions for the Kid Points web frontend."""
from __future__ import annotations

import threading
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, case, delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, Session, SQLModel, create_engine, desc, select

from ..exceptions import DuplicateCategoryError, SubjectNotFoundError
from ..models import (
    BalanceChange,
    Category,
    HistoryRemovalPolicy,
    HistoryRow,
    LedgerEntry,
    Session as AuthSessionRecord,
    Subject,
    utcnow,
)
from ..storage import LedgerStorage, SubjectFactory


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
# Timestamps are naive UTC; datetime columns are plain DateTime.
class Kid(SQLModel, table=True):
    # Ids are never reused; retained history still points at removed kids.
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    initials: str
    color: str
    balance: int = 0


class LedgerEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    # No foreign key: retained history may outlive its kid.
    kid_id: int = Field(index=True)
    points: int
    tag: str
    note: str = ""
    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)


class Tag(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    color: str
    is_positive: bool = True


class AuthSession(SQLModel, table=True):
    token: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(sa_type=DateTime, index=True)


# ---------------------------------------------------------------------------
# Database initialisation
# ---------------------------------------------------------------------------
def build_engine(sqlite_file: str) -> Engine:
    return create_engine(
        f"sqlite:///{sqlite_file}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def _subject(kid: Kid) -> Subject:
    return Subject(id=kid.id, name=kid.name, label=kid.initials, color=kid.color, balance=kid.balance)


def _category(tag: Tag) -> Category:
    return Category(id=tag.id, name=tag.name, color=tag.color, is_positive=tag.is_positive)


def _entry(event: LedgerEvent) -> LedgerEntry:
    return LedgerEntry(
        id=event.id,
        subject_id=event.kid_id,
        delta=event.points,
        category=event.tag,
        note=event.note or "",
        created_at=event.timestamp,
    )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
class SqlLedgerStorage(LedgerStorage):
    """:class:`LedgerStorage` on a SQLModel engine.

    Balance changes use ``UPDATE kid SET balance = balance + :delta`` inside
    the same transaction that inserts the ledger row, so the database itself
    prevents lost updates.  Writers in this process are additionally
    serialised so entry timestamps stay ordered.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        removal_policy: HistoryRemovalPolicy = HistoryRemovalPolicy.RETAIN,
    ) -> None:
        super().__init__(removal_policy=removal_policy)
        self.engine = engine
        self._write_lock = threading.Lock()

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # Kids ----------------------------------------------------------------
    def add_subject(self, describe: SubjectFactory) -> Subject:
        with self._write_lock, self._session() as session:
            kid = Kid(name="", initials="", color="")
            session.add(kid)
            session.flush()
            described = describe(kid.id)
            kid.name = described.name
            kid.initials = described.label
            kid.color = described.color
            session.add(kid)
            session.commit()
            return _subject(kid)

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        with self._session() as session:
            kid = session.get(Kid, subject_id)
            return _subject(kid) if kid else None

    def list_subjects(self) -> List[Subject]:
        with self._session() as session:
            return [_subject(kid) for kid in session.exec(select(Kid).order_by(Kid.id)).all()]

    def update_subject(
        self,
        subject_id: int,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Subject]:
        with self._write_lock, self._session() as session:
            kid = session.get(Kid, subject_id)
            if kid is None:
                return None
            if name is not None:
                kid.name = name
            if label is not None:
                kid.initials = label
            if color is not None:
                kid.color = color
            session.add(kid)
            session.commit()
            return _subject(kid)

    def delete_subject(self, subject_id: int) -> bool:
        with self._write_lock, self._session() as session:
            kid = session.get(Kid, subject_id)
            if kid is None:
                return False
            if self.removal_policy is HistoryRemovalPolicy.CASCADE:
                session.exec(delete(LedgerEvent).where(LedgerEvent.kid_id == subject_id))
            session.delete(kid)
            session.commit()
            return True

    # Tags ----------------------------------------------------------------
    def add_category(self, name: str, color: str, is_positive: bool) -> Category:
        with self._write_lock, self._session() as session:
            tag = Tag(name=name, color=color, is_positive=is_positive)
            session.add(tag)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateCategoryError(f"Tag '{name}' already exists.") from exc
            return _category(tag)

    def get_category(self, name: str) -> Optional[Category]:
        with self._session() as session:
            tag = session.exec(select(Tag).where(Tag.name == name)).first()
            return _category(tag) if tag else None

    def list_categories(self) -> List[Category]:
        with self._session() as session:
            return [_category(tag) for tag in session.exec(select(Tag).order_by(Tag.name)).all()]

    def rename_category(self, old: str, new: str) -> Optional[Category]:
        with self._write_lock, self._session() as session:
            tag = session.exec(select(Tag).where(Tag.name == old)).first()
            if tag is None:
                return None
            if new == old:
                return _category(tag)
            tag.name = new
            session.add(tag)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateCategoryError(f"Tag '{new}' already exists.") from exc
            return _category(tag)

    def delete_category(self, name: str) -> bool:
        with self._write_lock, self._session() as session:
            result = session.exec(delete(Tag).where(Tag.name == name))
            session.commit()
            return bool(result.rowcount)

    # Ledger --------------------------------------------------------------
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
        with self._write_lock, self._session() as session:
            kid = session.get(Kid, subject_id)
            if kid is None:
                raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
            latest = session.exec(select(func.max(LedgerEvent.timestamp))).first()
            event = LedgerEvent(
                kid_id=subject_id,
                points=delta,
                tag=category,
                note=note,
                timestamp=max(at, latest) if latest else at,
            )
            session.add(event)
            new_total = Kid.balance + delta
            if floor is not None:
                new_total = case((new_total < floor, floor), else_=new_total)
            session.exec(
                update(Kid)
                .where(Kid.id == subject_id)
                .values(balance=new_total)
                .execution_options(synchronize_session=False)
            )
            session.flush()
            session.refresh(kid)
            # Leaving the block without commit rolls both writes back.
            session.commit()
            return BalanceChange(new_balance=kid.balance, entry=_entry(event), subject=_subject(kid))

    def list_entries(self, *, subject_id: Optional[int] = None, limit: int) -> List[HistoryRow]:
        statement = select(LedgerEvent, Kid).join(Kid, LedgerEvent.kid_id == Kid.id, isouter=True)
        if subject_id is not None:
            statement = statement.where(LedgerEvent.kid_id == subject_id)
        statement = statement.order_by(desc(LedgerEvent.timestamp), desc(LedgerEvent.id)).limit(limit)
        with self._session() as session:
            rows: List[HistoryRow] = []
            for event, kid in session.exec(statement).all():
                if kid is None:
                    rows.append(HistoryRow(entry=_entry(event)))
                else:
                    rows.append(
                        HistoryRow(
                            entry=_entry(event),
                            subject_name=kid.name,
                            subject_label=kid.initials,
                            subject_color=kid.color,
                        )
                    )
            return rows

    # Sessions ------------------------------------------------------------
    def add_session(self, session: AuthSessionRecord) -> None:
        with self._write_lock, self._session() as db:
            db.add(AuthSession(token=session.token, created_at=session.created_at, expires_at=session.expires_at))
            db.commit()

    def get_session(self, token: str) -> Optional[AuthSessionRecord]:
        with self._session() as db:
            record = db.get(AuthSession, token)
            if record is None:
                return None
            return AuthSessionRecord(token=record.token, created_at=record.created_at, expires_at=record.expires_at)

    def delete_sessions_expired(self, at: datetime) -> int:
        with self._write_lock, self._session() as db:
            result = db.exec(delete(AuthSession).where(AuthSession.expires_at <= at))
            db.commit()
            return int(result.rowcount or 0)


__all__ = [
    "AuthSession",
    "Kid",
    "LedgerEvent",
    "SqlLedgerStorage",
    "Tag",
    "build_engine",
    "create_db_and_tables",
]
