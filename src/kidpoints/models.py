"""Domain models used by the Kid Points package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

DEFAULT_CATEGORY = "General"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime (the storage convention)."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class BalancePolicy(str, Enum):
    """How a negative delta is allowed to move a balance."""

    UNCLAMPED = "unclamped"
    CLAMP_AT_ZERO = "clamp_at_zero"


class HistoryRemovalPolicy(str, Enum):
    """What happens to a kid's ledger entries when the kid is removed."""

    RETAIN = "retain"
    CASCADE = "cascade"


class AuthDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(slots=True)
class Subject:
    """A kid accumulating a points balance."""

    id: int
    name: str
    label: str
    color: str
    balance: int = 0


@dataclass(slots=True)
class Category:
    """A named, coloured activity tag.

    ``is_positive`` is advisory only: it tells the UI whether the tag is
    normally used for awards or deductions and is never checked against the
    sign of a delta.
    """

    id: int
    name: str
    color: str
    is_positive: bool = True


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """Immutable record of one signed balance change."""

    id: int
    subject_id: int
    delta: int
    category: str
    note: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class HistoryRow:
    """A ledger entry joined with the display fields of its kid.

    The kid fields are ``None`` when the kid has since been removed and its
    history was retained.
    """

    entry: LedgerEntry
    subject_name: Optional[str] = None
    subject_label: Optional[str] = None
    subject_color: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BalanceChange:
    """Result of applying a delta: the stored balance, the new entry and the
    subject as it stood when the write committed."""

    new_balance: int
    entry: LedgerEntry
    subject: Subject


@dataclass(frozen=True, slots=True)
class Session:
    """An opaque bearer token issued after a successful password exchange."""

    token: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, *, at: Optional[datetime] = None) -> bool:
        moment = at or utcnow()
        return moment >= self.expires_at


@dataclass(frozen=True, slots=True)
class Credentials:
    """The two parallel credential channels carried by a mutating request."""

    token: Optional[str] = None
    secret: Optional[str] = None


__all__ = [
    "AuthDecision",
    "BalanceChange",
    "BalancePolicy",
    "Category",
    "Credentials",
    "DEFAULT_CATEGORY",
    "HistoryRemovalPolicy",
    "HistoryRow",
    "LedgerEntry",
    "Session",
    "Subject",
    "utcnow",
]
