"""Kid Points package: a password-guarded points ledger for households."""

from .api import ApiExporter
from .exceptions import (
    AlreadyExistsError,
    CategoryNotFoundError,
    DuplicateCategoryError,
    InvalidInputError,
    KidPointsError,
    NotFoundError,
    SubjectNotFoundError,
    UnauthorizedError,
)
from .ledger import LedgerService
from .models import (
    AuthDecision,
    BalanceChange,
    BalancePolicy,
    Category,
    Credentials,
    HistoryRemovalPolicy,
    HistoryRow,
    LedgerEntry,
    Session,
    Subject,
)
from .ops import StructuredLogger
from .queries import QueryFacade
from .registry import EntityRegistry
from .security import AuthGate, SessionStore
from .service import PointsTracker
from .storage import InMemoryStorage, LedgerStorage

__all__ = [
    "AlreadyExistsError",
    "ApiExporter",
    "AuthDecision",
    "AuthGate",
    "BalanceChange",
    "BalancePolicy",
    "Category",
    "CategoryNotFoundError",
    "Credentials",
    "DuplicateCategoryError",
    "EntityRegistry",
    "HistoryRemovalPolicy",
    "HistoryRow",
    "InMemoryStorage",
    "InvalidInputError",
    "KidPointsError",
    "LedgerEntry",
    "LedgerService",
    "LedgerStorage",
    "NotFoundError",
    "PointsTracker",
    "QueryFacade",
    "Session",
    "SessionStore",
    "StructuredLogger",
    "Subject",
    "SubjectNotFoundError",
    "UnauthorizedError",
]
