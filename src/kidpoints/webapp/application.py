"""FastAPI frontend for the Kid Points tracker.

The JSON API mirrors the routes the browser client calls.  Reads are open to
everyone; every mutating route accepts either an ``X-Session-Token`` header
holding a token from ``POST /api/auth`` or the shared password in
``X-Password``.  The application object is built by :func:`create_app` around
a :class:`~kidpoints.service.PointsTracker`, so tests can hand in a tracker
backed by :class:`~kidpoints.storage.InMemoryStorage`, while
``uvicorn kidpoints.webapp:app`` gets the SQLite-backed default from
:func:`build_default_app`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictInt

from ..api import ApiExporter
from ..exceptions import (
    AlreadyExistsError,
    InvalidInputError,
    KidPointsError,
    NotFoundError,
    UnauthorizedError,
)
from ..models import Credentials
from ..ops import StructuredLogger
from ..service import PointsTracker
from ..storage import LedgerStorage
from .config import (
    ADMIN_PASSWORD,
    BALANCE_POLICY,
    HISTORY_LIMIT,
    HISTORY_REMOVAL_POLICY,
    LOG_FILE,
    SESSION_LIFETIME,
    SQLITE_FILE_NAME,
)
from .persistence import SqlLedgerStorage, build_engine, create_db_and_tables

exporter = ApiExporter()
router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class KidCreate(BaseModel):
    name: Optional[str] = None
    initials: Optional[str] = None
    color: Optional[str] = None


class KidUpdate(BaseModel):
    name: Optional[str] = None
    initials: Optional[str] = None
    color: Optional[str] = None


class TransactionCreate(BaseModel):
    kid_id: StrictInt
    points: StrictInt
    tag: Optional[str] = None
    note: Optional[str] = None


class TagCreate(BaseModel):
    name: str
    color: str
    is_positive: bool = True


class TagRename(BaseModel):
    name: str


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_tracker(request: Request) -> PointsTracker:
    return request.app.state.tracker


def request_credentials(
    x_session_token: Optional[str] = Header(default=None),
    x_password: Optional[str] = Header(default=None),
) -> Credentials:
    return Credentials(token=x_session_token, secret=x_password)


def authorized_credentials(
    credentials: Credentials = Depends(request_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Credentials:
    """Reject the request before its body is validated unless it is authorised."""

    tracker.gate.require(credentials)
    return credentials


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
@router.post("/auth")
def login(
    x_password: Optional[str] = Header(default=None),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    return exporter.session(tracker.login(x_password or ""))


@router.get("/session/validate")
def validate_session(
    x_session_token: Optional[str] = Header(default=None),
    tracker: PointsTracker = Depends(get_tracker),
):
    if tracker.validate_session(x_session_token):
        return {"valid": True}
    return JSONResponse({"valid": False}, status_code=401)


# ---------------------------------------------------------------------------
# Kids
# ---------------------------------------------------------------------------
@router.get("/kids")
def list_kids(tracker: PointsTracker = Depends(get_tracker)) -> List[Dict[str, Any]]:
    return [exporter.subject(subject) for subject in tracker.list_subjects()]


@router.post("/kids")
def create_kid(
    body: KidCreate,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    subject = tracker.add_subject(credentials, body.name, label=body.initials, color=body.color)
    return {"success": True, "kid": exporter.subject(subject)}


@router.put("/kids/{kid_id}")
def update_kid(
    kid_id: int,
    body: KidUpdate,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    subject = tracker.update_subject(
        credentials,
        kid_id,
        name=body.name,
        label=body.initials,
        color=body.color,
    )
    return {"success": True, "kid": exporter.subject(subject)}


@router.delete("/kids/{kid_id}")
def delete_kid(
    kid_id: int,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    tracker.remove_subject(credentials, kid_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------
@router.post("/transactions")
def add_transaction(
    body: TransactionCreate,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    change = tracker.apply_delta(credentials, body.kid_id, body.points, body.tag, body.note)
    return exporter.balance_change(change)


@router.get("/transactions")
def list_transactions(
    kid_id: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    tracker: PointsTracker = Depends(get_tracker),
) -> List[Dict[str, Any]]:
    return [exporter.history_row(row) for row in tracker.list_history(subject_id=kid_id, limit=limit)]


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
@router.get("/tags")
def list_tags(tracker: PointsTracker = Depends(get_tracker)) -> List[Dict[str, Any]]:
    return [exporter.category(category) for category in tracker.list_categories()]


@router.post("/tags")
def create_tag(
    body: TagCreate,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    category = tracker.create_category(credentials, body.name, body.color, body.is_positive)
    return {"success": True, "tag": exporter.category(category)}


@router.put("/tags/{name}")
def rename_tag(
    name: str,
    body: TagRename,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    category = tracker.rename_category(credentials, name, body.name)
    return {"success": True, "tag": exporter.category(category)}


@router.delete("/tags/{name}")
def delete_tag(
    name: str,
    credentials: Credentials = Depends(authorized_credentials),
    tracker: PointsTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    tracker.remove_category(credentials, name)
    return {"success": True}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
_STATUS_BY_ERROR = (
    (UnauthorizedError, 401),
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (InvalidInputError, 400),
)


def _status_for(exc: KidPointsError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def kidpoints_error_handler(request: Request, exc: KidPointsError) -> JSONResponse:
    status_code = _status_for(exc)
    request.app.state.tracker.logger.log(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        status=status_code,
        error=type(exc).__name__,
    )
    return JSONResponse({"error": str(exc)}, status_code=status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request.app.state.tracker.logger.log(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        status=400,
        error="RequestValidationError",
    )
    return JSONResponse(
        {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------
def create_app(tracker: PointsTracker) -> FastAPI:
    app = FastAPI(title="Kid Points")
    app.state.tracker = tracker
    app.include_router(router)
    app.add_exception_handler(KidPointsError, kidpoints_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    return app


def build_default_storage() -> LedgerStorage:
    engine = build_engine(SQLITE_FILE_NAME)
    create_db_and_tables(engine)
    return SqlLedgerStorage(engine, removal_policy=HISTORY_REMOVAL_POLICY)


def build_default_app() -> FastAPI:
    """Build the SQLite-backed application configured from the environment."""

    tracker = PointsTracker(
        build_default_storage(),
        secret=ADMIN_PASSWORD,
        session_lifetime=SESSION_LIFETIME,
        balance_policy=BALANCE_POLICY,
        history_limit=HISTORY_LIMIT,
        logger=StructuredLogger(path=LOG_FILE),
    )
    tracker.startup()
    return create_app(tracker)


__all__ = [
    "build_default_app",
    "build_default_storage",
    "create_app",
    "exporter",
    "router",
]
