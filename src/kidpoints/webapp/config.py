"""Configuration constants for the Kid Points web frontend."""
from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..models import BalancePolicy, HistoryRemovalPolicy
from ..queries import DEFAULT_HISTORY_LIMIT
from ..security import DEFAULT_SESSION_DAYS

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}.")
    return value


def _env_removal_policy(name: str) -> HistoryRemovalPolicy:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return HistoryRemovalPolicy.RETAIN
    try:
        return HistoryRemovalPolicy(raw)
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in HistoryRemovalPolicy)
        raise RuntimeError(f"{name} must be one of {choices}, got {raw!r}.") from exc


ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "parent123")
SQLITE_FILE_NAME = os.environ.get("KIDPOINTS_SQLITE", "points.db")
SESSION_LIFETIME = timedelta(days=_env_int("KIDPOINTS_SESSION_DAYS", DEFAULT_SESSION_DAYS))
BALANCE_POLICY = (
    BalancePolicy.CLAMP_AT_ZERO if _env_flag("KIDPOINTS_CLAMP_BALANCES") else BalancePolicy.UNCLAMPED
)
HISTORY_REMOVAL_POLICY = _env_removal_policy("KIDPOINTS_HISTORY_ON_REMOVE")
HISTORY_LIMIT = _env_int("KIDPOINTS_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)
_LOG_FILE = os.environ.get("KIDPOINTS_LOG_FILE", "").strip()
LOG_FILE: Optional[Path] = Path(_LOG_FILE) if _LOG_FILE else None

PASSWORD_HEADER = "X-Password"
SESSION_TOKEN_HEADER = "X-Session-Token"

__all__ = [
    "ADMIN_PASSWORD",
    "BALANCE_POLICY",
    "HISTORY_LIMIT",
    "HISTORY_REMOVAL_POLICY",
    "LOG_FILE",
    "PASSWORD_HEADER",
    "SESSION_LIFETIME",
    "SESSION_TOKEN_HEADER",
    "SQLITE_FILE_NAME",
]
