"""Kid Points web application package.

``app`` is built on first access so importing the package never touches the
database; ``uvicorn kidpoints.webapp:app`` triggers the build.
"""
from __future__ import annotations

from typing import Any, List

from fastapi import FastAPI

from . import application as _application
from . import persistence
from .application import build_default_app, build_default_storage, create_app

_APP: FastAPI | None = None

__all__: List[str] = [
    "app",
    "build_default_app",
    "build_default_storage",
    "create_app",
    "persistence",
]


def __getattr__(name: str) -> Any:
    global _APP
    if name == "app":
        if _APP is None:
            _APP = build_default_app()
        return _APP
    if hasattr(persistence, name):
        return getattr(persistence, name)
    return getattr(_application, name)


def __dir__() -> List[str]:
    return sorted(set(globals()) | set(__all__))
