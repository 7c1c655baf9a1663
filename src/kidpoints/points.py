"""Utilities for validating points deltas and display fields."""

from __future__ import annotations

import re
from typing import Any, Optional

from .exceptions import InvalidInputError
from .models import DEFAULT_CATEGORY

LABEL_LENGTH = 2
MAX_NAME_LENGTH = 60
MAX_NOTE_LENGTH = 500

PALETTE = (
    "#FF6B6B",
    "#4ECDC4",
    "#FFD93D",
    "#6C5CE7",
    "#FF8C42",
    "#2ECC71",
    "#E84393",
    "#0984E3",
)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def require_delta(value: Any) -> int:
    """Return ``value`` when it is a non-zero integer, otherwise reject it."""

    # bool is an int subclass; True is not a points amount.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"Points must be a whole number, got {value!r}.")
    if value == 0:
        raise InvalidInputError("Points must not be zero.")
    return value


def normalize_category(value: Optional[str]) -> str:
    """Return the stripped category name, or ``"General"`` when blank."""

    if value is None:
        return DEFAULT_CATEGORY
    if not isinstance(value, str):
        raise InvalidInputError(f"Tag must be text, got {value!r}.")
    name = value.strip()
    return name or DEFAULT_CATEGORY


def normalize_note(value: Optional[str]) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInputError(f"Note must be text, got {value!r}.")
    note = value.strip()
    if len(note) > MAX_NOTE_LENGTH:
        raise InvalidInputError(f"Note must be at most {MAX_NOTE_LENGTH} characters.")
    return note


def require_name(value: Any, *, what: str = "Name") -> str:
    """Return ``value`` stripped, rejecting blank or overly long names."""

    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{what} must not be blank.")
    name = value.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"{what} must be at most {MAX_NAME_LENGTH} characters.")
    return name


def normalize_label(value: Any) -> str:
    """Upper-case initials, which must be exactly two characters."""

    if not isinstance(value, str):
        raise InvalidInputError(f"Initials must be text, got {value!r}.")
    label = value.strip().upper()
    if len(label) != LABEL_LENGTH:
        raise InvalidInputError(f"Initials must be exactly {LABEL_LENGTH} characters.")
    return label


def require_color(value: Any) -> str:
    """Return ``value`` upper-cased when it is a ``#RRGGBB`` colour."""

    if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
        raise InvalidInputError(f"Colour must look like #RRGGBB, got {value!r}.")
    return value.strip().upper()


def derive_label(name: str) -> str:
    """Build two-letter initials from ``name`` (``"Kid 12"`` becomes ``"K1"``)."""

    words = name.split()
    if len(words) >= 2:
        letters = words[0][0].upper() + words[1][0].upper()
    else:
        letters = name.strip().upper()
    # Upper-casing can expand a character ("ß" becomes "SS"), so slice after it.
    return letters[:LABEL_LENGTH].ljust(LABEL_LENGTH, "X")


def palette_color(index: int) -> str:
    """Pick a colour from :data:`PALETTE`, cycling so neighbours differ."""

    return PALETTE[(index - 1) % len(PALETTE)]


__all__ = [
    "LABEL_LENGTH",
    "MAX_NAME_LENGTH",
    "MAX_NOTE_LENGTH",
    "PALETTE",
    "derive_label",
    "normalize_category",
    "normalize_label",
    "normalize_note",
    "palette_color",
    "require_color",
    "require_delta",
    "require_name",
]
