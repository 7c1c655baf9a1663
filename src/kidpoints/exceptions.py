"""Custom exception hierarchy for the Kid Points package."""

from __future__ import annotations


class KidPointsError(Exception):
    """Base class for all Kid Points specific errors."""


class UnauthorizedError(KidPointsError):
    """Raised when a mutating call carries neither a valid token nor the secret."""


class NotFoundError(KidPointsError):
    """Raised when a referenced record does not exist."""


class SubjectNotFoundError(NotFoundError):
    """Raised when a kid lookup fails."""


class CategoryNotFoundError(NotFoundError):
    """Raised when a tag lookup fails."""


class AlreadyExistsError(KidPointsError):
    """Raised when creating a record whose unique key is already taken."""


class DuplicateCategoryError(AlreadyExistsError):
    """Raised when a tag name is already in use by an active tag."""


class InvalidInputError(KidPointsError, ValueError):
    """Raised when input is rejected before anything is written."""
