"""Kids and tags: the mutable records the ledger refers to."""

from __future__ import annotations

from typing import Optional

from .exceptions import CategoryNotFoundError, SubjectNotFoundError
from .models import Category, Subject
from .ops import StructuredLogger
from .points import derive_label, normalize_label, palette_color, require_color, require_name
from .storage import LedgerStorage

DEFAULT_SUBJECTS = (
    ("Kid 1", "K1", "#FF6B6B"),
    ("Kid 2", "K2", "#4ECDC4"),
)

DEFAULT_CATEGORIES = (
    ("TV", "#9B59B6", False),
    ("Snacks", "#E67E22", False),
    ("Chores", "#27AE60", True),
    ("Finish Food", "#3498DB", True),
    ("Clean Up", "#1ABC9C", True),
)


class EntityRegistry:
    """CRUD over kids and tags.

    Unknown ids and names always raise a :class:`~kidpoints.exceptions.NotFoundError`
    subclass rather than silently doing nothing.
    """

    def __init__(self, storage: LedgerStorage, *, logger: Optional[StructuredLogger] = None) -> None:
        self._storage = storage
        self._logger = logger or StructuredLogger()

    # ------------------------------------------------------------------
    # Kids
    # ------------------------------------------------------------------
    def create_subject(
        self,
        name: Optional[str] = None,
        *,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Subject:
        """Add a kid with zero balance, filling in any display defaults."""

        chosen_name = require_name(name) if name is not None else None
        chosen_label = normalize_label(label) if label is not None else None
        chosen_color = require_color(color) if color is not None else None

        def describe(subject_id: int) -> Subject:
            final_name = chosen_name or f"Kid {subject_id}"
            return Subject(
                id=subject_id,
                name=final_name,
                label=chosen_label or derive_label(final_name),
                color=chosen_color or palette_color(subject_id),
            )

        subject = self._storage.add_subject(describe)
        self._logger.log("subject_created", subject_id=subject.id, name=subject.name)
        return subject

    def get_subject(self, subject_id: int) -> Subject:
        subject = self._storage.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
        return subject

    def update_subject(
        self,
        subject_id: int,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Subject:
        """Change any of the display fields; omitted fields are left alone."""

        fields = {}
        if name is not None:
            fields["name"] = require_name(name)
        if label is not None:
            fields["label"] = normalize_label(label)
        if color is not None:
            fields["color"] = require_color(color)
        if not fields:
            return self.get_subject(subject_id)
        subject = self._storage.update_subject(subject_id, **fields)
        if subject is None:
            raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
        self._logger.log("subject_updated", subject_id=subject_id, fields=sorted(fields))
        return subject

    def rename_subject(self, subject_id: int, name: str) -> Subject:
        return self.update_subject(subject_id, name=name)

    def restyle_subject(
        self,
        subject_id: int,
        *,
        color: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Subject:
        return self.update_subject(subject_id, color=color, label=label)

    def remove_subject(self, subject_id: int) -> None:
        """Remove a kid; its history follows the storage's removal policy."""

        if not self._storage.delete_subject(subject_id):
            raise SubjectNotFoundError(f"Kid {subject_id} does not exist.")
        self._logger.log(
            "subject_removed",
            subject_id=subject_id,
            history=self._storage.removal_policy.value,
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------
    def create_category(self, name: str, color: str, is_positive: bool = True) -> Category:
        category = self._storage.add_category(
            require_name(name, what="Tag name"),
            require_color(color),
            bool(is_positive),
        )
        self._logger.log("category_created", name=category.name, is_positive=category.is_positive)
        return category

    def get_category(self, name: str) -> Category:
        category = self._storage.get_category(name)
        if category is None:
            raise CategoryNotFoundError(f"Tag '{name}' does not exist.")
        return category

    def rename_category(self, old: str, new: str) -> Category:
        """Rename a tag; existing history keeps the name it was recorded with."""

        category = self._storage.rename_category(old, require_name(new, what="Tag name"))
        if category is None:
            raise CategoryNotFoundError(f"Tag '{old}' does not exist.")
        self._logger.log("category_renamed", old=old, new=category.name)
        return category

    def remove_category(self, name: str) -> None:
        if not self._storage.delete_category(name):
            raise CategoryNotFoundError(f"Tag '{name}' does not exist.")
        self._logger.log("category_removed", name=name)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------
    def seed_defaults(self) -> bool:
        """Populate the starter kids and tags when the store is empty.

        Kids and tags are seeded independently, so removing every tag does
        not bring the kids back.  Returns ``True`` when anything was added.
        """

        seeded = False
        if not self._storage.list_subjects():
            for name, label, color in DEFAULT_SUBJECTS:
                self.create_subject(name, label=label, color=color)
            seeded = True
        if not self._storage.list_categories():
            for name, color, is_positive in DEFAULT_CATEGORIES:
                self.create_category(name, color, is_positive)
            seeded = True
        if seeded:
            self._logger.log("defaults_seeded")
        return seeded


__all__ = ["DEFAULT_CATEGORIES", "DEFAULT_SUBJECTS", "EntityRegistry"]
