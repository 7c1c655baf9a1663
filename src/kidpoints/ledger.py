"""The points ledger: signed deltas applied to a kid's running balance."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from .models import BalanceChange, BalancePolicy, utcnow
from .ops import StructuredLogger
from .points import normalize_category, normalize_note, require_delta
from .storage import LedgerStorage


class LedgerService:
    """Apply points changes as one atomic unit of work.

    Each call appends exactly one immutable :class:`~kidpoints.models.LedgerEntry`
    and moves the kid's stored balance by the same amount.  Input is fully
    validated before storage is touched, and the storage's
    :meth:`~kidpoints.storage.LedgerStorage.apply_delta` performs both writes
    together, so concurrent callers never lose an update.

    With :attr:`BalancePolicy.CLAMP_AT_ZERO` the stored balance floors at
    zero while the entry still records the delta that was asked for.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        *,
        policy: BalancePolicy = BalancePolicy.UNCLAMPED,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._storage = storage
        self._policy = BalancePolicy(policy)
        self._clock = clock
        self._logger = logger or StructuredLogger()

    @property
    def policy(self) -> BalancePolicy:
        return self._policy

    def apply_delta(
        self,
        subject_id: int,
        delta: int,
        category: Optional[str] = None,
        note: Optional[str] = None,
    ) -> BalanceChange:
        value = require_delta(delta)
        tag = normalize_category(category)
        memo = normalize_note(note)
        floor = 0 if self._policy is BalancePolicy.CLAMP_AT_ZERO else None
        change = self._storage.apply_delta(subject_id, value, tag, memo, at=self._clock(), floor=floor)
        self._logger.log(
            "delta_applied",
            subject_id=subject_id,
            delta=value,
            category=tag,
            entry_id=change.entry.id,
            balance=change.new_balance,
        )
        return change


__all__ = ["LedgerService"]
