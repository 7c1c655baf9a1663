import random
import threading
from datetime import datetime, timedelta

import pytest

from kidpoints.exceptions import InvalidInputError, SubjectNotFoundError
from kidpoints.ledger import LedgerService
from kidpoints.models import BalancePolicy
from kidpoints.ops import StructuredLogger
from kidpoints.queries import MAX_HISTORY_LIMIT, QueryFacade
from kidpoints.registry import EntityRegistry
from kidpoints.storage import InMemoryStorage


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def kid_id(storage: InMemoryStorage) -> int:
    return EntityRegistry(storage).create_subject("Kid 1").id


def test_award_then_deduct_scenario(storage: InMemoryStorage, kid_id: int) -> None:
    ledger = LedgerService(storage)
    queries = QueryFacade(storage)

    first = ledger.apply_delta(kid_id, 10, "Chores")
    assert first.new_balance == 10
    assert len(queries.list_history()) == 1

    second = ledger.apply_delta(kid_id, -3, "TV")
    assert second.new_balance == 7
    assert queries.get_subject(kid_id).balance == 7

    history = queries.list_history()
    assert [row.entry.delta for row in history] == [-3, 10]
    assert [row.entry.category for row in history] == ["TV", "Chores"]
    assert history[0].subject_name == "Kid 1"


@pytest.mark.parametrize("category", [None, "", "   "])
def test_blank_category_defaults_to_general(storage: InMemoryStorage, kid_id: int, category) -> None:
    change = LedgerService(storage).apply_delta(kid_id, 1, category)

    assert change.entry.category == "General"
    assert change.entry.note == ""


@pytest.mark.parametrize("delta", [0, 1.5, "5", True, None])
def test_invalid_delta_is_rejected_before_writing(storage: InMemoryStorage, kid_id: int, delta) -> None:
    with pytest.raises(InvalidInputError):
        LedgerService(storage).apply_delta(kid_id, delta)

    assert storage.list_entries(limit=10) == []
    assert storage.get_subject(kid_id).balance == 0


def test_unknown_subject_writes_nothing(storage: InMemoryStorage, kid_id: int) -> None:
    with pytest.raises(SubjectNotFoundError):
        LedgerService(storage).apply_delta(kid_id + 100, 5)

    assert storage.list_entries(limit=10) == []


def test_negative_balances_allowed_by_default(storage: InMemoryStorage, kid_id: int) -> None:
    change = LedgerService(storage).apply_delta(kid_id, -4, "TV")

    assert change.new_balance == -4


def test_clamp_policy_floors_balance_but_records_delta(storage: InMemoryStorage, kid_id: int) -> None:
    ledger = LedgerService(storage, policy=BalancePolicy.CLAMP_AT_ZERO)
    ledger.apply_delta(kid_id, 3)

    change = ledger.apply_delta(kid_id, -10, "TV")

    assert change.new_balance == 0
    assert change.entry.delta == -10
    assert ledger.apply_delta(kid_id, 2).new_balance == 2


def test_timestamps_never_go_backwards(storage: InMemoryStorage, kid_id: int) -> None:
    moments = iter([datetime(2024, 1, 2), datetime(2024, 1, 1), datetime(2024, 1, 3)])
    ledger = LedgerService(storage, clock=lambda: next(moments))

    stamps = [ledger.apply_delta(kid_id, 1).entry.created_at for _ in range(3)]

    assert stamps == [datetime(2024, 1, 2), datetime(2024, 1, 2), datetime(2024, 1, 3)]


def test_same_timestamp_orders_by_entry_id(storage: InMemoryStorage, kid_id: int) -> None:
    fixed = datetime(2024, 1, 1)
    ledger = LedgerService(storage, clock=lambda: fixed)
    ledger.apply_delta(kid_id, 10, "Chores")
    ledger.apply_delta(kid_id, -3, "TV")

    assert [row.entry.delta for row in QueryFacade(storage).list_history()] == [-3, 10]


def test_entries_are_immutable(storage: InMemoryStorage, kid_id: int) -> None:
    entry = LedgerService(storage).apply_delta(kid_id, 5).entry

    with pytest.raises(AttributeError):
        entry.delta = 500  # type: ignore[misc]


def test_concurrent_deltas_sum_exactly(storage: InMemoryStorage, kid_id: int) -> None:
    ledger = LedgerService(storage)
    rng = random.Random(7)
    deltas = [rng.choice([-5, -1, 1, 2, 10]) for _ in range(400)]
    chunks = [deltas[index::8] for index in range(8)]

    def worker(chunk) -> None:
        for delta in chunk:
            ledger.apply_delta(kid_id, delta, "Chores")

    threads = [threading.Thread(target=worker, args=(chunk,)) for chunk in chunks]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert storage.get_subject(kid_id).balance == sum(deltas)
    assert len(storage.list_entries(limit=len(deltas) + 1)) == len(deltas)


def test_apply_delta_is_logged(storage: InMemoryStorage, kid_id: int) -> None:
    logger = StructuredLogger()
    LedgerService(storage, logger=logger).apply_delta(kid_id, 4, "Chores", "Dishes")

    entry = logger.events("delta_applied")[0]
    assert entry["subject_id"] == kid_id
    assert entry["delta"] == 4
    assert entry["balance"] == 4


def test_history_filter_and_limit(storage: InMemoryStorage) -> None:
    registry = EntityRegistry(storage)
    ava = registry.create_subject("Ava").id
    ben = registry.create_subject("Ben").id
    ledger = LedgerService(storage)
    for delta in range(1, 6):
        ledger.apply_delta(ava, delta)
        ledger.apply_delta(ben, -delta)
    queries = QueryFacade(storage)

    rows = queries.list_history(subject_id=ava, limit=3)

    assert len(rows) == 3
    assert {row.entry.subject_id for row in rows} == {ava}
    assert [row.entry.delta for row in rows] == [5, 4, 3]
    assert len(queries.list_history()) == 10


def test_history_default_limit(storage: InMemoryStorage, kid_id: int) -> None:
    ledger = LedgerService(storage, clock=lambda: datetime(2024, 1, 1))
    for _ in range(60):
        ledger.apply_delta(kid_id, 1)

    assert len(QueryFacade(storage).list_history()) == 50
    assert len(QueryFacade(storage, default_limit=5).list_history()) == 5


def test_history_limit_is_clamped(storage: InMemoryStorage, kid_id: int, monkeypatch) -> None:
    calls = []
    original = storage.list_entries

    def spy(**kwargs):
        calls.append(kwargs["limit"])
        return original(**kwargs)

    monkeypatch.setattr(storage, "list_entries", spy)
    QueryFacade(storage).list_history(limit=10_000)

    assert calls == [MAX_HISTORY_LIMIT]


@pytest.mark.parametrize("limit", [0, -1, "3", 2.5, True])
def test_history_rejects_bad_limit(storage: InMemoryStorage, limit) -> None:
    with pytest.raises(InvalidInputError):
        QueryFacade(storage).list_history(limit=limit)


def test_lists_are_ordered(storage: InMemoryStorage) -> None:
    registry = EntityRegistry(storage)
    for name in ("Cat", "Ava", "Ben"):
        registry.create_subject(name)
    for name in ("TV", "Chores", "Snacks"):
        registry.create_category(name, "#000000")
    queries = QueryFacade(storage)

    assert [subject.id for subject in queries.list_subjects()] == [1, 2, 3]
    assert [category.name for category in queries.list_categories()] == ["Chores", "Snacks", "TV"]
    assert queries.balances() == {1: 0, 2: 0, 3: 0}


def test_balance_matches_history_sum(storage: InMemoryStorage, kid_id: int) -> None:
    ledger = LedgerService(storage, clock=lambda: datetime(2024, 1, 1) + timedelta(seconds=1))
    for delta in (5, -2, 7, -1):
        ledger.apply_delta(kid_id, delta)

    history = QueryFacade(storage).list_history(subject_id=kid_id)
    assert storage.get_subject(kid_id).balance == sum(row.entry.delta for row in history) == 9


def test_balance_change_snapshots_subject(storage: InMemoryStorage, kid_id: int) -> None:
    change = LedgerService(storage).apply_delta(kid_id, 3)

    assert change.subject.id == kid_id
    assert change.subject.balance == change.new_balance == 3
    LedgerService(storage).apply_delta(kid_id, 4)
    assert change.subject.balance == 3
