from datetime import datetime, timedelta, timezone

import pytest

from sysmon_history.core.exceptions import ValidationError
from tests.conftest import NOW, make_snapshot


def _fill_days(store, days=10):
    for day in range(days):
        store.append(make_snapshot(timestamp=NOW - timedelta(days=day, hours=1)))


def test_prune_removes_records_older_than_cutoff(store):
    _fill_days(store)
    cutoff = NOW - timedelta(days=7)
    expected = sum(1 for s in store.range() if s.timestamp < cutoff)

    deleted = store.prune(7)

    assert deleted == expected
    assert all(s.timestamp >= cutoff for s in store.range())


def test_prune_is_idempotent(store):
    _fill_days(store)

    assert store.prune(3) > 0
    assert store.prune(3) == 0


def test_prune_leaves_oldest_within_retention(store):
    _fill_days(store)

    store.prune(7)

    summary = store.summary()
    assert summary.oldest_timestamp >= NOW - timedelta(days=7)
    assert summary.total_records == 7


def test_prune_zero_days_deletes_everything_before_now(store):
    store.append(make_snapshot(timestamp=NOW - timedelta(seconds=1)))
    kept = store.append(make_snapshot(timestamp=NOW))
    future = store.append(make_snapshot(timestamp=NOW + timedelta(minutes=1)))

    assert store.prune(0) == 1
    assert [s.id for s in store.range()] == [kept, future]


def test_prune_follows_the_clock(store, clock):
    store.append(make_snapshot(timestamp=NOW))

    assert store.prune(1) == 0
    clock.advance(days=1, seconds=1)
    assert store.prune(1) == 1


@pytest.mark.parametrize("days", [-1, 1.5, "7", True, None])
def test_prune_rejects_invalid_days(store, days):
    store.append(make_snapshot(timestamp=NOW - timedelta(days=30)))

    with pytest.raises(ValidationError):
        store.prune(days)

    assert store.summary().total_records == 1


def test_prune_on_empty_store(store):
    assert store.prune(7) == 0


@pytest.mark.parametrize("days", [1_000_000, 2**32 - 1])
def test_prune_beyond_earliest_date_deletes_nothing(store, days):
    store.append(make_snapshot(timestamp=NOW - timedelta(days=365)))

    assert store.prune(days) == 0
    assert store.summary().total_records == 1


def test_cutoff_clamps_to_earliest_date(store):
    cutoff = store.retention.cutoff_for(1_000_000)

    assert cutoff == datetime.min.replace(tzinfo=timezone.utc)
