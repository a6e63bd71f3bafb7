import random
from datetime import timedelta

import pytest

from sysmon_history.core.config import Settings
from sysmon_history.core.exceptions import InvalidRangeError
from sysmon_history.domain.services.query import PRESET_WINDOWS, QueryEngine, RangeResult
from sysmon_history.domain.services.store import HistoricalMetricsStore
from tests.conftest import NOW, make_snapshot


def test_range_returns_ascending_timestamp_then_id(store):
    rng = random.Random(7)
    offsets = [rng.randint(0, 30) for _ in range(25)]
    for offset in offsets:
        store.append(make_snapshot(timestamp=NOW + timedelta(minutes=offset)))

    result = store.range()

    keys = [(s.timestamp, s.id) for s in result]
    assert keys == sorted(keys)
    assert len(result) == 25


def test_range_membership_matches_half_open_window(store):
    times = [NOW + timedelta(minutes=m) for m in range(0, 60, 5)]
    for ts in times:
        store.append(make_snapshot(timestamp=ts))

    windows = [(0, 60), (5, 10), (7, 23), (55, 120), (-30, 0), (20, 20)]
    for a, b in windows:
        start, end = NOW + timedelta(minutes=a), NOW + timedelta(minutes=b)
        got = [s.timestamp for s in store.range(start, end)]
        assert got == [ts for ts in times if start <= ts < end]


def test_scenario_window_picks_middle_snapshot(store):
    for minutes, cpu in ((0, 10.0), (10, 50.0), (20, 90.0)):
        store.append(make_snapshot(timestamp=NOW + timedelta(minutes=minutes), cpu_usage=cpu))

    result = store.range(NOW + timedelta(minutes=5), NOW + timedelta(minutes=15))

    assert [s.cpu_usage for s in result] == [50.0]


def test_empty_window_returns_nothing(store):
    store.append(make_snapshot(timestamp=NOW))

    result = store.range(NOW, NOW)

    assert len(result) == 0
    assert result.capped is False


def test_reversed_window_raises(store):
    with pytest.raises(InvalidRangeError) as exc_info:
        store.range(NOW + timedelta(hours=1), NOW)

    assert exc_info.value.status_code == 400


def test_unparseable_bound_raises(store):
    with pytest.raises(InvalidRangeError):
        store.range("yesterday", None)


def test_iso_string_bounds(store):
    store.append(make_snapshot(timestamp=NOW))
    store.append(make_snapshot(timestamp=NOW + timedelta(hours=1)))

    result = store.range("2024-06-01T11:59:59Z", "2024-06-01T12:00:00.001Z")

    assert [s.timestamp for s in result] == [NOW]


def test_open_bounds(store):
    for hours in (0, 1, 2):
        store.append(make_snapshot(timestamp=NOW + timedelta(hours=hours)))

    assert len(store.range(start=NOW + timedelta(hours=1))) == 2
    assert len(store.range(end=NOW + timedelta(hours=1))) == 1


def test_result_is_capped(tmp_path, clock):
    settings = Settings(
        _env_file=None,
        database_path=str(tmp_path / "capped.db"),
        export_dir=str(tmp_path / "exports"),
        retention_enabled=False,
        query_max_records=3,
    )
    with HistoricalMetricsStore(settings, clock=clock) as store:
        for minutes in range(5):
            store.append(make_snapshot(timestamp=NOW + timedelta(minutes=minutes)))

        result = store.range()
        assert result.capped is True
        assert [s.timestamp for s in result] == [NOW + timedelta(minutes=m) for m in range(3)]

        exact = store.range(end=NOW + timedelta(minutes=3))
        assert exact.capped is False
        assert len(exact) == 3


def test_range_result_behaves_like_a_tuple():
    result = RangeResult(["a", "b"], capped=True, skipped=1)

    assert list(result) == ["a", "b"]
    assert result[-1] == "b"
    assert len(result) == 2
    assert "RangeResult(records=2" in repr(result)


@pytest.mark.parametrize("preset", sorted(PRESET_WINDOWS))
def test_preset_windows_end_now(store, preset):
    start, end = store.preset_window(preset)

    assert end == NOW
    assert end - start == PRESET_WINDOWS[preset]


def test_preset_window_queries_recent_data(store):
    store.append(make_snapshot(timestamp=NOW - timedelta(hours=2)))
    recent = store.append(make_snapshot(timestamp=NOW - timedelta(minutes=30)))

    result = store.range(*store.preset_window("1h"))

    assert [s.id for s in result] == [recent]


def test_unknown_preset_raises(store):
    with pytest.raises(InvalidRangeError) as exc_info:
        store.preset_window("90d")

    assert exc_info.value.details["allowed"] == ["1h", "24h", "30d", "7d"]


def test_resolve_window_normalizes_bounds():
    start, end = QueryEngine.resolve_window("2024-06-01T14:00:00+02:00", None)

    assert start == NOW
    assert end is None


@pytest.mark.parametrize(
    "start, end",
    [
        ("0001-01-01T00:00:00+01:00", None),
        (None, "9999-12-31T23:59:59-01:00"),
    ],
)
def test_bound_outside_utc_range_raises(store, start, end):
    with pytest.raises(InvalidRangeError):
        store.range(start, end)
