import csv
import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import text

from sysmon_history.core.exceptions import ExportCancelledError, ExportError
from sysmon_history.core.timezone import format_iso_ms
from sysmon_history.domain.services.export import BASE_COLUMNS, csv_header, format_number
from tests.conftest import NOW, make_snapshot


class CancelAfter(threading.Event):
    """Event that reports set after a number of checks."""

    def __init__(self, checks):
        super().__init__()
        self.remaining = checks

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


def _read_rows(path):
    with open(path, newline="", encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


def _disk(mount, used=10, total=20, percent=50.0):
    return {"mount_point": mount, "used_space": used, "total_space": total, "usage_percent": percent}


def test_export_rows_match_range(store):
    for minutes in range(5):
        store.append(make_snapshot(timestamp=NOW + timedelta(minutes=minutes), cpu_usage=10.0 + minutes))
    start, end = NOW + timedelta(minutes=1), NOW + timedelta(minutes=4)

    path = store.export(start, end)

    rows = _read_rows(path)
    snapshots = store.range(start, end)
    assert len(rows) == len(snapshots) == 3
    for row, snapshot in zip(rows, snapshots):
        assert int(row["id"]) == snapshot.id
        assert row["timestamp"] == format_iso_ms(snapshot.timestamp)
        assert float(row["cpu_usage"]) == snapshot.cpu_usage
        assert int(row["memory_total"]) == snapshot.memory_total
        assert int(row["bytes_received"]) == snapshot.network_traffic.bytes_received
        assert row["disk_0_mount_point"] == snapshot.disk_usage[0].mount_point
        assert int(row["disk_0_used_space"]) == snapshot.disk_usage[0].used_space


def test_export_of_empty_range_writes_header_only(store):
    store.append(make_snapshot(timestamp=NOW))

    path = store.export(NOW + timedelta(days=1), NOW + timedelta(days=2))

    with open(path, encoding="utf-8") as handle:
        assert handle.read() == ",".join(BASE_COLUMNS) + "\n"


def test_export_of_empty_window_writes_header_only(store):
    path = store.export(NOW, NOW)

    assert Path(path).read_text(encoding="utf-8") == ",".join(BASE_COLUMNS) + "\n"


def test_export_returns_absolute_path_in_export_dir(store, settings):
    path = Path(store.export(None, None))

    assert path.is_absolute()
    assert path.parent == settings.export_path
    assert path.name == "historical_data_20240601T120000000Z.csv"


def test_repeated_exports_do_not_overwrite(store):
    first = store.export(None, None)
    second = store.export(None, None)

    assert first != second
    assert second.endswith("historical_data_20240601T120000000Z-1.csv")


def test_disk_columns_padded_to_widest_snapshot(store):
    store.append(make_snapshot(timestamp=NOW, disks=[_disk("/")]))
    store.append(make_snapshot(timestamp=NOW + timedelta(minutes=1), disks=[_disk("/"), _disk("/home"), _disk("/var")]))
    store.append(make_snapshot(timestamp=NOW + timedelta(minutes=2), disks=[]))

    rows = _read_rows(store.export(None, None))

    assert list(rows[0].keys()) == csv_header(3)
    assert rows[0]["disk_2_mount_point"] == ""
    assert rows[1]["disk_2_mount_point"] == "/var"
    assert rows[2]["disk_0_mount_point"] == ""


def test_numbers_use_plain_decimal_notation(store):
    store.append(make_snapshot(timestamp=NOW, cpu_usage=0.00001, system_load=1e-7))

    content = store.render_csv(None, None)

    assert "e-" not in content.lower()
    row = next(csv.DictReader(content.splitlines()))
    assert row["cpu_usage"] == "0.00001"
    assert row["system_load"] == "0.0000001"


@pytest.mark.parametrize(
    "value, expected",
    [(0.5, "0.5"), (100.0, "100.0"), (1e-05, "0.00001"), (1e20, "100000000000000000000"), (12, "12")],
)
def test_format_number(value, expected):
    assert format_number(value) == expected


def test_mount_points_with_commas_are_quoted(store):
    store.append(make_snapshot(timestamp=NOW, disks=[_disk('D:\\Data, "Archive"')]))

    rows = _read_rows(store.export(None, None))

    assert rows[0]["disk_0_mount_point"] == 'D:\\Data, "Archive"'


def test_invalid_range_raises_export_error(store, settings):
    with pytest.raises(ExportError) as exc_info:
        store.export(NOW, NOW - timedelta(hours=1))

    assert exc_info.value.details["cause"] == "InvalidRangeError"
    assert list(settings.export_path.glob("*")) == []


def test_write_failure_leaves_no_files(store, settings):
    store.append(make_snapshot(timestamp=NOW))

    with patch(
        "sysmon_history.domain.services.export.os.replace",
        side_effect=OSError("No space left on device"),
    ):
        with pytest.raises(ExportError):
            store.export(None, None)

    assert list(settings.export_path.glob("*")) == []


def test_cancel_before_start(store, settings):
    event = threading.Event()
    event.set()

    with pytest.raises(ExportCancelledError) as exc_info:
        store.export(None, None, cancel_event=event)

    assert exc_info.value.status_code == 499
    assert not settings.export_path.exists() or list(settings.export_path.glob("*")) == []


def test_cancel_between_batches_removes_partial_file(store, settings):
    for minutes in range(5):
        store.append(make_snapshot(timestamp=NOW + timedelta(minutes=minutes)))

    with pytest.raises(ExportCancelledError) as exc_info:
        store.export(None, None, cancel_event=CancelAfter(checks=2))

    assert exc_info.value.details["rows_written"] == 2
    assert list(settings.export_path.glob("*")) == []


def test_render_csv_matches_exported_file(store):
    for minutes in range(3):
        store.append(make_snapshot(timestamp=NOW + timedelta(minutes=minutes)))

    path = store.export(None, None)

    assert store.render_csv(None, None) == Path(path).read_text(encoding="utf-8")


def test_export_skips_corrupt_records(store):
    ids = [store.append(make_snapshot(timestamp=NOW + timedelta(minutes=m))) for m in range(3)]
    with store.db.engine.begin() as conn:
        conn.execute(
            text("UPDATE historical_system_data SET memory_usage = -5 WHERE id = :id"),
            {"id": ids[0]},
        )

    rows = _read_rows(store.export(None, None))

    assert [int(r["id"]) for r in rows] == ids[1:]


def test_bound_outside_utc_range_raises_export_error(store, settings):
    with pytest.raises(ExportError) as exc_info:
        store.export("0001-01-01T00:00:00+01:00", None)

    assert exc_info.value.details["cause"] == "InvalidRangeError"
    assert list(settings.export_path.glob("*")) == []
