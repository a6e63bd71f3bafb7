from datetime import timedelta

from tests.conftest import NOW, make_snapshot


def test_summary_of_empty_store(store, settings):
    summary = store.summary()

    assert summary.total_records == 0
    assert summary.oldest_timestamp is None
    assert summary.newest_timestamp is None
    assert summary.database_path == settings.database_path


def test_summary_tracks_appends_and_deletes(store):
    for hours in (5, 1, 3, 8):
        store.append(make_snapshot(timestamp=NOW - timedelta(hours=hours)))

    summary = store.summary()
    assert summary.total_records == store.repository.count() == 4
    assert summary.oldest_timestamp == NOW - timedelta(hours=8)
    assert summary.newest_timestamp == NOW - timedelta(hours=1)

    store.repository.delete_before(NOW - timedelta(hours=4))

    summary = store.summary()
    assert summary.total_records == store.repository.count() == 2
    assert summary.oldest_timestamp == NOW - timedelta(hours=3)

    store.clear()

    summary = store.summary()
    assert summary.total_records == 0
    assert summary.oldest_timestamp is None


def test_summary_serializes_timestamps(store):
    store.append(make_snapshot(timestamp=NOW))

    data = store.summary().model_dump(mode="json")

    assert data["oldest_timestamp"] == "2024-06-01T12:00:00.000Z"
    assert data["newest_timestamp"] == "2024-06-01T12:00:00.000Z"
