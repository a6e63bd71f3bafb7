from datetime import datetime, timedelta, timezone

import pytest

from sysmon_history.core.config import Settings
from sysmon_history.domain.services.store import HistoricalMetricsStore

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually advanced clock used in place of utc_now."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_snapshot(timestamp=None, cpu_usage=25.0, disks=None, **overrides):
    """Snapshot fields in the shape the collector sends them."""
    fields = {
        "cpu_usage": cpu_usage,
        "memory_usage": 40.0,
        "memory_total": 16 * 1024**3,
        "system_load": 0.75,
        "disk_usage": disks
        if disks is not None
        else [
            {
                "mount_point": "C:",
                "used_space": 80,
                "total_space": 100,
                "usage_percent": 80.0,
            }
        ],
        "network_traffic": {
            "bytes_received": 1000,
            "bytes_sent": 500,
            "packets_received": 10,
            "packets_sent": 5,
        },
    }
    if timestamp is not None:
        fields["timestamp"] = timestamp
    fields.update(overrides)
    return fields


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        app_env="test",
        database_path=str(tmp_path / "store.db"),
        export_dir=str(tmp_path / "exports"),
        log_file_path=str(tmp_path / "logs" / "app.log"),
        log_format="text",
        retention_enabled=False,
        export_batch_size=2,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(settings, clock):
    store = HistoricalMetricsStore(settings, clock=clock)
    store.init()
    yield store
    store.close()
