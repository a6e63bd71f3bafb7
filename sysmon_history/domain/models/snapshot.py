"""
Historical snapshot models - periodic system metric samples.

One ``historical_system_data`` row per snapshot, with its disks in
``disk_usage_data``. Network counters live on the snapshot row itself.
"""

from typing import List

from sqlalchemy import (
    BigInteger,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sysmon_history.domain.models.base import Base

RECORD_COUNT = "record_count"


class HistoricalSnapshot(Base):
    """
    Stored system metric snapshot.

    ``sqlite_autoincrement`` makes ids strictly increasing and never reused,
    even after the newest rows are pruned or the store is cleared.
    """

    __tablename__ = "historical_system_data"
    __table_args__ = (
        Index("ix_historical_system_data_timestamp_id", "timestamp_ms", "id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Time-ordered snapshot identifier",
    )

    timestamp_ms: Mapped[int] = mapped_column(
        BigInteger, nullable=False, comment="UTC epoch milliseconds"
    )

    cpu_usage: Mapped[float] = mapped_column(Float, nullable=False)
    memory_usage: Mapped[float] = mapped_column(Float, nullable=False)
    memory_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    system_load: Mapped[float] = mapped_column(Float, nullable=False)

    # Network counters at capture time
    bytes_received: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bytes_sent: Mapped[int] = mapped_column(BigInteger, nullable=False)
    packets_received: Mapped[int] = mapped_column(BigInteger, nullable=False)
    packets_sent: Mapped[int] = mapped_column(BigInteger, nullable=False)

    disks: Mapped[List["DiskUsageEntry"]] = relationship(
        "DiskUsageEntry",
        back_populates="snapshot",
        order_by="DiskUsageEntry.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"HistoricalSnapshot(id={self.id}, timestamp_ms={self.timestamp_ms}, "
            f"cpu_usage={self.cpu_usage}, disks={len(self.disks)})"
        )


class DiskUsageEntry(Base):
    """
    Usage of one mount point within a snapshot.

    ``position`` keeps the collector's disk order stable across reads.
    """

    __tablename__ = "disk_usage_data"
    __table_args__ = (
        UniqueConstraint("snapshot_id", "position", name="unique_snapshot_disk"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    snapshot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("historical_system_data.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    mount_point: Mapped[str] = mapped_column(String(1024), nullable=False)
    used_space: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_space: Mapped[int] = mapped_column(BigInteger, nullable=False)
    usage_percent: Mapped[float] = mapped_column(Float, nullable=False)

    snapshot: Mapped["HistoricalSnapshot"] = relationship(
        "HistoricalSnapshot", back_populates="disks"
    )


class StoreCounter(Base):
    """
    Named counters maintained alongside the snapshot table.

    ``record_count`` is updated in the same transaction as every insert and
    delete so the total is readable without a table scan.
    """

    __tablename__ = "store_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
