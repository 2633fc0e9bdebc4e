# condosync/models.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .domain.parsing import utcnow


class Base(DeclarativeBase):
    pass


class SyncStatus(str, enum.Enum):
    idle = "idle"
    in_progress = "in_progress"
    success = "success"
    error = "error"


SYNC_STATE_ID = 1


class ListingPartition(Base):
    """
    One durable entry per partition key (a building slug, or "_unmatched").
    The records live in payload_json as a JSON array of ListingRecord.
    """
    __tablename__ = "listing_partitions"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    payload_json: Mapped[str] = mapped_column(Text, default="[]")
    record_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SyncStateRow(Base):
    """Singleton (id=1) replication bookkeeping."""
    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # last fully processed ModificationTimestamp; "" = never completed
    watermark: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[SyncStatus] = mapped_column(Enum(SyncStatus), default=SyncStatus.idle, index=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    counts_json: Mapped[str] = mapped_column(Text, default="{}")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class SnapshotBucket(Base):
    """Append-only lifecycle snapshots, one row per calendar month (YYYY-MM)."""
    __tablename__ = "snapshot_buckets"

    year_month: Mapped[str] = mapped_column(String(7), primary_key=True)
    payload_json: Mapped[str] = mapped_column(Text, default="[]")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
