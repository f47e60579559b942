"""
Sync Run Models

One SyncRun per orchestrator invocation, with an itemized SyncRunVehicle row
per vehicle and one SyncConflict row per detected inconsistency.

Conflicts are first-class rows (not a blob on the run) so two operators can
resolve conflicts from the same run without touching a shared record.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Date, DateTime, Boolean, Integer, Numeric, Text, JSON,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class SyncRunStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_CONFLICTS = "COMPLETED_WITH_CONFLICTS"
    ERROR = "ERROR"


class VehicleSyncStatus(str, enum.Enum):
    SYNCED = "synced"
    CONFLICT = "conflict"
    ERROR = "error"


class ConflictType(str, enum.Enum):
    DOUBLE_BOOKING = "double_booking"
    PRICING_MISMATCH = "pricing_mismatch"
    AVAILABILITY_CONFLICT = "availability_conflict"


# Returned by status queries for vehicles with no run yet
NEVER_SYNCED = "NEVER_SYNCED"


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    vehicle_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(30), nullable=False, default=SyncRunStatus.COMPLETED.value)

    conflict_count = Column(Integer, nullable=False, default=0)
    updated_count = Column(Integer, nullable=False, default=0)

    full_sync = Column(Boolean, nullable=False, default=False)
    date_start = Column(Date, nullable=True)
    date_end = Column(Date, nullable=True)

    triggered_by = Column(String(36), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    vehicles = relationship("SyncRunVehicle", back_populates="sync_run", cascade="all, delete-orphan")
    conflicts = relationship("SyncConflict", back_populates="sync_run", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<SyncRun {self.id} {self.status} conflicts={self.conflict_count}>"


class SyncRunVehicle(Base):
    """Per-vehicle outcome of a sync run"""
    __tablename__ = "sync_run_vehicles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_run_id = Column(String(36), ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False)
    vehicle_id = Column(String(36), nullable=False)
    vehicle_name = Column(String(250), nullable=True)

    sync_status = Column(String(20), nullable=False)
    conflict_count = Column(Integer, nullable=False, default=0)
    booking_count = Column(Integer, nullable=False, default=0)
    available_days = Column(Integer, nullable=False, default=0)
    revenue = Column(Numeric(12, 2), nullable=False, default=0)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sync_run = relationship("SyncRun", back_populates="vehicles")

    __table_args__ = (
        Index("ix_sync_run_vehicle_vehicle_created", "vehicle_id", "created_at"),
        Index("ix_sync_run_vehicle_run", "sync_run_id"),
    )

    def __repr__(self):
        return f"<SyncRunVehicle {self.vehicle_id} {self.sync_status}>"


class SyncConflict(Base):
    """
    A detected inconsistency awaiting an operator decision.

    Created only by the sync orchestrator. The only mutation afterwards is the
    resolved=false -> true transition, done with a conditional UPDATE.
    """
    __tablename__ = "sync_conflicts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_run_id = Column(String(36), ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False)
    vehicle_id = Column(String(36), nullable=False)

    conflict_type = Column(String(30), nullable=False)
    date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)

    local_value = Column(JSON, nullable=True)
    remote_value = Column(JSON, nullable=True)

    # Stable identity of the inconsistency across runs
    fingerprint = Column(String(64), nullable=False)

    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sync_run = relationship("SyncRun", back_populates="conflicts")

    __table_args__ = (
        Index("ix_sync_conflict_vehicle_resolved", "vehicle_id", "resolved"),
        Index("ix_sync_conflict_run", "sync_run_id"),
        Index("ix_sync_conflict_fingerprint", "fingerprint"),
    )

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "syncRunId": self.sync_run_id,
            "vehicleId": self.vehicle_id,
            "conflictType": self.conflict_type,
            "date": self.date.isoformat() if self.date else None,
            "description": self.description,
            "localValue": self.local_value,
            "remoteValue": self.remote_value,
            "fingerprint": self.fingerprint,
        }

    def __repr__(self):
        return f"<SyncConflict {self.conflict_type} {self.vehicle_id} {self.date} resolved={self.resolved}>"
