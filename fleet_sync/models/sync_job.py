"""
Sync Job Model

Queue table for asynchronous batch syncs. Rows are claimed by the in-process
worker loop or the standalone worker (FOR UPDATE SKIP LOCKED on PostgreSQL).
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Boolean, Integer, Text, JSON, Index
import enum

from ..database import Base


class SyncJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = (
    SyncJobStatus.COMPLETED.value,
    SyncJobStatus.FAILED.value,
    SyncJobStatus.CANCELLED.value,
)


class SyncJob(Base):
    __tablename__ = "sync_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Request
    vehicle_ids = Column(JSON, nullable=False)
    full_sync = Column(Boolean, nullable=False, default=False)
    date_start = Column(Date, nullable=True)
    date_end = Column(Date, nullable=True)
    requested_by = Column(String(36), nullable=True)

    # Processing status
    status = Column(String(20), nullable=False, default=SyncJobStatus.PENDING.value)
    attempts = Column(Integer, default=0)
    max_attempts = Column(Integer, default=3)
    cancel_requested = Column(Boolean, nullable=False, default=False)

    # Progress
    total_count = Column(Integer, nullable=False, default=0)
    processed_count = Column(Integer, nullable=False, default=0)

    # Result tracking
    sync_run_id = Column(String(36), nullable=True)
    result = Column(JSON, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_sync_job_status_created", "status", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def __repr__(self):
        return f"<SyncJob {self.id} status={self.status} {self.processed_count}/{self.total_count}>"
