"""
Conflict Resolution Log Model

Append-only record of every successful resolution. Rows are never updated
or deleted.
"""
from sqlalchemy import Column, String, DateTime, JSON, Index
from datetime import datetime, date
from decimal import Decimal
import uuid
import enum

from ..database import Base


def _serialize_for_json(obj):
    """Convert non-JSON-serializable types to serializable ones"""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: _serialize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize_for_json(i) for i in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj


class ResolutionSide(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


class ConflictResolution(Base):
    __tablename__ = "conflict_resolutions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    conflict_id = Column(String(36), nullable=False, unique=True)
    conflict_type = Column(String(30), nullable=False)
    vehicle_id = Column(String(36), nullable=False)

    resolved_by = Column(String(36), nullable=True)
    resolution = Column(String(10), nullable=False)

    # What the resolution did (action + affected ids/amounts)
    resolution_data = Column(JSON, nullable=True)

    # Original conflict snapshot and caller-supplied metadata.
    # "metadata" is reserved on declarative classes, hence the attribute name.
    resolution_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_conflict_resolution_vehicle_created", "vehicle_id", "created_at"),
    )

    @classmethod
    def record(cls, db, conflict, resolution: str, resolved_by: str = None,
               resolution_data: dict = None, user_metadata: dict = None):
        """
        Add a resolution row to the session. The caller owns the transaction.
        """
        entry = cls(
            conflict_id=conflict.id,
            conflict_type=conflict.conflict_type,
            vehicle_id=conflict.vehicle_id,
            resolved_by=resolved_by,
            resolution=resolution,
            resolution_data=_serialize_for_json(resolution_data),
            resolution_metadata=_serialize_for_json({
                "originalConflict": conflict.snapshot(),
                "userMetadata": user_metadata or {},
            }),
        )
        db.add(entry)
        return entry

    def __repr__(self):
        return f"<ConflictResolution {self.conflict_type} {self.resolution} by {self.resolved_by}>"
