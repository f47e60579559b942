"""
Availability Cache Model

Daily availability cache per vehicle.
Derived from bookings and always rebuildable, except rows pinned by a
conflict resolution.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Boolean, Integer, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class CacheSource(str, enum.Enum):
    COMPUTED = "COMPUTED"                     # Rebuilt from bookings
    MANUAL_RESOLUTION = "MANUAL_RESOLUTION"   # Operator kept the local value
    REMOTE_SYNC = "REMOTE_SYNC"               # Operator accepted the remote value


# Rows with these sources survive a rebuild unless explicitly overridden
PINNED_SOURCES = (CacheSource.MANUAL_RESOLUTION.value, CacheSource.REMOTE_SYNC.value)


class AvailabilityCacheEntry(Base):
    """
    Daily availability state for each vehicle.

    Used for:
    - Fast availability lookups
    - Availability conflict detection against remote feeds
    """
    __tablename__ = "availability_cache"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)

    available = Column(Boolean, nullable=False, default=True)
    source = Column(String(30), nullable=False, default=CacheSource.COMPUTED.value)

    # Rebuild that last wrote this row (0 for single-day upserts)
    generation = Column(Integer, nullable=False, default=0)

    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    vehicle = relationship("Vehicle", backref="availability_entries")

    __table_args__ = (
        # One entry per vehicle per date
        UniqueConstraint('vehicle_id', 'date', name='uq_availability_vehicle_date'),
        Index('ix_availability_vehicle_date', 'vehicle_id', 'date'),
    )

    @property
    def is_pinned(self) -> bool:
        return self.source in PINNED_SOURCES

    def __repr__(self):
        status = "available" if self.available else "booked"
        return f"<AvailabilityCacheEntry {self.vehicle_id} {self.date} {status} {self.source}>"
