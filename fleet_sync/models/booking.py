import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, Numeric, Text, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy the vehicle
OCCUPYING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)


class Booking(Base):
    """
    Rental booking over the half-open interval [start_date, end_date).

    Created by the booking service; this subsystem only edits a booking as
    the side effect of a conflict resolution (cancel, shorten, reprice).
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(String(36), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # exclusive
    total_amount = Column(Numeric(10, 2), default=0)
    status = Column(String(20), default=BookingStatus.CONFIRMED.value, nullable=False)

    # Resolution side effects
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    modified_by = Column(String(36), nullable=True)
    modified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="bookings")

    __table_args__ = (
        Index("ix_booking_vehicle_dates", "vehicle_id", "start_date", "end_date"),
        Index("ix_booking_status", "status"),
    )

    @property
    def days(self) -> int:
        return max((self.end_date - self.start_date).days, 0)

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    def snapshot(self) -> dict:
        """JSON-safe copy of the fields a conflict needs to remember"""
        return {
            "id": self.id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "status": self.status,
            "customerId": self.customer_id,
            "totalAmount": float(self.total_amount or 0),
        }

    def __repr__(self):
        return f"<Booking {self.id} {self.start_date}..{self.end_date} {self.status}>"
