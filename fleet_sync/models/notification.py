"""
Notification Model

A logical "notify customer X of Y" event. Delivery (email, SMS, push) is
handled by the notification module, which reads these rows.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON, Index
import enum

from ..database import Base


class NotificationType(str, enum.Enum):
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_MODIFIED = "BOOKING_MODIFIED"
    BOOKING_PRICE_UPDATED = "BOOKING_PRICE_UPDATED"


NOTIFICATION_TITLES = {
    NotificationType.BOOKING_CANCELLED: "Booking Cancelled",
    NotificationType.BOOKING_MODIFIED: "Booking Modified",
    NotificationType.BOOKING_PRICE_UPDATED: "Booking Price Updated",
}


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    customer_id = Column(String(36), nullable=True)
    booking_id = Column(String(36), nullable=True)

    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    notification_metadata = Column("metadata", JSON, nullable=True)

    # Set by the delivery module
    is_delivered = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notification_customer", "customer_id"),
        Index("ix_notification_booking", "booking_id"),
    )

    def __repr__(self):
        return f"<Notification {self.type} customer={self.customer_id}>"
