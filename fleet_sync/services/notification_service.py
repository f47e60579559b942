"""
Notification events for booking changes made by conflict resolution.

Only the event is written here; the notification module delivers it.
Rows are added to the caller's transaction, so a rolled-back resolution
leaves no notification behind.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.notification import Notification, NotificationType, NOTIFICATION_TITLES
from ..models.conflict_resolution import _serialize_for_json

logger = logging.getLogger(__name__)


def notify_customer(
    db: Session,
    customer_id: Optional[str],
    notification_type: NotificationType,
    message: str,
    booking_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> Optional[Notification]:
    """Queue a notification for a customer. Bookings without a customer are skipped."""
    if not customer_id:
        logger.info(f"Booking {booking_id} has no customer, skipping {notification_type.value} notification")
        return None

    notification = Notification(
        customer_id=customer_id,
        booking_id=booking_id,
        type=notification_type.value,
        title=NOTIFICATION_TITLES[notification_type],
        message=message,
        notification_metadata=_serialize_for_json(metadata or {}),
    )
    db.add(notification)
    logger.info(f"Queued {notification_type.value} notification for customer {customer_id}")
    return notification


def notify_booking_cancelled(db: Session, booking, conflict_id: str) -> Optional[Notification]:
    return notify_customer(
        db,
        booking.customer_id,
        NotificationType.BOOKING_CANCELLED,
        "Your booking has been cancelled due to a scheduling conflict. "
        "Please contact us for alternatives.",
        booking_id=booking.id,
        metadata={"bookingId": booking.id, "conflictId": conflict_id},
    )


def notify_booking_modified(db: Session, booking, new_end_date, refund_amount) -> Optional[Notification]:
    return notify_customer(
        db,
        booking.customer_id,
        NotificationType.BOOKING_MODIFIED,
        f"Your booking has been modified to end on {new_end_date.isoformat()}. "
        f"A refund of ${refund_amount:.2f} will be processed.",
        booking_id=booking.id,
        metadata={
            "bookingId": booking.id,
            "newEndDate": new_end_date,
            "refundAmount": refund_amount,
        },
    )


def notify_price_updated(db: Session, booking, old_price, new_price) -> Optional[Notification]:
    return notify_customer(
        db,
        booking.customer_id,
        NotificationType.BOOKING_PRICE_UPDATED,
        f"Your booking price has been updated from ${old_price:.2f} to ${new_price:.2f}.",
        booking_id=booking.id,
        metadata={"bookingId": booking.id, "oldPrice": old_price, "newPrice": new_price},
    )
