"""
Conflict Resolution Engine

Applies an operator's decision (`local` or `remote`) to a persisted conflict.

Every resolution happens in a single transaction:
1. Claim the conflict (UPDATE ... WHERE resolved = false; zero rows -> already resolved)
2. Apply the type-specific mutation (booking, price, cache day)
3. Queue the customer notification
4. Write the ConflictResolution audit row

Any failure rolls back all of it.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import (
    AlreadyResolvedError,
    ConflictTypeError,
    FleetSyncError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..models.availability_cache import CacheSource
from ..models.booking import Booking, BookingStatus
from ..models.conflict_resolution import ResolutionSide
from ..models.pricing import PricingRule
from ..models.sync_run import SyncConflict, ConflictType
from ..utils.date_ranges import overlaps
from ..utils.db_helpers import acquire_row_lock, compare_and_set
from ..utils.logging_config import get_logger
from . import notification_service
from .audit_service import record_resolution, list_resolutions, resolution_to_dict
from .availability_cache import AvailabilityCacheStore

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class ConflictResolutionEngine:
    """
    Resolves sync conflicts.

    Usage:
        engine = ConflictResolutionEngine(db)
        result = engine.resolve(conflict_id, "remote", resolved_by=user_id)
    """

    def __init__(self, db: Session, cache: Optional[AvailabilityCacheStore] = None):
        self.db = db
        self.cache = cache or AvailabilityCacheStore(db)
        self._handlers = {
            ConflictType.DOUBLE_BOOKING.value: self._resolve_double_booking,
            ConflictType.PRICING_MISMATCH.value: self._resolve_pricing_mismatch,
            ConflictType.AVAILABILITY_CONFLICT.value: self._resolve_availability_conflict,
        }

    def _get_booking(self, booking_id: Optional[str]) -> Booking:
        if not booking_id:
            raise ValidationError("Conflict does not reference a booking")
        booking = acquire_row_lock(self.db, Booking, Booking.id == booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    # ==================
    # Entry point
    # ==================

    def resolve(
        self,
        conflict_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> dict:
        if not conflict_id:
            raise ValidationError("Conflict ID is required")
        if resolution not in (ResolutionSide.LOCAL.value, ResolutionSide.REMOTE.value):
            raise ValidationError("Resolution must be 'local' or 'remote'")

        conflict = self.db.query(SyncConflict).filter(SyncConflict.id == conflict_id).first()
        if not conflict:
            raise NotFoundError(f"Conflict {conflict_id} not found")
        if conflict.resolved:
            raise AlreadyResolvedError(f"Conflict {conflict_id} is already resolved")

        handler = self._handlers.get(conflict.conflict_type)
        if not handler:
            raise ConflictTypeError(f"Unknown conflict type: {conflict.conflict_type}")

        resolved_at = datetime.utcnow()
        try:
            claimed = compare_and_set(
                self.db,
                SyncConflict,
                SyncConflict.id == conflict_id,
                expected={"resolved": False},
                values={"resolved": True, "resolved_at": resolved_at, "resolved_by": resolved_by},
            )
            if not claimed:
                raise AlreadyResolvedError(f"Conflict {conflict_id} is already resolved")

            resolution_result = handler(conflict, resolution, resolved_by, resolved_at)

            entry = record_resolution(
                self.db,
                conflict,
                resolution=resolution,
                resolved_by=resolved_by,
                resolution_data=resolution_result,
                user_metadata=metadata,
            )
            self.db.commit()
        except FleetSyncError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Failed to resolve conflict {conflict_id}: {e}")
            raise PersistenceError("Failed to resolve conflict", details={"error": str(e)})

        self.db.refresh(conflict)
        structured_logger.conflict_resolved(
            conflict_id=conflict_id,
            conflict_type=conflict.conflict_type,
            resolution=resolution,
            action=resolution_result.get("action", ""),
        )

        return {
            "success": True,
            "conflictId": conflict_id,
            "resolution": resolution,
            "resolutionId": entry.id,
            "resolutionResult": entry.resolution_data,
            "resolvedAt": resolved_at,
        }

    def list_resolutions(self, vehicle_id: Optional[str] = None, limit: int = 10) -> list:
        return [resolution_to_dict(r) for r in list_resolutions(self.db, vehicle_id, limit)]

    # ==================
    # Double booking
    # ==================

    def _ensure_still_overlapping(self, conflict, earlier: Booking, later: Booking):
        """Reject conflicts that an earlier resolution or booking change made moot"""
        cancelled = [
            b.id for b in (earlier, later) if b.status == BookingStatus.CANCELLED.value
        ]
        if cancelled:
            raise ValidationError(
                f"Conflict {conflict.id} no longer holds: booking {', '.join(cancelled)} is cancelled",
                details={"cancelledBookingIds": cancelled},
            )
        if not overlaps(earlier.start_date, earlier.end_date, later.start_date, later.end_date):
            raise ValidationError(
                f"Conflict {conflict.id} no longer holds: bookings {earlier.id} and {later.id} do not overlap",
                details={"bookingIds": [earlier.id, later.id]},
            )

    def _resolve_double_booking(self, conflict, resolution, resolved_by, resolved_at) -> dict:
        earlier_id = (conflict.local_value or {}).get("booking", {}).get("id")
        later_id = (conflict.remote_value or {}).get("booking", {}).get("id")

        earlier = self._get_booking(earlier_id)
        later = self._get_booking(later_id)
        self._ensure_still_overlapping(conflict, earlier, later)

        if resolution == ResolutionSide.LOCAL.value:
            # Keep the earlier booking, cancel the later one
            later.status = BookingStatus.CANCELLED.value
            later.cancellation_reason = f"Cancelled to resolve double booking conflict {conflict.id}"
            later.cancelled_by = resolved_by
            later.cancelled_at = resolved_at

            self.cache.recompute_days(later.vehicle_id, later.start_date, later.end_date)
            notification_service.notify_booking_cancelled(self.db, later, conflict.id)

            logger.info(f"Cancelled booking {later.id}, kept {earlier_id}")
            return {
                "action": "cancelled_conflicting_booking",
                "cancelledBookingId": later.id,
                "keptBookingId": earlier_id,
            }

        # Remote: shorten the earlier booking so it ends before the later one starts
        original_end = earlier.end_date
        original_days = earlier.days
        new_end = later.start_date - timedelta(days=1)
        if original_days <= 0 or new_end <= earlier.start_date or new_end >= original_end:
            raise ValidationError(
                f"Booking {earlier.id} cannot be shortened to end before {later.start_date.isoformat()}",
                details={"bookingId": earlier.id, "newEndDate": new_end.isoformat()},
            )
        new_days = (new_end - earlier.start_date).days

        original_total = to_money(earlier.total_amount or 0)
        daily_rate = original_total / original_days
        new_total = to_money(daily_rate * new_days)
        refund = original_total - new_total

        earlier.end_date = new_end
        earlier.total_amount = new_total
        earlier.modified_by = resolved_by
        earlier.modified_at = resolved_at

        self.cache.recompute_days(earlier.vehicle_id, new_end, original_end)
        notification_service.notify_booking_modified(self.db, earlier, new_end, refund)

        logger.info(f"Shortened booking {earlier.id} to {new_end}, refund {refund}")
        return {
            "action": "modified_first_booking",
            "modifiedBookingId": earlier.id,
            "originalEndDate": original_end,
            "newEndDate": new_end,
            "originalAmount": original_total,
            "newAmount": new_total,
            "refundAmount": refund,
        }

    # ==================
    # Pricing mismatch
    # ==================

    def _resolve_pricing_mismatch(self, conflict, resolution, resolved_by, resolved_at) -> dict:
        booking = self._get_booking((conflict.local_value or {}).get("bookingId"))
        candidate_ids = [
            rule["id"] for rule in (conflict.remote_value or {}).get("applicableRules", [])
        ]

        if resolution == ResolutionSide.LOCAL.value:
            return {
                "action": "kept_booking_price",
                "bookingId": booking.id,
                "price": to_money(booking.total_amount or 0),
                "ignoredRules": candidate_ids,
            }

        if not candidate_ids:
            raise ValidationError("Conflict has no candidate pricing rules")

        rules = self.db.query(PricingRule).filter(PricingRule.id.in_(candidate_ids)).all()
        missing = set(candidate_ids) - {rule.id for rule in rules}
        if missing:
            raise NotFoundError(f"Pricing rules no longer exist: {', '.join(sorted(missing))}")

        # Highest priority wins; equal priority goes to the lowest rule id
        selected = min(rules, key=lambda r: (-(r.priority or 0), str(r.id)))

        old_price = to_money(booking.total_amount or 0)
        new_price = to_money(Decimal(str(selected.daily_rate)) * booking.days)

        booking.total_amount = new_price
        booking.modified_by = resolved_by
        booking.modified_at = resolved_at

        threshold = Decimal(str(settings.price_change_notify_threshold))
        notified = abs(new_price - old_price) > threshold * old_price
        if notified:
            notification_service.notify_price_updated(self.db, booking, old_price, new_price)

        logger.info(f"Repriced booking {booking.id} {old_price} -> {new_price} using rule {selected.id}")
        return {
            "action": "updated_booking_price",
            "bookingId": booking.id,
            "oldPrice": old_price,
            "newPrice": new_price,
            "appliedRule": selected.id,
            "appliedRulePriority": selected.priority or 0,
            "customerNotified": notified,
        }

    # ==================
    # Availability
    # ==================

    def _resolve_availability_conflict(self, conflict, resolution, resolved_by, resolved_at) -> dict:
        if resolution == ResolutionSide.LOCAL.value:
            value, source, action = conflict.local_value, CacheSource.MANUAL_RESOLUTION, "kept_local_availability"
        else:
            value, source, action = conflict.remote_value, CacheSource.REMOTE_SYNC, "used_remote_availability"

        if not isinstance(value, dict) or "available" not in value:
            raise ValidationError("Conflict does not carry an availability value")
        available = bool(value["available"])

        self.cache.upsert_day(conflict.vehicle_id, conflict.date, available, source)
        return {
            "action": action,
            "date": conflict.date,
            "available": available,
        }
