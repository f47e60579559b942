"""
Sync Orchestrator

Drives availability synchronization for a batch of vehicles:
1. Load each vehicle's bookings and pricing rules in the date range
2. Run the conflict detectors
3. Compute per-vehicle metrics (bookings, available days, revenue)
4. Rebuild the availability cache on full sync
5. Persist one SyncRun with per-vehicle rows and one row per conflict

Vehicles are processed independently: a failure on one vehicle rolls back
that vehicle's work and is reported as an `error` entry, the rest of the
batch carries on.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import NotFoundError, PersistenceError, ValidationError
from ..models.booking import Booking, BookingStatus, OCCUPYING_STATUSES
from ..models.pricing import PricingRule
from ..models.sync_run import (
    SyncRun, SyncRunVehicle, SyncConflict, SyncRunStatus, VehicleSyncStatus, NEVER_SYNCED
)
from ..models.vehicle import Vehicle
from ..utils.date_ranges import covered_days, days_between
from ..utils.logging_config import get_logger
from .audit_service import get_latest_vehicle_run
from .availability_cache import AvailabilityCacheStore
from .conflict_detector import DetectedConflict, detect_all
from .remote_availability import RemoteAvailabilityClient, get_remote_availability_client

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

UPCOMING_BOOKINGS_LIMIT = 10

DateRange = Tuple[date, date]
RemoteAvailability = Dict[str, Dict[date, bool]]


@dataclass
class VehicleSyncResult:
    vehicle_id: str
    vehicle_name: Optional[str] = None
    sync_status: str = VehicleSyncStatus.SYNCED.value
    booking_count: int = 0
    available_days: int = 0
    revenue: Decimal = Decimal("0")
    cache_rebuilt: bool = False
    error: Optional[str] = None
    conflicts: List[DetectedConflict] = field(default_factory=list)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)


def default_date_range(today: Optional[date] = None) -> DateRange:
    today = today or date.today()
    return today, today + timedelta(days=settings.sync_default_horizon_days)


def validate_sync_request(
    vehicle_ids: List[str],
    date_range: Optional[DateRange] = None,
    max_vehicles: Optional[int] = None
) -> Tuple[List[str], DateRange]:
    """
    Normalize a sync request.

    Returns de-duplicated vehicle ids (order kept) and the effective range.
    Raises ValidationError on an empty batch, an oversized batch, or a bad range.
    """
    cleaned = []
    for vehicle_id in vehicle_ids or []:
        vehicle_id = (vehicle_id or "").strip()
        if vehicle_id and vehicle_id not in cleaned:
            cleaned.append(vehicle_id)

    if not cleaned:
        raise ValidationError("Vehicle IDs are required")

    if max_vehicles is not None and len(cleaned) > max_vehicles:
        raise ValidationError(
            f"At most {max_vehicles} vehicles can be synced per request; use a sync job for larger batches",
            details={"vehicleCount": len(cleaned), "maxVehicles": max_vehicles},
        )

    start, end = date_range or default_date_range()
    if end <= start:
        raise ValidationError("dateRange.end must be after dateRange.start")
    if (end - start).days > settings.sync_max_range_days:
        raise ValidationError(f"dateRange may span at most {settings.sync_max_range_days} days")

    return cleaned, (start, end)


def _conflict_payload(conflict: SyncConflict) -> dict:
    return {
        "id": conflict.id,
        "syncRunId": conflict.sync_run_id,
        "vehicleId": conflict.vehicle_id,
        "conflictType": conflict.conflict_type,
        "date": conflict.date,
        "description": conflict.description,
        "localValue": conflict.local_value,
        "remoteValue": conflict.remote_value,
        "fingerprint": conflict.fingerprint,
        "resolved": bool(conflict.resolved),
        "resolvedAt": conflict.resolved_at,
        "resolvedBy": conflict.resolved_by,
    }


def _booking_payload(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "customerId": booking.customer_id,
        "startDate": booking.start_date,
        "endDate": booking.end_date,
        "status": booking.status,
        "totalAmount": float(booking.total_amount or 0),
    }


class SyncOrchestrator:
    """
    Batch availability sync for fleet vehicles.

    Usage:
        orchestrator = SyncOrchestrator(db)
        result = orchestrator.sync_vehicles(["v1", "v2"], full_sync=True)
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[AvailabilityCacheStore] = None,
        remote_client: Optional[RemoteAvailabilityClient] = None
    ):
        self.db = db
        self.cache = cache or AvailabilityCacheStore(db)
        self.remote_client = remote_client if remote_client is not None else get_remote_availability_client()

    # ==================
    # Loading
    # ==================

    def _load_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
        if not vehicle:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        return vehicle

    def _load_bookings(self, vehicle_id: str, start: date, end: date) -> List[Booking]:
        return self.db.query(Booking).filter(
            Booking.vehicle_id == vehicle_id,
            Booking.status != BookingStatus.CANCELLED.value,
            Booking.start_date < end,
            Booking.end_date > start
        ).order_by(Booking.start_date, Booking.end_date, Booking.id).all()

    def _load_pricing_rules(self, vehicle_id: str, start: date, end: date) -> List[PricingRule]:
        return self.db.query(PricingRule).filter(
            PricingRule.vehicle_id == vehicle_id,
            PricingRule.start_date < end,
            PricingRule.end_date > start
        ).order_by(PricingRule.id).all()

    def _remote_map(
        self,
        vehicle_id: str,
        start: date,
        end: date,
        remote_availability: Optional[RemoteAvailability]
    ) -> Optional[Dict[date, bool]]:
        """Caller-supplied map first, then the configured feed"""
        if remote_availability and vehicle_id in remote_availability:
            return {
                day: available
                for day, available in remote_availability[vehicle_id].items()
                if start <= day < end
            }
        if self.remote_client:
            return self.remote_client.fetch_availability(vehicle_id, start, end)
        return None

    # ==================
    # Per-vehicle sync
    # ==================

    def _sync_vehicle(
        self,
        vehicle_id: str,
        start: date,
        end: date,
        full_sync: bool,
        remote_availability: Optional[RemoteAvailability]
    ) -> VehicleSyncResult:
        vehicle = self._load_vehicle(vehicle_id)
        bookings = self._load_bookings(vehicle_id, start, end)
        pricing_rules = self._load_pricing_rules(vehicle_id, start, end)

        local_cache = self.cache.get_availability_map(vehicle_id, start, end)
        remote_map = self._remote_map(vehicle_id, start, end, remote_availability)

        conflicts = detect_all(vehicle_id, bookings, pricing_rules, local_cache, remote_map)

        occupying = [b for b in bookings if b.is_occupying and b.days > 0]
        booked_days = covered_days(((b.start_date, b.end_date) for b in occupying), start, end)

        result = VehicleSyncResult(
            vehicle_id=vehicle_id,
            vehicle_name=vehicle.display_name,
            sync_status=VehicleSyncStatus.CONFLICT.value if conflicts else VehicleSyncStatus.SYNCED.value,
            booking_count=len(occupying),
            available_days=days_between(start, end) - booked_days,
            revenue=sum((Decimal(b.total_amount or 0) for b in occupying), Decimal("0")),
            conflicts=conflicts,
        )

        if full_sync:
            self.cache.rebuild_range(vehicle_id, start, end, bookings)
            self.db.commit()
            result.cache_rebuilt = True

        return result

    # ==================
    # Batch sync
    # ==================

    def sync_vehicles(
        self,
        vehicle_ids: List[str],
        full_sync: bool = False,
        date_range: Optional[DateRange] = None,
        remote_availability: Optional[RemoteAvailability] = None,
        triggered_by: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None
    ) -> dict:
        """
        Sync a batch of vehicles and persist the run.

        Returns the sync payload: syncRunId, vehicleAvailability, conflicts,
        updatedCount, syncedAt, stats, cancelled.
        """
        vehicle_ids, (start, end) = validate_sync_request(vehicle_ids, date_range)
        started = time.time()
        synced_at = datetime.utcnow()

        results: List[VehicleSyncResult] = []
        cancelled = False

        for index, vehicle_id in enumerate(vehicle_ids):
            if should_cancel and should_cancel():
                logger.info(f"Sync cancelled after {index}/{len(vehicle_ids)} vehicles")
                cancelled = True
                break

            try:
                result = self._sync_vehicle(vehicle_id, start, end, full_sync, remote_availability)
            except Exception as e:
                self.db.rollback()
                logger.exception(f"Error syncing vehicle {vehicle_id}: {e}")
                result = VehicleSyncResult(
                    vehicle_id=vehicle_id,
                    sync_status=VehicleSyncStatus.ERROR.value,
                    error=str(e),
                )
            results.append(result)

            if progress_callback:
                progress_callback(index + 1, len(vehicle_ids))

        run, conflict_rows = self._persist_run(
            results, vehicle_ids, start, end, full_sync, triggered_by, synced_at
        )

        stats = {
            "totalVehicles": len(results),
            "successfulSyncs": sum(1 for r in results if r.sync_status == VehicleSyncStatus.SYNCED.value),
            "conflictCount": len(conflict_rows),
            "errorCount": sum(1 for r in results if r.sync_status == VehicleSyncStatus.ERROR.value),
        }

        structured_logger.sync_completed(
            sync_run_id=run.id,
            status=run.status,
            vehicle_count=len(results),
            conflict_count=stats["conflictCount"],
            error_count=stats["errorCount"],
            duration_ms=int((time.time() - started) * 1000),
        )

        return {
            "success": True,
            "syncRunId": run.id,
            "status": run.status,
            "vehicleAvailability": [
                {
                    "vehicleId": r.vehicle_id,
                    "vehicleName": r.vehicle_name,
                    "lastUpdated": synced_at,
                    "syncStatus": r.sync_status,
                    "conflictCount": r.conflict_count,
                    "bookingCount": r.booking_count,
                    "availableDays": r.available_days,
                    "revenue": float(r.revenue),
                    "error": r.error,
                }
                for r in results
            ],
            "conflicts": [_conflict_payload(c) for c in conflict_rows],
            "updatedCount": run.updated_count,
            "syncedAt": synced_at,
            "stats": stats,
            "cancelled": cancelled,
        }

    def _persist_run(
        self,
        results: List[VehicleSyncResult],
        vehicle_ids: List[str],
        start: date,
        end: date,
        full_sync: bool,
        triggered_by: Optional[str],
        synced_at: datetime
    ) -> Tuple[SyncRun, List[SyncConflict]]:
        total_conflicts = sum(r.conflict_count for r in results)
        run = SyncRun(
            id=str(uuid.uuid4()),
            vehicle_ids=vehicle_ids,
            status=(
                SyncRunStatus.COMPLETED_WITH_CONFLICTS.value if total_conflicts
                else SyncRunStatus.COMPLETED.value
            ),
            conflict_count=total_conflicts,
            updated_count=sum(1 for r in results if r.cache_rebuilt),
            full_sync=full_sync,
            date_start=start,
            date_end=end,
            triggered_by=triggered_by,
            created_at=synced_at,
        )

        conflict_rows = []
        try:
            self.db.add(run)
            for r in results:
                self.db.add(SyncRunVehicle(
                    sync_run_id=run.id,
                    vehicle_id=r.vehicle_id,
                    vehicle_name=r.vehicle_name,
                    sync_status=r.sync_status,
                    conflict_count=r.conflict_count,
                    booking_count=r.booking_count,
                    available_days=r.available_days,
                    revenue=r.revenue,
                    error=r.error,
                    created_at=synced_at,
                ))
                for detected in r.conflicts:
                    row = SyncConflict(
                        id=str(uuid.uuid4()),
                        sync_run_id=run.id,
                        vehicle_id=detected.vehicle_id,
                        conflict_type=detected.conflict_type,
                        date=detected.date,
                        description=detected.description,
                        local_value=detected.local_value,
                        remote_value=detected.remote_value,
                        fingerprint=detected.fingerprint,
                        resolved=False,
                        created_at=synced_at,
                    )
                    self.db.add(row)
                    conflict_rows.append(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to persist sync run: {e}")
            raise PersistenceError("Failed to persist sync run", details={"error": str(e)})

        return run, conflict_rows

    def record_failed_run(
        self,
        vehicle_ids: List[str],
        error: str,
        full_sync: bool = False,
        date_range: Optional[DateRange] = None,
        triggered_by: Optional[str] = None
    ) -> SyncRun:
        """
        Persist an ERROR run for a batch that failed outside per-vehicle isolation.

        Every vehicle gets an `error` row so status queries see this run as
        the vehicle's latest.
        """
        start, end = date_range or (None, None)
        failed_at = datetime.utcnow()
        vehicle_ids = list(vehicle_ids or [])
        run = SyncRun(
            vehicle_ids=vehicle_ids,
            status=SyncRunStatus.ERROR.value,
            full_sync=full_sync,
            date_start=start,
            date_end=end,
            triggered_by=triggered_by,
            error=error[:2000],
            created_at=failed_at,
        )
        run.vehicles = [
            SyncRunVehicle(
                vehicle_id=vehicle_id,
                sync_status=VehicleSyncStatus.ERROR.value,
                error=error[:2000],
                created_at=failed_at,
            )
            for vehicle_id in vehicle_ids
        ]
        self.db.add(run)
        self.db.commit()
        logger.error(f"Sync run {run.id} failed: {error}")
        return run

    # ==================
    # Queries
    # ==================

    def get_sync_status(self, vehicle_id: str) -> dict:
        """Last sync of a vehicle plus its upcoming confirmed/active bookings."""
        if not vehicle_id:
            raise ValidationError("Vehicle ID is required")

        vehicle = self._load_vehicle(vehicle_id)
        latest = get_latest_vehicle_run(self.db, vehicle_id)

        upcoming = self.db.query(Booking).filter(
            Booking.vehicle_id == vehicle_id,
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.start_date >= date.today()
        ).order_by(Booking.start_date, Booking.id).limit(UPCOMING_BOOKINGS_LIMIT).all()

        return {
            "vehicleId": vehicle.id,
            "vehicleName": vehicle.display_name,
            "lastSync": latest.created_at if latest else None,
            "lastSyncRunId": latest.sync_run_id if latest else None,
            "syncStatus": latest.sync_run.status if latest else NEVER_SYNCED,
            "vehicleSyncStatus": latest.sync_status if latest else None,
            "upcomingBookings": len(upcoming),
            "upcomingBookingList": [_booking_payload(b) for b in upcoming],
            "nextBooking": _booking_payload(upcoming[0]) if upcoming else None,
        }

    def list_conflicts(
        self,
        vehicle_id: Optional[str] = None,
        resolved: Optional[bool] = None,
        limit: int = 50
    ) -> List[dict]:
        query = self.db.query(SyncConflict)
        if vehicle_id:
            query = query.filter(SyncConflict.vehicle_id == vehicle_id)
        if resolved is not None:
            query = query.filter(SyncConflict.resolved == resolved)
        rows = query.order_by(
            SyncConflict.created_at.desc(),
            SyncConflict.date,
            SyncConflict.id
        ).limit(limit).all()
        return [_conflict_payload(c) for c in rows]
