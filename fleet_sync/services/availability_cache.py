"""
Availability Cache Store

Manages the daily availability cache for vehicles.

A day is unavailable when a confirmed or active booking covers it. Rows are
rewritten in place with a dialect-native upsert, so a rebuild never leaves
the range without rows. Rows pinned by a conflict resolution
(MANUAL_RESOLUTION, REMOTE_SYNC) are skipped unless the caller overrides.

All methods write inside the caller's transaction; nothing here commits.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.availability_cache import AvailabilityCacheEntry, CacheSource, PINNED_SOURCES
from ..models.booking import Booking, OCCUPYING_STATUSES
from ..utils.date_ranges import iter_days
from ..utils.db_helpers import dialect_insert

logger = logging.getLogger(__name__)

# Rows per INSERT statement (keeps SQLite under its bound-parameter limit)
UPSERT_CHUNK_SIZE = 100


def occupied_days(bookings: Iterable, start: date, end: date) -> set:
    """Days in [start, end) covered by a confirmed/active booking."""
    days = set()
    for booking in bookings:
        if booking.status not in OCCUPYING_STATUSES:
            continue
        if booking.end_date <= booking.start_date:
            continue
        days.update(iter_days(max(booking.start_date, start), min(booking.end_date, end)))
    return days


class AvailabilityCacheStore:
    """
    Per-vehicle, per-day availability cache.

    Key responsibilities:
    - Rebuild a date range from bookings (idempotent, upsert-in-place)
    - Override single days on conflict resolution
    - Serve availability maps to the sync orchestrator and API
    """

    def __init__(self, db: Session):
        self.db = db

    def _next_generation(self, vehicle_id: str) -> int:
        current = self.db.query(func.max(AvailabilityCacheEntry.generation)).filter(
            AvailabilityCacheEntry.vehicle_id == vehicle_id
        ).scalar()
        return (current or 0) + 1

    def _pinned_days(self, vehicle_id: str, start: date, end: date) -> set:
        rows = self.db.query(AvailabilityCacheEntry.date).filter(
            AvailabilityCacheEntry.vehicle_id == vehicle_id,
            AvailabilityCacheEntry.date >= start,
            AvailabilityCacheEntry.date < end,
            AvailabilityCacheEntry.source.in_(PINNED_SOURCES)
        ).all()
        return {row[0] for row in rows}

    def rebuild_range(
        self,
        vehicle_id: str,
        start: date,
        end: date,
        bookings: Iterable,
        override_pinned: bool = False
    ) -> int:
        """
        Recompute availability for every day in [start, end).

        Returns the number of rows written (pinned days that were preserved
        are not counted).
        """
        if end <= start:
            return 0

        bookings = list(bookings)
        booked = occupied_days(bookings, start, end)
        preserved = set() if override_pinned else self._pinned_days(vehicle_id, start, end)
        generation = self._next_generation(vehicle_id)
        now = datetime.utcnow()

        rows = [
            {
                "id": str(uuid.uuid4()),
                "vehicle_id": vehicle_id,
                "date": day,
                "available": day not in booked,
                "source": CacheSource.COMPUTED.value,
                "generation": generation,
                "last_updated": now,
            }
            for day in iter_days(start, end)
        ]

        insert = dialect_insert(self.db)
        for offset in range(0, len(rows), UPSERT_CHUNK_SIZE):
            stmt = insert(AvailabilityCacheEntry).values(rows[offset:offset + UPSERT_CHUNK_SIZE])
            stmt = stmt.on_conflict_do_update(
                index_elements=["vehicle_id", "date"],
                set_={
                    "available": stmt.excluded.available,
                    "source": stmt.excluded.source,
                    "generation": stmt.excluded.generation,
                    "last_updated": stmt.excluded.last_updated,
                },
                # Only COMPUTED rows are replaced unless pinned rows are overridden
                where=None if override_pinned else (
                    AvailabilityCacheEntry.source == CacheSource.COMPUTED.value
                ),
            )
            self.db.execute(stmt)

        written = len(rows) - len(preserved)
        logger.info(
            f"Rebuilt availability for vehicle {vehicle_id} {start}..{end}: "
            f"{written} rows, {len(booked)} booked, {len(preserved)} pinned kept, generation={generation}"
        )
        return written

    def recompute_days(self, vehicle_id: str, start: date, end: date) -> int:
        """
        Rebuild [start, end) from the vehicle's current bookings.

        Used after a booking mutation; pending ORM changes are flushed first
        so the new booking state is what gets read.
        """
        if end <= start:
            return 0
        self.db.flush()
        bookings = self.db.query(Booking).filter(
            Booking.vehicle_id == vehicle_id,
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.start_date < end,
            Booking.end_date > start
        ).all()
        return self.rebuild_range(vehicle_id, start, end, bookings)

    def upsert_day(
        self,
        vehicle_id: str,
        day: date,
        available: bool,
        source: str = CacheSource.COMPUTED.value
    ) -> None:
        """Set one day's value. Last write wins per (vehicle_id, date)."""
        source = source.value if isinstance(source, CacheSource) else source
        now = datetime.utcnow()

        insert = dialect_insert(self.db)
        stmt = insert(AvailabilityCacheEntry).values(
            id=str(uuid.uuid4()),
            vehicle_id=vehicle_id,
            date=day,
            available=available,
            source=source,
            generation=0,
            last_updated=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["vehicle_id", "date"],
            set_={
                "available": stmt.excluded.available,
                "source": stmt.excluded.source,
                "last_updated": stmt.excluded.last_updated,
            },
        )
        self.db.execute(stmt)
        logger.info(f"Cache day {vehicle_id} {day} set available={available} source={source}")

    def get_range(
        self,
        vehicle_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> Dict[date, AvailabilityCacheEntry]:
        query = self.db.query(AvailabilityCacheEntry).filter(
            AvailabilityCacheEntry.vehicle_id == vehicle_id
        )
        if start:
            query = query.filter(AvailabilityCacheEntry.date >= start)
        if end:
            query = query.filter(AvailabilityCacheEntry.date < end)

        # Core upserts bypass the identity map; reload rows that are already loaded
        entries = query.order_by(AvailabilityCacheEntry.date).populate_existing().all()
        return {entry.date: entry for entry in entries}

    def get_availability_map(self, vehicle_id: str, start: date, end: date) -> Dict[date, bool]:
        return {day: entry.available for day, entry in self.get_range(vehicle_id, start, end).items()}

    def list_entries(self, vehicle_id: str, start: date, end: date) -> List[AvailabilityCacheEntry]:
        return list(self.get_range(vehicle_id, start, end).values())
