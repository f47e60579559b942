"""
Conflict Detector

Pure functions that scan a vehicle's bookings, pricing rules and availability
maps and return DetectedConflict values. Nothing here touches the database;
ids are assigned when the orchestrator persists the conflicts.

Intervals are half-open [start_date, end_date): bookings that only touch
(a.end_date == b.start_date) do not overlap, and a booking whose end is not
after its start covers no days and is ignored.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ..models.booking import BookingStatus
from ..models.sync_run import ConflictType
from ..utils.date_ranges import contains, overlaps


@dataclass(frozen=True)
class DetectedConflict:
    vehicle_id: str
    conflict_type: str
    date: date
    description: str
    local_value: Dict[str, Any] = field(default_factory=dict)
    remote_value: Dict[str, Any] = field(default_factory=dict)
    key: str = ""

    @property
    def fingerprint(self) -> str:
        """Stable across runs for the same inconsistency"""
        raw = f"{self.conflict_type}:{self.vehicle_id}:{self.key}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        return {
            "vehicleId": self.vehicle_id,
            "conflictType": self.conflict_type,
            "date": self.date.isoformat(),
            "description": self.description,
            "localValue": self.local_value,
            "remoteValue": self.remote_value,
            "fingerprint": self.fingerprint,
        }


def _covers_days(item) -> bool:
    return item.end_date > item.start_date


def _is_live_booking(booking) -> bool:
    return booking.status != BookingStatus.CANCELLED.value and _covers_days(booking)


def _booking_snapshot(booking) -> dict:
    return {
        "id": str(booking.id),
        "startDate": booking.start_date.isoformat(),
        "endDate": booking.end_date.isoformat(),
        "customerId": booking.customer_id,
        "totalAmount": float(booking.total_amount or 0),
    }


def _rule_snapshot(rule) -> dict:
    return {
        "id": str(rule.id),
        "dailyRate": float(rule.daily_rate),
        "priority": rule.priority or 0,
        "startDate": rule.start_date.isoformat(),
        "endDate": rule.end_date.isoformat(),
    }


def detect_double_bookings(vehicle_id: str, bookings: Iterable) -> List[DetectedConflict]:
    """
    Find every overlapping pair of non-cancelled bookings.

    Sweep over bookings sorted by (start, end, id) with an active set of
    bookings that have not ended by the current start. Each booking is
    compared with the whole active set, so a long booking still conflicts
    with a short one nested several positions later.

    The earlier booking is the local side, the later one the remote side.
    The conflict date is the first overlapping day.
    """
    ordered = sorted(
        (b for b in bookings if _is_live_booking(b)),
        key=lambda b: (b.start_date, b.end_date, str(b.id))
    )

    conflicts = []
    active = []
    for current in ordered:
        active = [
            b for b in active
            if overlaps(b.start_date, b.end_date, current.start_date, current.end_date)
        ]
        for earlier in active:
            conflicts.append(DetectedConflict(
                vehicle_id=vehicle_id,
                conflict_type=ConflictType.DOUBLE_BOOKING.value,
                date=current.start_date,
                description=(
                    f"Overlapping bookings detected between "
                    f"{earlier.start_date.isoformat()} and {current.start_date.isoformat()}"
                ),
                local_value={"booking": _booking_snapshot(earlier)},
                remote_value={"booking": _booking_snapshot(current)},
                key=f"{earlier.id}:{current.id}",
            ))
        active.append(current)
    return conflicts


def applicable_rules(booking, pricing_rules: Iterable) -> list:
    """Rules whose interval fully contains the booking, ordered by id."""
    return sorted(
        (
            rule for rule in pricing_rules
            if _covers_days(rule)
            and contains(rule.start_date, rule.end_date, booking.start_date, booking.end_date)
        ),
        key=lambda r: str(r.id)
    )


def detect_pricing_mismatches(
    vehicle_id: str,
    bookings: Iterable,
    pricing_rules: Iterable
) -> List[DetectedConflict]:
    """One conflict per booking that more than one pricing rule fully contains."""
    pricing_rules = list(pricing_rules)
    ordered = sorted(
        (b for b in bookings if _is_live_booking(b)),
        key=lambda b: (b.start_date, b.end_date, str(b.id))
    )

    conflicts = []
    for booking in ordered:
        candidates = applicable_rules(booking, pricing_rules)
        if len(candidates) < 2:
            continue
        conflicts.append(DetectedConflict(
            vehicle_id=vehicle_id,
            conflict_type=ConflictType.PRICING_MISMATCH.value,
            date=booking.start_date,
            description=f"Multiple pricing rules apply to booking on {booking.start_date.isoformat()}",
            local_value={
                "bookingId": str(booking.id),
                "bookingPrice": float(booking.total_amount or 0),
            },
            remote_value={
                "bookingId": str(booking.id),
                "applicableRules": [_rule_snapshot(rule) for rule in candidates],
            },
            key=f"{booking.id}:" + ",".join(str(rule.id) for rule in candidates),
        ))
    return conflicts


def detect_availability_conflicts(
    vehicle_id: str,
    local_cache: Dict[date, bool],
    remote_source: Optional[Dict[date, bool]]
) -> List[DetectedConflict]:
    """One conflict per day present in both maps with differing values."""
    if not remote_source:
        return []

    conflicts = []
    for day in sorted(set(local_cache) & set(remote_source)):
        local_available = bool(local_cache[day])
        remote_available = bool(remote_source[day])
        if local_available == remote_available:
            continue
        conflicts.append(DetectedConflict(
            vehicle_id=vehicle_id,
            conflict_type=ConflictType.AVAILABILITY_CONFLICT.value,
            date=day,
            description=(
                f"Availability mismatch on {day.isoformat()}: "
                f"local={'available' if local_available else 'booked'}, "
                f"remote={'available' if remote_available else 'booked'}"
            ),
            local_value={"available": local_available},
            remote_value={"available": remote_available},
            key=day.isoformat(),
        ))
    return conflicts


def detect_all(
    vehicle_id: str,
    bookings: Iterable,
    pricing_rules: Iterable,
    local_cache: Optional[Dict[date, bool]] = None,
    remote_source: Optional[Dict[date, bool]] = None
) -> List[DetectedConflict]:
    """Run every detector in a fixed order: bookings, pricing, availability."""
    bookings = list(bookings)
    return (
        detect_double_bookings(vehicle_id, bookings)
        + detect_pricing_mismatches(vehicle_id, bookings, pricing_rules)
        + detect_availability_conflicts(vehicle_id, local_cache or {}, remote_source)
    )
