"""
Conflict Resolution Engine Tests

Tests cover:
- Double booking: cancel the later booking (local) / shorten the earlier one (remote)
- Pricing mismatch: keep price (local) / apply highest-priority rule (remote)
- Availability conflict: pin the chosen value on a single cache day
- Exactly-once resolution and rollback on failure
- Input validation errors
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from fleet_sync.exceptions import (
    AlreadyResolvedError,
    ConflictTypeError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from fleet_sync.models import (
    AvailabilityCacheEntry,
    Booking,
    CacheSource,
    ConflictResolution,
    ConflictType,
    Notification,
    NotificationType,
    SyncConflict,
)
from fleet_sync.services.availability_cache import AvailabilityCacheStore
from fleet_sync.services.conflict_resolution import ConflictResolutionEngine, to_money
from fleet_sync.services.sync_orchestrator import SyncOrchestrator


def d(day):
    return date(2030, 1, day)


RANGE = (d(1), d(21))


def sync_conflicts(db_session, vehicle, conflict_type, **kwargs):
    """Run a sync and return the persisted conflicts of one type"""
    result = SyncOrchestrator(db_session).sync_vehicles([vehicle.id], date_range=RANGE, **kwargs)
    return [c for c in result["conflicts"] if c["conflictType"] == conflict_type]


def fetch_booking(db_session, booking_id):
    return db_session.query(Booking).filter(Booking.id == booking_id).populate_existing().one()


class TestDoubleBookingResolution:
    """Tests for double booking resolutions"""

    def test_local_cancels_later_booking(self, db_session, make_vehicle, make_booking):
        """Keeping local cancels the later booking, frees its days and notifies the customer"""
        vehicle = make_vehicle()
        earlier = make_booking(vehicle, d(1), d(5), total=400, customer_id="customer-a")
        later = make_booking(vehicle, d(3), d(7), total=400, customer_id="customer-b")
        SyncOrchestrator(db_session).sync_vehicles([vehicle.id], full_sync=True, date_range=RANGE)
        conflict = db_session.query(SyncConflict).one()

        result = ConflictResolutionEngine(db_session).resolve(conflict.id, "local", resolved_by="manager-1")

        assert result["success"] is True
        assert result["resolutionResult"] == {
            "action": "cancelled_conflicting_booking",
            "cancelledBookingId": later.id,
            "keptBookingId": earlier.id,
        }

        cancelled = fetch_booking(db_session, later.id)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == "manager-1"
        assert conflict.id in cancelled.cancellation_reason
        assert fetch_booking(db_session, earlier.id).status == "confirmed"

        availability = AvailabilityCacheStore(db_session).get_availability_map(vehicle.id, d(1), d(8))
        assert [day for day, free in sorted(availability.items()) if not free] == [d(1), d(2), d(3), d(4)]

        notification = db_session.query(Notification).one()
        assert notification.customer_id == "customer-b"
        assert notification.type == NotificationType.BOOKING_CANCELLED.value
        assert notification.booking_id == later.id

        db_session.refresh(conflict)
        assert conflict.resolved is True
        assert conflict.resolved_by == "manager-1"

    def test_remote_shortens_earlier_booking(self, db_session, make_vehicle, make_booking):
        """900 over 9 days shortened to 7 days leaves 700 and a 200 refund"""
        vehicle = make_vehicle()
        earlier = make_booking(vehicle, d(1), d(10), total=900)
        make_booking(vehicle, d(9), d(12), total=300)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote", resolved_by="manager-1")

        data = result["resolutionResult"]
        assert data["action"] == "modified_first_booking"
        assert data["modifiedBookingId"] == earlier.id
        assert data["originalEndDate"] == "2030-01-10"
        assert data["newEndDate"] == "2030-01-08"
        assert data["originalAmount"] == 900.0
        assert data["newAmount"] == 700.0
        assert data["refundAmount"] == 200.0

        modified = fetch_booking(db_session, earlier.id)
        assert modified.end_date == d(8)
        assert modified.total_amount == Decimal("700.00")
        assert modified.modified_by == "manager-1"

        notification = db_session.query(Notification).one()
        assert notification.type == NotificationType.BOOKING_MODIFIED.value
        assert notification.notification_metadata["refundAmount"] == 200.0

    def test_remote_cannot_shorten_to_nothing(self, db_session, make_vehicle, make_booking):
        """The later booking starting the day after the earlier one leaves no days to keep"""
        vehicle = make_vehicle()
        earlier = make_booking(vehicle, d(1), d(5), total=400)
        make_booking(vehicle, d(2), d(6), total=400)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]

        with pytest.raises(ValidationError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")

        assert fetch_booking(db_session, earlier.id).end_date == d(5)
        stored = db_session.query(SyncConflict).populate_existing().one()
        assert stored.resolved is False
        assert db_session.query(ConflictResolution).count() == 0

    def test_missing_booking(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        later = make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]
        db_session.delete(later)
        db_session.commit()

        with pytest.raises(NotFoundError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

    def test_moot_conflict_rejected(self, db_session, make_vehicle, make_booking):
        """A conflict whose booking an earlier resolution cancelled is left untouched"""
        vehicle = make_vehicle()
        first = make_booking(vehicle, d(1), d(20), total=1900, customer_id="customer-a")
        second = make_booking(vehicle, d(5), d(15), total=1000, customer_id="customer-b")
        third = make_booking(vehicle, d(10), d(18), total=800, customer_id="customer-c")
        conflicts = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)
        by_pair = {
            (c["localValue"]["booking"]["id"], c["remoteValue"]["booking"]["id"]): c["id"]
            for c in conflicts
        }
        engine = ConflictResolutionEngine(db_session)

        engine.resolve(by_pair[(first.id, second.id)], "local")
        with pytest.raises(ValidationError) as exc:
            engine.resolve(by_pair[(second.id, third.id)], "remote")

        assert exc.value.details == {"cancelledBookingIds": [second.id]}
        moot = fetch_booking(db_session, second.id)
        assert moot.status == "cancelled"
        assert moot.end_date == d(15)
        assert moot.total_amount == Decimal("1000.00")
        assert [n.type for n in db_session.query(Notification).all()] == [
            NotificationType.BOOKING_CANCELLED.value
        ]
        stored = db_session.query(SyncConflict).filter(
            SyncConflict.id == by_pair[(second.id, third.id)]
        ).populate_existing().one()
        assert stored.resolved is False

    def test_no_longer_overlapping_rejected(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        earlier = make_booking(vehicle, d(1), d(5), total=400)
        later = make_booking(vehicle, d(3), d(7), total=400)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]
        later.start_date = d(5)
        db_session.commit()

        with pytest.raises(ValidationError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        assert fetch_booking(db_session, later.id).status == "confirmed"
        assert fetch_booking(db_session, earlier.id).end_date == d(5)
        assert db_session.query(ConflictResolution).count() == 0


class TestPricingResolution:
    """Tests for pricing mismatch resolutions"""

    def test_remote_applies_highest_priority_lowest_id(self, db_session, make_vehicle, make_booking, make_rule):
        """Equal priorities are broken by the lowest rule id"""
        vehicle = make_vehicle()
        booking = make_booking(vehicle, d(5), d(8), total=300)
        make_rule(vehicle, d(1), d(20), 200, priority=5, rule_id="rule-b")
        make_rule(vehicle, d(1), d(20), 110, priority=5, rule_id="rule-a")
        make_rule(vehicle, d(1), d(20), 50, priority=1, rule_id="rule-0")
        conflict = sync_conflicts(db_session, vehicle, ConflictType.PRICING_MISMATCH.value)[0]

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")

        data = result["resolutionResult"]
        assert data["appliedRule"] == "rule-a"
        assert data["appliedRulePriority"] == 5
        assert data["oldPrice"] == 300.0
        assert data["newPrice"] == 330.0
        # Exactly 10% is not above the notification threshold
        assert data["customerNotified"] is False
        assert db_session.query(Notification).count() == 0
        assert fetch_booking(db_session, booking.id).total_amount == Decimal("330.00")

    def test_remote_notifies_on_large_change(self, db_session, make_vehicle, make_booking, make_rule):
        vehicle = make_vehicle()
        booking = make_booking(vehicle, d(5), d(8), total=300)
        make_rule(vehicle, d(1), d(20), 120, priority=2)
        make_rule(vehicle, d(1), d(20), 90, priority=1)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.PRICING_MISMATCH.value)[0]

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")

        assert result["resolutionResult"]["newPrice"] == 360.0
        assert result["resolutionResult"]["customerNotified"] is True
        notification = db_session.query(Notification).one()
        assert notification.type == NotificationType.BOOKING_PRICE_UPDATED.value
        assert notification.booking_id == booking.id

    def test_local_keeps_price(self, db_session, make_vehicle, make_booking, make_rule):
        vehicle = make_vehicle()
        booking = make_booking(vehicle, d(5), d(8), total=300)
        first = make_rule(vehicle, d(1), d(20), 120)
        second = make_rule(vehicle, d(1), d(20), 90)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.PRICING_MISMATCH.value)[0]

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        assert result["resolutionResult"] == {
            "action": "kept_booking_price",
            "bookingId": booking.id,
            "price": 300.0,
            "ignoredRules": sorted([first.id, second.id]),
        }
        assert fetch_booking(db_session, booking.id).total_amount == Decimal("300.00")
        assert db_session.query(Notification).count() == 0

    def test_deleted_rule(self, db_session, make_vehicle, make_booking, make_rule):
        vehicle = make_vehicle()
        make_booking(vehicle, d(5), d(8), total=300)
        make_rule(vehicle, d(1), d(20), 120)
        doomed = make_rule(vehicle, d(1), d(20), 90)
        conflict = sync_conflicts(db_session, vehicle, ConflictType.PRICING_MISMATCH.value)[0]
        db_session.delete(doomed)
        db_session.commit()

        with pytest.raises(NotFoundError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")


class TestAvailabilityResolution:
    """Tests for availability conflict resolutions"""

    def _setup(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(2), d(4))
        SyncOrchestrator(db_session).sync_vehicles([vehicle.id], full_sync=True, date_range=RANGE)
        conflict = sync_conflicts(
            db_session, vehicle, ConflictType.AVAILABILITY_CONFLICT.value,
            remote_availability={vehicle.id: {d(2): True}},
        )[0]
        return vehicle, conflict

    def _snapshot(self, db_session, vehicle):
        rows = db_session.query(AvailabilityCacheEntry).filter(
            AvailabilityCacheEntry.vehicle_id == vehicle.id
        ).populate_existing().all()
        return {r.date: (r.available, r.source) for r in rows}

    def test_remote_overrides_only_target_day(self, db_session, make_vehicle, make_booking):
        vehicle, conflict = self._setup(db_session, make_vehicle, make_booking)
        before = self._snapshot(db_session, vehicle)

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")

        after = self._snapshot(db_session, vehicle)
        assert result["resolutionResult"] == {
            "action": "used_remote_availability",
            "date": "2030-01-02",
            "available": True,
        }
        assert after[d(2)] == (True, CacheSource.REMOTE_SYNC.value)
        assert {k: v for k, v in after.items() if k != d(2)} == {
            k: v for k, v in before.items() if k != d(2)
        }

    def test_local_pins_local_value(self, db_session, make_vehicle, make_booking):
        vehicle, conflict = self._setup(db_session, make_vehicle, make_booking)

        result = ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        assert result["resolutionResult"]["action"] == "kept_local_availability"
        assert self._snapshot(db_session, vehicle)[d(2)] == (False, CacheSource.MANUAL_RESOLUTION.value)

    def test_resolved_day_survives_full_sync(self, db_session, make_vehicle, make_booking):
        vehicle, conflict = self._setup(db_session, make_vehicle, make_booking)
        ConflictResolutionEngine(db_session).resolve(conflict["id"], "remote")

        SyncOrchestrator(db_session).sync_vehicles([vehicle.id], full_sync=True, date_range=RANGE)

        assert self._snapshot(db_session, vehicle)[d(2)] == (True, CacheSource.REMOTE_SYNC.value)


class TestExactlyOnce:
    """Tests for claim, audit and rollback behaviour"""

    def test_second_resolution_rejected(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]
        engine = ConflictResolutionEngine(db_session)

        engine.resolve(conflict["id"], "local")
        with pytest.raises(AlreadyResolvedError):
            engine.resolve(conflict["id"], "remote")

        assert db_session.query(ConflictResolution).count() == 1
        assert db_session.query(Notification).count() == 1

    def test_lost_claim_rejected(self, db_session, make_vehicle, make_booking):
        """A concurrent resolver that already flipped the flag wins"""
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        later = make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]

        with patch("fleet_sync.services.conflict_resolution.compare_and_set", return_value=False):
            with pytest.raises(AlreadyResolvedError):
                ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        assert fetch_booking(db_session, later.id).status == "confirmed"
        assert db_session.query(ConflictResolution).count() == 0

    def test_audit_failure_rolls_back_everything(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        later = make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]

        with patch(
            "fleet_sync.services.conflict_resolution.record_resolution",
            side_effect=SQLAlchemyError("disk full"),
        ):
            with pytest.raises(PersistenceError):
                ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        assert fetch_booking(db_session, later.id).status == "confirmed"
        stored = db_session.query(SyncConflict).populate_existing().one()
        assert stored.resolved is False
        assert db_session.query(Notification).count() == 0
        assert db_session.query(ConflictResolution).count() == 0

    def test_unexpected_error_rolls_back_claim(self, db_session, make_vehicle, make_booking):
        """A malformed conflict payload releases the claim instead of leaving it pending"""
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]
        row = db_session.query(SyncConflict).filter(SyncConflict.id == conflict["id"]).one()
        row.local_value = ["not", "a", "mapping"]
        db_session.commit()

        with pytest.raises(PersistenceError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")

        stored = db_session.query(SyncConflict).populate_existing().one()
        assert stored.resolved is False
        assert stored.resolved_at is None
        assert db_session.query(ConflictResolution).count() == 0

    def test_audit_row_contents(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]

        result = ConflictResolutionEngine(db_session).resolve(
            conflict["id"], "local", resolved_by="manager-1", metadata={"note": "phoned customer"}
        )

        entry = db_session.query(ConflictResolution).one()
        assert entry.id == result["resolutionId"]
        assert entry.conflict_id == conflict["id"]
        assert entry.vehicle_id == vehicle.id
        assert entry.resolved_by == "manager-1"
        assert entry.resolution_metadata["userMetadata"] == {"note": "phoned customer"}
        assert entry.resolution_metadata["originalConflict"]["id"] == conflict["id"]

    def test_list_resolutions_newest_first(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        make_booking(vehicle, d(3), d(7))
        make_booking(vehicle, d(10), d(12))
        make_booking(vehicle, d(11), d(14))
        conflicts = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)
        engine = ConflictResolutionEngine(db_session)

        first = engine.resolve(conflicts[0]["id"], "local")
        second = engine.resolve(conflicts[1]["id"], "local")

        listed = engine.list_resolutions(vehicle_id=vehicle.id)
        assert [r["id"] for r in listed] == [second["resolutionId"], first["resolutionId"]]
        assert engine.list_resolutions(vehicle_id="other") == []
        assert len(engine.list_resolutions(limit=1)) == 1


class TestResolveValidation:
    """Tests for rejected requests"""

    def test_missing_conflict_id(self, db_session):
        with pytest.raises(ValidationError):
            ConflictResolutionEngine(db_session).resolve("", "local")

    def test_bad_resolution_value(self, db_session):
        with pytest.raises(ValidationError):
            ConflictResolutionEngine(db_session).resolve("c1", "both")

    def test_unknown_conflict(self, db_session):
        with pytest.raises(NotFoundError):
            ConflictResolutionEngine(db_session).resolve("missing", "local")

    def test_unknown_conflict_type(self, db_session, make_vehicle, make_booking):
        vehicle = make_vehicle()
        make_booking(vehicle, d(1), d(5))
        make_booking(vehicle, d(3), d(7))
        conflict = sync_conflicts(db_session, vehicle, ConflictType.DOUBLE_BOOKING.value)[0]
        row = db_session.query(SyncConflict).filter(SyncConflict.id == conflict["id"]).one()
        row.conflict_type = "mileage_mismatch"
        db_session.commit()

        with pytest.raises(ConflictTypeError):
            ConflictResolutionEngine(db_session).resolve(conflict["id"], "local")


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(Decimal("100") / 3) == Decimal("33.33")
