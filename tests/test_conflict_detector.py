"""
Conflict Detector Tests

Tests cover:
- Double-booking sweep (overlap, nesting, touching, three-way overlaps)
- Pricing mismatch detection (rules fully containing a booking)
- Availability comparison between local and remote maps
- Deterministic output and fingerprints
"""

from datetime import date
from types import SimpleNamespace

from fleet_sync.models import ConflictType
from fleet_sync.services.conflict_detector import (
    applicable_rules,
    detect_all,
    detect_availability_conflicts,
    detect_double_bookings,
    detect_pricing_mismatches,
)


def d(day):
    return date(2030, 1, day)


def booking(booking_id, start, end, status="confirmed", total=100):
    return SimpleNamespace(
        id=booking_id,
        start_date=start,
        end_date=end,
        status=status,
        customer_id="customer-1",
        total_amount=total,
    )


def rule(rule_id, start, end, daily_rate=50, priority=0):
    return SimpleNamespace(
        id=rule_id,
        start_date=start,
        end_date=end,
        daily_rate=daily_rate,
        priority=priority,
    )


class TestDoubleBookings:
    """Tests for detect_double_bookings"""

    def test_overlapping_pair(self):
        """A[Jan1, Jan5) and B[Jan3, Jan7) produce exactly one conflict"""
        conflicts = detect_double_bookings("v1", [booking("A", d(1), d(5)), booking("B", d(3), d(7))])

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.conflict_type == ConflictType.DOUBLE_BOOKING.value
        assert conflict.date == d(3)
        assert conflict.local_value["booking"]["id"] == "A"
        assert conflict.remote_value["booking"]["id"] == "B"
        assert conflict.remote_value["booking"]["startDate"] == "2030-01-03"

    def test_nested_booking_found_past_intermediate(self):
        """A long booking is compared against every later booking it still covers"""
        bookings = [
            booking("A", d(1), d(10)),
            booking("B", d(2), d(3)),
            booking("C", d(12), d(20)),
        ]
        conflicts = detect_double_bookings("v1", bookings)

        pairs = [(c.local_value["booking"]["id"], c.remote_value["booking"]["id"]) for c in conflicts]
        assert pairs == [("A", "B")]

    def test_long_booking_overlaps_several_later_ones(self):
        bookings = [
            booking("A", d(1), d(20)),
            booking("B", d(2), d(3)),
            booking("C", d(5), d(6)),
        ]
        pairs = {
            (c.local_value["booking"]["id"], c.remote_value["booking"]["id"])
            for c in detect_double_bookings("v1", bookings)
        }
        assert pairs == {("A", "B"), ("A", "C")}

    def test_touching_bookings_do_not_conflict(self):
        """end == next start is not an overlap"""
        bookings = [booking("A", d(1), d(5)), booking("B", d(5), d(8))]
        assert detect_double_bookings("v1", bookings) == []

    def test_three_mutually_overlapping_bookings(self):
        bookings = [
            booking("A", d(1), d(10)),
            booking("B", d(2), d(10)),
            booking("C", d(3), d(10)),
        ]
        conflicts = detect_double_bookings("v1", bookings)

        pairs = [(c.local_value["booking"]["id"], c.remote_value["booking"]["id"]) for c in conflicts]
        assert len(conflicts) == 3
        assert set(pairs) == {("A", "B"), ("A", "C"), ("B", "C")}

    def test_cancelled_bookings_ignored(self):
        bookings = [booking("A", d(1), d(5)), booking("B", d(3), d(7), status="cancelled")]
        assert detect_double_bookings("v1", bookings) == []

    def test_zero_length_booking_ignored(self):
        """A booking with end <= start covers no days"""
        bookings = [
            booking("A", d(1), d(5)),
            booking("B", d(3), d(3)),
            booking("C", d(4), d(2)),
        ]
        assert detect_double_bookings("v1", bookings) == []

    def test_same_dates_ordered_by_id(self):
        """Ties on dates are broken by id, so the local side is stable"""
        conflicts = detect_double_bookings("v1", [booking("b", d(1), d(3)), booking("a", d(1), d(3))])
        assert conflicts[0].local_value["booking"]["id"] == "a"
        assert conflicts[0].remote_value["booking"]["id"] == "b"

    def test_output_is_deterministic(self):
        bookings = [booking("A", d(1), d(5)), booking("B", d(3), d(7)), booking("C", d(4), d(9))]
        first = detect_double_bookings("v1", bookings)
        second = detect_double_bookings("v1", list(reversed(bookings)))

        assert [c.to_dict() for c in first] == [c.to_dict() for c in second]
        assert [c.fingerprint for c in first] == [c.fingerprint for c in second]
        assert len({c.fingerprint for c in first}) == len(first)


class TestPricingMismatches:
    """Tests for detect_pricing_mismatches"""

    def test_two_containing_rules_produce_conflict(self):
        b = booking("B1", d(5), d(8), total=300)
        rules = [rule("rule-b", d(1), d(10), 60, priority=1), rule("rule-a", d(1), d(31), 40)]

        conflicts = detect_pricing_mismatches("v1", [b], rules)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.conflict_type == ConflictType.PRICING_MISMATCH.value
        assert conflict.date == d(5)
        assert conflict.local_value == {"bookingId": "B1", "bookingPrice": 300.0}
        assert [r["id"] for r in conflict.remote_value["applicableRules"]] == ["rule-a", "rule-b"]
        assert conflict.remote_value["applicableRules"][1]["dailyRate"] == 60.0

    def test_single_rule_is_not_a_conflict(self):
        b = booking("B1", d(5), d(8))
        assert detect_pricing_mismatches("v1", [b], [rule("r1", d(1), d(10))]) == []

    def test_partially_overlapping_rule_excluded(self):
        """A rule must contain the whole booking to apply"""
        b = booking("B1", d(5), d(8))
        rules = [rule("r1", d(1), d(10)), rule("r2", d(6), d(20))]

        assert [r.id for r in applicable_rules(b, rules)] == ["r1"]
        assert detect_pricing_mismatches("v1", [b], rules) == []

    def test_rule_boundaries_are_inclusive_of_booking_edges(self):
        b = booking("B1", d(5), d(8))
        rules = [rule("r1", d(5), d(8)), rule("r2", d(5), d(8))]
        assert len(detect_pricing_mismatches("v1", [b], rules)) == 1

    def test_cancelled_booking_skipped(self):
        b = booking("B1", d(5), d(8), status="cancelled")
        rules = [rule("r1", d(1), d(10)), rule("r2", d(1), d(10))]
        assert detect_pricing_mismatches("v1", [b], rules) == []


class TestAvailabilityConflicts:
    """Tests for detect_availability_conflicts"""

    def test_only_differing_common_days(self):
        local = {d(1): True, d(2): False, d(3): True, d(4): True}
        remote = {d(2): True, d(3): True, d(4): False, d(9): False}

        conflicts = detect_availability_conflicts("v1", local, remote)

        assert [c.date for c in conflicts] == [d(2), d(4)]
        assert conflicts[0].local_value == {"available": False}
        assert conflicts[0].remote_value == {"available": True}
        assert all(c.conflict_type == ConflictType.AVAILABILITY_CONFLICT.value for c in conflicts)

    def test_no_remote_source(self):
        assert detect_availability_conflicts("v1", {d(1): True}, None) == []
        assert detect_availability_conflicts("v1", {d(1): True}, {}) == []


class TestDetectAll:
    """Tests for detect_all ordering"""

    def test_detector_order(self):
        bookings = [booking("A", d(1), d(5)), booking("B", d(3), d(7))]
        rules = [rule("r1", d(1), d(10)), rule("r2", d(1), d(10))]
        local = {d(20): True}
        remote = {d(20): False}

        conflicts = detect_all("v1", bookings, rules, local, remote)

        assert [c.conflict_type for c in conflicts] == [
            ConflictType.DOUBLE_BOOKING.value,
            ConflictType.PRICING_MISMATCH.value,
            ConflictType.PRICING_MISMATCH.value,
            ConflictType.AVAILABILITY_CONFLICT.value,
        ]

    def test_no_conflicts(self):
        bookings = [booking("A", d(1), d(5)), booking("B", d(5), d(7))]
        assert detect_all("v1", bookings, [], {d(1): False}, {d(1): False}) == []
