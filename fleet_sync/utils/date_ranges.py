"""
Half-open date interval helpers.

Every interval in the service is ``[start, end)``: ``end`` is exclusive and
touching intervals do not overlap.
"""

from datetime import date, timedelta
from typing import Iterator, Iterable, Tuple


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day from start (inclusive) to end (exclusive)."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def days_between(start: date, end: date) -> int:
    """Number of days covered by [start, end); 0 for empty intervals."""
    return max((end - start).days, 0)


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and b_start < a_end


def contains(outer_start: date, outer_end: date, inner_start: date, inner_end: date) -> bool:
    return outer_start <= inner_start and inner_end <= outer_end


def covered_days(intervals: Iterable[Tuple[date, date]], start: date, end: date) -> int:
    """
    Count the days in [start, end) covered by at least one interval.

    Intervals are merged first so overlapping ones are not double-counted.
    """
    clipped = sorted(
        (max(s, start), min(e, end))
        for s, e in intervals
        if max(s, start) < min(e, end)
    )
    total = 0
    current_start = current_end = None
    for s, e in clipped:
        if current_end is None or s > current_end:
            if current_end is not None:
                total += (current_end - current_start).days
            current_start, current_end = s, e
        else:
            current_end = max(current_end, e)
    if current_end is not None:
        total += (current_end - current_start).days
    return total
