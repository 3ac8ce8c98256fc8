"""
Interval primitives shared by slot resolution and booking checks.

All functions are pure: inputs are never mutated and new ``TimeRange``
objects are returned.
"""

from typing import Iterable, List

from .models import TimeRange


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """True iff ``a.start < b.end and b.start < a.end``."""
    return a.overlaps(b)


def expand(interval: TimeRange, buffer_minutes: int) -> TimeRange:
    """Pad an interval by ``buffer_minutes`` on both sides."""
    if not buffer_minutes:
        return interval
    return TimeRange(
        start=interval.start.subtract(minutes=buffer_minutes),
        end=interval.end.add(minutes=buffer_minutes),
    )


def merge_sorted(intervals: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Sort by start and merge overlapping or touching ranges.

    Example: [10:00-11:00, 09:00-10:00, 13:00-14:00] -> [09:00-11:00, 13:00-14:00]
    """
    # sorted() is stable, so ties keep their input order
    sorted_ranges = sorted(intervals, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeRange(start=last.start, end=current.end)
        else:
            merged.append(current)

    return merged


def any_overlap(interval: TimeRange, others: Iterable[TimeRange]) -> bool:
    return any(interval.overlaps(other) for other in others)
