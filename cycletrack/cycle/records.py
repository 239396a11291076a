"""Period records: one per recorded period start date."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from cycletrack.cycle.calendar import record_timestamp_ms


@dataclass(frozen=True)
class PeriodRecord:
    """A recorded period start.

    Attributes:
        date:      First day of the period.
        timestamp: Epoch milliseconds at local midnight of ``date``.
                   Used for ordering.
    """

    date: date
    timestamp: int

    @classmethod
    def for_date(cls, d: date, tz_name: str = "UTC") -> PeriodRecord:
        return cls(date=d, timestamp=record_timestamp_ms(d, tz_name))


def sort_records(records: Iterable[PeriodRecord]) -> list[PeriodRecord]:
    """Most recent first."""
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


def latest_record(records: Iterable[PeriodRecord]) -> PeriodRecord | None:
    ordered = sort_records(records)
    return ordered[0] if ordered else None
