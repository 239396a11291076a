"""Calendar-based cycle prediction.

Given the start date of the most recent period and the user's cycle
settings, derive the next period window, the ovulation day and the fertile
window by fixed day offsets:

- next period start  = last period + cycle length
- next period end    = next start + (period length - 1)   (inclusive)
- ovulation day      = next start - 14
- fertile window     = ovulation - 5  ..  ovulation + 1

All arithmetic is done on ``datetime.date`` values, never on instants, so
the result does not depend on the server or client timezone.

Usage::

    prediction = predict("2024-01-20", CycleSettings(cycle_length=28, period_length=5))
    if prediction is None:
        ...  # nothing to show yet
    print(prediction.next_period_start)  # "2024-02-17"
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from cycletrack.cycle.calendar import parse_date

# Ovulation is assumed to happen this many days before the next period,
# whatever the cycle length.
LUTEAL_PHASE_DAYS = 14
FERTILE_DAYS_BEFORE_OVULATION = 5
FERTILE_DAYS_AFTER_OVULATION = 1


@dataclass(frozen=True)
class CycleSettings:
    """Per-user cycle settings.

    Attributes:
        cycle_length:  Days from the start of one period to the start of the next.
        period_length: Days a period is expected to last.
    """

    cycle_length: int
    period_length: int

    @property
    def is_valid(self) -> bool:
        return self.cycle_length > 0 and self.period_length > 0


@dataclass(frozen=True)
class Prediction:
    """Predicted dates for the upcoming cycle, as ``YYYY-MM-DD`` strings."""

    next_period_start: str
    next_period_end: str
    ovulation_day: str
    fertile_window_start: str
    fertile_window_end: str
    cycle_length: int


def _shift(d: date, days: int) -> date:
    return d + timedelta(days=days)


def predict(
    last_period_date: str | date | None,
    settings: CycleSettings,
) -> Prediction | None:
    """Predict the next cycle from the last recorded period start.

    Args:
        last_period_date: Start of the most recent period, ``YYYY-MM-DD``
                          (a ``date`` is accepted as well).
        settings:         The user's cycle settings.

    Returns:
        A ``Prediction``, or ``None`` when the date is empty or not a valid
        calendar date, or when either setting is not strictly positive.
    """
    if not settings.is_valid:
        return None

    last = parse_date(last_period_date)
    if last is None:
        return None

    try:
        next_start = _shift(last, settings.cycle_length)
        next_end = _shift(next_start, settings.period_length - 1)
        ovulation = _shift(next_start, -LUTEAL_PHASE_DAYS)
        fertile_start = _shift(ovulation, -FERTILE_DAYS_BEFORE_OVULATION)
        fertile_end = _shift(ovulation, FERTILE_DAYS_AFTER_OVULATION)
    except OverflowError:
        # Settings large enough to push past date.max
        return None

    return Prediction(
        next_period_start=next_start.isoformat(),
        next_period_end=next_end.isoformat(),
        ovulation_day=ovulation.isoformat(),
        fertile_window_start=fertile_start.isoformat(),
        fertile_window_end=fertile_end.isoformat(),
        cycle_length=settings.cycle_length,
    )
