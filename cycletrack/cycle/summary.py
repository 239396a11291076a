"""Dashboard view of a prediction: countdowns and display strings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from cycletrack.cycle.calendar import (
    CountdownStatus,
    countdown_status,
    days_until,
    format_display_date,
    local_today,
)
from cycletrack.cycle.predictor import CycleSettings, Prediction, predict
from cycletrack.cycle.records import PeriodRecord, latest_record


@dataclass(frozen=True)
class PredictionSummary:
    """A prediction plus what the dashboard shows around it.

    Attributes:
        prediction:             The raw predicted dates.
        latest_period_date:     Start of the most recent recorded period.
        days_until_next_period: Countdown to ``prediction.next_period_start``.
        days_until_ovulation:   Countdown to ``prediction.ovulation_day``.
        next_period_status:     upcoming / today / passed.
        display:                ``DD.MM.YYYY`` strings keyed like the prediction fields.
    """

    prediction: Prediction
    latest_period_date: str
    days_until_next_period: int
    days_until_ovulation: int
    next_period_status: CountdownStatus
    display: dict[str, str]


def summarize(
    records: list[PeriodRecord],
    settings: CycleSettings,
    today: date | None = None,
) -> PredictionSummary | None:
    """Predict from the most recent record. None when there is nothing to predict from."""
    latest = latest_record(records)
    if latest is None:
        return None

    prediction = predict(latest.date, settings)
    if prediction is None:
        return None

    today = today or local_today()
    until_period = days_until(prediction.next_period_start, today)

    return PredictionSummary(
        prediction=prediction,
        latest_period_date=latest.date.isoformat(),
        days_until_next_period=until_period,
        days_until_ovulation=days_until(prediction.ovulation_day, today),
        next_period_status=countdown_status(until_period),
        display={
            "latest_period_date": format_display_date(latest.date),
            "next_period_start": format_display_date(prediction.next_period_start),
            "next_period_end": format_display_date(prediction.next_period_end),
            "ovulation_day": format_display_date(prediction.ovulation_day),
            "fertile_window_start": format_display_date(prediction.fertile_window_start),
            "fertile_window_end": format_display_date(prediction.fertile_window_end),
        },
    )
