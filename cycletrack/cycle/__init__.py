"""Cycle prediction for CycleTrack.

Modules:
    predictor: Next period, ovulation and fertile window from the last period date
    calendar:  Date parsing, display formatting and countdowns
    records:   Period records and their ordering
    summary:   Prediction plus countdowns for the dashboard
"""

from cycletrack.cycle.predictor import CycleSettings, Prediction, predict
from cycletrack.cycle.records import PeriodRecord, latest_record, sort_records
from cycletrack.cycle.summary import PredictionSummary, summarize

__all__ = [
    "CycleSettings",
    "Prediction",
    "predict",
    "PeriodRecord",
    "latest_record",
    "sort_records",
    "PredictionSummary",
    "summarize",
]
