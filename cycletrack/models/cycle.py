"""Pydantic models for cycle settings, period records, predictions and profiles."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import EmailStr, Field, field_validator

from cycletrack.cycle.calendar import CountdownStatus
from cycletrack.models.base import CycleTrackBase


# ---------- Settings ----------

class CycleSettingsRead(CycleTrackBase):
    cycle_length: int
    period_length: int


class CycleSettingsUpdate(CycleTrackBase):
    """Full replacement of the settings document."""

    cycle_length: int = Field(gt=0)
    period_length: int = Field(gt=0)


class CycleSettingsPatch(CycleTrackBase):
    cycle_length: int | None = Field(default=None, gt=0)
    period_length: int | None = Field(default=None, gt=0)


# ---------- Period records ----------

class PeriodRecordCreate(CycleTrackBase):
    date: dt.date

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_date_only(cls, value: Any) -> Any:
        # Reject datetimes; a record is a calendar day
        if isinstance(value, str) and "T" in value:
            raise ValueError("date must be YYYY-MM-DD")
        return value


class PeriodRecordRead(CycleTrackBase):
    date: dt.date
    timestamp: int


# ---------- Predictions ----------

class PredictionRead(CycleTrackBase):
    next_period_start: str
    next_period_end: str
    ovulation_day: str
    fertile_window_start: str
    fertile_window_end: str
    cycle_length: int


class PredictionDisplayRead(CycleTrackBase):
    """The same dates formatted ``DD.MM.YYYY``."""

    latest_period_date: str
    next_period_start: str
    next_period_end: str
    ovulation_day: str
    fertile_window_start: str
    fertile_window_end: str


class PredictionSummaryRead(CycleTrackBase):
    prediction: PredictionRead
    latest_period_date: str
    days_until_next_period: int
    days_until_ovulation: int
    next_period_status: CountdownStatus
    display: PredictionDisplayRead


class PredictionPreviewRequest(CycleTrackBase):
    """Ad-hoc predictor input. Not validated here: bad input yields ``null``."""

    last_period_date: str | None = None
    cycle_length: int
    period_length: int


# ---------- Profile ----------

class UserProfileWrite(CycleTrackBase):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr


class UserProfileRead(CycleTrackBase):
    name: str
    email: str
    created_at: int
