"""Create, list and delete period records."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException

from cycletrack.cycle.records import PeriodRecord
from cycletrack.dependencies import AppSettings, RegisteredUser, Store
from cycletrack.models.base import ErrorDetail
from cycletrack.models.cycle import PeriodRecordCreate, PeriodRecordRead
from cycletrack.services.store import RecordExistsError, RecordNotFoundError

router = APIRouter(prefix="/periods", tags=["periods"])
logger = logging.getLogger("cycletrack.periods")


@router.get("", response_model=list[PeriodRecordRead])
async def list_periods(user: RegisteredUser, store: Store) -> Any:
    """All recorded period starts, most recent first."""
    return await store.list_records(user.user_id)


@router.post(
    "", response_model=PeriodRecordRead, status_code=201, responses={409: {"model": ErrorDetail}}
)
async def create_period(
    user: RegisteredUser, store: Store, settings: AppSettings, body: PeriodRecordCreate
) -> Any:
    record = PeriodRecord.for_date(body.date, settings.record_timezone)
    try:
        await store.put_record(user.user_id, record)
    except RecordExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info("Period record %s created for user %s", record.date, user.user_id)
    return record


@router.delete("/{record_date}", status_code=204, responses={404: {"model": ErrorDetail}})
async def delete_period(record_date: date, user: RegisteredUser, store: Store) -> None:
    try:
        await store.delete_record(user.user_id, record_date)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info("Period record %s deleted for user %s", record_date, user.user_id)
