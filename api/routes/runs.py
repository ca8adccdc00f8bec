"""
Ingestion run history and persisted error records
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from models.base import IngestionPhase, RunStatus
from models.ingestion_error import IngestionError
from models.ingestion_run import IngestionRun
from schemas.api import (
    IngestionErrorList,
    IngestionErrorRecord,
    IngestionRunList,
    IngestionRunSummary,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Ingestion"])


@router.get("/runs", response_model=IngestionRunList)
async def list_runs(
    dataset: Optional[str] = Query(None, description="Filter by dataset key"),
    status: Optional[RunStatus] = Query(None, description="Filter by run status"),
    limit: int = Query(20, ge=1, le=200, description="Number of runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent ingestion runs first"""
    query = select(IngestionRun)
    filters_applied = {}

    if dataset:
        query = query.where(IngestionRun.dataset == dataset)
        filters_applied["dataset"] = dataset
    if status:
        query = query.where(IngestionRun.status == status)
        filters_applied["status"] = status.value

    result = await db.execute(
        query.order_by(IngestionRun.started_at.desc(), IngestionRun.id.desc()).limit(limit)
    )
    runs = [IngestionRunSummary.model_validate(run) for run in result.scalars().all()]

    return IngestionRunList(runs=runs, count=len(runs), filters_applied=filters_applied)


@router.get("/errors", response_model=IngestionErrorList)
async def list_errors(
    dataset: Optional[str] = Query(None, description="Filter by dataset key"),
    phase: Optional[IngestionPhase] = Query(None, description="Filter by failed phase"),
    limit: int = Query(20, ge=1, le=200, description="Number of errors to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent persisted pipeline failures first"""
    query = select(IngestionError)
    filters_applied = {}

    if dataset:
        query = query.where(IngestionError.dataset == dataset)
        filters_applied["dataset"] = dataset
    if phase:
        query = query.where(IngestionError.phase == phase)
        filters_applied["phase"] = phase.value

    result = await db.execute(
        query.order_by(IngestionError.created_at.desc(), IngestionError.id.desc()).limit(limit)
    )
    errors = [IngestionErrorRecord.model_validate(error) for error in result.scalars().all()]

    return IngestionErrorList(errors=errors, count=len(errors), filters_applied=filters_applied)
