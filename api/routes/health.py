"""
Health check endpoint with database and ingestion status
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from models.base import RunStatus
from models.ingestion_run import IngestionRun
from schemas.api import DatasetStatus, HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest ingestion run per dataset (and country)
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    datasets = []
    if db_connected:
        try:
            latest = (
                select(
                    IngestionRun.dataset,
                    IngestionRun.country_code,
                    func.max(IngestionRun.started_at).label("started_at")
                )
                .where(IngestionRun.status != RunStatus.RUNNING)
                .group_by(IngestionRun.dataset, IngestionRun.country_code)
                .subquery()
            )
            result = await db.execute(
                select(IngestionRun)
                .join(
                    latest,
                    (IngestionRun.dataset == latest.c.dataset)
                    & (IngestionRun.started_at == latest.c.started_at)
                    & (func.coalesce(IngestionRun.country_code, "") == func.coalesce(latest.c.country_code, ""))
                )
                .order_by(IngestionRun.dataset, IngestionRun.country_code)
            )
            datasets = [DatasetStatus.model_validate(run) for run in result.scalars().all()]
        except Exception as e:
            logger.error(f"Failed to fetch ingestion status: {str(e)}")

    failed = sum(1 for dataset in datasets if dataset.status == RunStatus.FAILED.value)

    return HealthCheckResponse(
        timestamp=datetime.now(timezone.utc),
        database_connected=db_connected,
        datasets=datasets,
        total_datasets=len(datasets),
        failed_datasets=failed
    )
