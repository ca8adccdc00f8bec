import logging
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import IngestionConfig, Settings, settings as default_settings
from core.database import create_engine
from ingestion.datasets import DatasetSource, build_sources
from ingestion.orchestrator import IngestionOrchestrator
from ingestion.state import DatasetResult

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """Periodic full re-ingestion of the configured datasets"""

    JOB_ID = "geonames_ingestion"

    def __init__(self, settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None):
        self.settings = settings or default_settings
        self.scheduler = AsyncIOScheduler()
        self.engine = engine or create_engine(self.settings.DATABASE_URL)
        self.config = IngestionConfig.from_settings(self.settings)

    def build_sources(self) -> List[DatasetSource]:
        sources = []
        for dataset in self.settings.SCHEDULE_DATASETS:
            countries = self.settings.SCHEDULE_COUNTRIES if dataset == "alternate-names" else None
            sources.extend(build_sources(dataset, self.config.base_url, countries))
        return sources

    async def run_ingestion_job(self) -> List[DatasetResult]:
        """Job to run the ingestion pipeline"""
        logger.info("Scheduler: Starting ingestion job")
        try:
            sources = self.build_sources()
        except ValueError as e:
            logger.error(f"Scheduler: invalid schedule configuration - {e}")
            return []

        orchestrator = IngestionOrchestrator(self.engine, self.config)
        results = await orchestrator.run(sources)

        failed = [result.source.label for result in results if not result.succeeded]
        if failed:
            logger.error(f"Scheduler: ingestion job finished with failures: {', '.join(failed)}")
        else:
            logger.info("Scheduler: ingestion job completed")
        return results

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_ingestion_job,
            trigger=IntervalTrigger(hours=self.settings.SCHEDULE_INTERVAL_HOURS),
            id=self.JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(
            f"Ingestion scheduler started (every {self.settings.SCHEDULE_INTERVAL_HOURS}h)"
        )

    async def stop(self):
        self.scheduler.shutdown()
        await self.engine.dispose()
        logger.info("Ingestion scheduler stopped")
