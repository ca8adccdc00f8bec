import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy import select
from core.config import settings
from core.database import create_engine
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.geonames import AlternateName, IsoLanguageCode, FeatureClass, FEATURE_CLASSES
from models.ingestion_run import IngestionRun
from models.ingestion_error import IngestionError

logger = logging.getLogger(__name__)


async def init_database(database_url: str = None):
    logger.info("Connecting to database...")
    engine = create_engine(database_url or settings.DATABASE_URL)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)

            existing = set((await conn.execute(select(FeatureClass.id))).scalars().all())
            missing = [
                {"id": key, "description": value}
                for key, value in FEATURE_CLASSES.items()
                if key not in existing
            ]
            if missing:
                await conn.execute(FeatureClass.__table__.insert(), missing)
            logger.info(f"Tables created successfully ({len(missing)} feature classes seeded).")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
