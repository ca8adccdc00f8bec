"""
GeoNames bulk-replace ingestion pipeline.

Modules:
    datasets: Dataset definitions and remote source construction
    fetcher: Streaming HTTP download to local storage
    extractor: Archive decompression with verification
    chunker: Split flat files into bounded chunk files
    staging: Bulk-load chunks into a staging table
    swap: Atomic promotion of the staging table to the live table
    orchestrator: Drives each dataset through the pipeline
    scheduler: APScheduler job for periodic re-ingestion
    cli: ``geonames-ingest`` command

Usage:
    from core.config import IngestionConfig, settings
    from core.database import create_engine
    from ingestion.datasets import build_sources
    from ingestion.orchestrator import IngestionOrchestrator

    config = IngestionConfig.from_settings(settings)
    orchestrator = IngestionOrchestrator(create_engine(), config)
    results = await orchestrator.run(
        build_sources("alternate-names", config.base_url, ["DE", "FR"])
    )
"""

__all__ = [
    "ArchiveExtractor",
    "DatasetResult",
    "Fetcher",
    "FileChunker",
    "IngestionOrchestrator",
    "StagingLoader",
    "SwapCoordinator",
]
