"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (IngestionPhase, RunStatus)
    geonames: GeoNames reference tables replaced by the ingestion pipeline
    ingestion_run: One row per dataset ingestion (status, progress, timing)
    ingestion_error: Persisted failure records for operator diagnosis

Usage:
    from models.geonames import AlternateName, IsoLanguageCode
    from models.ingestion_run import IngestionRun
    from models.base import IngestionPhase, RunStatus
"""

__all__ = [
    "Base",
    "IngestionPhase",
    "RunStatus",
    "AlternateName",
    "IsoLanguageCode",
    "FeatureClass",
    "IngestionRun",
    "IngestionError",
]
