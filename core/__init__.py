"""
Core utilities and configuration for the GeoNames ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Settings (environment variables) and the IngestionConfig value
    database: Async engine and session management
    exceptions: Exception hierarchy, one type per pipeline phase
    logging: Logging configuration

Usage:
    from core.config import settings, IngestionConfig
    from core.database import create_engine, get_session
    from core.exceptions import TransportError, LoadError
    from core.logging import setup_logging

Example:
    setup_logging()
    engine = create_engine()
    config = IngestionConfig.from_settings(settings)
"""

__all__ = [
    "settings",
    "IngestionConfig",
    "create_engine",
    "get_session",
    "setup_logging",
    # Exceptions
    "IngestionException",
    "TransportError",
    "StorageError",
    "ExtractionError",
    "ChunkingError",
    "LoadError",
    "SwapError",
]
