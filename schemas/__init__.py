"""
Pydantic schemas for the status API.

Schemas:
    api: Response models for /health, /runs and /errors

Usage:
    from schemas.api import HealthCheckResponse, IngestionRunList
"""

__all__ = [
    "HealthCheckResponse",
    "DatasetStatus",
    "IngestionRunSummary",
    "IngestionRunList",
    "IngestionErrorRecord",
    "IngestionErrorList",
    "ErrorResponse",
]
