"""
Pydantic schemas for API response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from uuid import UUID

from models.base import IngestionPhase, RunStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Ingestion Run Schemas
# ============================================================================

class IngestionRunSummary(BaseModel):
    """One dataset ingestion as recorded in ingestion_runs"""
    run_id: UUID
    dataset: str
    country_code: Optional[str] = None
    source_url: str
    target_table: str
    status: RunStatus
    phase: IngestionPhase
    failed_phase: Optional[IngestionPhase] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    chunks_total: int = 0
    chunks_loaded: int = 0
    rows_loaded: int = 0
    download_bytes: Optional[int] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class IngestionRunList(BaseModel):
    runs: List[IngestionRunSummary]
    count: int
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Ingestion Error Schemas
# ============================================================================

class IngestionErrorRecord(BaseModel):
    """Persisted pipeline failure"""
    id: int
    run_id: Optional[UUID] = None
    dataset: str
    country_code: Optional[str] = None
    phase: IngestionPhase
    chunk_number: Optional[int] = None
    artifact_path: Optional[str] = None
    source_url: Optional[str] = None
    error_type: str
    message: str
    context: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": 7,
                "run_id": "550e8400-e29b-41d4-a716-446655440000",
                "dataset": "alternate-names",
                "country_code": "DE",
                "phase": "loading",
                "chunk_number": 2,
                "artifact_path": "storage/geonames/alternate-names/DE/chunks/split_DE_00002.txt",
                "source_url": "https://download.geonames.org/export/dump/alternatenames/DE.zip",
                "error_type": "LoadError",
                "message": "LoadError: Failed to load chunk 2 of 3 into geonames_alternate_names_working_de",
                "created_at": "2024-01-15T10:30:00Z"
            }
        }


class IngestionErrorList(BaseModel):
    errors: List[IngestionErrorRecord]
    count: int
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Health Check Schemas
# ============================================================================

class DatasetStatus(BaseModel):
    """Latest ingestion outcome for one dataset (and country, if any)"""
    dataset: str
    country_code: Optional[str] = None
    status: RunStatus
    phase: IngestionPhase
    failed_phase: Optional[IngestionPhase] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    rows_loaded: int = 0
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    database_connected: bool
    datasets: List[DatasetStatus] = Field(default_factory=list)
    total_datasets: int = 0
    failed_datasets: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_datasets == 0 or self.failed_datasets == 0:
            self.status = "healthy"
        elif self.failed_datasets < self.total_datasets:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "degraded",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "total_datasets": 2,
                "failed_datasets": 1,
                "datasets": [
                    {
                        "dataset": "iso-language-codes",
                        "status": "success",
                        "phase": "complete",
                        "started_at": "2024-01-15T10:00:00Z",
                        "rows_loaded": 7910
                    }
                ]
            }
        }


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
