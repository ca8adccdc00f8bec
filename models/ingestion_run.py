from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Text, Index, Uuid
from datetime import datetime, timezone
import uuid
from models.base import Base, IngestionPhase, RunStatus, JSONType


def _utcnow():
    return datetime.now(timezone.utc)


class IngestionRun(Base):
    """
    Tracks metadata for each dataset ingestion.

    Purpose:
    - Audit trail answering "did the last ingestion fully succeed"
    - Liveness on long runs (chunk i of N)
    - Performance monitoring
    """
    __tablename__ = "ingestion_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    # Dataset identification
    dataset = Column(String(100), nullable=False, index=True)
    country_code = Column(String(2), nullable=True)
    source_url = Column(String(500), nullable=False)
    target_table = Column(String(100), nullable=False)
    staging_table = Column(String(100), nullable=False)

    # Run state
    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)
    phase = Column(Enum(IngestionPhase), default=IngestionPhase.PENDING, nullable=False)
    failed_phase = Column(Enum(IngestionPhase), nullable=True)

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    chunks_total = Column(Integer, default=0)
    chunks_loaded = Column(Integer, default=0)
    rows_loaded = Column(BigInteger, default=0)
    download_bytes = Column(BigInteger, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Configuration snapshot
    config_snapshot = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_ingestion_run_dataset_started", "dataset", "country_code", "started_at"),
    )
