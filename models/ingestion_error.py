from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Integer, Text, Index, Uuid
from datetime import datetime, timezone
from models.base import Base, IngestionPhase, JSONType


class IngestionError(Base):
    """
    Persisted failure record for operator diagnosis.

    One row per failed dataset run, keyed by dataset, phase and timestamp.
    Recording a failure never blocks other datasets.
    """
    __tablename__ = "ingestion_errors"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid, nullable=True, index=True)

    dataset = Column(String(100), nullable=False)
    country_code = Column(String(2), nullable=True)
    phase = Column(Enum(IngestionPhase), nullable=False)

    # Failure location
    chunk_number = Column(Integer, nullable=True)
    artifact_path = Column(String(1000), nullable=True)
    source_url = Column(String(500), nullable=True)

    # Failure detail
    error_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    context = Column(JSONType, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_ingestion_error_dataset_created", "dataset", "phase", "created_at"),
    )
