from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class IngestionPhase(str, enum.Enum):
    """Pipeline phase of a single dataset run"""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    LOADING = "loading"
    SWAPPING = "swapping"
    COMPLETE = "complete"
    FAILED = "failed"


class RunStatus(str, enum.Enum):
    """Ingestion run status"""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
