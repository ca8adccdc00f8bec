"""
Per-dataset pipeline state.

Phases only move forward along the pipeline; FAILED can be entered from any
non-terminal phase and records which phase failed and why.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional
import uuid

from core.exceptions import IngestionException
from ingestion.datasets import DatasetSource
from models.base import IngestionPhase

_TRANSITIONS: Dict[IngestionPhase, FrozenSet[IngestionPhase]] = {
    IngestionPhase.PENDING: frozenset({IngestionPhase.DOWNLOADING}),
    IngestionPhase.DOWNLOADING: frozenset({IngestionPhase.EXTRACTING}),
    IngestionPhase.EXTRACTING: frozenset({IngestionPhase.CHUNKING}),
    IngestionPhase.CHUNKING: frozenset({IngestionPhase.LOADING}),
    IngestionPhase.LOADING: frozenset({IngestionPhase.SWAPPING}),
    IngestionPhase.SWAPPING: frozenset({IngestionPhase.COMPLETE}),
    IngestionPhase.COMPLETE: frozenset(),
    IngestionPhase.FAILED: frozenset(),
}

TERMINAL_PHASES = frozenset({IngestionPhase.COMPLETE, IngestionPhase.FAILED})


@dataclass
class DatasetResult:
    """Outcome of one DatasetSource run, returned by the orchestrator"""
    source: DatasetSource
    run_id: uuid.UUID = field(default_factory=uuid.uuid4)
    phase: IngestionPhase = IngestionPhase.PENDING
    failed_phase: Optional[IngestionPhase] = None
    error: Optional[IngestionException] = None
    download_bytes: Optional[int] = None
    chunks_total: int = 0
    chunks_loaded: int = 0
    rows_loaded: int = 0
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.phase == IngestionPhase.COMPLETE

    @property
    def failed(self) -> bool:
        return self.phase == IngestionPhase.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, phase: IngestionPhase):
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(
                f"{self.source.label}: illegal transition {self.phase.value} -> {phase.value}"
            )
        self.phase = phase

    def fail(self, error: IngestionException):
        if self.is_terminal:
            raise RuntimeError(
                f"{self.source.label}: cannot fail from terminal phase {self.phase.value}"
            )
        self.failed_phase = self.phase
        self.error = error
        self.phase = IngestionPhase.FAILED

    def summary(self) -> str:
        if self.succeeded:
            return (
                f"{self.source.label}: complete in {self.duration_seconds:.1f}s "
                f"({self.rows_loaded} rows, {self.chunks_loaded} chunk(s))"
            )
        if self.failed:
            return (
                f"{self.source.label}: FAILED during {self.failed_phase.value} "
                f"after {self.duration_seconds:.1f}s: {self.error.message}"
            )
        return f"{self.source.label}: {self.phase.value}"
