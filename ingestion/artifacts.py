"""
Local files produced and consumed within one dataset run
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple
import enum


class ArtifactKind(str, enum.Enum):
    ARCHIVE = "archive"
    EXTRACTED_TEXT = "extracted-text"
    CHUNK = "chunk"


@dataclass(frozen=True)
class LocalArtifact:
    path: Path
    size_bytes: int
    kind: ArtifactKind

    @classmethod
    def from_path(cls, path: Path, kind: ArtifactKind) -> "LocalArtifact":
        return cls(path=Path(path), size_bytes=Path(path).stat().st_size, kind=kind)


@dataclass(frozen=True)
class ChunkSet:
    """Ordered chunk files cut from one flat file"""
    source_path: Path
    chunks: Tuple[Path, ...]
    row_counts: Tuple[int, ...]

    @property
    def total_rows(self) -> int:
        return sum(self.row_counts)

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self):
        return iter(self.chunks)

    def artifacts(self) -> List[LocalArtifact]:
        return [LocalArtifact.from_path(path, ArtifactKind.CHUNK) for path in self.chunks]
