"""
Split a large flat file into bounded chunk files.

Rows are lines. Lines are copied byte-for-byte and in order, so concatenating
the chunks reproduces the input (minus any skipped header lines). Each chunk is
written to a ``.part`` file and renamed once complete; if anything fails, the
partial file and every chunk written by the call are removed.
"""

import asyncio
import os
from pathlib import Path
from typing import BinaryIO, List, Optional

from core.exceptions import ChunkingError
from ingestion.artifacts import ChunkSet
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 50_000


class FileChunker:

    def __init__(self, max_rows: int = DEFAULT_MAX_ROWS, prefix: str = "split_"):
        if max_rows < 1:
            raise ValueError("max_rows must be at least 1")
        self.max_rows = max_rows
        self.prefix = prefix

    async def split(
        self,
        path: Path,
        output_dir: Optional[Path] = None,
        header_lines: int = 0
    ) -> ChunkSet:
        return await asyncio.to_thread(self.split_sync, Path(path), output_dir, header_lines)

    def chunk_path(self, output_dir: Path, source: Path, chunk_number: int) -> Path:
        return Path(output_dir) / f"{self.prefix}{source.stem}_{chunk_number:05d}{source.suffix}"

    def split_sync(
        self,
        path: Path,
        output_dir: Optional[Path] = None,
        header_lines: int = 0
    ) -> ChunkSet:
        """
        Split ``path`` into chunks of at most ``max_rows`` lines.

        Args:
            path: Flat file to split
            output_dir: Where chunks go (default: ``<path dir>/chunks``)
            header_lines: Leading lines to drop before chunking

        Raises:
            ChunkingError: The file could not be read or a chunk not written
        """
        path = Path(path)
        output_dir = Path(output_dir) if output_dir else path.parent / "chunks"

        written: List[Path] = []
        row_counts: List[int] = []
        current: Optional[BinaryIO] = None
        current_tmp: Optional[Path] = None
        rows_in_chunk = 0

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            self._remove_stale_chunks(output_dir, path)

            with open(path, "rb") as source:
                for _ in range(header_lines):
                    if not source.readline():
                        break

                for line in source:
                    if current is None:
                        final = self.chunk_path(output_dir, path, len(written) + 1)
                        current_tmp = final.with_name(final.name + ".part")
                        current = open(current_tmp, "wb")
                        rows_in_chunk = 0

                    current.write(line)
                    rows_in_chunk += 1

                    if rows_in_chunk == self.max_rows:
                        written.append(self._finish(current, current_tmp))
                        row_counts.append(rows_in_chunk)
                        current, current_tmp = None, None

                if current is not None:
                    written.append(self._finish(current, current_tmp))
                    row_counts.append(rows_in_chunk)
                    current, current_tmp = None, None

        except OSError as e:
            if current is not None:
                current.close()
            for leftover in ([current_tmp] if current_tmp else []) + written:
                try:
                    leftover.unlink(missing_ok=True)
                except OSError:
                    logger.warning(f"Could not remove chunk file {leftover}")
            raise ChunkingError(
                f"Unable to split {path.name}",
                context={
                    "file_path": str(path),
                    "output_dir": str(output_dir),
                    "chunk_number": len(written) + 1,
                },
                original_exception=e
            )

        chunk_set = ChunkSet(
            source_path=path,
            chunks=tuple(written),
            row_counts=tuple(row_counts)
        )

        if not written:
            logger.warning(f"{path.name} contains no data rows; produced no chunks")
        else:
            logger.info(
                f"Split {path.name} into {len(chunk_set)} chunk(s) "
                f"of at most {self.max_rows} rows ({chunk_set.total_rows} rows total)"
            )
        return chunk_set

    @staticmethod
    def _finish(handle: BinaryIO, tmp_path: Path) -> Path:
        handle.close()
        final = tmp_path.with_name(tmp_path.name[:-len(".part")])
        os.replace(tmp_path, final)
        return final

    def _remove_stale_chunks(self, output_dir: Path, source: Path):
        pattern = f"{self.prefix}{source.stem}_*{source.suffix}*"
        for stale in output_dir.glob(pattern):
            stale.unlink()
