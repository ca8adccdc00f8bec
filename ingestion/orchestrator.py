"""
Ingestion Orchestrator - drives datasets through the bulk-replace pipeline.

Fetch -> Extract -> Chunk -> Load into staging -> Swap into the live table.

Each DatasetSource runs independently: a failure aborts only that dataset's
remaining pipeline, is persisted as an IngestionError row, and the other
datasets carry on. The live table is only ever changed by a successful swap.
"""

import asyncio
import shutil
import time
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from core.config import IngestionConfig
from core.database import create_session_maker
from core.exceptions import (
    ChunkingError,
    ExtractionError,
    IngestionException,
    LoadError,
    SwapError,
    TransportError,
)
from ingestion.chunker import FileChunker
from ingestion.datasets import DatasetSource
from ingestion.extractor import ArchiveExtractor
from ingestion.fetcher import Fetcher
from ingestion.staging import StagingLoader
from ingestion.state import DatasetResult
from ingestion.swap import SwapCoordinator
from models.base import IngestionPhase, RunStatus
from models.ingestion_error import IngestionError
from models.ingestion_run import IngestionRun
import logging

logger = logging.getLogger(__name__)

_PHASE_ERRORS = {
    IngestionPhase.DOWNLOADING: TransportError,
    IngestionPhase.EXTRACTING: ExtractionError,
    IngestionPhase.CHUNKING: ChunkingError,
    IngestionPhase.LOADING: LoadError,
    IngestionPhase.SWAPPING: SwapError,
}


class IngestionOrchestrator:
    """
    Sequence the pipeline components for one or more datasets.

    Collaborators default to instances built from ``config``; tests pass
    their own (e.g. a Fetcher with a mock transport).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        config: IngestionConfig,
        fetcher: Optional[Fetcher] = None,
        extractor: Optional[ArchiveExtractor] = None,
        chunker: Optional[FileChunker] = None,
        swap_coordinator: Optional[SwapCoordinator] = None,
        session_maker: Optional[async_sessionmaker] = None
    ):
        self.engine = engine
        self.config = config
        self.fetcher = fetcher or Fetcher(timeout=config.download_timeout)
        self.extractor = extractor or ArchiveExtractor()
        self.chunker = chunker or FileChunker(max_rows=config.chunk_size)
        self.swap_coordinator = swap_coordinator or SwapCoordinator(
            retain_previous=config.retain_previous_table
        )
        self.session_maker = session_maker or create_session_maker(engine)

    async def run(self, sources: Iterable[DatasetSource]) -> List[DatasetResult]:
        """
        Run every source, up to ``config.concurrency`` at a time.

        Returns:
            One DatasetResult per source, in input order
        """
        sources = list(sources)
        started = time.perf_counter()
        logger.info(
            f"Starting ingestion of {len(sources)} dataset(s) "
            f"(concurrency={self.config.concurrency})"
        )

        if self.config.concurrency == 1:
            results = [await self.run_dataset(source) for source in sources]
        else:
            semaphore = asyncio.Semaphore(self.config.concurrency)

            async def _bounded(source: DatasetSource) -> DatasetResult:
                async with semaphore:
                    return await self.run_dataset(source)

            results = list(await asyncio.gather(*(_bounded(source) for source in sources)))

        elapsed = time.perf_counter() - started
        succeeded = sum(1 for result in results if result.succeeded)

        for result in results:
            if result.succeeded:
                logger.info(result.summary())
            else:
                logger.error(result.summary())

        logger.info(
            f"Ingestion finished in {elapsed:.1f}s: "
            f"{succeeded} succeeded, {len(results) - succeeded} failed"
        )
        return results

    async def run_dataset(self, source: DatasetSource) -> DatasetResult:
        """
        Run one source through the pipeline.

        Never raises for pipeline failures; they are captured on the result.
        """
        result = DatasetResult(source=source)
        started = time.perf_counter()
        await self._start_run(result)

        try:
            await self._execute(result)

        except IngestionException as e:
            result.fail(e)

        except Exception as e:
            error_class = _PHASE_ERRORS.get(result.phase, IngestionException)
            result.fail(error_class(
                f"Unexpected error during {result.phase.value}",
                context={"dataset": source.label},
                original_exception=e
            ))

        result.duration_seconds = time.perf_counter() - started

        if result.failed:
            logger.error(
                f"{source.label}: {result.failed_phase.value} failed: {result.error}",
                extra={"error_context": result.error.to_dict()}
            )
            await self._record_error(result)
        elif not self.config.keep_artifacts:
            await self._remove_artifacts(source)

        await self._finish_run(result)
        return result

    async def _execute(self, result: DatasetResult):
        source = result.source
        storage_dir = source.storage_dir(self.config.storage_root)

        # --------------------------------------------------
        # PHASE 1: DOWNLOAD
        # --------------------------------------------------
        await self._enter(result, IngestionPhase.DOWNLOADING)
        download = await self.fetcher.fetch(source, storage_dir)
        result.download_bytes = download.size_bytes

        # --------------------------------------------------
        # PHASE 2: EXTRACT
        # --------------------------------------------------
        await self._enter(result, IngestionPhase.EXTRACTING)
        if source.is_archive:
            extracted = await self.extractor.extract(download.path, source.archive_member)
            flat_file = extracted[0]
        else:
            flat_file = self.extractor.verify_plain_file(download.path)

        # --------------------------------------------------
        # PHASE 3: CHUNK
        # --------------------------------------------------
        await self._enter(result, IngestionPhase.CHUNKING)
        chunk_set = await self.chunker.split(
            flat_file.path,
            storage_dir / "chunks",
            header_lines=source.spec.header_lines
        )
        result.chunks_total = len(chunk_set)
        if not chunk_set.chunks:
            logger.warning(f"{source.label}: source file is empty; the live table will be emptied")

        # --------------------------------------------------
        # PHASE 4: LOAD INTO STAGING
        # --------------------------------------------------
        await self._enter(result, IngestionPhase.LOADING)

        async def _progress(chunk_number: int, chunk_total: int, rows_loaded: int):
            result.chunks_loaded = chunk_number
            result.rows_loaded = rows_loaded
            await self._update_run(result, chunks_loaded=chunk_number, rows_loaded=rows_loaded)

        async with self.engine.connect() as connection:
            loader = StagingLoader.for_source(
                connection,
                source,
                strategy=self.config.bulk_load_strategy,
                max_statement_variables=self.config.max_statement_variables
            )
            await loader.create_staging_table()

            async with loader.suspended_indexes():
                await loader.load_chunks(chunk_set, on_progress=_progress)

            await loader.verify_row_count(chunk_set.total_rows)

            # --------------------------------------------------
            # PHASE 5: SWAP
            # --------------------------------------------------
            await self._enter(result, IngestionPhase.SWAPPING)
            await self.swap_coordinator.swap(
                connection,
                source.staging_table,
                source.target_table,
                source.previous_table
            )

        result.advance(IngestionPhase.COMPLETE)

    async def _enter(self, result: DatasetResult, phase: IngestionPhase):
        result.advance(phase)
        logger.info(f"{result.source.label}: {phase.value}")
        await self._update_run(result, phase=phase, chunks_total=result.chunks_total)

    # ------------------------------------------------------------------
    # Audit records
    # ------------------------------------------------------------------

    async def _start_run(self, result: DatasetResult):
        source = result.source
        try:
            async with self.session_maker() as session:
                session.add(IngestionRun(
                    run_id=result.run_id,
                    dataset=source.spec.key,
                    country_code=source.country_code,
                    source_url=source.url,
                    target_table=source.target_table,
                    staging_table=source.staging_table,
                    status=RunStatus.RUNNING,
                    phase=IngestionPhase.PENDING,
                    config_snapshot=self.config.model_dump(mode="json")
                ))
                await session.commit()
        except Exception:
            logger.exception(f"{source.label}: unable to record ingestion run start")

    async def _update_run(self, result: DatasetResult, **values):
        try:
            async with self.session_maker() as session:
                await session.execute(
                    update(IngestionRun)
                    .where(IngestionRun.run_id == result.run_id)
                    .values(**values)
                )
                await session.commit()
        except Exception:
            logger.exception(f"{result.source.label}: unable to update ingestion run")

    async def _finish_run(self, result: DatasetResult):
        await self._update_run(
            result,
            status=RunStatus.SUCCESS if result.succeeded else RunStatus.FAILED,
            phase=result.phase,
            failed_phase=result.failed_phase,
            completed_at=datetime.now(timezone.utc),
            duration_seconds=result.duration_seconds,
            chunks_total=result.chunks_total,
            chunks_loaded=result.chunks_loaded,
            rows_loaded=result.rows_loaded,
            download_bytes=result.download_bytes,
            error_message=str(result.error) if result.error else None
        )

    async def _record_error(self, result: DatasetResult):
        source, error = result.source, result.error
        details = error.to_dict()
        context = error.context
        artifact_path = (
            context.get("chunk_path")
            or context.get("archive_path")
            or context.get("file_path")
            or context.get("path")
        )

        try:
            async with self.session_maker() as session:
                session.add(IngestionError(
                    run_id=result.run_id,
                    dataset=source.spec.key,
                    country_code=source.country_code,
                    phase=result.failed_phase,
                    chunk_number=getattr(error, "chunk_number", None),
                    artifact_path=str(artifact_path) if artifact_path else None,
                    source_url=source.url,
                    error_type=details["error_type"],
                    message=str(error),
                    context=details["context"]
                ))
                await session.commit()
        except Exception:
            logger.exception(f"{source.label}: unable to persist ingestion error record")

    async def _remove_artifacts(self, source: DatasetSource):
        storage_dir = source.storage_dir(self.config.storage_root)
        try:
            await asyncio.to_thread(shutil.rmtree, storage_dir)
        except OSError as e:
            logger.warning(f"{source.label}: could not remove artifacts in {storage_dir}: {e}")
        else:
            logger.info(f"{source.label}: removed local artifacts in {storage_dir}")
