"""
Remote file retrieval over HTTP(S).

Streams one GeoNames file to a deterministic local path. The download lands in
a ``.part`` file first and is renamed over any previous artifact only once the
body has been fully received, so a failed fetch never clobbers a good file.
There is exactly one attempt per file; the orchestrator decides what a failure
means for the dataset.
"""

import os
from pathlib import Path
from typing import Optional

import httpx

from core.exceptions import StorageError, TransportError
from ingestion.artifacts import ArtifactKind, LocalArtifact
from ingestion.datasets import DatasetSource
import logging

logger = logging.getLogger(__name__)


class Fetcher:
    """
    Download a DatasetSource to local storage.

    Attributes:
        timeout: Request timeout in seconds (applies per network operation)
        block_size: Bytes written per read from the response stream
        transport: Optional httpx transport (used by tests to fake the server)
    """

    def __init__(
        self,
        timeout: float = 600.0,
        block_size: int = 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = timeout
        self.block_size = block_size
        self.transport = transport

    async def fetch(self, source: DatasetSource, destination_dir: Path) -> LocalArtifact:
        """
        Retrieve ``source.url`` into ``destination_dir / source.file_name``.

        Raises:
            TransportError: HTTP status >= 400 or a network failure
            StorageError: The local file could not be written
        """
        destination_dir = Path(destination_dir)
        target = destination_dir / source.file_name
        partial = target.with_name(target.name + ".part")

        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                "Unable to create storage directory",
                context={"path": str(destination_dir), "dataset": source.label},
                original_exception=e
            )

        logger.info(f"Downloading {source.url} to {target}")
        bytes_written = 0

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True
            ) as client:
                async with client.stream("GET", source.url) as response:
                    if response.status_code >= 400:
                        raise TransportError(
                            f"Download failed with HTTP {response.status_code}",
                            context={
                                "url": source.url,
                                "status_code": response.status_code,
                                "dataset": source.label
                            }
                        )

                    with open(partial, "wb") as fh:
                        async for block in response.aiter_bytes(self.block_size):
                            fh.write(block)
                            bytes_written += len(block)

        except TransportError:
            self._discard(partial)
            raise

        except httpx.HTTPError as e:
            self._discard(partial)
            raise TransportError(
                f"Network error while downloading {source.url}",
                context={"url": source.url, "dataset": source.label},
                original_exception=e
            )

        except OSError as e:
            self._discard(partial)
            raise StorageError(
                "Unable to write downloaded file",
                context={"path": str(partial), "url": source.url, "dataset": source.label},
                original_exception=e
            )

        try:
            os.replace(partial, target)
        except OSError as e:
            self._discard(partial)
            raise StorageError(
                "Unable to move downloaded file into place",
                context={"path": str(target), "dataset": source.label},
                original_exception=e
            )

        kind = ArtifactKind.ARCHIVE if source.is_archive else ArtifactKind.EXTRACTED_TEXT
        logger.info(f"Downloaded {bytes_written} bytes for {source.label}")
        return LocalArtifact(path=target, size_bytes=bytes_written, kind=kind)

    @staticmethod
    def _discard(path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning(f"Could not remove partial download {path}")
