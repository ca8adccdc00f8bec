"""
Archive decompression with post-extraction verification
"""

import asyncio
import zipfile
from pathlib import Path
from typing import List, Optional

from core.exceptions import ExtractionError
from ingestion.artifacts import ArtifactKind, LocalArtifact
import logging

logger = logging.getLogger(__name__)


class ArchiveExtractor:
    """
    Unzip a downloaded archive next to itself.

    The expected member must be listed in the archive and present on disk
    afterwards; anything else is an ExtractionError, never a silent success.
    """

    async def extract(
        self,
        archive_path: Path,
        expected_member: str,
        destination_dir: Optional[Path] = None
    ) -> List[LocalArtifact]:
        """
        Returns:
            Extracted artifacts, the expected member first
        """
        return await asyncio.to_thread(
            self.extract_sync, Path(archive_path), expected_member, destination_dir
        )

    def extract_sync(
        self,
        archive_path: Path,
        expected_member: str,
        destination_dir: Optional[Path] = None
    ) -> List[LocalArtifact]:
        destination_dir = Path(destination_dir or archive_path.parent)
        context = {
            "archive_path": str(archive_path),
            "expected_member": expected_member,
        }

        logger.info(f"Extracting {archive_path.name} into {destination_dir}")

        try:
            with zipfile.ZipFile(archive_path) as archive:
                members = [info for info in archive.infolist() if not info.is_dir()]
                names = [info.filename for info in members]

                if expected_member not in names:
                    raise ExtractionError(
                        f"Archive does not contain {expected_member}",
                        context={**context, "members": names}
                    )

                archive.extractall(destination_dir)

        except ExtractionError:
            raise

        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
            raise ExtractionError(
                "Archive is corrupt or unreadable",
                context=context,
                original_exception=e
            )

        except OSError as e:
            raise ExtractionError(
                "Unable to extract archive",
                context=context,
                original_exception=e
            )

        expected_path = destination_dir / expected_member
        if not expected_path.is_file():
            raise ExtractionError(
                f"Extracted file {expected_member} was not found after unzip",
                context={**context, "looked_for": str(expected_path)}
            )

        extracted = [LocalArtifact.from_path(expected_path, ArtifactKind.EXTRACTED_TEXT)]
        for name in names:
            if name == expected_member:
                continue
            path = destination_dir / name
            if path.is_file():
                extracted.append(LocalArtifact.from_path(path, ArtifactKind.EXTRACTED_TEXT))

        logger.info(
            f"Extracted {len(extracted)} file(s) from {archive_path.name}; "
            f"{expected_member} is {extracted[0].size_bytes} bytes"
        )
        return extracted

    @staticmethod
    def verify_plain_file(path: Path) -> LocalArtifact:
        """Non-archive downloads skip decompression but must still exist"""
        path = Path(path)
        if not path.is_file():
            raise ExtractionError(
                f"Expected file {path.name} is missing",
                context={"looked_for": str(path)}
            )
        return LocalArtifact.from_path(path, ArtifactKind.EXTRACTED_TEXT)
