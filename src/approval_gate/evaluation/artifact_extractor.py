"""Artifact Extractor: pulls the IAM template out of a zipped pipeline artifact."""

from __future__ import annotations

import asyncio
import io
import re
import zipfile
import zlib

from botocore.exceptions import BotoCoreError, ClientError

from approval_gate.config.settings import DEFAULT_TEMPLATE_PATTERN
from approval_gate.core.exceptions import UnreadableArtifactError
from approval_gate.core.structured_logger import get_logger
from approval_gate.core.types import CandidateTemplate, S3Location

logger = get_logger("ArtifactExtractor")


class ArtifactExtractor:
    """
    Locates the single archive entry whose path matches the IAM template
    naming convention and returns its text.

    ``None`` means "no candidate": either nothing matched, or the artifact
    could not be read. An unreadable artifact is logged but never blocks the
    pipeline.
    """

    def __init__(self, s3_client, template_pattern: str | re.Pattern = DEFAULT_TEMPLATE_PATTERN):
        self.s3 = s3_client
        self.pattern = re.compile(template_pattern) if isinstance(template_pattern, str) else template_pattern

    def _sync_fetch(self, location: S3Location) -> bytes:
        response = self.s3.get_object(Bucket=location.bucket_name, Key=location.object_key)
        return response["Body"].read()

    async def fetch(self, location: S3Location) -> bytes:
        """Download the artifact blob."""
        try:
            return await asyncio.to_thread(self._sync_fetch, location)
        except (ClientError, BotoCoreError) as e:
            raise UnreadableArtifactError(
                f"Unable to fetch artifact: {e}",
                details={"bucket": location.bucket_name, "key": location.object_key},
            ) from e

    def extract(self, blob: bytes, pattern: re.Pattern | None = None) -> CandidateTemplate | None:
        """
        Scan the archive in enumeration order and return the first matching entry.

        Raises:
            UnreadableArtifactError: blob is not a zip archive or the entry is not UTF-8 text
        """
        pattern = pattern or self.pattern
        try:
            with zipfile.ZipFile(io.BytesIO(blob)) as zf:
                matches = [
                    info for info in zf.infolist()
                    if not info.is_dir() and pattern.search(info.filename)
                ]
                for info in matches:
                    logger.info("Found match", path=info.filename)

                if not matches:
                    logger.info("No file matching the template pattern was found", pattern=pattern.pattern)
                    return None

                if len(matches) > 1:
                    logger.warning(
                        "Multiple files match the template pattern, only using the first",
                        pattern=pattern.pattern,
                        files=[info.filename for info in matches],
                    )

                selected = matches[0]
                raw = zf.read(selected)
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            zlib.error,
            OSError,
            EOFError,
            RuntimeError,
            NotImplementedError,
        ) as e:
            # RuntimeError: encrypted entry. NotImplementedError: unsupported compression method.
            raise UnreadableArtifactError(f"Artifact is not a readable zip archive: {e}") from e

        try:
            body = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnreadableArtifactError(
                f"Template {selected.filename} is not UTF-8 text",
                details={"path": selected.filename},
            ) from e

        return CandidateTemplate(
            path=selected.filename,
            body=body,
            matches=tuple(info.filename for info in matches),
        )

    async def extract_from_location(self, location: S3Location) -> CandidateTemplate | None:
        """Fetch and extract; unreadable artifacts yield no candidate."""
        try:
            blob = await self.fetch(location)
            return self.extract(blob)
        except UnreadableArtifactError as e:
            logger.error(
                "Unable to read zip file from artifact store",
                bucket=location.bucket_name,
                key=location.object_key,
                error=e.message,
            )
            return None
