"""Local ingestion: caller-supplied (name, content) pairs to source units."""

import logging
from pathlib import PurePosixPath
from typing import Iterable, NamedTuple

from ..config import Settings
from ..errors import ScanValidationError, UndecodableSourceError
from ..matcher import decode_source
from ..models import IngestionResult, SourceUnit, UnitFailure
from ..rules import language_for

logger = logging.getLogger(__name__)


class LocalFile(NamedTuple):
    """A file handed over by the upload layer."""

    name: str
    content: bytes | str
    media_type: str | None = None


def _extension(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def _media_type(value: str | None) -> str | None:
    # "text/plain; charset=utf-8" -> "text/plain"
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower()


class LocalIngestionAdapter:
    """Validate a batch of files against the configured limits and decode them.

    Any limit violation rejects the whole batch with a ``ScanValidationError``
    naming the constraint. Files that pass validation but cannot be decoded as
    text are reported as failures, not dropped.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def _is_allowed(self, file: LocalFile) -> bool:
        if _extension(file.name) in self.settings.allowed_extensions:
            return True
        return _media_type(file.media_type) in self.settings.allowed_media_types

    def validate(self, files: list[LocalFile]) -> None:
        """Check count, size and type limits without decoding anything.

        Raises:
            ScanValidationError: with ``constraint`` set to ``no_files``,
                ``max_files``, ``file_type``, ``max_file_bytes`` or
                ``max_total_bytes``.
        """
        settings = self.settings
        if not files:
            raise ScanValidationError("no_files", "Please upload at least one file to scan")
        if len(files) > settings.max_files:
            raise ScanValidationError(
                "max_files", f"Too many files: {len(files)} uploaded, at most {settings.max_files} allowed"
            )

        total = 0
        for file in files:
            if not self._is_allowed(file):
                raise ScanValidationError(
                    "file_type",
                    f"File type not allowed: {file.name} ({file.media_type or 'unknown media type'})",
                )
            size = _byte_size(file.content)
            if size > settings.max_file_bytes:
                raise ScanValidationError(
                    "max_file_bytes",
                    f"File too large: {file.name} is {size} bytes, limit is {settings.max_file_bytes}",
                )
            total += size
        if total > settings.max_total_bytes:
            raise ScanValidationError(
                "max_total_bytes",
                f"Upload too large: {total} bytes in total, limit is {settings.max_total_bytes}",
            )

    def ingest(self, files: Iterable[LocalFile | tuple]) -> IngestionResult:
        """Turn the batch into ordered source units.

        Args:
            files: ``LocalFile`` entries or plain ``(name, content[, media_type])`` tuples.

        Returns:
            Units in input order plus one ``UnitFailure`` per undecodable file.
        """
        batch = [file if isinstance(file, LocalFile) else LocalFile(*file) for file in files]
        self.validate(batch)

        result = IngestionResult()
        for file in batch:
            try:
                text = decode_source(file.content)
            except UndecodableSourceError as e:
                result.failures.append(UnitFailure(path=file.name, stage="ingest", reason=e.message))
                continue
            result.units.append(
                SourceUnit(
                    path=file.name,
                    content=text,
                    size=_byte_size(file.content),
                    language_hint=language_for(file.name),
                )
            )

        logger.info(f"Ingested {len(result.units)} local files ({len(result.failures)} undecodable)")
        return result


def _byte_size(content: bytes | str) -> int:
    if isinstance(content, bytes):
        return len(content)
    return len(content.encode("utf-8"))
