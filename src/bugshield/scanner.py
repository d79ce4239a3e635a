"""Scan pipeline: ingest, match in parallel, merge in order.

Matching runs in worker threads under a concurrency limit. All unit results
are joined before a single ordered merge into the ``ScanAccumulator``, so ids
and finding order depend only on adapter order, never on completion order.
"""

import asyncio
import logging
import uuid
from typing import Iterable

import httpx

from .aggregator import ScanAccumulator
from .config import Settings
from .errors import ScanValidationError, UndecodableSourceError
from .ingestion import LocalFile, LocalIngestionAdapter, RemoteIngestionAdapter
from .matcher import scan
from .models import Finding, IngestionResult, ScanResult, SourceUnit, UnitFailure
from .rules.common import LANGUAGE_BY_EXTENSION

logger = logging.getLogger(__name__)


async def _match_unit(unit: SourceUnit, semaphore: asyncio.Semaphore, max_line_length: int) -> list[Finding] | UnitFailure:
    async with semaphore:
        try:
            return await asyncio.to_thread(scan, unit.content, unit.path, max_line_length=max_line_length)
        except UndecodableSourceError as e:
            return UnitFailure(path=unit.path, stage="match", reason=e.message)
        except Exception as e:
            logger.exception(f"Matcher failed on {unit.path}")
            return UnitFailure(path=unit.path, stage="match", reason=f"Matcher error: {type(e).__name__}")


async def match_units(
    units: list[SourceUnit],
    concurrency: int = 4,
    max_line_length: int = 2000,
) -> list[list[Finding] | UnitFailure]:
    """Run the matcher over every unit; results line up with ``units``."""
    semaphore = asyncio.Semaphore(concurrency)
    return await asyncio.gather(*(_match_unit(unit, semaphore, max_line_length) for unit in units))


async def scan_ingestion(
    ingestion: IngestionResult,
    scan_id: str,
    settings: Settings | None = None,
    requested_by: str | None = None,
) -> ScanResult:
    """Match an adapter's units and aggregate them into a finalized result."""
    settings = settings or Settings()
    accumulator = ScanAccumulator(
        scan_id,
        repository=ingestion.repository,
        requested_by=requested_by,
        truncated_files=len(ingestion.truncated),
    )

    outcomes = await match_units(ingestion.units, settings.match_concurrency, settings.max_line_length)
    for unit, outcome in zip(ingestion.units, outcomes):
        if isinstance(outcome, UnitFailure):
            accumulator.add_failure(outcome)
        else:
            accumulator.add_unit(unit, outcome)
    for failure in ingestion.failures:
        accumulator.add_failure(failure)

    result = accumulator.finalize()
    logger.info(
        f"Scan {scan_id} completed: {len(result.findings)} vulnerabilities in {result.total_files} files "
        f"({result.skipped_files} skipped, {result.truncated_files} truncated), risk score {result.risk_score}"
    )
    return result


async def scan_local_files(
    files: Iterable[LocalFile | tuple],
    settings: Settings | None = None,
    requested_by: str | None = None,
) -> ScanResult:
    """Scan an uploaded batch of files."""
    settings = settings or Settings()
    ingestion = LocalIngestionAdapter(settings).ingest(files)
    scan_id = uuid.uuid4().hex
    logger.info(f"Starting scan {scan_id} of {ingestion.attempted} uploaded files")
    return await scan_ingestion(ingestion, scan_id, settings, requested_by)


async def scan_repository(
    repository_url: str,
    ref: str | None = None,
    settings: Settings | None = None,
    requested_by: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScanResult:
    """Scan a GitHub repository at ``ref`` (default branch when omitted)."""
    settings = settings or Settings()
    logger.info(f"Starting GitHub scan for: {repository_url}")
    ingestion = await RemoteIngestionAdapter(settings, transport).ingest(repository_url, ref)
    return await scan_ingestion(ingestion, f"github-{uuid.uuid4().hex}", settings, requested_by)


def snippet_filename(language: str | None) -> str:
    """``snippet.<ext>`` for a language name or extension, ``snippet.txt`` when unknown."""
    if not language:
        return "snippet.txt"
    name = language.strip().lower().lstrip(".")
    for extension, language_name in LANGUAGE_BY_EXTENSION.items():
        if language_name == name:
            return f"snippet{extension}"
    return f"snippet.{name}"


async def scan_snippet(
    code: str,
    language: str | None = None,
    filename: str | None = None,
    settings: Settings | None = None,
    requested_by: str | None = None,
) -> ScanResult:
    """Scan a single pasted code snippet as a one-unit scan."""
    if not code or not code.strip():
        raise ScanValidationError("code", "Please provide code to scan")
    settings = settings or Settings()
    path = filename or snippet_filename(language)
    logger.info(f"Starting snippet scan for {language or 'unknown'} code")
    ingestion = LocalIngestionAdapter(settings).ingest([LocalFile(path, code, "text/plain")])
    return await scan_ingestion(ingestion, f"snippet-{uuid.uuid4().hex}", settings, requested_by)
