"""Finding aggregation and risk scoring.

``ScanAccumulator`` is the single writer for a scan. Units must be added in
adapter order; identifiers are assigned as findings are merged, so the same
inputs always produce the same ids regardless of how matching was scheduled.

Lifecycle: CREATED -> ACCUMULATING -> FINALIZED. Once finalized the result
is immutable and the accumulator refuses further input.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from .errors import ScanStateError
from .models import (
    Finding,
    RepositoryInfo,
    ScanResult,
    Severity,
    SeverityCounts,
    SourceUnit,
    UnitFailure,
)

logger = logging.getLogger(__name__)

MAX_RISK_SCORE = 100


class ScanState(str, Enum):
    created = "CREATED"
    accumulating = "ACCUMULATING"
    finalized = "FINALIZED"


def count_severities(findings: Iterable[Finding]) -> SeverityCounts:
    """Tally findings by severity."""
    counts = {severity: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity] += 1
    return SeverityCounts(**{severity.name: n for severity, n in counts.items()})


def calculate_risk_score(counts: SeverityCounts) -> int:
    """Severity-weighted average scaled to 0-100.

    ``min(100, round_half_up(weighted / total * 10))``, computed in integers so
    the result is exact and identical on every platform. 0 when there are no
    findings.
    """
    total = counts.total
    if total == 0:
        return 0
    weighted = sum(severity.weight * counts.get(severity) for severity in Severity)
    return min(MAX_RISK_SCORE, (20 * weighted + total) // (2 * total))


class ScanAccumulator:
    """Collects per-unit results for one scan and freezes them into a ScanResult."""

    def __init__(
        self,
        scan_id: str,
        timestamp: datetime | None = None,
        repository: RepositoryInfo | None = None,
        requested_by: str | None = None,
        truncated_files: int = 0,
    ):
        self.scan_id = scan_id
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.repository = repository
        self.requested_by = requested_by
        self.truncated_files = truncated_files
        self.state = ScanState.created
        self._findings: list[Finding] = []
        self._skipped: list[UnitFailure] = []
        self._attempted = 0
        self._result: ScanResult | None = None

    def _begin(self) -> None:
        if self.state is ScanState.finalized:
            raise ScanStateError(f"Scan {self.scan_id} is finalized and cannot accept more units")
        self.state = ScanState.accumulating

    def add_unit(self, unit: SourceUnit, findings: Iterable[Finding]) -> None:
        """Merge one unit's matcher output, stamping id and file on new copies."""
        self._begin()
        self._attempted += 1
        stamp: dict = {"file": unit.path}
        if self.repository is not None:
            stamp["repository_url"] = self.repository.url
            stamp["branch"] = self.repository.branch
        for finding in findings:
            index = len(self._findings) + 1
            self._findings.append(
                finding.model_copy(update={**stamp, "id": f"{self.scan_id}-{index}"})
            )

    def add_failure(self, failure: UnitFailure) -> None:
        """Record a unit that was attempted but could not be fetched or matched."""
        self._begin()
        self._attempted += 1
        self._skipped.append(failure)
        logger.warning(f"Skipped {failure.path} during {failure.stage}: {failure.reason}")

    def finalize(self) -> ScanResult:
        """Tally severities, compute the risk score and freeze the result."""
        if self._result is not None:
            return self._result
        counts = count_severities(self._findings)
        self._result = ScanResult(
            scan_id=self.scan_id,
            timestamp=self.timestamp,
            total_files=self._attempted,
            skipped_files=len(self._skipped),
            truncated_files=self.truncated_files,
            findings=tuple(self._findings),
            severity_counts=counts,
            risk_score=calculate_risk_score(counts),
            skipped=tuple(self._skipped),
            repository=self.repository,
            requested_by=self.requested_by,
        )
        self.state = ScanState.finalized
        return self._result
