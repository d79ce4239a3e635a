"""Pydantic models for the BugShield scan pipeline."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Severity(str, Enum):
    """Severity levels for findings, with their risk-score weights."""

    critical = "Critical"
    high = "High"
    medium = "Medium"
    low = "Low"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.critical: 10,
    Severity.high: 7,
    Severity.medium: 4,
    Severity.low: 1,
}


class ReportFormat(str, Enum):
    json = "json"
    csv = "csv"
    html = "html"


class SourceUnit(BaseModel):
    """One file's content plus its path, the atomic input to the matcher."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Path or name identifying the unit")
    content: str = Field(description="Decoded text content")
    size: int = Field(ge=0, description="Size of the original content in bytes")
    language_hint: Optional[str] = Field(default=None, description="Language derived from the extension")


class Finding(BaseModel):
    """A single vulnerability instance.

    The matcher produces findings without ``id``/``file``; the aggregator stamps
    them onto new copies. Instances are never mutated after creation.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Vulnerability category, e.g. 'SQL Injection'")
    severity: Severity = Field(description="Severity level")
    line: int = Field(ge=1, description="1-based line number")
    description: str = Field(description="What was detected")
    vulnerable_snippet: str = Field(description="The offending source line (trimmed)")
    remediation: str = Field(description="How to fix the issue")
    fixed_snippet: str = Field(description="Example of the corrected code")
    id: Optional[str] = Field(default=None, description="'<scan_id>-<index>', assigned at merge")
    file: Optional[str] = Field(default=None, description="Path of the unit the finding came from")
    repository_url: Optional[str] = Field(default=None)
    branch: Optional[str] = Field(default=None)


class UnitFailure(BaseModel):
    """A unit that was discovered but could not be fetched or matched."""

    model_config = ConfigDict(frozen=True)

    path: str
    stage: Literal["ingest", "fetch", "match"]
    reason: str


class RepositoryInfo(BaseModel):
    """Metadata about a remote repository."""

    name: str
    full_name: str
    url: str
    default_branch: str
    branch: Optional[str] = Field(default=None, description="Ref that was scanned")
    description: Optional[str] = None
    language: Optional[str] = None
    size: int = Field(default=0, description="Repository size in KiB as reported by the host")
    stars: int = 0
    forks: int = 0
    is_private: bool = False
    last_updated: Optional[str] = None


class IngestionResult(BaseModel):
    """Adapter output: ordered units plus the candidates that failed ingestion."""

    units: list[SourceUnit] = Field(default_factory=list)
    failures: list[UnitFailure] = Field(default_factory=list)
    truncated: list[str] = Field(
        default_factory=list, description="Candidates beyond the fetch cap; not scanned, not failed"
    )
    repository: Optional[RepositoryInfo] = None

    @property
    def attempted(self) -> int:
        return len(self.units) + len(self.failures)


class SeverityCounts(BaseModel):
    """Finding counts by severity."""

    critical: int = Field(default=0, ge=0)
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low

    def get(self, severity: Severity) -> int:
        return getattr(self, severity.name)


class ScanResult(BaseModel):
    """The finalized, immutable outcome of one scan."""

    model_config = ConfigDict(frozen=True)

    scan_id: str
    timestamp: datetime
    total_files: int = Field(ge=0, description="Units the pipeline attempted to process")
    skipped_files: int = Field(ge=0, description="Units that failed ingestion or matching")
    truncated_files: int = Field(default=0, ge=0, description="Units beyond the fetch cap")
    findings: tuple[Finding, ...] = ()
    severity_counts: SeverityCounts = Field(default_factory=SeverityCounts)
    risk_score: int = Field(default=0, ge=0, le=100)
    skipped: tuple[UnitFailure, ...] = ()
    repository: Optional[RepositoryInfo] = None
    requested_by: Optional[str] = Field(default=None, description="Attribution only")

    @model_validator(mode="after")
    def _check_consistency(self) -> "ScanResult":
        if self.severity_counts.total != len(self.findings):
            raise ValueError("severity_counts do not match the number of findings")
        if (self.risk_score == 0) != (not self.findings):
            raise ValueError("risk_score must be 0 exactly when there are no findings")
        if self.skipped_files > self.total_files:
            raise ValueError("skipped_files cannot exceed total_files")
        return self


class ScanSummary(BaseModel):
    """History entry for a stored scan."""

    scan_id: str
    timestamp: datetime
    total_files: int
    skipped_files: int
    total_vulnerabilities: int
    risk_score: int
    repository: Optional[str] = Field(default=None, description="Full name of the scanned repository")

    @classmethod
    def from_result(cls, result: ScanResult) -> "ScanSummary":
        return cls(
            scan_id=result.scan_id,
            timestamp=result.timestamp,
            total_files=result.total_files,
            skipped_files=result.skipped_files,
            total_vulnerabilities=len(result.findings),
            risk_score=result.risk_score,
            repository=result.repository.full_name if result.repository else None,
        )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class ReportMetadata(BaseModel):
    report_id: str
    generated_at: datetime
    scan_id: str
    format: str


class ExecutiveSummary(BaseModel):
    total_files_scanned: int
    skipped_files: int
    total_vulnerabilities: int
    risk_score: int
    severity_breakdown: SeverityCounts


class ReportFinding(BaseModel):
    """A finding projected for display."""

    id: Optional[str]
    type: str
    severity: Severity
    file: Optional[str]
    line: int
    description: str
    vulnerable_code: str
    recommendation: str
    secure_code_example: str


class Recommendation(BaseModel):
    priority: Severity
    action: str
    impact: str


class ComplianceNote(BaseModel):
    standard: str
    note: str


class Report(BaseModel):
    """A report derived purely from a ScanResult."""

    metadata: ReportMetadata
    executive_summary: ExecutiveSummary
    detailed_findings: list[ReportFinding] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    compliance_notes: list[ComplianceNote] = Field(default_factory=list)


class RenderedReport(BaseModel):
    """An encoded report ready for transport."""

    content: str
    content_type: str
    filename: Optional[str] = None


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------


class SnippetScanRequest(BaseModel):
    code: str = Field(description="Source code to scan")
    language: Optional[str] = Field(default=None, description="Language or extension, e.g. 'php'")
    filename: Optional[str] = Field(default=None, description="Name to report findings against")


class RepositoryScanRequest(BaseModel):
    repository_url: str = Field(description="GitHub repository URL, e.g. https://github.com/owner/repo")
    branch: Optional[str] = Field(default=None, description="Branch or ref; defaults to the repository default")


class ReportRequest(BaseModel):
    scan_id: Optional[str] = Field(default=None, description="ID of a stored scan")
    scan_result: Optional[ScanResult] = Field(default=None, description="Inline scan result")
    format: str = Field(default="json", description="json, csv or html")
