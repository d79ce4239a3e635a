"""
Report builder for vulnerability scan results.

Derives every part of a ``Report`` from a finalized ``ScanResult``: the
executive summary, the display projection of each finding, and the advisory
recommendations and compliance notes. Nothing here holds independent state.
"""

import uuid
from datetime import datetime, timezone

from .errors import ScanValidationError
from .models import (
    ComplianceNote,
    ExecutiveSummary,
    Recommendation,
    Report,
    ReportFinding,
    ReportFormat,
    ReportMetadata,
    ScanResult,
    Severity,
)


def parse_format(value: str | ReportFormat) -> ReportFormat:
    """Normalize a requested format name.

    Raises:
        ScanValidationError: the format is not json, csv or html.
    """
    if isinstance(value, ReportFormat):
        return value
    try:
        return ReportFormat(str(value).strip().lower())
    except ValueError:
        supported = ", ".join(f.value for f in ReportFormat)
        raise ScanValidationError("format", f"Unsupported report format '{value}'. Use one of: {supported}") from None


def _has_type(result: ScanResult, fragment: str) -> bool:
    return any(fragment in finding.type for finding in result.findings)


def generate_recommendations(result: ScanResult) -> list[Recommendation]:
    """Advisory list, most urgent first."""
    counts = result.severity_counts
    recommendations: list[Recommendation] = []

    if counts.critical > 0:
        recommendations.append(Recommendation(
            priority=Severity.critical,
            action="Immediately address all critical vulnerabilities before deploying to production",
            impact="Critical vulnerabilities can lead to complete system compromise",
        ))
    if counts.high > 0:
        recommendations.append(Recommendation(
            priority=Severity.high,
            action="Address high-severity vulnerabilities within 24-48 hours",
            impact="High-severity issues can lead to data breaches and unauthorized access",
        ))
    if _has_type(result, "SQL Injection"):
        recommendations.append(Recommendation(
            priority=Severity.high,
            action="Implement parameterized queries and input validation",
            impact="SQL injection can lead to database compromise and data theft",
        ))
    if _has_type(result, "XSS"):
        recommendations.append(Recommendation(
            priority=Severity.high,
            action="Implement proper output encoding and Content Security Policy",
            impact="XSS attacks can steal user sessions and sensitive data",
        ))

    return recommendations


def generate_compliance_notes(result: ScanResult) -> list[ComplianceNote]:
    counts = result.severity_counts
    notes: list[ComplianceNote] = []

    if counts.critical > 0 or counts.high > 0:
        notes.append(ComplianceNote(
            standard="OWASP Top 10",
            note="Critical and high-severity vulnerabilities may violate OWASP security guidelines",
        ))
    if _has_type(result, "Hardcoded Secret"):
        notes.append(ComplianceNote(
            standard="PCI DSS",
            note="Hardcoded secrets violate PCI DSS requirements for secure key management",
        ))

    return notes


def build_report(
    result: ScanResult,
    fmt: str | ReportFormat = ReportFormat.json,
    report_id: str | None = None,
    generated_at: datetime | None = None,
) -> Report:
    """Project a scan result into a report.

    ``report_id`` and ``generated_at`` default to a fresh id and the current
    time; pass them explicitly for reproducible output.
    """
    fmt = parse_format(fmt)
    counts = result.severity_counts

    return Report(
        metadata=ReportMetadata(
            report_id=report_id or f"report-{uuid.uuid4().hex[:12]}",
            generated_at=generated_at or datetime.now(timezone.utc),
            scan_id=result.scan_id,
            format=fmt.value.upper(),
        ),
        executive_summary=ExecutiveSummary(
            total_files_scanned=result.total_files,
            skipped_files=result.skipped_files,
            total_vulnerabilities=counts.total,
            risk_score=result.risk_score,
            severity_breakdown=counts,
        ),
        detailed_findings=[
            ReportFinding(
                id=finding.id,
                type=finding.type,
                severity=finding.severity,
                file=finding.file,
                line=finding.line,
                description=finding.description,
                vulnerable_code=finding.vulnerable_snippet,
                recommendation=finding.remediation,
                secure_code_example=finding.fixed_snippet,
            )
            for finding in result.findings
        ],
        recommendations=generate_recommendations(result),
        compliance_notes=generate_compliance_notes(result),
    )
