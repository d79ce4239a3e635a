"""Report encoders: json, csv and a self-contained html page."""

import csv
import io
from datetime import datetime
from html import escape

from .models import RenderedReport, Report, ReportFormat, ScanResult, Severity
from .report_builder import build_report, parse_format

CSV_HEADER = ["ID", "Type", "Severity", "File", "Line", "Description", "Recommendation"]

# No scripts, no remote resources
HTML_CSP = "default-src 'none'; style-src 'unsafe-inline'; img-src data:; base-uri 'none'; form-action 'none'"

_HTML_STYLE = """
body { font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; }
.container { max-width: 1200px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
.header { text-align: center; margin-bottom: 30px; }
.summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; margin-bottom: 30px; }
.summary-card { background: #f8f9fa; padding: 15px; border-radius: 6px; text-align: center; }
.value { font-size: 2em; font-weight: bold; }
.critical { color: #dc3545; }
.high { color: #fd7e14; }
.medium { color: #ffc107; }
.low { color: #17a2b8; }
.ok { color: #28a745; }
.vulnerability { border: 1px solid #ddd; margin-bottom: 20px; border-radius: 6px; }
.vuln-header { background: #f8f9fa; padding: 15px; border-bottom: 1px solid #ddd; }
.vuln-content { padding: 15px; }
.code-block { background: #f8f9fa; padding: 10px; border-radius: 4px; font-family: monospace; white-space: pre-wrap; }
.recommendations { background: #e7f3ff; padding: 20px; border-radius: 6px; margin-top: 30px; }
"""


def render_json(report: Report) -> RenderedReport:
    return RenderedReport(content=report.model_dump_json(indent=2), content_type="application/json")


def render_csv(report: Report) -> RenderedReport:
    """One row per finding; quoting follows RFC 4180."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for finding in report.detailed_findings:
        writer.writerow([
            finding.id or "",
            finding.type,
            finding.severity.value,
            finding.file or "",
            finding.line,
            finding.description,
            finding.recommendation,
        ])
    return RenderedReport(
        content=buffer.getvalue(),
        content_type="text/csv",
        filename=f"security-report-{report.metadata.report_id}.csv",
    )


def _risk_class(score: int) -> str:
    if score >= 80:
        return "critical"
    if score >= 60:
        return "high"
    return "ok"


def _tile(title: str, value: object, css_class: str = "") -> str:
    return (
        f'<div class="summary-card {css_class}"><h3>{escape(title)}</h3>'
        f'<div class="value">{escape(str(value))}</div></div>'
    )


def render_html(report: Report) -> RenderedReport:
    """Static page with summary tiles and one section per finding.

    Every interpolated value is HTML-escaped.
    """
    summary = report.executive_summary
    breakdown = summary.severity_breakdown
    generated: datetime = report.metadata.generated_at

    findings_html = []
    for finding in report.detailed_findings:
        severity = finding.severity.value
        findings_html.append(
            '<div class="vulnerability">'
            f'<div class="vuln-header"><h3>{escape(finding.type)} '
            f'<span class="{severity.lower()}">[{escape(severity)}]</span></h3>'
            f'<p><strong>File:</strong> {escape(finding.file or "")} '
            f'<strong>Line:</strong> {finding.line}</p></div>'
            '<div class="vuln-content">'
            f'<p><strong>Description:</strong> {escape(finding.description)}</p>'
            '<p><strong>Vulnerable Code:</strong></p>'
            f'<div class="code-block">{escape(finding.vulnerable_code)}</div>'
            f'<p><strong>Recommendation:</strong> {escape(finding.recommendation)}</p>'
            '<p><strong>Secure Code Example:</strong></p>'
            f'<div class="code-block">{escape(finding.secure_code_example)}</div>'
            '</div></div>'
        )
    if not findings_html:
        findings_html.append("<p>No vulnerabilities were found.</p>")

    recommendations_html = "".join(
        '<div class="recommendation">'
        f'<h4 class="{rec.priority.value.lower()}">{escape(rec.priority.value)} Priority</h4>'
        f'<p><strong>Action:</strong> {escape(rec.action)}</p>'
        f'<p><strong>Impact:</strong> {escape(rec.impact)}</p></div>'
        for rec in report.recommendations
    )
    compliance_html = "".join(
        f"<li><strong>{escape(note.standard)}:</strong> {escape(note.note)}</li>"
        for note in report.compliance_notes
    )
    if compliance_html:
        compliance_html = f"<h2>Compliance Notes</h2><ul>{compliance_html}</ul>"
    if not recommendations_html:
        recommendations_html = "<p>No immediate actions required.</p>"

    tiles = "\n".join([
        _tile("Files Scanned", summary.total_files_scanned),
        _tile("Files Skipped", summary.skipped_files),
        _tile("Vulnerabilities", summary.total_vulnerabilities),
        _tile("Risk Score", f"{summary.risk_score}/100", _risk_class(summary.risk_score)),
    ])
    severity_tiles = "\n".join(
        _tile(severity.value, breakdown.get(severity), severity.name) for severity in Severity
    )
    findings_block = "".join(findings_html)

    content = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta http-equiv="Content-Security-Policy" content="{escape(HTML_CSP)}">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>BugShield Security Report</title>
<style>{_HTML_STYLE}</style>
</head>
<body>
<div class="container">
<div class="header">
<h1>BugShield Security Report</h1>
<p>Generated on {escape(generated.isoformat())}</p>
<p>Report ID: {escape(report.metadata.report_id)}</p>
<p>Scan ID: {escape(report.metadata.scan_id)}</p>
</div>
<div class="summary">
{tiles}
</div>
<h2>Severity Breakdown</h2>
<div class="summary">
{severity_tiles}
</div>
<h2>Detailed Findings</h2>
{findings_block}
<div class="recommendations">
<h2>Recommendations</h2>
{recommendations_html}
</div>
{compliance_html}
</div>
</body>
</html>
"""
    return RenderedReport(
        content=content,
        content_type="text/html",
        filename=f"security-report-{report.metadata.report_id}.html",
    )


_RENDERERS = {
    ReportFormat.json: render_json,
    ReportFormat.csv: render_csv,
    ReportFormat.html: render_html,
}


def render_report(
    result: ScanResult,
    fmt: str | ReportFormat = ReportFormat.json,
    report_id: str | None = None,
    generated_at: datetime | None = None,
) -> RenderedReport:
    """Build the report for ``result`` and encode it in ``fmt``.

    Raises:
        ScanValidationError: unsupported format.
    """
    fmt = parse_format(fmt)
    report = build_report(result, fmt, report_id=report_id, generated_at=generated_at)
    return _RENDERERS[fmt](report)
