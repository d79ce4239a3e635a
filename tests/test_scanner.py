"""Tests for scan pipeline orchestration."""

import time
from unittest.mock import patch

import pytest

from bugshield import matcher
from bugshield.config import Settings
from bugshield.errors import ScanValidationError
from bugshield.models import SourceUnit, UnitFailure
from bugshield.scanner import match_units, scan_local_files, scan_snippet, snippet_filename

SECRET_LINE = 'const API_KEY = "sk-1234567890abcdef";'
SQL_LINE = "$query = \"SELECT * FROM users WHERE u='\" . $_POST['u'] . \"'\";"


class TestMatchUnits:
    """Test bounded parallel matching."""

    async def test_results_follow_unit_order(self):
        """Test results line up with units even when earlier units finish last."""
        units = [SourceUnit(path=f"f{i}.js", content=SECRET_LINE, size=1) for i in range(4)]

        def slow_first(text, filename, max_line_length):
            if filename == "f0.js":
                time.sleep(0.2)
            return matcher.scan(text, filename, max_line_length=max_line_length)

        with patch("bugshield.scanner.scan", side_effect=slow_first):
            outcomes = await match_units(units, concurrency=4)

        assert len(outcomes) == 4
        assert all(len(findings) == 1 for findings in outcomes)

    async def test_matcher_crash_becomes_failure(self):
        """Test an unexpected matcher error is isolated to its unit."""
        units = [
            SourceUnit(path="ok.js", content=SECRET_LINE, size=1),
            SourceUnit(path="boom.js", content="x", size=1),
        ]

        def flaky(text, filename, max_line_length):
            if filename == "boom.js":
                raise RuntimeError("rule exploded")
            return matcher.scan(text, filename, max_line_length=max_line_length)

        with patch("bugshield.scanner.scan", side_effect=flaky):
            outcomes = await match_units(units)

        assert len(outcomes[0]) == 1
        assert isinstance(outcomes[1], UnitFailure)
        assert outcomes[1].stage == "match"
        assert outcomes[1].path == "boom.js"


class TestScanLocalFiles:
    """Test end-to-end local scans."""

    async def test_ids_follow_upload_order(self):
        """Test finding ids are assigned in upload order regardless of completion order."""
        files = [("b.js", SECRET_LINE), ("a.php", SQL_LINE), ("c.js", SECRET_LINE)]

        def slow_first(text, filename, max_line_length):
            if filename == "b.js":
                time.sleep(0.2)
            return matcher.scan(text, filename, max_line_length=max_line_length)

        with patch("bugshield.scanner.scan", side_effect=slow_first):
            result = await scan_local_files(files, Settings(match_concurrency=3))

        assert [f.file for f in result.findings] == ["b.js", "a.php", "c.js"]
        assert [f.id for f in result.findings] == [f"{result.scan_id}-{n}" for n in (1, 2, 3)]
        assert [f.type for f in result.findings] == ["Hardcoded Secret", "SQL Injection", "Hardcoded Secret"]

    async def test_undecodable_upload_is_skipped(self):
        result = await scan_local_files([("a.js", SECRET_LINE), ("b.js", b"\xff\xfe\xfa")])

        assert result.total_files == 2
        assert result.skipped_files == 1
        assert result.skipped[0].stage == "ingest"
        assert len(result.findings) == 1

    async def test_validation_error_aborts(self):
        with pytest.raises(ScanValidationError):
            await scan_local_files([])

    async def test_requested_by_is_recorded(self):
        result = await scan_local_files([("a.js", SECRET_LINE)], requested_by="alice")
        assert result.requested_by == "alice"


class TestScanSnippet:
    """Test single-snippet scans."""

    async def test_snippet_scan(self):
        result = await scan_snippet(SQL_LINE, language="php")

        assert result.scan_id.startswith("snippet-")
        assert result.total_files == 1
        assert result.findings[0].file == "snippet.php"
        assert result.findings[0].type == "SQL Injection"
        assert result.risk_score == 100

    async def test_explicit_filename(self):
        result = await scan_snippet(SECRET_LINE, filename="settings.js")
        assert result.findings[0].file == "settings.js"

    @pytest.mark.parametrize("code", ["", "   \n  "])
    async def test_empty_snippet_is_rejected(self, code):
        with pytest.raises(ScanValidationError) as exc:
            await scan_snippet(code, language="js")
        assert exc.value.constraint == "code"

    @pytest.mark.parametrize("language, expected", [
        (None, "snippet.txt"),
        ("php", "snippet.php"),
        ("javascript", "snippet.js"),
        ("Python", "snippet.py"),
        ("js", "snippet.js"),
        (".ts", "snippet.ts"),
    ])
    def test_snippet_filename(self, language, expected):
        assert snippet_filename(language) == expected
