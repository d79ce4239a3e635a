"""Tests for the local ingestion adapter."""

import pytest

from bugshield.config import Settings
from bugshield.errors import ScanValidationError
from bugshield.ingestion import LocalFile, LocalIngestionAdapter


class TestLocalIngestion:
    """Test limits, filtering and decoding of uploaded files."""

    def test_ingests_in_order(self):
        """Test units keep the upload order and carry a language hint."""
        result = LocalIngestionAdapter().ingest([
            LocalFile("login.php", b"<?php echo 1;", "application/x-php"),
            ("app.js", "let a = 1;"),
        ])

        assert [u.path for u in result.units] == ["login.php", "app.js"]
        assert result.units[0].language_hint == "php"
        assert result.units[0].size == 13
        assert result.units[1].content == "let a = 1;"
        assert result.failures == []
        assert result.attempted == 2

    def test_no_files(self):
        with pytest.raises(ScanValidationError) as exc:
            LocalIngestionAdapter().ingest([])
        assert exc.value.constraint == "no_files"

    def test_too_many_files(self):
        adapter = LocalIngestionAdapter(Settings(max_files=2))
        with pytest.raises(ScanValidationError) as exc:
            adapter.ingest([(f"f{i}.js", "x") for i in range(3)])
        assert exc.value.constraint == "max_files"

    def test_file_too_large(self):
        adapter = LocalIngestionAdapter(Settings(max_file_bytes=10))
        with pytest.raises(ScanValidationError) as exc:
            adapter.ingest([("big.js", b"x" * 11)])
        assert exc.value.constraint == "max_file_bytes"
        assert "big.js" in exc.value.message

    def test_total_too_large(self):
        adapter = LocalIngestionAdapter(Settings(max_file_bytes=10, max_total_bytes=15))
        with pytest.raises(ScanValidationError) as exc:
            adapter.ingest([("a.js", b"x" * 8), ("b.js", b"x" * 8)])
        assert exc.value.constraint == "max_total_bytes"

    def test_disallowed_type_is_rejected_not_dropped(self):
        """Test a disallowed file rejects the whole batch."""
        with pytest.raises(ScanValidationError) as exc:
            LocalIngestionAdapter().ingest([
                ("ok.js", "let a = 1;"),
                LocalFile("malware.exe", b"MZ", "application/octet-stream"),
            ])
        assert exc.value.constraint == "file_type"
        assert "malware.exe" in exc.value.message

    def test_allowed_media_type_without_extension(self):
        """Test an allowed media type admits a file with an unknown extension."""
        result = LocalIngestionAdapter().ingest([LocalFile("Procfile", b"web: run", "text/plain; charset=utf-8")])
        assert len(result.units) == 1
        assert result.units[0].language_hint is None

    def test_undecodable_file_becomes_failure(self):
        """Test binary content is recorded as a failure instead of aborting."""
        result = LocalIngestionAdapter().ingest([
            ("good.js", "let a = 1;"),
            ("bad.js", b"\x00\x01binary"),
        ])

        assert [u.path for u in result.units] == ["good.js"]
        assert len(result.failures) == 1
        assert result.failures[0].path == "bad.js"
        assert result.failures[0].stage == "ingest"
        assert result.attempted == 2
