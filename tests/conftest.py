"""Shared fixtures for bugshield tests."""

import base64
from datetime import datetime, timezone

import httpx
import pytest

from bugshield.aggregator import ScanAccumulator
from bugshield.models import Finding, RepositoryInfo, Severity, SourceUnit

FIXED_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_finding():
    """Factory for matcher-style findings (no id or file)."""

    def _make(severity: Severity = Severity.high, type: str = "Hardcoded Secret", line: int = 1, **kwargs) -> Finding:
        values = dict(
            type=type,
            severity=severity,
            line=line,
            description=f"{type} detected",
            vulnerable_snippet="x = 1",
            remediation="Fix it",
            fixed_snippet="x = safe()",
        )
        values.update(kwargs)
        return Finding(**values)

    return _make


@pytest.fixture
def make_result(make_finding):
    """Factory for finalized results from a list of (severity, type) pairs."""

    def _make(specs: list[tuple[Severity, str]], scan_id: str = "scan1", repository: RepositoryInfo | None = None):
        accumulator = ScanAccumulator(scan_id, timestamp=FIXED_TIME, repository=repository)
        for i, (severity, type) in enumerate(specs):
            unit = SourceUnit(path=f"file{i}.js", content="", size=0)
            accumulator.add_unit(unit, [make_finding(severity=severity, type=type, line=i + 1)])
        if not specs:
            accumulator.add_unit(SourceUnit(path="clean.js", content="", size=0), [])
        return accumulator.finalize()

    return _make


class FakeGitHub:
    """In-memory GitHub API served through ``httpx.MockTransport``."""

    def __init__(self, files: dict[str, str], owner: str = "octo", repo: str = "app", default_branch: str = "main"):
        self.files = files
        self.owner = owner
        self.repo = repo
        self.default_branch = default_branch
        self.extra_tree: list[dict] = []
        self.file_errors: dict[str, httpx.Response | Exception] = {}
        self.repo_response: httpx.Response | None = None
        self.tree_response: httpx.Response | None = None
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def repo_json(self) -> dict:
        return {
            "name": self.repo,
            "full_name": f"{self.owner}/{self.repo}",
            "html_url": f"https://github.com/{self.owner}/{self.repo}",
            "default_branch": self.default_branch,
            "description": "Test repository",
            "language": "JavaScript",
            "size": 42,
            "stargazers_count": 7,
            "forks_count": 2,
            "private": False,
            "updated_at": "2024-01-01T00:00:00Z",
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        base = f"/repos/{self.owner}/{self.repo}"

        if path == base:
            if self.repo_response is not None:
                return self.repo_response
            return httpx.Response(200, json=self.repo_json())
        if path.startswith(f"{base}/git/trees/"):
            if self.tree_response is not None:
                return self.tree_response
            tree = [
                {"path": name, "type": "blob", "size": len(content.encode())}
                for name, content in self.files.items()
            ]
            return httpx.Response(200, json={"tree": tree + self.extra_tree, "truncated": False})
        if path.startswith(f"{base}/contents/"):
            name = path[len(f"{base}/contents/"):]
            error = self.file_errors.get(name)
            if isinstance(error, Exception):
                raise error
            if error is not None:
                return error
            if name not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            encoded = base64.b64encode(self.files[name].encode()).decode()
            return httpx.Response(
                200,
                json={"type": "file", "path": name, "encoding": "base64", "content": encoded},
            )
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake_github():
    """Factory for a ``FakeGitHub`` serving the given files."""
    return FakeGitHub
