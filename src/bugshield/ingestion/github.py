"""Remote ingestion from GitHub repositories.

Whole-operation requests (repository metadata, file tree) raise typed
``UpstreamError`` subclasses. Per-file fetches never raise: a file that cannot
be fetched or decoded becomes a ``UnitFailure`` and the scan continues.
"""

import asyncio
import base64
import binascii
import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import (
    AccessDeniedError,
    RateLimitedError,
    RepositoryNotFoundError,
    ScanValidationError,
    UndecodableSourceError,
    UpstreamError,
)
from ..matcher import decode_source
from ..models import IngestionResult, RepositoryInfo, SourceUnit, UnitFailure
from ..rules import language_for

logger = logging.getLogger(__name__)

_OWNER = r"(?P<owner>[A-Za-z0-9](?:[A-Za-z0-9-]{0,38}))"
_REPO = r"(?P<repo>[A-Za-z0-9._-]+?)"


def parse_repository_url(url: str, host: str = "github.com") -> tuple[str, str]:
    """Split a repository reference into ``(owner, repo)``.

    Accepts ``[http(s)://][www.]<host>/<owner>/<repo>[.git][/]`` and nothing
    else. No network access happens here.

    Raises:
        ScanValidationError: the reference does not match the pattern.
    """
    pattern = re.compile(rf"^(?:https?://)?(?:www\.)?{re.escape(host)}/{_OWNER}/{_REPO}(?:\.git)?/?$")
    match = pattern.match(url.strip()) if url else None
    if not match or match.group("repo") in (".", ".."):
        raise ScanValidationError(
            "repository_url",
            f"Invalid GitHub URL format: expected https://{host}/<owner>/<repo>",
        )
    return match.group("owner"), match.group("repo")


def _raise_for_status(response: httpx.Response, subject: str) -> None:
    """Translate GitHub error responses into the upstream error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
        reset = response.headers.get("x-ratelimit-reset")
        raise RateLimitedError(
            "GitHub API rate limit exceeded",
            status_code=status,
            reset_at=int(reset) if reset and reset.isdigit() else None,
        )
    if status == 404:
        raise RepositoryNotFoundError(f"{subject} could not be found or is private", status_code=status)
    if status in (401, 403):
        raise AccessDeniedError(f"Access to {subject} was denied", status_code=status)
    raise UpstreamError(f"GitHub returned HTTP {status} for {subject}", status_code=status)


class GitHubClient:
    """Minimal async client for the GitHub REST API.

    Must be used as an async context manager so the underlying connection
    pool is closed when the scan finishes or is cancelled.
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        timeout: float = 15.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.token = token
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GitHubClient":
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "bugshield",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, subject: str, params: dict[str, Any] | None = None) -> Any:
        if not self._client:
            raise RuntimeError("GitHubClient must be used as an async context manager")
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timed out fetching {subject}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Request to GitHub failed while fetching {subject}: {e}") from e
        _raise_for_status(response, subject)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"GitHub returned invalid JSON for {subject}") from e

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        data = await self._get(f"/repos/{owner}/{repo}", f"repository {owner}/{repo}")
        if not isinstance(data, dict):
            raise UpstreamError(f"GitHub returned unexpected metadata for {owner}/{repo}")
        return data

    async def get_tree(self, owner: str, repo: str, ref: str) -> list[dict[str, Any]]:
        """List every entry of the tree at ``ref``, recursively."""
        data = await self._get(
            f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}",
            f"ref '{ref}' of {owner}/{repo}",
            params={"recursive": 1},
        )
        if not isinstance(data, dict):
            raise UpstreamError(f"GitHub returned an unexpected tree listing for {owner}/{repo}")
        if data.get("truncated"):
            logger.warning(f"GitHub truncated the file tree of {owner}/{repo}; some files are not listed")
        return data.get("tree", [])

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> bytes:
        """Fetch and base64-decode one file through the contents API."""
        data = await self._get(
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            f"file {path}",
            params={"ref": ref},
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            raise UpstreamError(f"{path} is not a regular file")
        if data.get("encoding", "base64") != "base64":
            raise UpstreamError(f"{path} was returned without inline content")
        try:
            return base64.b64decode(data.get("content", ""))
        except (binascii.Error, ValueError) as e:
            raise UpstreamError(f"{path} has malformed base64 content") from e


def repository_info_from(data: dict[str, Any], branch: str | None = None) -> RepositoryInfo:
    return RepositoryInfo(
        name=data.get("name", ""),
        full_name=data.get("full_name", ""),
        url=data.get("html_url", ""),
        default_branch=data.get("default_branch") or "main",
        branch=branch,
        description=data.get("description"),
        language=data.get("language"),
        size=data.get("size") or 0,
        stars=data.get("stargazers_count") or 0,
        forks=data.get("forks_count") or 0,
        is_private=bool(data.get("private")),
        last_updated=data.get("updated_at"),
    )


class RemoteIngestionAdapter:
    """Resolve a repository, filter its tree and fetch the scannable files.

    Only the first ``remote_max_files`` candidates are fetched; the rest are
    reported in ``IngestionResult.truncated`` so they are distinguishable from
    files that failed.
    """

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or Settings()
        self.transport = transport

    def client(self) -> GitHubClient:
        return GitHubClient(
            base_url=self.settings.github_api_url,
            timeout=self.settings.fetch_timeout,
            token=self.settings.github_token,
            transport=self.transport,
        )

    def _is_candidate(self, item: dict[str, Any]) -> bool:
        return (
            isinstance(item, dict)
            and item.get("type") == "blob"
            and item.get("path", "").lower().endswith(self.settings.remote_extensions)
            and (item.get("size") or 0) <= self.settings.remote_max_file_bytes
        )

    async def _fetch(
        self,
        client: GitHubClient,
        semaphore: asyncio.Semaphore,
        owner: str,
        repo: str,
        ref: str,
        path: str,
    ) -> SourceUnit | UnitFailure:
        async with semaphore:
            try:
                data = await client.get_file_content(owner, repo, path, ref)
                text = decode_source(data)
            except (UpstreamError, UndecodableSourceError) as e:
                return UnitFailure(path=path, stage="fetch", reason=e.message)
        return SourceUnit(path=path, content=text, size=len(data), language_hint=language_for(path))

    async def ingest(self, repository_url: str, ref: str | None = None) -> IngestionResult:
        """Produce ordered source units for ``repository_url`` at ``ref``.

        Args:
            repository_url: ``https://github.com/<owner>/<repo>`` style reference.
            ref: Branch, tag or commit; defaults to the repository's default branch.

        Raises:
            ScanValidationError: malformed reference (before any request is made).
            RepositoryNotFoundError, AccessDeniedError, RateLimitedError, UpstreamError:
                the repository or its tree could not be read.
        """
        owner, repo = parse_repository_url(repository_url, self.settings.github_host)

        async with self.client() as client:
            repo_data = await client.get_repository(owner, repo)
            branch = ref or repo_data.get("default_branch") or "main"
            info = repository_info_from(repo_data, branch)

            tree = await client.get_tree(owner, repo, branch)
            candidates = [item["path"] for item in tree if self._is_candidate(item)]
            cap = self.settings.remote_max_files
            selected, truncated = candidates[:cap], candidates[cap:]
            logger.info(
                f"Found {len(candidates)} scannable files in {owner}/{repo}@{branch}, "
                f"fetching {len(selected)} (cap {cap})"
            )

            semaphore = asyncio.Semaphore(self.settings.fetch_concurrency)
            outcomes = await asyncio.gather(
                *(self._fetch(client, semaphore, owner, repo, branch, path) for path in selected)
            )

        result = IngestionResult(truncated=truncated, repository=info)
        for outcome in outcomes:
            if isinstance(outcome, UnitFailure):
                result.failures.append(outcome)
            else:
                result.units.append(outcome)
        return result


async def get_repository_info(
    repository_url: str,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RepositoryInfo:
    """Look up repository metadata without scanning anything."""
    adapter = RemoteIngestionAdapter(settings, transport)
    owner, repo = parse_repository_url(repository_url, adapter.settings.github_host)
    async with adapter.client() as client:
        data = await client.get_repository(owner, repo)
    return repository_info_from(data)
