"""FastAPI application for the BugShield vulnerability scanner."""

import logging
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import Settings
from .errors import (
    AccessDeniedError,
    BugShieldError,
    RateLimitedError,
    RepositoryNotFoundError,
    ScanValidationError,
    UpstreamError,
)
from .ingestion import LocalFile, get_repository_info
from .models import (
    ReportRequest,
    RepositoryInfo,
    RepositoryScanRequest,
    ScanResult,
    ScanSummary,
    SnippetScanRequest,
)
from .renderers import render_report
from .scanner import scan_local_files, scan_repository, scan_snippet
from .store import InMemoryScanStore, ScanStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="BugShield",
    description="Pattern-based vulnerability scanning for uploaded files, code snippets and GitHub repositories",
    version="0.1.0",
)

# CORS - allow common development origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ],
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)

_store = InMemoryScanStore()


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_store() -> ScanStore:
    return _store


def get_github_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for GitHub requests; ``None`` uses the network."""
    return None


def _status_for(error: BugShieldError) -> int:
    if isinstance(error, ScanValidationError):
        return 400
    if isinstance(error, RepositoryNotFoundError):
        return 404
    if isinstance(error, RateLimitedError):
        return 429
    if isinstance(error, AccessDeniedError):
        return 403
    if isinstance(error, UpstreamError):
        return 502
    return 500


def _to_http_exception(error: BugShieldError) -> HTTPException:
    status = _status_for(error)
    if status >= 500:
        logger.error(f"{error.title}: {error.message}")
    else:
        logger.warning(f"{error.title}: {error.message}")
    return HTTPException(status_code=status, detail={"error": error.title, "message": error.message})


def _internal_error(title: str, e: Exception) -> HTTPException:
    logger.exception(f"{title}: {e}")
    return HTTPException(status_code=500, detail={"error": title, "message": str(e)})


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/scan/files", response_model=ScanResult)
async def scan_files(
    files: list[UploadFile],
    x_requested_by: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    store: ScanStore = Depends(get_store),
) -> ScanResult:
    """
    Scan uploaded source files.

    - **files**: one or more files (multipart form field ``files``)
    """
    try:
        batch = [
            LocalFile(upload.filename or "upload", await upload.read(), upload.content_type)
            for upload in files
        ]
        result = await scan_local_files(batch, settings, requested_by=x_requested_by)
    except BugShieldError as e:
        raise _to_http_exception(e)
    except Exception as e:
        raise _internal_error("Scan Failed", e)
    store.put(result)
    return result


@app.post("/scan/snippet", response_model=ScanResult)
async def scan_code_snippet(
    request: SnippetScanRequest,
    x_requested_by: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    store: ScanStore = Depends(get_store),
) -> ScanResult:
    """
    Scan a pasted code snippet.

    - **code**: source text
    - **language**: language name or extension used to pick rules
    - **filename**: name to report findings against
    """
    try:
        result = await scan_snippet(
            request.code,
            language=request.language,
            filename=request.filename,
            settings=settings,
            requested_by=x_requested_by,
        )
    except BugShieldError as e:
        raise _to_http_exception(e)
    except Exception as e:
        raise _internal_error("Snippet Scan Failed", e)
    store.put(result)
    return result


@app.get("/scan/history", response_model=list[ScanSummary])
async def scan_history(
    limit: int = Query(default=50, ge=1, le=200),
    x_requested_by: Optional[str] = Header(default=None),
    store: ScanStore = Depends(get_store),
) -> list[ScanSummary]:
    """Recent scans, newest first; filtered to the caller when ``X-Requested-By`` is sent."""
    return [ScanSummary.from_result(r) for r in store.recent(limit, requested_by=x_requested_by)]


@app.get("/scan/{scan_id}", response_model=ScanResult)
async def get_scan(scan_id: str, store: ScanStore = Depends(get_store)) -> ScanResult:
    result = store.get(scan_id)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "Scan Not Found", "message": f"No scan with id {scan_id}"},
        )
    return result


@app.post("/github/scan", response_model=ScanResult)
async def scan_github_repository(
    request: RepositoryScanRequest,
    x_requested_by: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    store: ScanStore = Depends(get_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_github_transport),
) -> ScanResult:
    """
    Scan a GitHub repository.

    - **repository_url**: e.g. https://github.com/owner/repo
    - **branch**: branch or ref; defaults to the repository's default branch
    """
    try:
        result = await scan_repository(
            request.repository_url,
            ref=request.branch,
            settings=settings,
            requested_by=x_requested_by,
            transport=transport,
        )
    except BugShieldError as e:
        raise _to_http_exception(e)
    except Exception as e:
        raise _internal_error("GitHub Scan Failed", e)
    store.put(result)
    return result


@app.get("/github/repo-info", response_model=RepositoryInfo)
async def github_repo_info(
    url: str = Query(description="GitHub repository URL"),
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_github_transport),
) -> RepositoryInfo:
    """Repository metadata without scanning."""
    try:
        return await get_repository_info(url, settings, transport)
    except BugShieldError as e:
        raise _to_http_exception(e)
    except Exception as e:
        raise _internal_error("Failed to Get Repository Info", e)


@app.post("/reports/generate")
async def generate_report(request: ReportRequest, store: ScanStore = Depends(get_store)) -> Response:
    """
    Render a report for a stored scan (``scan_id``) or an inline ``scan_result``.

    - **format**: json, csv or html
    """
    result = request.scan_result
    if result is None and request.scan_id:
        result = store.get(request.scan_id)
        if result is None:
            raise HTTPException(
                status_code=404,
                detail={"error": "Scan Not Found", "message": f"No scan with id {request.scan_id}"},
            )
    try:
        if result is None:
            raise ScanValidationError("scan_result", "Please provide scan results or a scan_id to generate a report")
        logger.info(f"Generating {request.format} report for scan {result.scan_id}")
        rendered = render_report(result, request.format)
    except BugShieldError as e:
        raise _to_http_exception(e)
    except Exception as e:
        raise _internal_error("Report Generation Failed", e)

    headers = {}
    if rendered.filename:
        headers["Content-Disposition"] = f'attachment; filename="{rendered.filename}"'
    return Response(content=rendered.content, media_type=rendered.content_type, headers=headers)
