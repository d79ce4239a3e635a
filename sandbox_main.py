#!/usr/bin/env python3
"""
Sandbox entrypoint for bugshield.
Reads scan parameters from stdin JSON, runs a scan, outputs JSON to stdout.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).parent / "src"))

from bugshield.config import Settings
from bugshield.errors import BugShieldError
from bugshield.ingestion import LocalFile
from bugshield.models import ScanResult
from bugshield.renderers import render_report
from bugshield.scanner import scan_local_files, scan_repository, scan_snippet

logging.basicConfig(level=logging.INFO, stream=sys.stderr)
logger = logging.getLogger(__name__)


def _fail(payload: dict[str, Any]) -> None:
    print(json.dumps(payload))
    sys.exit(1)


async def _run_scan(input_data: dict[str, Any], settings: Settings) -> ScanResult:
    requested_by = input_data.get("requested_by")
    repository_url = input_data.get("repository_url") or input_data.get("repo_url")
    if repository_url:
        return await scan_repository(
            repository_url,
            ref=input_data.get("branch"),
            settings=settings,
            requested_by=requested_by,
        )
    if "code" in input_data:
        return await scan_snippet(
            input_data["code"],
            language=input_data.get("language"),
            filename=input_data.get("filename"),
            settings=settings,
            requested_by=requested_by,
        )
    files = [
        LocalFile(f.get("name", "upload"), f.get("content", ""), f.get("media_type"))
        for f in input_data.get("files", [])
    ]
    return await scan_local_files(files, settings, requested_by=requested_by)


def main() -> None:
    try:
        input_data = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        _fail({"error": f"Invalid JSON input: {e}"})

    if not any(key in input_data for key in ("repository_url", "repo_url", "code", "files")):
        _fail({
            "error": "Missing required input. Provide 'repository_url', 'code' or 'files'",
            "examples": {
                "remote": {"repository_url": "https://github.com/user/repo"},
                "snippet": {"code": "echo $_GET['q'];", "language": "php"},
                "files": {"files": [{"name": "app.js", "content": "..."}]},
            },
        })

    settings = Settings.from_env()
    try:
        result = asyncio.run(_run_scan(input_data, settings))
        output: dict[str, Any] = {"scan_result": result.model_dump(mode="json")}
        if input_data.get("report_format"):
            output["report"] = render_report(result, input_data["report_format"]).model_dump()
        print(json.dumps(output))
    except BugShieldError as e:
        _fail({"error": e.title, "message": e.message})
    except Exception as e:
        logger.exception("Scan failed")
        _fail({"error": "Scan Failed", "message": str(e)})


if __name__ == "__main__":
    main()
