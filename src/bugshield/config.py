"""Runtime configuration read from environment variables."""

import os

from pydantic import BaseModel, Field

DEFAULT_LOCAL_EXTENSIONS = frozenset({
    ".html", ".htm", ".js", ".jsx", ".ts", ".tsx",
    ".css", ".scss", ".sass", ".less",
    ".php", ".py", ".rb", ".java", ".c", ".cpp",
    ".json", ".xml", ".yaml", ".yml",
    ".md", ".txt", ".sql",
})

DEFAULT_MEDIA_TYPES = frozenset({
    "text/html",
    "text/javascript",
    "application/javascript",
    "text/css",
    "text/plain",
    "application/json",
    "text/xml",
    "application/xml",
})

DEFAULT_REMOTE_EXTENSIONS = (
    ".js", ".jsx", ".ts", ".tsx", ".html", ".htm", ".php", ".py",
    ".rb", ".java", ".c", ".cpp", ".css", ".scss", ".sql", ".json",
)

MIB = 1024 * 1024


class Settings(BaseModel):
    """Limits and endpoints shared read-only by all scans."""

    max_files: int = Field(default=20, ge=1)
    max_file_bytes: int = Field(default=10 * MIB, ge=1)
    max_total_bytes: int = Field(default=50 * MIB, ge=1)
    allowed_extensions: frozenset[str] = DEFAULT_LOCAL_EXTENSIONS
    allowed_media_types: frozenset[str] = DEFAULT_MEDIA_TYPES

    remote_max_files: int = Field(default=50, ge=1)
    remote_max_file_bytes: int = Field(default=1 * MIB, ge=1)
    remote_extensions: tuple[str, ...] = DEFAULT_REMOTE_EXTENSIONS

    match_concurrency: int = Field(default=4, ge=1)
    fetch_concurrency: int = Field(default=8, ge=1)
    fetch_timeout: float = Field(default=15.0, gt=0)
    max_line_length: int = Field(default=2000, ge=80)

    github_api_url: str = "https://api.github.com"
    github_host: str = "github.com"
    github_token: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``BUGSHIELD_*`` and ``GITHUB_*`` variables."""
        env = os.environ
        values: dict = {}
        int_vars = {
            "max_files": "BUGSHIELD_MAX_FILES",
            "max_file_bytes": "BUGSHIELD_MAX_FILE_BYTES",
            "max_total_bytes": "BUGSHIELD_MAX_TOTAL_BYTES",
            "remote_max_files": "BUGSHIELD_REMOTE_MAX_FILES",
            "remote_max_file_bytes": "BUGSHIELD_REMOTE_MAX_FILE_BYTES",
            "match_concurrency": "BUGSHIELD_MATCH_CONCURRENCY",
            "fetch_concurrency": "BUGSHIELD_FETCH_CONCURRENCY",
            "max_line_length": "BUGSHIELD_MAX_LINE_LENGTH",
        }
        for field_name, var in int_vars.items():
            if env.get(var):
                values[field_name] = int(env[var])
        if env.get("BUGSHIELD_FETCH_TIMEOUT"):
            values["fetch_timeout"] = float(env["BUGSHIELD_FETCH_TIMEOUT"])
        if env.get("GITHUB_API_URL"):
            values["github_api_url"] = env["GITHUB_API_URL"].rstrip("/")
        if env.get("GITHUB_HOST"):
            values["github_host"] = env["GITHUB_HOST"]
        values["github_token"] = env.get("GITHUB_TOKEN") or None
        return cls(**values)
