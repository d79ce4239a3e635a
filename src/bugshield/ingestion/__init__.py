"""Ingestion adapters: external sources to ordered source units."""

from .github import GitHubClient, RemoteIngestionAdapter, get_repository_info, parse_repository_url
from .local import LocalFile, LocalIngestionAdapter

__all__ = [
    "GitHubClient",
    "LocalFile",
    "LocalIngestionAdapter",
    "RemoteIngestionAdapter",
    "get_repository_info",
    "parse_repository_url",
]
