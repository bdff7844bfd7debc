"""Repository adapters for different source types."""
import os
import threading
from typing import Optional

from ..core.errors import IngestionError
from ..core.models import Config
from .base import FetchedContent, RepositoryAdapter
from .github import GITHUB_URL_PATTERN, SHORTHAND_PATTERN, GitHubAdapter, parse_github_url
from .local import LocalAdapter


def create_adapter(
    repo_url_or_path: str,
    config: Config,
    cancel_event: Optional[threading.Event] = None,
) -> RepositoryAdapter:
    """
    Create appropriate repository adapter based on input.

    Args:
        repo_url_or_path: GitHub URL, ``owner/repo`` shorthand or local directory path
        config: Configuration object
        cancel_event: Shared cancellation signal

    Returns:
        Appropriate RepositoryAdapter instance

    Raises:
        IngestionError: If input format is invalid
    """
    source = repo_url_or_path.strip()

    # GitHub URL first (most specific)
    if GITHUB_URL_PATTERN.match(source):
        return GitHubAdapter(source, config, cancel_event)

    expanded = os.path.expanduser(source)
    if os.path.isdir(expanded):
        return LocalAdapter(expanded, config, cancel_event)

    if os.path.exists(expanded):
        raise IngestionError(f"Path exists but is not a directory: {source}")

    # owner/repo shorthand, unless it names a missing relative path
    if SHORTHAND_PATTERN.match(source) and not source.startswith('.'):
        return GitHubAdapter(source, config, cancel_event)

    raise IngestionError(
        f"Invalid input: {source}\n"
        "Expected: GitHub URL (https://github.com/owner/repo) or local directory path"
    )


__all__ = [
    'FetchedContent',
    'GitHubAdapter',
    'LocalAdapter',
    'RepositoryAdapter',
    'create_adapter',
    'parse_github_url',
]
