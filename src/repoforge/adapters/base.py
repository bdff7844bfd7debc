"""
Base repository adapter interface.

This module defines the abstract interface that all repository adapters
must implement: discovering a source into a :class:`Node` tree and
fetching the raw content of a single file on demand.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Union

from ..core.aggregator import add_child
from ..core.models import Config, Node, NodeKind, RateLimit, RepositoryInfo
from ..core.pattern_matcher import PatternMatcher
from ..core.tokenizer import TokenCounter
from ..utils.file_filter import FileFilter

logger = logging.getLogger(__name__)


@dataclass
class FetchedContent:
    """
    Raw content returned by an adapter for one file.

    ``payload`` is bytes for sources that read files directly, or text as
    delivered by a remote API together with its declared ``encoding``
    (e.g. ``"base64"``).
    """

    payload: Union[bytes, str]
    encoding: Optional[str] = None


class RepositoryAdapter(ABC):
    """
    Abstract base class for repository adapters.

    An adapter is one discovery strategy: it turns a source (a remote
    repository, a local directory) into a tree of nodes, cheaply and
    without file content, and later serves content for single files.
    """

    def __init__(self, config: Config, cancel_event: Optional[threading.Event] = None):
        """Initialize adapter with configuration."""
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.file_filter = FileFilter(config)
        self.matcher = PatternMatcher()
        self.errors: List[str] = []
        self.rate_limit: Optional[RateLimit] = None

    async def __aenter__(self) -> 'RepositoryAdapter':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release network sessions or other resources. No-op by default."""

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @abstractmethod
    def get_name(self) -> str:
        """Get the repository name."""

    @abstractmethod
    async def get_repository_info(self) -> RepositoryInfo:
        """Fetch or synthesize repository metadata."""

    @abstractmethod
    async def discover(self) -> Node:
        """
        Build the repository tree.

        Returns:
            Root node (path ``""``) with children for every entry that
            passed the static exclusion policy. Entries hit only by
            ignore-file rules are present with ``is_included = False``.
        """

    @abstractmethod
    async def fetch_content(self, node: Node) -> FetchedContent:
        """
        Fetch the raw content of one file node.

        Raises on failure; callers turn errors into placeholder content.
        """

    def load_ignore_rules(self, text: Optional[str]) -> None:
        """Load the repository's ignore file plus configured extra patterns."""
        self.matcher.load_rules(text or "")
        if self.config.extra_ignore_patterns:
            self.matcher.add_rules(self.config.extra_ignore_patterns)

    def _create_root(self) -> Node:
        return Node(name=self.get_name(), path="", kind=NodeKind.DIRECTORY)

    def _make_node(self, name: str, path: str, kind: NodeKind, size: int = 0) -> Optional[Node]:
        """
        Apply the inclusion policy to one discovered entry.

        Returns None for entries removed by the static policy. Entries
        matched only by ignore rules come back excluded so they stay
        visible and can be re-included by hand.
        """
        is_directory = kind == NodeKind.DIRECTORY
        if self.file_filter.should_exclude_by_default(name, is_directory):
            logger.debug("Skipping %s: %s", path,
                         self.file_filter.get_excluded_reason(name, is_directory))
            return None

        token_estimate = 0
        if kind == NodeKind.FILE:
            token_estimate = TokenCounter.estimate_from_size(size)

        node = Node(name=name, path=path, kind=kind, size=size, token_count=token_estimate)
        if self.matcher.should_ignore(path, is_directory):
            node.is_included = False
        return node

    def _attach(self, parent: Node, child: Node) -> None:
        add_child(parent, child)

    def _sanitize_error(self, error: str, sensitive_data: Optional[List[str]] = None) -> str:
        """Remove sensitive data from error messages. Used by all adapters."""
        if not sensitive_data:
            return error

        sanitized = error
        for sensitive in sensitive_data:
            if sensitive:
                sanitized = sanitized.replace(str(sensitive), "[REDACTED]")
        return sanitized

    def _record_error(self, message: str) -> None:
        self.errors.append(message)
        logger.warning(message)
