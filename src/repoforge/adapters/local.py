"""Local filesystem repository adapter implementation."""
import asyncio
import logging
import os
import threading
from typing import List, Optional, Set, Tuple

from ..core.errors import ContentFetchError, ContentTooLargeError, IngestionError
from ..core.models import Config, Node, NodeKind, RepositoryInfo
from ..utils.encodings import EncodingDetector
from ..utils.path_utils import PathUtils
from .base import FetchedContent, RepositoryAdapter

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".gitignore"


class LocalAdapter(RepositoryAdapter):
    """
    Adapter for local directories.

    Discovery is a recursive walk that follows symlinked directories but
    tracks the canonical path of every directory currently being visited,
    so a link back to an ancestor is skipped instead of recursed into.
    """

    def __init__(self, repo_path: str, config: Config, cancel_event: Optional[threading.Event] = None):
        """Initialize local adapter with repository path."""
        super().__init__(config, cancel_event)

        if not os.path.isdir(repo_path):
            raise IngestionError(f"Path is not a directory: {repo_path}")

        self.repo_path = os.path.abspath(repo_path)
        self.repo_name = os.path.basename(self.repo_path.rstrip(os.sep)) or self.repo_path
        self.encoding_detector = EncodingDetector(config.encoding_fallbacks, config.binary_sample_size)
        self._visiting: Set[str] = set()

    def get_name(self) -> str:
        """Get repository name."""
        return self.repo_name

    async def get_repository_info(self) -> RepositoryInfo:
        return RepositoryInfo.local(self.repo_path)

    def _is_safe_path(self, path: str) -> bool:
        """Check if path is safe (within repo bounds)."""
        abs_path = os.path.abspath(os.path.join(self.repo_path, path))
        return abs_path.startswith(self.repo_path + os.sep) or abs_path == self.repo_path

    def _read_ignore_file(self) -> Optional[str]:
        ignore_path = os.path.join(self.repo_path, IGNORE_FILE_NAME)
        if not os.path.isfile(ignore_path):
            return None
        try:
            with open(ignore_path, 'r', encoding='utf-8', errors='replace') as f:
                return f.read()
        except OSError as e:
            self._record_error(f"Error reading {IGNORE_FILE_NAME}: {e}")
            return None

    async def discover(self) -> Node:
        """Walk the directory tree and return its root node."""
        self.load_ignore_rules(self._read_ignore_file())
        logger.info("Walking %s (%d ignore rules)", self.repo_path, len(self.matcher.rules))

        root = self._create_root()
        self._visiting = set()
        await self._walk(self.repo_path, root, 0)

        if self.cancelled:
            logger.info("Local walk of %s cancelled", self.repo_path)
        return root

    async def _walk(self, dir_path: str, node: Node, depth: int) -> None:
        """Recursively add the entries of ``dir_path`` under ``node``."""
        if self.cancelled:
            return

        if depth > self.config.max_local_depth:
            logger.warning("Depth limit (%d) reached, skipping %s", self.config.max_local_depth, node.path)
            return

        canonical = os.path.realpath(dir_path)
        if canonical in self._visiting:
            logger.warning("Skipping symlink cycle at %s -> %s", node.path or ".", canonical)
            return

        self._visiting.add(canonical)
        try:
            try:
                children = await asyncio.to_thread(self._scan, dir_path, node.path)
            except OSError as e:
                self._record_error(f"Error reading directory {node.path or '.'}: {e.strerror or e}")
                return

            for index, (child, child_path) in enumerate(children):
                if self.cancelled:
                    return

                # Let other tasks run during long walks of large roots
                if depth == 0 and index and index % self.config.yield_interval == 0:
                    await asyncio.sleep(0)

                self._attach(node, child)
                if child.is_directory:
                    await self._walk(child_path, child, depth + 1)
        finally:
            self._visiting.discard(canonical)

    def _scan(self, dir_path: str, parent_path: str) -> List[Tuple[Node, str]]:
        """List and classify one directory. Runs in a worker thread."""
        with os.scandir(dir_path) as it:
            entries = sorted(it, key=lambda e: e.name)

        children = []
        for entry in entries:
            if self.cancelled:
                break
            child = self._classify(entry, parent_path)
            if child is not None:
                children.append((child, entry.path))
        return children

    def _classify(self, entry: os.DirEntry, parent_path: str) -> Optional[Node]:
        """Turn a directory entry into a node, or None if it is skipped."""
        path = PathUtils.join(parent_path, entry.name)
        try:
            is_link = entry.is_symlink()
            if entry.is_dir():
                return self._make_node(entry.name, path, NodeKind.DIRECTORY)
            if entry.is_file():
                size = entry.stat().st_size
                node = self._make_node(entry.name, path, NodeKind.FILE, size)
                if node is not None and self._sniff_binary(entry.path):
                    logger.debug("Skipping binary file %s", path)
                    return None
                return node
        except OSError as e:
            self._record_error(f"Error reading {path}: {e.strerror or e}")
            return None

        if is_link:
            # Dangling link: keep it visible, there is nothing to load
            return self._make_node(entry.name, path, NodeKind.SYMLINK)
        return None  # sockets, fifos, devices

    def _sniff_binary(self, full_path: str) -> bool:
        if not self.config.detect_binary_on_discovery:
            return False
        try:
            with open(full_path, 'rb') as f:
                sample = f.read(self.config.binary_sample_size)
        except OSError:
            # Unreadable now; content loading reports the problem
            return False
        return self.encoding_detector.is_likely_binary(sample)

    async def fetch_content(self, node: Node) -> FetchedContent:
        """Read a file's bytes, refusing paths outside the repository."""
        if not self._is_safe_path(node.path):
            raise ContentFetchError(node.path, "Invalid path (outside repository)")
        full_path = os.path.join(self.repo_path, node.path)
        data = await asyncio.to_thread(self._read_bytes, node.path, full_path)
        return FetchedContent(payload=data)

    def _read_bytes(self, rel_path: str, full_path: str) -> bytes:
        if os.path.isdir(full_path):
            raise ContentFetchError(rel_path, "Not a file")

        size = os.path.getsize(full_path)
        limit = self.config.max_file_size
        if size > limit:
            raise ContentTooLargeError(rel_path, size)

        with open(full_path, 'rb') as f:
            data = f.read(limit + 1)
        # The file may have grown since it was stat'ed
        if len(data) > limit:
            raise ContentTooLargeError(rel_path, len(data))
        return data
