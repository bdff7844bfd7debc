"""
Core data models for repoforge.

This module contains the fundamental data structures used throughout
the application: configuration, the file tree node, repository metadata
and the results handed to output consumers.
"""

import os
import threading
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional, Set

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class Config:
    """Configuration settings for repoforge."""

    github_token: str = field(default_factory=lambda: os.getenv('GITHUB_TOKEN', ''))
    branch: Optional[str] = None  # None means the repository's default branch

    # Directory names that never make it into the tree
    excluded_names: Set[str] = field(default_factory=lambda: {
        '.git', '.hg', '.svn', '.vscode', '.idea',
        'node_modules', 'bower_components',
        '__pycache__', '.pytest_cache', '.mypy_cache', '.tox',
        'build', 'dist', '.build', 'target', 'out',
        '.next', '.nuxt', '.parcel-cache', '.sass-cache',
    })

    # Only excluded when include_virtual_envs is False
    virtual_env_names: Set[str] = field(default_factory=lambda: {
        'venv', '.venv', 'env', '.env', 'virtualenv', '.virtualenv'
    })
    include_virtual_envs: bool = False

    # Archives, binaries, media and office documents
    excluded_extensions: Set[str] = field(default_factory=lambda: {
        # Executables & Libraries
        '.exe', '.dll', '.so', '.a', '.lib', '.dylib', '.o', '.obj', '.bin',
        # Archives
        '.zip', '.tar', '.gz', '.bz2', '.xz', '.7z', '.rar', '.jar', '.war',
        # Media
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.ico', '.svg', '.webp', '.tiff',
        '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv', '.webm', '.mkv',
        '.wav', '.flac', '.ogg', '.m4a', '.aac',
        # Documents
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        # Data
        '.db', '.sqlite', '.mdb', '.accdb',
        # Other
        '.lock', '.log', '.ds_store', '.pyc', '.pyo', '.pyd', '.whl',
        '.class', '.dex', '.apk', '.ipa',
        '.woff', '.woff2', '.ttf', '.otf', '.eot',
    })

    # Appended to the repository's own ignore file rules
    extra_ignore_patterns: List[str] = field(default_factory=list)

    # Encoding fallbacks for file content
    encoding_fallbacks: List[str] = field(default_factory=lambda: ['utf-8', 'utf-8-sig'])

    max_file_size: int = 2_000_000  # Larger files get a placeholder instead of content
    binary_sample_size: int = 8192
    detect_binary_on_discovery: bool = True

    # Traversal limits
    max_local_depth: int = 50
    max_remote_depth: int = 10
    yield_interval: int = 50  # Root-level entries between cooperative yields

    # Content loading
    max_concurrency: int = 8
    request_timeout: float = 30.0
    progress_interval: int = 5

    # Token counting
    exact_token_counting: bool = False
    token_encoder: str = "cl100k_base"

    @property
    def api_base_url(self) -> str:
        return os.getenv('GITHUB_API_URL', 'https://api.github.com')


class NodeKind(str, Enum):
    """Kind of filesystem entry a node represents."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"


class SortOption(str, Enum):
    NAME = "name"
    SIZE = "size"
    TOKENS = "tokens"


@dataclass(eq=False)
class Node:
    """
    One file or directory in an ingested repository.

    Aggregates (``total_file_count``/``total_token_count``) cover the
    included part of the subtree rooted at this node. They are maintained
    by :mod:`repoforge.core.aggregator`; this class only owns the state.

    The parent link is a weak reference so that dropping the root releases
    the whole tree.
    """

    name: str
    path: str
    kind: NodeKind
    size: int = 0
    content: Optional[str] = None
    token_count: int = 0
    is_included: bool = True
    children: List['Node'] = field(default_factory=list)
    total_file_count: int = field(default=0, init=False)
    total_token_count: int = field(default=0, init=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex, init=False)
    _parent_ref: Optional[weakref.ReferenceType] = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        if self.is_directory:
            self.size = 0
            self.token_count = 0
        else:
            self.total_file_count = 1
            self.total_token_count = self.token_count

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def is_directory(self) -> bool:
        return self.kind == NodeKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind == NodeKind.FILE

    @property
    def parent(self) -> Optional['Node']:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent.setter
    def parent(self, node: Optional['Node']) -> None:
        self._parent_ref = weakref.ref(node) if node is not None else None

    @property
    def lock(self) -> threading.Lock:
        """Guards this node's counters during concurrent token propagation."""
        return self._lock

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name)[1].lower()

    def root(self) -> 'Node':
        """Walk the parent chain up to the tree root."""
        current = self
        while current.parent is not None:
            current = current.parent
        return current

    def walk(self) -> Iterator['Node']:
        """Yield this node and every descendant, depth-first, in child order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_leaves(self, included_only: bool = True) -> Iterator['Node']:
        """
        Yield non-directory descendants.

        With ``included_only`` the walk does not descend into excluded
        directories, matching what the aggregates count.
        """
        if included_only and not self.is_included:
            return
        if not self.is_directory:
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves(included_only)

    def find(self, path: str) -> Optional['Node']:
        """Look up a descendant by its repository-relative path."""
        if path == self.path:
            return self
        for node in self.walk():
            if node.path == path:
                return node
        return None


@dataclass
class RepositoryInfo:
    """Metadata describing the ingested repository."""

    name: str
    full_name: str
    description: Optional[str] = None
    default_branch: str = "main"
    language: Optional[str] = None
    owner: str = "local"
    html_url: str = ""
    size: int = 0

    @classmethod
    def local(cls, path: str) -> 'RepositoryInfo':
        """Synthetic metadata for a local directory."""
        abs_path = os.path.abspath(path)
        name = os.path.basename(abs_path.rstrip(os.sep)) or abs_path
        return cls(
            name=name,
            full_name=name,
            description="Local repository",
            html_url=f"file://{abs_path}",
        )


@dataclass
class RateLimit:
    """API rate-limit state reported by the remote source."""

    limit: int
    remaining: int
    reset: int
    used: int = 0

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining <= 0


@dataclass
class ProcessingStatistics:
    total_files: int
    included_files: int
    total_tokens: int
    included_tokens: int
    largest_file: Optional[str] = None
    largest_file_tokens: int = 0


@dataclass
class IngestionResult:
    """Result of discovering a repository."""

    repository: RepositoryInfo
    root: Node
    source: str
    errors: List[str] = field(default_factory=list)
    rate_limit: Optional[RateLimit] = None
    cancelled: bool = False

    def has_errors(self) -> bool:
        """Check if any errors occurred during discovery."""
        return len(self.errors) > 0

    def get_error_summary(self) -> str:
        """Get a summary of all errors."""
        if not self.errors:
            return "No errors encountered."
        return f"{len(self.errors)} errors encountered:\n" + "\n".join(f"- {e}" for e in self.errors)


class AssemblyStatus(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"


CANCELLED_OUTPUT = "// Output generation was cancelled"


@dataclass
class AssemblyResult:
    """
    Output of the streaming assembler.

    A cancelled run carries ``CANCELLED_OUTPUT`` as its text and no tree,
    so it cannot be mistaken for a truncated document.
    """

    status: AssemblyStatus
    text: str
    tree_string: str = ""
    file_count: int = 0
    token_count: int = 0

    @property
    def cancelled(self) -> bool:
        return self.status == AssemblyStatus.CANCELLED

    @classmethod
    def cancelled_result(cls) -> 'AssemblyResult':
        return cls(status=AssemblyStatus.CANCELLED, text=CANCELLED_OUTPUT)
