"""GitHub repository adapter implementation."""
import asyncio
import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import aiohttp
from github import Github, GithubException
from requests.exceptions import RequestException

from ..core.errors import ContentFetchError, IngestionError
from ..core.models import Config, Node, NodeKind, RateLimit, RepositoryInfo
from ..utils.path_utils import PathUtils
from .base import FetchedContent, RepositoryAdapter

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"(?:https?://)?(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+)")
SHORTHAND_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")

SYMLINK_MODE = "120000"


def parse_github_url(url: str) -> Tuple[str, str]:
    """
    Extract ``(owner, repo)`` from a GitHub URL or ``owner/repo`` shorthand.

    Raises:
        IngestionError: If the input is not a recognisable repository reference.
    """
    text = url.strip()
    match = GITHUB_URL_PATTERN.search(text)
    if match:
        owner, repo = match.group(1), match.group(2)
    elif SHORTHAND_PATTERN.match(text):
        owner, repo = text.split('/')
    else:
        raise IngestionError("Invalid GitHub URL format", status=422)

    if repo.endswith('.git'):
        repo = repo[:-4]
    if not owner or not repo:
        raise IngestionError("Invalid GitHub URL format", status=422)
    return owner, repo


def parse_rate_limit(headers: Mapping[str, str]) -> Optional[RateLimit]:
    """Read ``X-RateLimit-*`` response headers, if all of them are present."""
    try:
        limit = int(headers['X-RateLimit-Limit'])
        remaining = int(headers['X-RateLimit-Remaining'])
        reset = int(headers['X-RateLimit-Reset'])
    except (KeyError, TypeError, ValueError):
        return None
    return RateLimit(limit=limit, remaining=remaining, reset=reset, used=limit - remaining)


@dataclass
class TreeEntry:
    """One entry of a recursive git tree listing."""

    path: str
    type: str  # 'blob', 'tree' or 'commit'
    size: int = 0
    mode: str = ""

    @property
    def kind(self) -> NodeKind:
        if self.type == 'tree':
            return NodeKind.DIRECTORY
        if self.type == 'commit':
            return NodeKind.SUBMODULE
        if self.mode == SYMLINK_MODE:
            return NodeKind.SYMLINK
        return NodeKind.FILE


class TruncatedTreeError(Exception):
    """The recursive tree listing exceeded the API's size limit."""


class AsyncGitHubClient:
    """Async GitHub contents client with bounded concurrency and timeouts."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: Optional[str],
        config: Config,
        on_rate_limit: Optional[Callable[[RateLimit], None]] = None,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.config = config
        self.on_rate_limit = on_rate_limit
        self.session: Optional[aiohttp.ClientSession] = None
        self.semaphore = asyncio.Semaphore(config.max_concurrency)

    async def __aenter__(self):
        """Async context manager entry with session setup."""
        self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit with guaranteed cleanup."""
        await self.close()

    def open(self) -> None:
        if self.session is not None and not self.session.closed:
            return
        headers = {
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'repoforge',
        }
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        connector = aiohttp.TCPConnector(limit_per_host=self.config.max_concurrency)
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        self.session = aiohttp.ClientSession(headers=headers, connector=connector, timeout=timeout)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    def content_url(self, file_path: str) -> str:
        api_path = quote(PathUtils.normalize_path(file_path))
        return f"{self.config.api_base_url}/repos/{self.owner}/{self.repo}/contents/{api_path}"

    async def fetch_file(self, file_path: str) -> FetchedContent:
        """
        Fetch a single file through the contents API.

        Raises:
            ContentFetchError: On HTTP errors or when the path is not a file.
        """
        if self.session is None:
            self.open()

        params = {'ref': self.branch} if self.branch else {}
        async with self.semaphore:
            async with self.session.get(self.content_url(file_path), params=params) as response:
                rate_limit = parse_rate_limit(response.headers)
                if rate_limit is not None and self.on_rate_limit is not None:
                    self.on_rate_limit(rate_limit)

                if response.status != 200:
                    message = await self._error_message(response)
                    raise ContentFetchError(file_path, f"HTTP {response.status}: {message}", response.status)

                data = await response.json()

        if not isinstance(data, dict) or data.get('type') != 'file':
            raise ContentFetchError(file_path, "Not a file")

        return FetchedContent(payload=data.get('content') or '', encoding=data.get('encoding'))

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        try:
            data = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return response.reason or "request failed"
        if isinstance(data, dict) and data.get('message'):
            return str(data['message'])
        return response.reason or "request failed"


class GitHubAdapter(RepositoryAdapter):
    """
    Adapter for GitHub repositories.

    Structure comes from a single recursive git tree listing; if that call
    fails (unknown branch, truncated listing) the adapter falls back to
    walking the contents API directory by directory, up to a depth limit.
    File content is fetched lazily through :class:`AsyncGitHubClient`.
    """

    def __init__(self, repo_url: str, config: Config, cancel_event: Optional[threading.Event] = None):
        """Initialize GitHub adapter with repository URL."""
        super().__init__(config, cancel_event)

        self.owner, self.repo_name = parse_github_url(repo_url)
        timeout = int(config.request_timeout)
        if config.github_token:
            self.github = Github(config.github_token, timeout=timeout)
        else:
            logger.warning("No GitHub token configured; using unauthenticated API access")
            self.github = Github(timeout=timeout)

        self.branch = config.branch
        self._repo = None
        self._client: Optional[AsyncGitHubClient] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"

    def get_name(self) -> str:
        """Get repository name."""
        return self.repo_name

    def _describe(self, error: Exception) -> str:
        if isinstance(error, GithubException):
            message = error.data.get('message') if isinstance(error.data, dict) else None
            text = f"{error.status}: {message or error}"
        else:
            # Transport failures raised by PyGithub's requests session
            text = f"{type(error).__name__}: {error}"
        return self._sanitize_error(text, [self.config.github_token])

    def _get_repo(self):
        if self._repo is None:
            try:
                self._repo = self.github.get_repo(self.full_name)
            except (GithubException, RequestException) as e:
                raise IngestionError(
                    f"Failed to load repository {self.full_name}: {self._describe(e)}",
                    status=getattr(e, 'status', None),
                ) from e
            if not self.branch:
                self.branch = self._repo.default_branch
        return self._repo

    def _refresh_rate_limit(self) -> None:
        """Copy PyGithub's last seen rate-limit headers into the side channel."""
        try:
            remaining, limit = self.github.rate_limiting
            reset = int(self.github.rate_limiting_resettime)
        except (TypeError, ValueError):
            return
        if limit < 0:
            return
        self._set_rate_limit(RateLimit(limit=limit, remaining=remaining, reset=reset, used=limit - remaining))

    def _set_rate_limit(self, rate_limit: RateLimit) -> None:
        self.rate_limit = rate_limit
        if rate_limit.is_exhausted:
            logger.warning("GitHub API rate limit exhausted; resets at %s", rate_limit.reset_at)

    async def get_repository_info(self) -> RepositoryInfo:
        """Fetch repository metadata."""
        repo = await asyncio.to_thread(self._get_repo)
        self._refresh_rate_limit()
        return RepositoryInfo(
            name=repo.name,
            full_name=repo.full_name,
            description=repo.description,
            default_branch=repo.default_branch,
            language=repo.language,
            owner=repo.owner.login,
            html_url=repo.html_url,
            size=repo.size or 0,
        )

    async def discover(self) -> Node:
        """Build the repository tree without fetching any file content."""
        return await asyncio.to_thread(self._build_structure)

    def _build_structure(self) -> Node:
        repo = self._get_repo()
        self._load_ignore_file(repo)

        try:
            entries = self._fetch_tree_entries(repo)
        except (GithubException, RequestException, TruncatedTreeError) as e:
            reason = str(e) if isinstance(e, TruncatedTreeError) else self._describe(e)
            logger.warning("Recursive tree listing failed (%s); falling back to contents API", reason)
            root = self._build_from_contents(repo)
        else:
            root = self.build_tree_from_entries(entries)

        self._refresh_rate_limit()
        return root

    def _load_ignore_file(self, repo) -> None:
        try:
            content = repo.get_contents('.gitignore', ref=self.branch)
        except GithubException:
            logger.info("No .gitignore found in %s, using default filtering", self.full_name)
            self.load_ignore_rules(None)
            return
        except RequestException as e:
            logger.warning("Could not fetch .gitignore for %s (%s), using default filtering",
                           self.full_name, self._describe(e))
            self.load_ignore_rules(None)
            return
        if isinstance(content, list):
            self.load_ignore_rules(None)
            return
        self.load_ignore_rules(content.decoded_content.decode('utf-8', errors='replace'))
        logger.info("Loaded .gitignore with %d patterns", len(self.matcher.rules))

    def _fetch_tree_entries(self, repo) -> List[TreeEntry]:
        tree = repo.get_git_tree(self.branch, recursive=True)
        raw = getattr(tree, 'raw_data', None)
        if isinstance(raw, dict) and raw.get('truncated') is True:
            raise TruncatedTreeError(f"tree listing for {self.branch} was truncated")
        return [
            TreeEntry(path=item.path, type=item.type, size=item.size or 0, mode=item.mode or "")
            for item in tree.tree
        ]

    def build_tree_from_entries(self, entries: List[TreeEntry]) -> Node:
        """
        Build the node hierarchy from a flat tree listing.

        Entries are processed shallowest first so every parent exists
        before its children. Entries whose parent was dropped by the
        static policy are dropped with it.
        """
        root = self._create_root()
        path_to_node: Dict[str, Node] = {"": root}

        ordered = sorted(entries, key=lambda e: (PathUtils.depth(e.path), e.path))
        for index, entry in enumerate(ordered):
            if index % 500 == 0 and self.cancelled:
                logger.info("Tree construction for %s cancelled", self.full_name)
                break

            path = PathUtils.normalize_path(entry.path)
            parent = path_to_node.get(PathUtils.parent_path(path))
            if parent is None:
                continue

            node = self._make_node(PathUtils.basename(path), path, entry.kind, entry.size)
            if node is None:
                continue

            self._attach(parent, node)
            if node.is_directory:
                path_to_node[path] = node

        return root

    def _build_from_contents(self, repo) -> Node:
        root = self._create_root()
        try:
            self._build_contents_recursive(repo, "", root, 0)
        except (GithubException, RequestException) as e:
            raise IngestionError(
                f"Failed to list contents of {self.full_name}: {self._describe(e)}",
                status=getattr(e, 'status', None),
            ) from e
        return root

    def _build_contents_recursive(self, repo, path: str, parent: Node, depth: int) -> None:
        if self.cancelled:
            return
        if depth >= self.config.max_remote_depth:
            logger.warning("Depth limit (%d) reached, skipping %s", self.config.max_remote_depth, path)
            return

        contents = repo.get_contents(path, ref=self.branch)
        if not isinstance(contents, list):
            contents = [contents]

        for item in sorted(contents, key=lambda c: c.name):
            if self.cancelled:
                return
            kind = {
                'dir': NodeKind.DIRECTORY,
                'symlink': NodeKind.SYMLINK,
                'submodule': NodeKind.SUBMODULE,
            }.get(item.type, NodeKind.FILE)

            node = self._make_node(item.name, item.path, kind, item.size or 0)
            if node is None:
                continue
            self._attach(parent, node)
            if node.is_directory:
                self._build_contents_recursive(repo, item.path, node, depth + 1)

    def _ensure_client(self) -> AsyncGitHubClient:
        if self._client is None:
            self._client = AsyncGitHubClient(
                self.config.github_token,
                self.owner,
                self.repo_name,
                self.branch,
                self.config,
                on_rate_limit=self._set_rate_limit,
            )
        return self._client

    async def fetch_content(self, node: Node) -> FetchedContent:
        """Fetch one file's payload (usually base64) from the contents API."""
        client = self._ensure_client()
        try:
            return await client.fetch_file(node.path)
        except ContentFetchError as e:
            raise ContentFetchError(
                node.path, self._sanitize_error(e.message, [self.config.github_token]), e.status
            ) from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
