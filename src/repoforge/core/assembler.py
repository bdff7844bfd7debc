"""
Streaming output assembly.

The assembler turns a filtered tree into one text document: a header, a
tree view and one section per included file, largest estimate first.
Content is loaded lazily with bounded concurrency, but sections are only
written once every load has finished, in a single pass over the
pre-sorted list, so the document does not depend on fetch timing.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from ..utils.formatting import format_token_count
from .aggregator import calculate_statistics
from .content_loader import UNAVAILABLE_CONTENT, ContentLoader
from .models import AssemblyResult, AssemblyStatus, Config, Node, RepositoryInfo

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

BRANCH = "├── "
LAST_BRANCH = "└── "
PIPE = "│   "
SPACE = "    "


@dataclass
class FileReference:
    """An included file queued for output, with its ordering estimate."""

    node: Node
    estimated_tokens: int


def generate_tree_string(root: Node) -> str:
    """
    Draw the included part of the tree, children sorted by name.

    Pure function of the current inclusion state; no content is read.
    """
    lines = [root.name]

    def render(node: Node, prefix: str) -> None:
        children = sorted((c for c in node.children if c.is_included), key=lambda c: c.name)
        for index, child in enumerate(children):
            is_last = index == len(children) - 1
            lines.append(f"{prefix}{LAST_BRANCH if is_last else BRANCH}{child.name}")
            if child.is_directory:
                render(child, prefix + (SPACE if is_last else PIPE))

    if root.is_included:
        render(root, "")
    return "\n".join(lines)


def collect_file_references(root: Node) -> List[FileReference]:
    """
    Collect included non-directory nodes, largest estimate first.

    Files without a token count fall back to ``size // 4``; ties are
    broken by path so the order is fully deterministic.
    """
    refs = []
    for node in root.iter_leaves(included_only=True):
        estimate = node.token_count if node.token_count > 0 else max(1, node.size // 4)
        refs.append(FileReference(node, estimate))
    refs.sort(key=lambda ref: (-ref.estimated_tokens, ref.node.path))
    return refs


def format_file_section(path: str, content: str, tokens: int, index: int, total: int) -> str:
    return f"---\nFile: {path} (Tokens: {tokens}, File: {index}/{total})\n---\n{content}"


def generate_header(
    repository: RepositoryInfo,
    root: Node,
    generated_at: Optional[datetime] = None,
) -> str:
    """Repository metadata plus statistics for the included files."""
    stats = calculate_statistics(root)
    lines = [
        f"Repository: {repository.full_name}",
        f"Description: {repository.description or 'No description available'}",
        f"Default Branch: {repository.default_branch}",
        f"Language: {repository.language or 'Mixed'}",
        f"Total Files: {stats.included_files}",
        f"Total Tokens: {stats.included_tokens} ({format_token_count(stats.included_tokens)}, estimated)",
    ]
    if stats.largest_file:
        lines.append(f"Largest File: {stats.largest_file} ({stats.largest_file_tokens} tokens)")
    if generated_at is not None:
        lines.append(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M')}")
    return "\n".join(lines)


class ProgressReporter:
    """
    Throttled, monotonic progress reporting.

    Completions are reported every ``interval`` files and at the end.
    The fraction handed to the callback never decreases.
    """

    LOAD_START = 0.3
    LOAD_SPAN = 0.65

    def __init__(self, callback: Optional[ProgressCallback], total: int, interval: int = 5):
        self.callback = callback
        self.total = total
        self.interval = max(1, interval)
        self.completed = 0
        self.last_fraction = 0.0

    def report(self, fraction: float, message: str) -> None:
        if self.callback is None:
            return
        fraction = min(1.0, max(self.last_fraction, fraction))
        self.last_fraction = fraction
        self.callback(fraction, message)

    def file_done(self) -> None:
        self.completed += 1
        if self.completed % self.interval == 0 or self.completed == self.total:
            fraction = self.LOAD_START + self.LOAD_SPAN * self.completed / max(1, self.total)
            self.report(fraction, f"Processed {self.completed}/{self.total} files")


class StreamingAssembler:
    """Builds the flat output document for a discovered tree."""

    def __init__(self, loader: ContentLoader, config: Optional[Config] = None):
        self.loader = loader
        self.config = config or loader.config

    async def assemble(
        self,
        root: Node,
        repository: Optional[RepositoryInfo] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        generated_at: Optional[datetime] = None,
    ) -> AssemblyResult:
        """
        Load every included file and render the document.

        Args:
            root: Tree root; its inclusion flags decide what is emitted.
            repository: Metadata for the header. Synthesized from the root if omitted.
            concurrency: Maximum in-flight loads (defaults to ``config.max_concurrency``).
            on_progress: Called with ``(fraction, message)``.
            cancel_event: Cooperative cancellation signal.
            generated_at: Timestamp for the header; omitted when None.

        Returns:
            An :class:`AssemblyResult`. A cancelled run returns the cancelled
            sentinel, never a partial document.
        """
        cancel_event = cancel_event or threading.Event()
        repository = repository or RepositoryInfo(name=root.name, full_name=root.name)
        started = time.monotonic()

        refs = collect_file_references(root)
        total = len(refs)
        progress = ProgressReporter(on_progress, total, self.config.progress_interval)
        progress.report(0.05, "Collecting file references...")
        progress.report(0.25, f"Collected {total} files")

        limit = max(1, concurrency or self.config.max_concurrency)
        semaphore = asyncio.Semaphore(limit)

        async def load_one(ref: FileReference) -> None:
            async with semaphore:
                if cancel_event.is_set():
                    return
                await self.loader.load(ref.node)
            progress.file_done()

        progress.report(ProgressReporter.LOAD_START, f"Loading {total} files ({limit} at a time)...")
        await asyncio.gather(*(load_one(ref) for ref in refs))

        if cancel_event.is_set():
            return self._cancelled(progress)

        sections = []
        for index, ref in enumerate(refs, start=1):
            if cancel_event.is_set():
                return self._cancelled(progress)
            node = ref.node
            sections.append(format_file_section(
                node.path,
                node.content if node.content is not None else UNAVAILABLE_CONTENT,
                node.token_count,
                index,
                total,
            ))

        tree_string = generate_tree_string(root)
        parts = [
            generate_header(repository, root, generated_at),
            "",
            "File Tree Structure:",
            tree_string,
            "",
            "Repository Contents:",
            "",
            "\n\n".join(sections),
        ]
        text = "\n".join(parts)

        elapsed = time.monotonic() - started
        logger.info("Assembled %d files (%d chars) in %.2fs", total, len(text), elapsed)
        progress.report(1.0, f"Output ready ({len(text)} chars)")

        return AssemblyResult(
            status=AssemblyStatus.COMPLETE,
            text=text,
            tree_string=tree_string,
            file_count=total,
            token_count=root.total_token_count,
        )

    def _cancelled(self, progress: ProgressReporter) -> AssemblyResult:
        logger.info("Output generation cancelled")
        progress.report(1.0, "Output generation cancelled")
        return AssemblyResult.cancelled_result()
