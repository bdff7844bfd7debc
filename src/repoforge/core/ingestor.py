"""Main ingestion orchestrator."""
import logging
import os
import re
import threading
from datetime import datetime
from typing import Optional

from ..adapters import create_adapter
from ..adapters.base import RepositoryAdapter
from .aggregator import recalculate_counts
from .assembler import ProgressCallback, StreamingAssembler
from .content_loader import ContentLoader
from .models import AssemblyResult, Config, IngestionResult

logger = logging.getLogger(__name__)


class RepositoryIngestor:
    """
    Runs the pipeline: source -> adapter -> tree -> assembled document.

    One ingestor owns at most one adapter at a time; use it as an async
    context manager (or call :meth:`aclose`) to release network sessions.
    """

    def __init__(self, config: Config, cancel_event: Optional[threading.Event] = None):
        """Initialize ingestor with configuration and a shared cancel signal."""
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.adapter: Optional[RepositoryAdapter] = None
        self.loader: Optional[ContentLoader] = None

    async def __aenter__(self) -> 'RepositoryIngestor':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self.adapter is not None:
            await self.adapter.aclose()

    def cancel(self) -> None:
        self.cancel_event.set()

    async def ingest(self, repo_url_or_path: str) -> IngestionResult:
        """
        Discover a repository without loading file content.

        Args:
            repo_url_or_path: GitHub URL, ``owner/repo`` or local directory path

        Returns:
            IngestionResult with the tree and non-fatal errors

        Raises:
            IngestionError: If the source cannot be ingested at all
        """
        await self.aclose()
        self.adapter = create_adapter(repo_url_or_path, self.config, self.cancel_event)
        self.loader = ContentLoader(self.adapter, self.config)

        repository = await self.adapter.get_repository_info()
        logger.info("Discovering %s", repository.full_name)
        root = await self.adapter.discover()

        # Construction used incremental updates; settle every aggregate once
        recalculate_counts(root)

        return IngestionResult(
            repository=repository,
            root=root,
            source=repo_url_or_path,
            errors=list(self.adapter.errors),
            rate_limit=self.adapter.rate_limit,
            cancelled=self.cancel_event.is_set(),
        )

    async def generate_output(
        self,
        result: IngestionResult,
        on_progress: Optional[ProgressCallback] = None,
        concurrency: Optional[int] = None,
        generated_at: Optional[datetime] = None,
    ) -> AssemblyResult:
        """Load included content and assemble the output document."""
        if self.loader is None:
            raise RuntimeError("ingest() must be called before generate_output()")

        assembler = StreamingAssembler(self.loader, self.config)
        output = await assembler.assemble(
            result.root,
            repository=result.repository,
            concurrency=concurrency,
            on_progress=on_progress,
            cancel_event=self.cancel_event,
            generated_at=generated_at,
        )

        # Remote fetches may have refreshed the rate-limit status
        if self.adapter is not None and self.adapter.rate_limit is not None:
            result.rate_limit = self.adapter.rate_limit
        return output

    @staticmethod
    def _sanitize_filename(name: str) -> str:
        """Sanitize a string for use as a filename."""
        sanitized = re.sub(r'[<>:"/\\|?*]', '_', name)
        sanitized = sanitized.rstrip('. ')
        if len(sanitized) > 100:
            sanitized = sanitized[:100]
        return sanitized or "repository"

    def save_output(self, output: AssemblyResult, repo_name: str, output_dir: str = "output") -> str:
        """
        Write an assembled document to ``output_dir``.

        Returns:
            Path of the written file
        """
        if output.cancelled:
            raise ValueError("Refusing to save a cancelled output")

        os.makedirs(output_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(output_dir, f"{self._sanitize_filename(repo_name)}_{timestamp}.txt")
        with open(path, 'w', encoding='utf-8') as f:
            f.write(output.text)
        logger.info("Saved output to %s", path)
        return path
