"""
Lazy, failure-isolated content loading.

:class:`ContentLoader` fetches a single file through an adapter, turns
the payload into text, counts its tokens and folds the new count into the
tree. Every failure becomes a sentinel string stored as the node's
content; nothing but cancellation escapes :meth:`ContentLoader.load`.
"""

import asyncio
import base64
import binascii
import logging
from typing import TYPE_CHECKING, Dict, Optional

from ..utils.encodings import EncodingDetector
from ..utils.formatting import format_bytes
from .aggregator import set_token_count
from .errors import ContentTooLargeError
from .models import Config, Node
from .tokenizer import TokenCounter

if TYPE_CHECKING:
    from ..adapters.base import FetchedContent, RepositoryAdapter

logger = logging.getLogger(__name__)

TOO_LARGE_CONTENT = "// File too large to display ({size} bytes)"
BINARY_CONTENT = "// Binary file, content not shown"
DECODE_FAILED_CONTENT = "// Failed to decode content"
UNAVAILABLE_CONTENT = "// Content not available"
ERROR_CONTENT = "// Error loading content: {error}"


def is_sentinel(content: Optional[str]) -> bool:
    """True if ``content`` is one of the loader's placeholder strings."""
    if content is None:
        return False
    return content in (BINARY_CONTENT, DECODE_FAILED_CONTENT, UNAVAILABLE_CONTENT) or (
        content.startswith("// File too large to display (")
        or content.startswith("// Error loading content: ")
    )


class _PlaceholderContent(Exception):
    """Internal signal carrying the sentinel to store for a file."""

    def __init__(self, placeholder: str):
        super().__init__(placeholder)
        self.placeholder = placeholder


class ContentLoader:
    """
    Loads file content on demand for one adapter.

    ``load`` is idempotent: a node that already has content is left alone,
    and concurrent calls for the same node share a single fetch.
    """

    def __init__(
        self,
        adapter: "RepositoryAdapter",
        config: Optional[Config] = None,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.adapter = adapter
        self.config = config or adapter.config
        self.token_counter = token_counter or TokenCounter(
            exact=self.config.exact_token_counting,
            encoding_name=self.config.token_encoder,
        )
        self.encoding_detector = EncodingDetector(
            self.config.encoding_fallbacks, self.config.binary_sample_size
        )
        self.fetch_count = 0
        self._in_flight: Dict[str, asyncio.Task] = {}

    async def load(self, node: Node) -> None:
        """Make sure ``node.content`` is set. No-op for non-files and loaded files."""
        if not node.is_file or node.content is not None:
            return

        task = self._in_flight.get(node.id)
        if task is None:
            task = asyncio.ensure_future(self._load(node))
            self._in_flight[node.id] = task
            task.add_done_callback(lambda _: self._in_flight.pop(node.id, None))
        await asyncio.shield(task)

    async def _load(self, node: Node) -> None:
        if node.size > self.config.max_file_size:
            logger.debug("Skipping %s: %s exceeds the size limit", node.path, format_bytes(node.size))
            self._store_placeholder(node, TOO_LARGE_CONTENT.format(size=node.size))
            return

        self.fetch_count += 1
        try:
            fetched = await self.adapter.fetch_content(node)
            text = self._decode(node, fetched)
        except asyncio.CancelledError:
            raise
        except _PlaceholderContent as e:
            self._store_placeholder(node, e.placeholder)
        except ContentTooLargeError as e:
            self._store_placeholder(node, TOO_LARGE_CONTENT.format(size=e.size))
        except Exception as e:
            logger.debug("Failed to load %s: %s", node.path, e)
            self._store_placeholder(node, ERROR_CONTENT.format(error=e))
        else:
            self._store(node, text)

    def _decode(self, node: Node, fetched: "FetchedContent") -> str:
        payload = fetched.payload
        encoding = (fetched.encoding or "").lower()

        if isinstance(payload, str):
            if encoding == "base64":
                try:
                    payload = base64.b64decode(payload.replace("\n", ""), validate=True)
                except (binascii.Error, ValueError):
                    raise _PlaceholderContent(DECODE_FAILED_CONTENT)
            elif encoding == "none":
                # The contents API declines to inline files above its own limit
                raise _PlaceholderContent(UNAVAILABLE_CONTENT)
            else:
                return payload

        if self.encoding_detector.is_likely_binary(payload):
            raise _PlaceholderContent(BINARY_CONTENT)

        text, _, error = self.encoding_detector.decode_bytes(payload, node.path)
        if text is None:
            logger.debug("Decode failed for %s: %s", node.path, error)
            raise _PlaceholderContent(DECODE_FAILED_CONTENT)
        return text

    def _store(self, node: Node, text: str) -> None:
        node.content = text
        set_token_count(node, self.token_counter.count(text))

    def _store_placeholder(self, node: Node, placeholder: str) -> None:
        # The discovery-time estimate stays in place
        node.content = placeholder
