"""
Token counting for repoforge.

Counts are estimates meant for ordering and display: a flat
four-characters-per-token heuristic, applied to byte sizes before content
is fetched and to character counts afterwards. When exact counting is
enabled, post-fetch counts use a tiktoken encoding instead; no count is
claimed to match any particular model's tokenizer.
"""

import logging
import math
from typing import Any, Optional

import tiktoken

CHARS_PER_TOKEN = 4

logger = logging.getLogger(__name__)


class TokenCounter:
    """
    Handles token estimation for file content.

    The tiktoken encoder is only loaded when exact counting is requested,
    and loading failures fall back to the heuristic.
    """

    def __init__(self, exact: bool = False, encoding_name: str = "cl100k_base"):
        """
        Initialize the token counter.

        Args:
            exact: Use tiktoken for content counts instead of the heuristic.
            encoding_name: The name of the tiktoken encoding to use.
        """
        self.encoding_name = encoding_name
        self.encoder: Optional[Any] = None

        if exact:
            try:
                self.encoder = tiktoken.get_encoding(encoding_name)
            except Exception as e:
                logger.warning(f"Failed to initialize token encoder '{encoding_name}': {e}")

    @property
    def is_exact(self) -> bool:
        """Check if content counts come from a real encoder."""
        return self.encoder is not None

    @staticmethod
    def estimate_from_size(size: int) -> int:
        """Pre-fetch estimate from a byte size; never below one token."""
        return max(1, math.ceil(max(size, 0) / CHARS_PER_TOKEN))

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Estimate tokens from a character count; empty text has none."""
        if not text:
            return 0
        return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))

    def count(self, text: str) -> int:
        """
        Count tokens in the given text.

        Uses the encoder when available, otherwise the heuristic.
        """
        if not text:
            return 0
        if self.encoder is None:
            return self.estimate_tokens(text)
        try:
            return len(self.encoder.encode(text, disallowed_special=()))
        except Exception as e:
            logger.debug(f"Error counting tokens: {e}")
            return self.estimate_tokens(text)
