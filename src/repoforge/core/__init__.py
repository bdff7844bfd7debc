"""Core components for repoforge."""

from .aggregator import (
    add_child,
    add_tokens,
    calculate_statistics,
    recalculate_counts,
    set_inclusion,
    sort_by_token_count,
    sort_tree,
    update_inclusion,
)
from .errors import ContentFetchError, IngestionError
from .models import (
    AssemblyResult,
    Config,
    IngestionResult,
    Node,
    NodeKind,
    ProcessingStatistics,
    RateLimit,
    RepositoryInfo,
    SortOption,
)
from .pattern_matcher import PatternMatcher
from .tokenizer import TokenCounter

__all__ = [
    "AssemblyResult",
    "Config",
    "ContentFetchError",
    "IngestionError",
    "IngestionResult",
    "Node",
    "NodeKind",
    "PatternMatcher",
    "ProcessingStatistics",
    "RateLimit",
    "RepositoryInfo",
    "SortOption",
    "TokenCounter",
    "add_child",
    "add_tokens",
    "calculate_statistics",
    "recalculate_counts",
    "set_inclusion",
    "sort_by_token_count",
    "sort_tree",
    "update_inclusion",
]
