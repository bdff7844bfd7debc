"""
Aggregate maintenance for the file tree.

Two update modes are supported:

* Incremental (:func:`add_child`, :func:`add_tokens`): O(depth) per call.
  Used while a tree is being built and by content loading, where each call
  touches one leaf and its ancestor chain. Ancestor counters are updated
  under each node's lock so concurrent leaf updates commute.
* Full recompute (:func:`recalculate_counts`): O(subtree). Required from
  the root after any inclusion change, since a toggle anywhere affects
  every ancestor sum.

Only included children contribute to a directory's aggregates. An excluded
node still keeps the totals of its own subtree, so re-including it is a
flag flip plus a recompute rather than a rebuild.
"""

import logging
from typing import Optional

from .models import Node, ProcessingStatistics, SortOption

logger = logging.getLogger(__name__)


def _propagate(start: Optional[Node], files: int, tokens: int) -> None:
    """Add deltas to ``start`` and its ancestors, stopping past the first excluded node."""
    current = start
    while current is not None:
        with current.lock:
            current.total_file_count += files
            current.total_token_count += tokens
        if not current.is_included:
            break
        current = current.parent


def add_child(parent: Node, child: Node) -> None:
    """
    Attach ``child`` to ``parent`` and fold its aggregates into the ancestors.

    Only safe while the tree is not yet observed by another thread.
    """
    parent.children.append(child)
    child.parent = parent
    if child.is_included and (child.total_file_count or child.total_token_count):
        _propagate(parent, child.total_file_count, child.total_token_count)


def add_tokens(node: Node, delta: int) -> None:
    """Add ``delta`` to a node's own token count and every affected ancestor total."""
    if delta == 0:
        return
    with node.lock:
        node.token_count += delta
        node.total_token_count += delta
    if node.is_included:
        _propagate(node.parent, 0, delta)


def set_token_count(node: Node, tokens: int) -> None:
    """Replace a leaf's token count, propagating the difference."""
    add_tokens(node, tokens - node.token_count)


def recalculate_counts(node: Node) -> None:
    """
    Recompute aggregates for ``node`` and its whole subtree, bottom-up.

    Iterative so very deep trees do not hit the recursion limit.
    """
    order = []
    stack = [node]
    while stack:
        current = stack.pop()
        order.append(current)
        if current.is_directory:
            stack.extend(current.children)

    for current in reversed(order):
        if current.is_directory:
            files = 0
            tokens = 0
            for child in current.children:
                if child.is_included:
                    files += child.total_file_count
                    tokens += child.total_token_count
            with current.lock:
                current.total_file_count = files
                current.total_token_count = tokens
        else:
            with current.lock:
                current.total_file_count = 1
                current.total_token_count = current.token_count


def update_inclusion(node: Node, included: bool, propagate_to_children: bool = True) -> None:
    """
    Set ``is_included`` on ``node`` and optionally on every descendant.

    Aggregates are stale afterwards: call :func:`recalculate_counts` on the
    root before reading any of them, or use :func:`set_inclusion`.
    """
    if not propagate_to_children:
        node.is_included = included
        return
    for current in node.walk():
        current.is_included = included


def set_inclusion(node: Node, included: bool, propagate_to_children: bool = True) -> Node:
    """Toggle inclusion and recompute from the root. Returns the root."""
    update_inclusion(node, included, propagate_to_children)
    root = node.root()
    recalculate_counts(root)
    logger.debug("Inclusion of %r set to %s; root now %d files / %d tokens",
                 node.path, included, root.total_file_count, root.total_token_count)
    return root


def calculate_statistics(root: Node) -> ProcessingStatistics:
    """Count files and tokens across the whole tree, and across its included part."""
    total_files = 0
    total_tokens = 0
    included_files = 0
    included_tokens = 0
    largest_file = None
    largest_tokens = 0

    def traverse(node: Node, ancestors_included: bool) -> None:
        nonlocal total_files, total_tokens, included_files, included_tokens
        nonlocal largest_file, largest_tokens
        included = ancestors_included and node.is_included
        if node.is_directory:
            for child in node.children:
                traverse(child, included)
            return
        total_files += 1
        total_tokens += node.token_count
        if included:
            included_files += 1
            included_tokens += node.token_count
            if largest_file is None or node.token_count > largest_tokens:
                largest_file = node.path
                largest_tokens = node.token_count

    traverse(root, True)

    return ProcessingStatistics(
        total_files=total_files,
        included_files=included_files,
        total_tokens=total_tokens,
        included_tokens=included_tokens,
        largest_file=largest_file,
        largest_file_tokens=largest_tokens,
    )


def sort_tree(node: Node, option: SortOption = SortOption.NAME, ascending: bool = True) -> None:
    """Re-sort children at every level for display. Identity and paths are untouched."""
    if option == SortOption.NAME:
        key = lambda n: n.name.lower()
    elif option == SortOption.SIZE:
        key = lambda n: n.size
    else:
        key = lambda n: n.total_token_count

    for current in node.walk():
        if current.is_directory:
            current.children.sort(key=key, reverse=not ascending)


def sort_by_token_count(node: Node) -> None:
    """Largest aggregate first at every level."""
    sort_tree(node, SortOption.TOKENS, ascending=False)
