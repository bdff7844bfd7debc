"""
Static default-exclusion policy.

This module decides which entries never make it into the tree at all:
dependency, VCS and build directories by name, optional virtual
environments, and archives, binaries, media and office documents by
extension. Ignore-file rules are handled separately by
:class:`repoforge.core.pattern_matcher.PatternMatcher`.
"""

import os
from typing import TYPE_CHECKING, Optional

from ..core.aggregator import recalculate_counts
from ..core.models import Config, Node

if TYPE_CHECKING:
    from ..core.pattern_matcher import PatternMatcher


class FileFilter:
    """Handles the static default-exclusion policy."""

    def __init__(self, config: Config, include_virtual_envs: Optional[bool] = None):
        self.config = config
        self.include_virtual_envs = (
            config.include_virtual_envs if include_virtual_envs is None else include_virtual_envs
        )
        self._excluded_names = {name.lower() for name in config.excluded_names}
        self._venv_names = {name.lower() for name in config.virtual_env_names}
        self._extensions = {ext.lower() for ext in config.excluded_extensions}

    def should_exclude_directory(self, dir_name: str) -> bool:
        """
        Check if a directory should be excluded.

        Args:
            dir_name: Name of the directory (not full path).

        Returns:
            True if directory should be excluded, False otherwise.
        """
        lowered = dir_name.lower()
        if lowered in self._excluded_names:
            return True
        return not self.include_virtual_envs and lowered in self._venv_names

    def is_excluded_extension(self, file_name: str) -> bool:
        """
        Check if a file has an excluded extension.

        Dotfiles such as ``.DS_Store`` are matched on their whole name.
        """
        lowered = file_name.lower()
        ext = os.path.splitext(lowered)[1]
        if not ext and lowered.startswith('.'):
            ext = lowered
        return ext in self._extensions

    def should_exclude_by_default(self, name: str, is_directory: bool) -> bool:
        """True if the entry is removed from the tree by the static policy."""
        if is_directory:
            return self.should_exclude_directory(name)
        return self.is_excluded_extension(name)

    def get_excluded_reason(self, name: str, is_directory: bool) -> Optional[str]:
        """
        Get the reason why an entry would be excluded.

        Returns:
            Reason string if the entry would be excluded, None otherwise.
        """
        if is_directory:
            lowered = name.lower()
            if lowered in self._excluded_names:
                return "Excluded directory"
            if not self.include_virtual_envs and lowered in self._venv_names:
                return "Virtual environment"
            return None
        if self.is_excluded_extension(name):
            return "Excluded file extension"
        return None

    def apply_default_policy(self, root: Node, matcher: Optional["PatternMatcher"] = None) -> Node:
        """
        Re-evaluate ``is_included`` for every node against the static policy.

        Used after the virtual-environment setting changes on an already
        built tree. With a ``matcher`` the ignore-file rules are applied
        as well. Aggregates are recomputed from the root afterwards.
        """
        for node in root.walk():
            if node is root:
                continue
            included = not self.should_exclude_by_default(node.name, node.is_directory)
            if included and matcher is not None:
                included = not matcher.should_ignore(node.path, node.is_directory)
            node.is_included = included
        recalculate_counts(root)
        return root
