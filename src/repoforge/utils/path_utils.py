"""Path normalization utilities for repository-relative paths."""

from typing import List


class PathUtils:
    """Utilities for slash-separated, root-relative paths."""

    @staticmethod
    def normalize_path(path: str) -> str:
        """
        Normalize separators to forward slashes and drop edge slashes.

        Args:
            path: File path with potentially mixed separators

        Returns:
            Path with forward slashes only, no leading or trailing slash
        """
        return path.replace('\\', '/').strip('/')

    @staticmethod
    def normalize_and_split(path: str) -> List[str]:
        """Normalize path and split into non-empty components."""
        normalized = PathUtils.normalize_path(path)
        return [part for part in normalized.split('/') if part]

    @staticmethod
    def join_path_components(components: List[str]) -> str:
        """Join path components with forward slashes."""
        return '/'.join(components)

    @staticmethod
    def join(parent_path: str, name: str) -> str:
        """Child path under ``parent_path``; children of the root get bare names."""
        return f"{parent_path}/{name}" if parent_path else name

    @staticmethod
    def parent_path(path: str) -> str:
        """Parent of a relative path; top-level entries have the root ("") as parent."""
        parts = PathUtils.normalize_and_split(path)
        return PathUtils.join_path_components(parts[:-1])

    @staticmethod
    def basename(path: str) -> str:
        parts = PathUtils.normalize_and_split(path)
        return parts[-1] if parts else ""

    @staticmethod
    def depth(path: str) -> int:
        """Number of components; the root has depth 0."""
        return len(PathUtils.normalize_and_split(path))
