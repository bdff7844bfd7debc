"""Utility modules for repoforge."""

from .encodings import EncodingDetector
from .file_filter import FileFilter
from .formatting import format_bytes, format_token_count
from .path_utils import PathUtils

__all__ = ["EncodingDetector", "FileFilter", "PathUtils", "format_bytes", "format_token_count"]
