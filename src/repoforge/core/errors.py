"""Exception types raised by the ingestion core."""

from typing import Optional


class IngestionError(Exception):
    """
    Raised when a source cannot be ingested at all.

    Covers remote metadata and tree listing failures, invalid repository
    URLs and missing local directories. Finer-grained problems (a single
    unreadable directory or file) never raise this; they degrade into
    adapter errors or sentinel content instead.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ContentFetchError(Exception):
    """Raised by remote clients when a single file cannot be fetched."""

    def __init__(self, path: str, message: str, status: Optional[int] = None):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
        self.status = status


class ContentTooLargeError(ContentFetchError):
    """Raised when a file exceeds the configured size ceiling at read time."""

    def __init__(self, path: str, size: int):
        super().__init__(path, f"File too large ({size:,} bytes)")
        self.size = size
