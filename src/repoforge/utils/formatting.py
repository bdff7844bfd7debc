"""Human-readable formatting helpers."""


def format_token_count(count: int) -> str:
    """Format a token count as ``999``, ``1.2k`` or ``3.4M``."""
    if count < 1000:
        return str(count)
    if count < 1_000_000:
        return f"{count / 1000:.1f}k"
    return f"{count / 1_000_000:.1f}M"


def format_bytes(size: int) -> str:
    """Format a byte size using decimal units, e.g. ``12.3 KB``."""
    value = float(size)
    for unit in ("bytes", "KB", "MB", "GB"):
        if value < 1000 or unit == "GB":
            if unit == "bytes":
                return f"{int(value)} bytes"
            return f"{value:.1f} {unit}"
        value /= 1000
