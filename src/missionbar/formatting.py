"""Formatting utilities for consistent output across the CLI and other consumers."""

_UNITS = ("KB", "MB", "GB", "TB", "PB")
# Decimal places shown per unit
_PRECISION = {"KB": 0, "MB": 1, "GB": 2, "TB": 2, "PB": 2}


def _format_bytes(count: int, base: int) -> str:
    if count < base:
        suffix = "byte" if count == 1 else "bytes"
        return f"{count} {suffix}"

    value = float(count)
    unit = _UNITS[0]
    for unit in _UNITS:
        value /= base
        if value < base:
            break
    return f"{value:.{_PRECISION[unit]}f} {unit}"


def format_memory(count: int) -> str:
    """Format a memory size with binary units (1 KB = 1024 bytes).

    Examples:
        format_memory(512) -> "512 bytes"
        format_memory(1536 * 1024) -> "1.5 MB"
    """
    return _format_bytes(count, 1024)


def format_file_size(count: int) -> str:
    """Format an on-disk size with decimal units (1 KB = 1000 bytes).

    Examples:
        format_file_size(999) -> "999 bytes"
        format_file_size(2_500_000_000) -> "2.50 GB"
    """
    return _format_bytes(count, 1000)


def format_cpu(percent: float) -> str:
    """Format a CPU percentage with one decimal, e.g. "12.3%"."""
    return f"{percent:.1f}%"
