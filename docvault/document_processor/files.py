"""
Formatting helpers for stored files.
"""

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_file_size(size_bytes: int) -> str:
    """Human-readable size, e.g. 1536 -> '1.5 KB'."""
    if size_bytes <= 0:
        return "0 Bytes"
    value = float(size_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"
