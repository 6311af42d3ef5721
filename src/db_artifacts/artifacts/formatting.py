"""Human-readable sizes and durations.

Shared by the export and import pipelines and by the run reports so both
directions print identical units.
"""

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


def format_size(num_bytes: int) -> str:
    """Format a byte count using binary units.

    Examples:
        >>> format_size(1023)
        '1023 B'
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(1073741824)
        '1.00 GB'
    """
    if num_bytes >= GIB:
        return f"{num_bytes / GIB:.2f} GB"
    if num_bytes >= MIB:
        return f"{num_bytes / MIB:.1f} MB"
    if num_bytes >= KIB:
        return f"{num_bytes / KIB:.1f} KB"
    return f"{num_bytes} B"


def format_elapsed(seconds: float) -> str:
    """Format elapsed seconds as ``1h 2m 3s``, omitting leading zero units."""
    total = int(seconds)
    if total >= 3600:
        return f"{total // 3600}h {total % 3600 // 60}m {total % 60}s"
    if total >= 60:
        return f"{total // 60}m {total % 60}s"
    return f"{total}s"
