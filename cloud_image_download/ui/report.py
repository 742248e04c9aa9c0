"""
Run summary rendering for the terminal.
"""

from typing import List

from ..core.formatting import format_duration, format_size
from ..sync.summary import Summary
from .colors import Colors, paint


def format_summary(summary: Summary, color: bool = False) -> str:
    """Render a Summary as the block of text printed at the end of a run."""
    lines: List[str] = []

    if summary.cancelled:
        title = paint("Sync cancelled", Colors.YELLOW + Colors.BOLD, color)
    elif summary.ok:
        title = paint("Sync complete", Colors.GREEN + Colors.BOLD, color)
    else:
        title = paint("Sync finished with errors", Colors.RED + Colors.BOLD, color)
    lines.append(title)
    lines.append("")

    lines.append(f"  Images found:      {summary.requested}")
    lines.append(f"  Downloaded:        {summary.downloaded} ({format_size(summary.bytes_downloaded)})")
    lines.append(f"  Verified in place: {summary.verified}")
    lines.append(f"  Already synced:    {summary.skipped}")
    if summary.not_started:
        lines.append(f"  Not started:       {summary.not_started}")
    failed = f"  Failed:            {summary.failed}"
    lines.append(paint(failed, Colors.RED, color) if summary.failed else failed)
    lines.append(paint(f"  Elapsed:           {format_duration(summary.elapsed)}", Colors.MUTED, color))

    if summary.resolution_errors:
        lines.append("")
        lines.append(paint("Unresolved versions:", Colors.BOLD, color))
        for error in summary.resolution_errors:
            lines.append(f"  {error.site} {error.version}: {error.reason}")

    if summary.failures:
        lines.append("")
        lines.append(paint("Failed images:", Colors.BOLD, color))
        for item in summary.failures:
            lines.append(f"  {item.name}: {paint(item.reason, Colors.RED, color)}")

    return "\n".join(lines)
