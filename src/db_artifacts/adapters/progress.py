"""Byte-level progress for long statement streams, drawn with rich."""

from collections.abc import Iterable, Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class RichProgressRelay:
    """Counts bytes as they pass through and renders a live progress bar."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def track(
        self, chunks: Iterable[bytes], total: int, description: str
    ) -> Iterator[bytes]:
        with Progress(
            TextColumn("  {task.description}"),
            BarColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            task = progress.add_task(description, total=total)
            for chunk in chunks:
                yield chunk
                progress.advance(task, len(chunk))


def detect_progress_relay(console: Console) -> RichProgressRelay | None:
    """Return a relay when the console can draw live output, else ``None``.

    Without a relay, the import pipeline falls back to periodic status log
    lines, which read better in redirected output.
    """
    if console.is_terminal and not console.is_dumb_terminal:
        return RichProgressRelay(console)
    return None
