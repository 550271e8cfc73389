"""Progress observers invoked once per probe iteration."""
from __future__ import annotations

import sys
from typing import Callable, Optional, TextIO

ProgressObserver = Callable[[int, int], None]

BAR_WIDTH = 50


def format_progress(done: int, total: int) -> str:
    percent = done * 100 // total if total else 0
    bar = "=" * (percent // 2)
    return f"{done}/{total} ({percent}%) [{bar:<{BAR_WIDTH}}]"


class ConsoleProgress:
    """Single-line progress bar overwritten in place with a carriage return."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def __call__(self, done: int, total: int) -> None:
        stream = self.stream or sys.stdout
        stream.write("\r" + format_progress(done, total))
        if done >= total:
            stream.write("\n")
        stream.flush()


class NoOpProgress:
    def __call__(self, done: int, total: int) -> None:
        return


__all__ = ["ProgressObserver", "ConsoleProgress", "NoOpProgress", "format_progress"]
