#!/usr/bin/env python3
# edgenode/ui/spinner.py
from __future__ import annotations

import sys
import threading

from .console import PRINT_MUTEX, get_terminal_columns


class Spinner:
    """
    Animated wait indicator for blocking steps such as the readiness gate.

    Only animates when the stream is a terminal; elsewhere (CI logs, tests,
    piped output) entering and leaving the context writes nothing.
    """

    FRAMES = "|/-\\"

    def __init__(self, text: str = "Working...", *, file=None, interval: float = 0.1) -> None:
        self.text = text
        self.file = file if file is not None else sys.stderr
        self.interval = interval
        self._done = threading.Event()
        self._worker: threading.Thread | None = None

    def __enter__(self) -> "Spinner":
        if _is_terminal(self.file):
            self._worker = threading.Thread(target=self._animate, daemon=True)
            self._worker.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def stop(self) -> None:
        self._done.set()
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.join()
        blank = " " * (get_terminal_columns() - 1)
        with PRINT_MUTEX:
            self.file.write(f"\r{blank}\r")
            self.file.flush()

    def _animate(self) -> None:
        tick = 0
        while not self._done.is_set():
            with PRINT_MUTEX:
                self.file.write(f"\r{self.FRAMES[tick % len(self.FRAMES)]} {self.text}")
                self.file.flush()
            tick += 1
            # wakes immediately on stop()
            self._done.wait(self.interval)


def _is_terminal(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except (OSError, ValueError):
        return False
