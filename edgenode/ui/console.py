#!/usr/bin/env python3
# edgenode/ui/console.py
from __future__ import annotations

import shutil
import sys
import threading

# Held by print_line, the log handler and the spinner so lines never interleave.
PRINT_MUTEX = threading.Lock()


def print_line(text: str = "", *, file=None, flush: bool = False) -> None:
    """Write one line; `file` defaults to whatever sys.stdout is right now."""
    out = sys.stdout if file is None else file
    with PRINT_MUTEX:
        out.write(text + "\n")
        if flush:
            out.flush()


def get_terminal_columns(default: int = 80) -> int:
    return shutil.get_terminal_size((default, 24)).columns
