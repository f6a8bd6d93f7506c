#!/usr/bin/env python3
# edgenode/ui/ansi.py
from __future__ import annotations

import os
import re
import sys
from typing import Optional, TextIO

# ---- Core SGR map -----------------------------------------------------------

ANSI = {
    "reset": "\x1b[0m",

    # styles
    "bold": "\x1b[1m",
    "dim": "\x1b[2m",
    "underline": "\x1b[4m",

    # fg 8-color
    "red": "\x1b[31m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "blue": "\x1b[34m",
    "magenta": "\x1b[35m",
    "cyan": "\x1b[36m",
    "white": "\x1b[37m",

    # fg bright
    "bright_black": "\x1b[90m",
    "bright_green": "\x1b[92m",
}

ANSI_REGEX = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

_color_cache: Optional[bool] = None  # cached across calls


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_REGEX.sub("", text)


def color_enabled(stream: Optional[TextIO] = None) -> bool:
    """
    Return True if ANSI colours should be emitted.

    Honours NO_COLOR (https://no-color.org) and FORCE_COLOR; otherwise the
    answer follows whether stdout is a terminal. Cached after the first call
    for the default stream.
    """
    global _color_cache
    if stream is None and _color_cache is not None:
        return _color_cache

    if os.environ.get("NO_COLOR"):
        enabled = False
    elif os.environ.get("FORCE_COLOR"):
        enabled = True
    else:
        target = stream or sys.stdout
        try:
            enabled = bool(target.isatty())
        except Exception:
            enabled = False

    if stream is None:
        _color_cache = enabled
    return enabled


def reset_color_cache() -> None:
    """Forget the cached colour decision (tests flip NO_COLOR)."""
    global _color_cache
    _color_cache = None


def colorize(text: str, *styles: str) -> str:
    """
    Wrap text with one or more SGR styles from ANSI (e.g., 'red', 'bold').
    Returns the text untouched when colour is disabled.
    """
    if not color_enabled():
        return text
    seq = "".join(ANSI[s] for s in styles if s in ANSI)
    return f"{seq}{text}{ANSI['reset']}" if seq else text
