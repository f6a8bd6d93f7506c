#!/usr/bin/env python3
# edgenode/ui/__init__.py
from __future__ import annotations
# Re-export convenient top-level API
from .ansi import ANSI, colorize, color_enabled, reset_color_cache, strip_ansi
from .console import PRINT_MUTEX, get_terminal_columns, print_line
from .logging import ColorizingStreamHandler, PlainFormatter, init_logger
from .spinner import Spinner
from .table import format_table, print_table

__all__ = [
    "ANSI",
    "strip_ansi",
    "colorize",
    "color_enabled",
    "reset_color_cache",
    "PRINT_MUTEX",
    "print_line",
    "get_terminal_columns",
    "init_logger",
    "ColorizingStreamHandler",
    "PlainFormatter",
    "Spinner",
    "format_table",
    "print_table",
]
