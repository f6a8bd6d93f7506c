#!/usr/bin/env python3
# edgenode/ui/logging.py
from __future__ import annotations

"""
Installer logging.

Console records go to stderr, tinted per level when stderr is a terminal.
The optional log file always receives plain text at DEBUG so a failed
install can be diagnosed after the fact.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .ansi import ANSI, color_enabled, strip_ansi
from .console import PRINT_MUTEX

CONSOLE_FORMAT = "[%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_BYTES = 2_000_000
LOG_FILE_BACKUPS = 3


class ColorizingStreamHandler(logging.StreamHandler):
    """Level-tinted console output; ANSI is stripped off-terminal."""

    _TINTS = {
        logging.DEBUG: "bright_black",
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "magenta",
    }

    def __init__(self, stream=None) -> None:
        super().__init__(stream)
        self._use_ansi = color_enabled(self.stream)

    def _render(self, record: logging.LogRecord) -> str:
        text = self.format(record)
        if not self._use_ansi:
            return strip_ansi(text)
        tint = self._TINTS.get(record.levelno)
        return f"{ANSI[tint]}{text}{ANSI['reset']}" if tint else text

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self._render(record)
            # shares the mutex with print_line and the spinner
            with PRINT_MUTEX:
                self.stream.write(line + self.terminator)
                self.flush()
        except Exception:
            self.handleError(record)


class PlainFormatter(logging.Formatter):
    """Never lets escape sequences into the log file."""

    def format(self, record: logging.LogRecord) -> str:
        return strip_ansi(super().format(record))


def _file_handler(logfile: str) -> RotatingFileHandler:
    Path(logfile).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        logfile, maxBytes=LOG_FILE_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(PlainFormatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def init_logger(
    name: str = "edgenode",
    level: int | str = logging.INFO,
    logfile: Optional[str] = None,
) -> logging.Logger:
    """
    Configure and return the `edgenode` logger.

    Safe to call again: the console handler and the file handler are each
    attached at most once.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    kinds = {type(h) for h in logger.handlers}
    if ColorizingStreamHandler not in kinds:
        console = ColorizingStreamHandler(stream=sys.stderr)
        console.setLevel(level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(console)
    if logfile and RotatingFileHandler not in kinds:
        logger.addHandler(_file_handler(logfile))
    return logger
