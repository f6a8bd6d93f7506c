#!/usr/bin/env python3
# edgenode/cli.py
from __future__ import annotations

"""
`edgenode` console entry point.

    edgenode                      # same as `edgenode install`
    edgenode install firewall=true secret=vault
    edgenode status | stop | clean | seal-key | help [command]
"""

import difflib
import sys
from typing import Sequence

from edgenode.commands import REGISTRY, CommandResult, bind_args
from edgenode.commands import builtin  # noqa: F401  (registers commands)
from edgenode.ui import colorize, print_line

DEFAULT_COMMAND = "install"


def _suggest_similar_names(name: str) -> str:
    """Return a short suggestion string for misspelled commands."""
    matches = difflib.get_close_matches(name, REGISTRY.names(), n=3, cutoff=0.6)
    return f" Did you mean: {', '.join(matches)}?" if matches else ""


def dispatch(tokens: Sequence[str]) -> int:
    """Run one command line (already split into tokens); return exit code."""
    tokens = list(tokens) or [DEFAULT_COMMAND]
    name, args = tokens[0], tokens[1:]

    command_obj = REGISTRY.get(name)
    if command_obj is None:
        print_line(colorize(f"Unknown command: {name}.{_suggest_similar_names(name)}", "red"),
                   file=sys.stderr)
        print_line("Type 'edgenode help' for a list of commands.", file=sys.stderr)
        return 1

    try:
        positional, keywords = bind_args(command_obj.callback, args)
    except TypeError as exc:
        print_line(colorize(f"{command_obj.name}: {exc}", "red"), file=sys.stderr)
        return 1

    try:
        result = command_obj.invoke(*positional, **keywords)
    except Exception as exc:
        print_line(colorize(f"[error] {type(exc).__name__}: {exc}", "red"), file=sys.stderr)
        return 1
    if not isinstance(result, CommandResult):
        result = CommandResult(ok=True, message="" if result is None else str(result))
    if result.message:
        print_line(result.message if result.ok else colorize(result.message, "red"),
                   file=sys.stdout if result.ok else sys.stderr)
    return result.code


def main(argv: Sequence[str] | None = None) -> int:
    return dispatch(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":
    sys.exit(main())
