#!/usr/bin/env python3
# edgenode/commands/__init__.py
from __future__ import annotations

"""
Package for command management and registration.

Provides:
- Data structures (`Command`, `CommandResult`).
- In-memory registry and decorator (`REGISTRY`, `command`).
- Token binding and usage strings (`bind_args`, `build_usage`).

Importing `edgenode.commands.builtin` registers the installer commands.
"""


from .command_types import Command, CommandResult
from .registry import REGISTRY, CommandRegistry, command
from .parser import bind_args, build_usage

__all__ = [
    "Command",
    "CommandResult",
    "CommandRegistry",
    "REGISTRY",
    "command",
    "bind_args",
    "build_usage",
]
