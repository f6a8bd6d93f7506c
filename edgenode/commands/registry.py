#!/usr/bin/env python3
# edgenode/commands/registry.py
from __future__ import annotations

"""Name/alias table for installer commands and the `@command` decorator."""

import inspect
from typing import Any, Callable, Optional

from .command_types import Command


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._aliases: dict[str, str] = {}

    def _taken(self, key: str) -> bool:
        return key in self._commands or key in self._aliases

    def register(self, command_obj: Command) -> None:
        """Add a command; every name and alias must be free (case-insensitive)."""
        primary = command_obj.name.lower()
        aliases = [a.lower() for a in command_obj.aliases]
        keys = [primary, *aliases]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Cannot register '{command_obj.name}': repeated alias.")
        for key in keys:
            if self._taken(key):
                raise ValueError(
                    f"Cannot register '{command_obj.name}': name '{key}' is already taken.")
        self._commands[primary] = command_obj
        self._aliases.update(dict.fromkeys(aliases, primary))

    def get(self, name: str) -> Optional[Command]:
        key = name.lower()
        return self._commands.get(self._aliases.get(key, key))

    def all(self) -> list[Command]:
        """Primary commands only."""
        return list(self._commands.values())

    def names(self) -> list[str]:
        """Every name that resolves, aliases last (used for typo hints)."""
        return [*self._commands, *self._aliases]


REGISTRY = CommandRegistry()


def command(
    *,
    name: str | None = None,
    description: str | None = None,
    example: str | None = None,
    aliases: list[str] | None = None,
    registry: CommandRegistry | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Register the decorated function as an `edgenode` command.

    The command name defaults to the function name with underscores turned
    into dashes (`seal_key` -> `seal-key`); the description defaults to the
    docstring.
    """

    def register(func: Callable[..., Any]) -> Callable[..., Any]:
        (registry or REGISTRY).register(Command(
            name=(name or func.__name__).replace("_", "-"),
            description=(description or func.__doc__ or "").strip(),
            example=example or "",
            callback=func,
            aliases=list(aliases or ()),
            param_names=list(inspect.signature(func).parameters),
        ))
        return func

    return register
