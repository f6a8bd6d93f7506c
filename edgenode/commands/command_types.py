#!/usr/bin/env python3
# edgenode/commands/command_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass(slots=True)
class CommandResult:
    """
    What a command hands back to the CLI.

    `exit_code` wins when set (install passes the pipeline's code through);
    otherwise the code follows `ok`.
    """
    ok: bool = True
    message: str = ""
    exit_code: int | None = None

    @property
    def code(self) -> int:
        if self.exit_code is not None:
            return self.exit_code
        return 0 if self.ok else 1

    def __str__(self) -> str:
        return self.message or ("ok" if self.ok else "failed")


@dataclass(slots=True)
class Command:
    name: str
    description: str
    example: str
    callback: Callable[..., Any]
    aliases: list[str] = field(default_factory=list)
    param_names: list[str] = field(default_factory=list)

    def invoke(self, *args: Any, **kwargs: Any) -> Any:
        return self.callback(*args, **kwargs)
