#!/usr/bin/env python3
# edgenode/ui/table.py
from __future__ import annotations

from typing import Optional, Sequence

from .ansi import strip_ansi
from .console import print_line


def _visible_len(text: str) -> int:
    return len(strip_ansi(text))


def format_table(
    rows: Sequence[Sequence[object]],
    headers: Optional[Sequence[object]] = None,
    *,
    padding: int = 1,
) -> str:
    """
    Bordered ASCII table. Column widths ignore ANSI codes, so coloured
    status cells line up with plain ones.
    """
    body = [[str(cell) for cell in row] for row in rows]
    head = [str(h) for h in headers] if headers is not None else None
    sized = ([head] if head else []) + body
    ncols = max((len(r) for r in sized), default=0)
    widths = [
        max((_visible_len(r[i]) for r in sized if i < len(r)), default=0)
        for i in range(ncols)
    ]
    pad = " " * padding

    def line(cells: Sequence[str]) -> str:
        return "|" + "|".join(
            f"{pad}{cell}{' ' * (widths[i] - _visible_len(cell))}{pad}"
            for i, cell in enumerate(cells)
        ) + "|"

    border = "-" * (sum(widths) + ncols * (2 * padding + 1) + 1)
    out = [border]
    if head is not None:
        out += [line(head), line(["-" * w for w in widths])]
    out += [line(r) for r in body]
    out.append(border)
    return "\n".join(out)


def print_table(
    rows: Sequence[Sequence[object]],
    headers: Optional[Sequence[object]] = None,
    *,
    padding: int = 1,
    file=None,
) -> None:
    print_line(format_table(rows, headers, padding=padding), file=file)
