#!/usr/bin/env python3
# edgenode/commands/parser.py
from __future__ import annotations

"""
Argument binding for commands.

Tokens are either positional or `key=value`; values are coerced using the
callback's annotations (bool, int, float, str).
"""

import inspect
from typing import Any

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _coerce_value(name: str, text_value: str, annotation: Any) -> Any:
    """Convert a string to the annotated type when reasonable."""
    # Annotations are strings under `from __future__ import annotations`.
    kind = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "")
    kind = kind.replace(" ", "")
    if kind in ("bool", "bool|None"):
        lowered = text_value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise TypeError(f"{name}: expected a boolean, got {text_value!r}")
    if kind in ("int", "float", "int|None", "float|None"):
        caster = int if kind.startswith("int") else float
        try:
            return caster(text_value)
        except ValueError as exc:
            raise TypeError(f"{name}: expected {caster.__name__}, got {text_value!r}") from exc
    return text_value


def bind_args(func: Any, tokens: list[str]) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """
    Bind a flat token list to the signature of `func`.

    Supports positional tokens and key=value tokens for keyword-only or
    normal parameters. Unknown keys raise TypeError.
    """
    signature = inspect.signature(func)
    parameters = list(signature.parameters.values())
    by_name = {p.name.replace("_", "-"): p for p in parameters}
    by_name.update({p.name: p for p in parameters})

    positional_tokens: list[str] = []
    bound_keywords: dict[str, Any] = {}
    for token in tokens:
        if "=" in token:
            key, value = token.split("=", 1)
            parameter = by_name.get(key)
            if parameter is None or parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
                raise TypeError(f"Unknown option: {key}")
            bound_keywords[parameter.name] = _coerce_value(
                parameter.name, value, parameter.annotation)
        else:
            positional_tokens.append(token)

    bound_positional: list[Any] = []
    positional_params = [
        p for p in parameters
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.name not in bound_keywords
    ]
    if len(positional_tokens) > len(positional_params):
        raise TypeError("Too many positional arguments.")
    for parameter, raw in zip(positional_params, positional_tokens):
        value = _coerce_value(parameter.name, raw, parameter.annotation)
        if parameter.kind is parameter.POSITIONAL_ONLY:
            bound_positional.append(value)
        else:
            bound_keywords[parameter.name] = value

    for parameter in positional_params[len(positional_tokens):]:
        if parameter.default is inspect.Parameter.empty:
            raise TypeError(f"Missing required argument: {parameter.name}")
    for parameter in parameters:
        if (parameter.kind is parameter.KEYWORD_ONLY
                and parameter.name not in bound_keywords
                and parameter.default is inspect.Parameter.empty):
            raise TypeError(f"Missing required keyword-only argument: {parameter.name}")

    return tuple(bound_positional), bound_keywords


def build_usage(command_name: str, func: Any) -> str:
    """
    Render a compact usage string based on `func` signature.

    Example:
        'install [firewall=...] [secret=...]'
    """
    signature = inspect.signature(func)
    usage_parts: list[str] = []

    for parameter in signature.parameters.values():
        if parameter.kind is parameter.KEYWORD_ONLY:
            usage_parts.append(f"[{parameter.name}=...]")
        elif parameter.default is inspect.Parameter.empty:
            usage_parts.append(f"<{parameter.name}>")
        else:
            usage_parts.append(f"[{parameter.name}]")

    return f"{command_name} " + " ".join(usage_parts) if usage_parts else command_name
