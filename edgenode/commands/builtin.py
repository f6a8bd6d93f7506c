#!/usr/bin/env python3
# edgenode/commands/builtin.py
from __future__ import annotations

"""Installer commands: install, stop, status, clean, seal-key, help."""

import logging

from edgenode.boot import run_install
from edgenode.config import load_settings
from edgenode.errors import InputFailure, InstallerError
from edgenode.probe import http_probe
from edgenode.process import load_run_state, save_run_state
from edgenode.stages import prepare_environment, process_rows, read_secret_from_tty
from edgenode.ui import format_table, init_logger, print_table
from edgenode.vault import VaultError, seal_secret

from .command_types import CommandResult
from .parser import build_usage
from .registry import REGISTRY, command


def _logger_for(settings) -> logging.Logger:
    return init_logger(
        "edgenode",
        level=settings.log_level,
        logfile=str(settings.log_file_path) if settings.log_file_path else None,
    )


@command(
    name="install",
    description="Install toolchains, clone the node, configure it and start both services.",
    example="install firewall=true secret=vault",
)
def install(*, firewall: bool | None = None, secret: str = "tty") -> CommandResult:
    code = run_install(firewall=firewall, secret_source=secret)
    return CommandResult(ok=code == 0, exit_code=code)


@command(
    name="stop",
    description="Stop the merkle service and light node started by the last install.",
    example="stop",
)
def stop() -> CommandResult:
    settings = load_settings()
    _logger_for(settings)
    processes = load_run_state(settings.state_file)
    if not processes:
        return CommandResult(ok=True, message="No recorded services.")

    lines = []
    for proc in processes:
        stopped = proc.stop()
        lines.append(f"{proc.name} (pid {proc.pid}): {'stopped' if stopped else 'not running'}")
    survivors = [proc for proc in processes if proc.is_running()]
    if survivors:
        save_run_state(settings.state_file, survivors)
        lines.append("Still running: " + ", ".join(f"{p.name} (pid {p.pid})" for p in survivors))
        return CommandResult(ok=False, message="\n".join(lines))
    settings.state_file.unlink(missing_ok=True)
    return CommandResult(ok=True, message="\n".join(lines))


@command(
    name="status",
    description="Show recorded services and probe the merkle service.",
    example="status",
    aliases=["ps"],
)
def status() -> CommandResult:
    settings = load_settings()
    processes = load_run_state(settings.state_file)
    if processes:
        print_table(process_rows(processes), headers=["Service", "PID", "Status", "Log"])
    reachable = http_probe(settings.readiness_url)
    message = (f"{settings.readiness_url}: "
               f"{'reachable' if reachable else 'unreachable'}")
    if not processes:
        message = "No recorded services.\n" + message
    return CommandResult(ok=True, message=message)


@command(
    name="clean",
    description="Stop previous services and remove the clone and run state.",
    example="clean",
)
def clean() -> CommandResult:
    settings = load_settings()
    _logger_for(settings)
    try:
        report = prepare_environment(settings)
    except InstallerError as exc:
        return CommandResult(ok=False, message=str(exc))
    if not report.changed:
        return CommandResult(ok=True, message="Nothing to clean.")
    removed = ", ".join(str(p) for p in report.removed_paths) or "-"
    return CommandResult(
        ok=True,
        message=f"Removed: {removed}; stopped pids: "
                f"{', '.join(str(p) for p in report.stopped_pids) or '-'}",
    )


@command(
    name="seal-key",
    description="Encrypt the node private key into the local vault for secret=vault installs.",
    example="seal-key",
)
def seal_key() -> CommandResult:
    settings = load_settings()
    try:
        first = read_secret_from_tty("Enter private key to seal: ").strip()
        second = read_secret_from_tty("Confirm private key: ").strip()
    except InputFailure as exc:
        return CommandResult(ok=False, message=str(exc))
    if not first:
        return CommandResult(ok=False, message="No private key entered.")
    if first != second:
        return CommandResult(ok=False, message="Keys do not match.")
    try:
        path = seal_secret(
            first,
            settings.vault_path,
            backend=settings.keystore_backend,
            keyfile=settings.keystore_keyfile,
            passphrase=settings.keystore_passphrase,
        )
    except (VaultError, OSError) as exc:
        return CommandResult(ok=False, message=f"Could not seal key: {exc}")
    return CommandResult(ok=True, message=f"Sealed private key → {path}")


@command(
    name="help",
    description="List commands, or show usage for one.",
    example="help install",
    aliases=["-h", "--help"],
)
def help_(name: str | None = None) -> CommandResult:
    if name:
        command_obj = REGISTRY.get(name)
        if command_obj is None:
            return CommandResult(ok=False, message=f"No such command: {name}")
        alias_text = ", ".join(command_obj.aliases) or "(none)"
        return CommandResult(ok=True, message="\n".join([
            f"Name:        {command_obj.name}",
            f"Aliases:     {alias_text}",
            f"Description: {command_obj.description or '(none)'}",
            f"Example:     edgenode {command_obj.example or command_obj.name}",
            f"Usage:       edgenode {build_usage(command_obj.name, command_obj.callback)}",
        ]))

    rows = [[c.name, c.description] for c in sorted(REGISTRY.all(), key=lambda c: c.name)]
    return CommandResult(ok=True, message=format_table(rows, headers=["Command", "Description"]))
