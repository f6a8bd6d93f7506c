#!/usr/bin/env python3
# edgenode/stages/report.py
from __future__ import annotations

from typing import Sequence

from edgenode.config import Settings
from edgenode.process import ManagedProcess
from edgenode.ui import colorize, print_line, print_table


def process_rows(processes: Sequence[ManagedProcess]) -> list[list[object]]:
    rows: list[list[object]] = []
    for proc in processes:
        status = proc.poll().value
        color = "green" if status == "running" else "yellow"
        rows.append([
            proc.name,
            proc.pid if proc.pid is not None else "-",
            colorize(status, color),
            str(proc.log_path) if proc.log_path else "-",
        ])
    return rows


def show_connection_info(settings: Settings, prover: ManagedProcess, node: ManagedProcess) -> None:
    """Final banner: pids, dashboard/points/support pointers, stop hints."""
    print_line()
    print_line(colorize("Setup Complete!", "green", "bold"))
    print_table(process_rows([prover, node]),
                headers=["Service", "PID", "Status", "Log"])
    print_line("Your CLI node is running with wallet private key configured")
    print_line("To connect to dashboard:")
    print_line(f"1. Visit: {settings.dashboard_url}")
    print_line("2. Connect your wallet")
    print_line("3. Link your CLI node's Public Key")
    print_line()
    print_line("To check points, use API:")
    print_line(settings.points_lookup_url)
    print_line()
    print_line(f"For support, join: {settings.support_url}")
    print_line()
    print_line(colorize("Installation completed successfully!", "green"))
    print_line(f"Merkle service PID: {prover.pid}")
    print_line(f"Light Node PID: {node.pid}")
    print_line(f"To stop the services, use: edgenode stop  (or: kill {prover.pid} {node.pid})")
