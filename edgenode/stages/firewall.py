#!/usr/bin/env python3
# edgenode/stages/firewall.py
from __future__ import annotations

"""Open the service ports with ufw (opt-in)."""

import logging
from typing import Sequence

from edgenode.errors import StageFailure
from edgenode.kernel import ExecResult, Kernel

log = logging.getLogger(__name__)


def _check(res: ExecResult, what: str) -> ExecResult:
    if not res.ok:
        raise StageFailure(f"{what} failed: {res.summary()}", stage="firewall")
    return res


def configure_firewall(ports: Sequence[int], *, kernel: Kernel | None = None) -> list[int]:
    """Install/enable ufw if needed and allow each port over TCP."""
    kernel = kernel or Kernel()

    if not kernel.which("ufw"):
        log.info("Installing ufw...")
        _check(kernel.run(["sudo", "apt-get", "update"], stream=True), "apt-get update")
        _check(kernel.run(["sudo", "apt-get", "install", "-y", "ufw"], stream=True),
               "apt-get install ufw")

    status = _check(kernel.run(["sudo", "ufw", "status"]), "ufw status")
    if "Status: active" not in status.stdout:
        _check(kernel.run(["sudo", "ufw", "--force", "enable"]), "ufw enable")

    for port in ports:
        _check(kernel.run(["sudo", "ufw", "allow", f"{port}/tcp"]), f"ufw allow {port}/tcp")
    log.info("Firewall configured. Allowed ports: %s", ", ".join(str(p) for p in ports))
    return list(ports)
