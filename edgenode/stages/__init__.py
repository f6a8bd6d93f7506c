#!/usr/bin/env python3
# edgenode/stages/__init__.py
from __future__ import annotations

"""
Installer stages, in pipeline order.

Provides:
- Environment preparation (`prepare_environment`).
- Firewall rules (`configure_firewall`).
- Toolchain installation (`ensure_toolchains`, `ToolchainEnv`).
- Repository clone (`clone_repository`).
- Credential capture and .env writing (`configure_credentials`).
- Prover/node bring-up (`BringUpSequencer`).
- Final status output (`show_connection_info`).
"""

from .environment import CleanupReport, prepare_environment
from .firewall import configure_firewall
from .toolchains import (
    Toolchain,
    ToolchainEnv,
    default_toolchains,
    ensure_toolchains,
    persist_profile_line,
    report_versions,
)
from .repository import clone_repository
from .credentials import (
    configure_credentials,
    obtain_credential,
    read_secret_from_tty,
    write_run_configuration,
)
from .bringup import (
    BringUpResult,
    BringUpSequencer,
    BringUpState,
    ServiceSpec,
    default_launcher,
    default_services,
)
from .report import process_rows, show_connection_info

__all__ = [
    "CleanupReport",
    "prepare_environment",
    "configure_firewall",
    "Toolchain",
    "ToolchainEnv",
    "default_toolchains",
    "ensure_toolchains",
    "persist_profile_line",
    "report_versions",
    "clone_repository",
    "configure_credentials",
    "obtain_credential",
    "read_secret_from_tty",
    "write_run_configuration",
    "BringUpResult",
    "BringUpSequencer",
    "BringUpState",
    "ServiceSpec",
    "default_launcher",
    "default_services",
    "process_rows",
    "show_connection_info",
]
