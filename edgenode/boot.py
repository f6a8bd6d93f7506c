#!/usr/bin/env python3
# edgenode/boot.py
from __future__ import annotations
"""
Install pipeline for the light node.

Every step prints a Linux-style [  OK  ] / [FAILED] line and the pipeline
stops at the first failure. `run_install` is the top-level trap: it turns
any exception into a red error line and exit code 1.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from edgenode.config import RunConfiguration, Settings, load_settings
from edgenode.errors import InstallerError, UnhandledFailure
from edgenode.kernel import Kernel
from edgenode.probe import Probe, make_http_probe, wait_until_ready
from edgenode.process import ManagedProcess, save_run_state
from edgenode.stages import (
    BringUpSequencer,
    BringUpState,
    Toolchain,
    ToolchainEnv,
    clone_repository,
    configure_credentials,
    configure_firewall,
    default_launcher,
    default_services,
    default_toolchains,
    ensure_toolchains,
    prepare_environment,
    report_versions,
    show_connection_info,
)
from edgenode.stages.bringup import Launcher, Waiter
from edgenode.stages.credentials import SecretReader
from edgenode.ui import Spinner, colorize, init_logger, print_line

log = logging.getLogger(__name__)


@dataclass(slots=True)
class InstallState:
    settings: Settings
    logger: Any
    toolchain_env: ToolchainEnv
    installed: list[str]
    run_config: RunConfiguration
    prover: ManagedProcess
    node: ManagedProcess


def _step(label: str, fn: Callable[[], Any]) -> Any:
    """Run a pipeline step with status output."""
    try:
        out = fn()
    except Exception as exc:
        print_line(
            colorize(f"[FAILED] {label} ({type(exc).__name__}: {exc})", "red")
        )
        raise
    print_line(colorize(f"[  OK  ] {label}", "green"))
    return out


def _print_state(state: BringUpState) -> None:
    color = "red" if state is BringUpState.FAILED else "cyan"
    print_line(colorize(f"         -> {state.value}", color))


def _record_run_state(path: Path, processes: Sequence[ManagedProcess]) -> None:
    """Keep the run state file in step with what is actually running."""
    if processes:
        save_run_state(path, processes)
    else:
        path.unlink(missing_ok=True)


def _spinning_waiter(probe: Probe, *, interval: float, timeout: float) -> bool:
    with Spinner(f"Waiting for the merkle service (up to {timeout:g}s)..."):
        return wait_until_ready(probe, interval=interval, timeout=timeout)


def install_sequence(
    settings: Settings,
    *,
    kernel: Kernel | None = None,
    reader: SecretReader | None = None,
    secret_source: str = "tty",
    firewall: Optional[bool] = None,
    toolchains: Sequence[Toolchain] | None = None,
    tenv: ToolchainEnv | None = None,
    probe: Probe | None = None,
    launcher: Launcher = default_launcher,
    waiter: Waiter | None = None,
    logger: logging.Logger | None = None,
) -> InstallState:
    kernel = kernel or Kernel()

    # ---------- logging ----------
    if logger is None:
        logger = _step(
            "Initialize logger",
            lambda: init_logger(
                "edgenode",
                level=settings.log_level,
                logfile=str(settings.log_file_path) if settings.log_file_path else None,
            ),
        )

    # ---------- host ----------
    _step("Clean up previous installation",
          lambda: prepare_environment(settings, kernel=kernel))

    if settings.configure_firewall if firewall is None else firewall:
        _step("Configure firewall (ufw)",
              lambda: configure_firewall(settings.firewall_ports, kernel=kernel))
    else:
        _step("Skip firewall (config)", lambda: None)

    # ---------- toolchains ----------
    tenv, installed = _step(
        "Check dependencies (go, rust, risc0)",
        lambda: ensure_toolchains(
            toolchains if toolchains is not None else default_toolchains(settings),
            kernel=kernel,
            tenv=tenv,
            profile=settings.profile_path if settings.persist_path else None,
        ),
    )
    _step("Verify RISC Zero toolchain", lambda: report_versions(kernel, tenv))

    # ---------- node sources + config ----------
    _step(
        "Clone light node repository",
        lambda: clone_repository(settings.repo_url, settings.repo_path,
                                 kernel=kernel, env=tenv.environ()),
    )
    run_config = _step(
        "Configure node credentials",
        lambda: configure_credentials(settings, source=secret_source, reader=reader),
    )

    # ---------- services ----------
    prover_spec, node_spec = default_services(
        settings.repo_path, settings.prover_dir, settings.node_binary, settings.logs_dir)
    sequencer = BringUpSequencer(
        prover_spec,
        node_spec,
        probe=probe or make_http_probe(settings.readiness_url),
        kernel=kernel,
        env=tenv.environ(run_config.as_env()),
        build_env=tenv.environ(),
        launcher=launcher,
        waiter=waiter or _spinning_waiter,
        interval=settings.readiness_interval,
        timeout=settings.readiness_timeout,
        on_transition=_print_state,
        recorder=lambda procs: _record_run_state(settings.state_file, procs),
    )
    result = _step("Build and launch services", sequencer.run)

    return InstallState(
        settings=settings,
        logger=logger,
        toolchain_env=tenv,
        installed=installed,
        run_config=run_config,
        prover=result.prover,
        node=result.node,
    )


def _report_failure(exc: InstallerError) -> None:
    print_line(colorize(f"Error ({exc.stage}): {exc.args[0]}", "red"), file=sys.stderr)
    print_line(colorize("An error occurred. Installation failed.", "red"), file=sys.stderr)


def run_install(*, settings: Settings | None = None, **kwargs: Any) -> int:
    """Run the whole pipeline; return the process exit code."""
    try:
        settings = settings or load_settings()
        print_line(colorize("Starting LayerEdge CLI Light Node installation...", "green"))
        state = install_sequence(settings, **kwargs)
    except InstallerError as exc:
        _report_failure(exc)
        return exc.exit_code
    except KeyboardInterrupt:
        failure = UnhandledFailure("Interrupted")
        _report_failure(failure)
        return failure.exit_code
    except Exception as exc:
        log.debug("Unhandled failure", exc_info=True)
        failure = UnhandledFailure(f"{type(exc).__name__}: {exc}")
        _report_failure(failure)
        return failure.exit_code

    show_connection_info(settings, state.prover, state.node)
    return 0
