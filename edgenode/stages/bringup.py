#!/usr/bin/env python3
# edgenode/stages/bringup.py
from __future__ import annotations

"""
Build-and-launch sequencer for the proving service and the light node.

States:
    NotStarted → ProverBuilding → ProverBuilt → ProverStarting → ProverReady
    → NodeBuilding → NodeBuilt → NodeRunning → Complete
    Failed is absorbing and reachable from any of them.

The node is never built or started until the prover has been launched
and has answered its readiness probe. The only rollback is stopping the
prover when it misses its readiness deadline or the wait is interrupted.
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from edgenode.errors import BuildFailure, InstallerError, LaunchFailure, ReadinessTimeout
from edgenode.kernel import Kernel
from edgenode.probe import Probe, wait_until_ready
from edgenode.process import ManagedProcess, ProcessStatus, launch_detached

log = logging.getLogger(__name__)


class BringUpState(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    PROVER_BUILDING = "ProverBuilding"
    PROVER_BUILT = "ProverBuilt"
    PROVER_STARTING = "ProverStarting"
    PROVER_READY = "ProverReady"
    NODE_BUILDING = "NodeBuilding"
    NODE_BUILT = "NodeBuilt"
    NODE_RUNNING = "NodeRunning"
    COMPLETE = "Complete"
    FAILED = "Failed"


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    build_args: tuple[str, ...]
    run_args: tuple[str, ...]
    cwd: Path
    log_path: Path | None = None


@dataclass
class BringUpResult:
    prover: ManagedProcess
    node: ManagedProcess


Launcher = Callable[[ServiceSpec, Mapping[str, str]], ManagedProcess]
Waiter = Callable[..., bool]
Recorder = Callable[[list[ManagedProcess]], None]


def default_launcher(spec: ServiceSpec, env: Mapping[str, str]) -> ManagedProcess:
    return launch_detached(spec.name, spec.run_args, cwd=spec.cwd, env=env,
                           log_path=spec.log_path)


class BringUpSequencer:
    """
    Runs the bring-up once; see module docstring for the state machine.

    `env` is handed to the launched services; builds get `build_env`
    (defaults to `env`) so the credential can be kept out of build scripts.
    `recorder` receives the still-running processes after every launch
    and every stop, so an interrupted run can be found again.
    """

    def __init__(
        self,
        prover: ServiceSpec,
        node: ServiceSpec,
        *,
        probe: Probe,
        kernel: Kernel | None = None,
        env: Optional[Mapping[str, str]] = None,
        build_env: Optional[Mapping[str, str]] = None,
        launcher: Launcher = default_launcher,
        waiter: Waiter = wait_until_ready,
        interval: float = 1.0,
        timeout: float = 30.0,
        on_transition: Callable[[BringUpState], None] | None = None,
        recorder: Recorder | None = None,
    ) -> None:
        self.prover = prover
        self.node = node
        self._probe = probe
        self._kernel = kernel or Kernel()
        self._env = dict(env) if env is not None else None
        self._build_env = dict(build_env) if build_env is not None else self._env
        self._launcher = launcher
        self._waiter = waiter
        self._interval = interval
        self._timeout = timeout
        self._on_transition = on_transition
        self._recorder = recorder

        self.state = BringUpState.NOT_STARTED
        self.failed_stage: str | None = None
        self.history: list[BringUpState] = [self.state]
        self.prover_process: ManagedProcess | None = None
        self.node_process: ManagedProcess | None = None

    # ---- public -------------------------------------------------------------

    def run(self) -> BringUpResult:
        if self.state is not BringUpState.NOT_STARTED:
            raise RuntimeError(f"Sequencer already ran (state={self.state.value})")
        try:
            self._enter(BringUpState.PROVER_BUILDING)
            self._build(self.prover)
            self._enter(BringUpState.PROVER_BUILT)

            self._enter(BringUpState.PROVER_STARTING)
            self.prover_process = self._launch(self.prover)
            self._await_prover(self.prover_process)
            self._enter(BringUpState.PROVER_READY)

            self._enter(BringUpState.NODE_BUILDING)
            self._build(self.node)
            self._enter(BringUpState.NODE_BUILT)

            self.node_process = self._launch(self.node)
            self._enter(BringUpState.NODE_RUNNING)
        except InstallerError as exc:
            self._fail(exc.stage)
            raise
        except BaseException:
            # the prover is launched but not yet known to be ready
            if self.state is BringUpState.PROVER_STARTING and self.prover_process is not None:
                self._stop(self.prover_process)
            self._fail("unhandled")
            raise

        self._enter(BringUpState.COMPLETE)
        return BringUpResult(prover=self.prover_process, node=self.node_process)

    # ---- steps --------------------------------------------------------------

    def _enter(self, state: BringUpState) -> None:
        self.state = state
        self.history.append(state)
        log.debug("bring-up: %s", state.value)
        if self._on_transition is not None:
            self._on_transition(state)

    def _fail(self, stage: str) -> None:
        self.failed_stage = stage
        self._enter(BringUpState.FAILED)

    def _record(self) -> None:
        if self._recorder is None:
            return
        alive = [p for p in (self.prover_process, self.node_process)
                 if p is not None and p.status is ProcessStatus.RUNNING]
        self._recorder(alive)

    def _build(self, spec: ServiceSpec) -> None:
        log.info("Building %s...", spec.name)
        res = self._kernel.run(spec.build_args, cwd=spec.cwd, env=self._build_env, stream=True)
        if not res.ok:
            raise BuildFailure(f"Failed to build {spec.name} ({res.summary()})")

    def _launch(self, spec: ServiceSpec) -> ManagedProcess:
        try:
            proc = self._launcher(spec, self._env or {})
        except OSError as exc:
            raise LaunchFailure(f"Failed to start {spec.name}: {exc}") from exc
        log.info("Started %s (pid %s)", spec.name, proc.pid)
        if spec is self.prover:
            self.prover_process = proc
        else:
            self.node_process = proc
        self._record()
        return proc

    def _stop(self, proc: ManagedProcess) -> None:
        try:
            proc.stop()
        except OSError as exc:
            log.warning("Could not stop %s (pid %s): %s", proc.name, proc.pid, exc)
        self._record()

    def _await_prover(self, proc: ManagedProcess) -> None:
        log.info("Waiting for %s to answer (timeout %gs)...", self.prover.name, self._timeout)
        ready = self._waiter(self._probe, interval=self._interval, timeout=self._timeout)
        if ready:
            log.info("%s is up and running.", self.prover.name)
            return
        self._stop(proc)
        raise ReadinessTimeout(
            f"{self.prover.name} failed to start within {self._timeout:g} seconds")


def default_services(repo_path: Path, prover_dir: str, node_binary: str,
                     logs_dir: Path | None = None) -> tuple[ServiceSpec, ServiceSpec]:
    """The RISC Zero merkle service (cargo) and the light node (go)."""
    prover = ServiceSpec(
        name="merkle-service",
        build_args=("cargo", "build"),
        run_args=("cargo", "run"),
        cwd=repo_path / prover_dir,
        log_path=(logs_dir / "merkle-service.log") if logs_dir else None,
    )
    node = ServiceSpec(
        name="light-node",
        build_args=("go", "build"),
        run_args=(f"./{node_binary}",),
        cwd=repo_path,
        log_path=(logs_dir / "light-node.log") if logs_dir else None,
    )
    return prover, node
