#!/usr/bin/env python3
# edgenode/process.py
from __future__ import annotations

"""
Background process ownership.

A ManagedProcess owns one detached child: its Popen handle (when we
spawned it), pid, start time, log file and status. Children are started in
their own session so stop() can signal the whole process group; that
covers `cargo run`, which forks the real service binary.

Pids are persisted to a small JSON run-state file so a later `edgenode stop`
or the next install's cleanup step can stop them without matching
process names.
"""

import enum
import json
import os
import signal
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Mapping, Optional, Sequence


class ProcessStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    EXITED = "exited"
    FAILED = "failed"


@dataclass
class ManagedProcess:
    name: str
    args: tuple[str, ...]
    cwd: Path | None = None
    log_path: Path | None = None
    pid: int | None = None
    started_at: datetime | None = None
    status: ProcessStatus = ProcessStatus.PENDING
    returncode: int | None = None
    _handle: Optional[subprocess.Popen] = field(
        default=None, repr=False, compare=False)
    _log_file: Optional[IO[bytes]] = field(
        default=None, repr=False, compare=False)

    # ---- lifecycle ----------------------------------------------------------

    def start(self, env: Optional[Mapping[str, str]] = None) -> int:
        """Spawn the process detached from our session; return its pid."""
        if self.status is ProcessStatus.RUNNING:
            raise RuntimeError(f"{self.name} is already running (pid {self.pid})")

        stdout = subprocess.DEVNULL
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = self.log_path.open("ab")
            stdout = self._log_file

        try:
            self._handle = subprocess.Popen(
                list(self.args),
                cwd=self.cwd,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError:
            self.status = ProcessStatus.FAILED
            self._close_log()
            raise

        self.pid = self._handle.pid
        self.started_at = datetime.now(timezone.utc)
        self.status = ProcessStatus.RUNNING
        return self.pid

    def poll(self) -> ProcessStatus:
        """Refresh and return the status."""
        if self.status is not ProcessStatus.RUNNING:
            return self.status
        if self._handle is not None:
            rc = self._handle.poll()
            if rc is not None:
                self.returncode = rc
                self.status = ProcessStatus.EXITED
                self._close_log()
        elif self.pid is not None and not pid_alive(self.pid):
            self.status = ProcessStatus.EXITED
        return self.status

    def is_running(self) -> bool:
        return self.poll() is ProcessStatus.RUNNING

    def stop(self, *, grace: float = 5.0) -> bool:
        """
        SIGTERM the process group, SIGKILL after `grace` seconds.
        Returns True if a signal was delivered, False if already gone.
        """
        if self.pid is None or not self.is_running():
            return False

        delivered = _signal_group(self.pid, signal.SIGTERM)
        if delivered and not self._wait(grace):
            _signal_group(self.pid, signal.SIGKILL)
            self._wait(grace)

        if delivered:
            self.status = ProcessStatus.STOPPED
            self._close_log()
        return delivered

    # ---- persistence --------------------------------------------------------

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "args": list(self.args),
            "cwd": str(self.cwd) if self.cwd else None,
            "log_path": str(self.log_path) if self.log_path else None,
            "pid": self.pid,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }

    @classmethod
    def from_record(cls, record: Mapping) -> "ManagedProcess":
        """Adopt a previously started process by pid (no Popen handle)."""
        started = record.get("started_at")
        proc = cls(
            name=str(record["name"]),
            args=tuple(record.get("args") or ()),
            cwd=Path(record["cwd"]) if record.get("cwd") else None,
            log_path=Path(record["log_path"]) if record.get("log_path") else None,
            pid=int(record["pid"]) if record.get("pid") is not None else None,
            started_at=datetime.fromisoformat(started) if started else None,
        )
        if proc.pid is not None and pid_alive(proc.pid):
            proc.status = ProcessStatus.RUNNING
        else:
            proc.status = ProcessStatus.EXITED
        return proc

    # ---- internals ----------------------------------------------------------

    def _wait(self, timeout: float) -> bool:
        if self._handle is not None:
            try:
                self.returncode = self._handle.wait(timeout=timeout)
                return True
            except subprocess.TimeoutExpired:
                return False
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.pid is None or not pid_alive(self.pid):
                return True
            time.sleep(0.1)
        return False

    def _close_log(self) -> None:
        if self._log_file is not None:
            try:
                self._log_file.close()
            finally:
                self._log_file = None


def launch_detached(
    name: str,
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Optional[Mapping[str, str]] = None,
    log_path: Path | None = None,
) -> ManagedProcess:
    """Create and start a ManagedProcess."""
    proc = ManagedProcess(name=name, args=tuple(args), cwd=cwd, log_path=log_path)
    proc.start(env)
    return proc


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        # reap our own exited children so they do not linger as zombies
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _signal_group(pid: int, sig: int) -> bool:
    """Signal the process group led by `pid`, falling back to the pid."""
    try:
        os.killpg(pid, sig)
        return True
    except ProcessLookupError:
        pass
    except PermissionError:
        return False
    try:
        os.kill(pid, sig)
        return True
    except ProcessLookupError:
        return False


# ---- run state file -----------------------------------------------------------

def save_run_state(path: Path, processes: Sequence[ManagedProcess]) -> Path:
    """Persist process records (best-effort restrictive perms)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "processes": [p.to_record() for p in processes],
    }
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return path


def load_run_state(path: Path) -> list[ManagedProcess]:
    """Return adopted processes from the run state file ([] if absent)."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except json.JSONDecodeError as exc:
        raise ValueError(f"Corrupt run state at {path}: {exc}") from exc
    return [ManagedProcess.from_record(r) for r in payload.get("processes", [])]
