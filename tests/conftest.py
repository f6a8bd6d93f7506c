from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

# Ensure project root is on sys.path for `import edgenode`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from edgenode.config import load_settings  # noqa: E402
from edgenode.kernel import ExecResult  # noqa: E402
from edgenode.process import ManagedProcess, ProcessStatus  # noqa: E402
from edgenode.ui import reset_color_cache  # noqa: E402


class FakeClock:
    """Deterministic clock/sleep pair for readiness loops."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeKernel:
    """
    Records every command instead of running it.

    `on(prefix, returncode=..., stdout=..., effect=...)` sets the outcome for
    commands whose argv starts with `prefix`; shell scripts are recorded as
    ("sh", script). Unmatched commands succeed.
    """

    def __init__(self, available=(), clock: FakeClock | None = None) -> None:
        self.available = set(available)
        self.clock = clock
        self.calls: list[tuple[str, ...]] = []
        self.times: list[float] = []
        self.envs: list[dict | None] = []
        self._rules: list[tuple[tuple[str, ...], int, str, object]] = []

    def on(self, prefix, *, returncode: int = 0, stdout: str = "", effect=None) -> "FakeKernel":
        self._rules.append((tuple(prefix), returncode, stdout, effect))
        return self

    def which(self, executable: str, *, path: str | None = None) -> str | None:
        return f"/fake/bin/{executable}" if executable in self.available else None

    def run(self, args, *, cwd=None, env=None, timeout=None, stream=False, encoding="utf-8"):
        return self._record(tuple(args), env)

    def run_shell(self, script, *, cwd=None, env=None, timeout=None, stream=True):
        return self._record(("sh", script), env)

    def count(self, *prefix: str) -> int:
        return sum(1 for c in self.calls if c[:len(prefix)] == prefix)

    def _record(self, args: tuple[str, ...], env) -> ExecResult:
        self.calls.append(args)
        self.times.append(self.clock.now if self.clock else 0.0)
        self.envs.append(dict(env) if env is not None else None)
        returncode, stdout = 0, ""
        for prefix, rc, out, effect in self._rules:
            if args[:len(prefix)] == prefix:
                returncode, stdout = rc, out
                if effect is not None:
                    effect(args)
                break
        return ExecResult(args=args, stdout=stdout, stderr="" if returncode == 0 else "boom",
                          returncode=returncode, timed_out=False, duration_sec=0.0)


@dataclass
class FakeProcess(ManagedProcess):
    stop_calls: int = 0

    def poll(self) -> ProcessStatus:
        return self.status

    def stop(self, *, grace: float = 5.0) -> bool:
        self.stop_calls += 1
        was_running = self.status is ProcessStatus.RUNNING
        self.status = ProcessStatus.STOPPED
        return was_running


class FakeLauncher:
    def __init__(self, clock: FakeClock | None = None, fail_on: str | None = None) -> None:
        self.clock = clock
        self.fail_on = fail_on
        self.launched: list[FakeProcess] = []
        self.times: list[float] = []
        self.envs: list[dict] = []
        self._next_pid = 4100

    def __call__(self, spec, env) -> FakeProcess:
        if spec.name == self.fail_on:
            raise OSError(f"cannot exec {spec.run_args[0]}")
        self._next_pid += 1
        proc = FakeProcess(name=spec.name, args=spec.run_args, cwd=spec.cwd,
                           pid=self._next_pid, status=ProcessStatus.RUNNING)
        self.launched.append(proc)
        self.times.append(self.clock.now if self.clock else 0.0)
        self.envs.append(dict(env))
        return proc

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.launched]


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    reset_color_cache()
    yield
    reset_color_cache()
    logger = logging.getLogger("edgenode")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings(tmp_path: Path):
    return load_settings(
        cwd=tmp_path,
        environ={},
        overrides={
            "PROFILE_PATH": str(tmp_path / "home" / ".bashrc"),
            "VAULT_PATH": str(tmp_path / "home" / ".edgenode" / "vault.json"),
            "KEYSTORE_KEYFILE": str(tmp_path / "home" / ".edgenode" / "key.bin"),
        },
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
