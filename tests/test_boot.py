from __future__ import annotations

import json
import logging
import sys

import pytest

from edgenode import cli
from edgenode.boot import install_sequence, run_install
from edgenode.errors import InputFailure
from edgenode.process import launch_detached, pid_alive
from edgenode.stages.toolchains import ToolchainEnv

from conftest import FakeKernel, FakeLauncher

TOOLS = {"git", "pkill", "go", "rustc", "rzup"}


@pytest.fixture
def kernel():
    return FakeKernel(available=TOOLS).on(("/fake/bin/rzup", "--version"), stdout="rzup 0.3.2\n")


def _run(settings, kernel, *, launcher=None, reader=lambda prompt: "abc123", ready=True, **kwargs):
    return run_install(
        settings=settings,
        kernel=kernel,
        reader=reader,
        toolchains=[],
        tenv=ToolchainEnv(base_path="/usr/bin", base_environ={}),
        probe=lambda: ready,
        launcher=launcher or FakeLauncher(),
        waiter=lambda probe, *, interval, timeout: probe(),
        logger=logging.getLogger("edgenode.test"),
        **kwargs,
    )


def test_successful_install(settings, kernel, capsys):
    launcher = FakeLauncher()
    assert _run(settings, kernel, launcher=launcher) == 0

    out = capsys.readouterr().out
    assert "[  OK  ] Clean up previous installation" in out
    assert "[  OK  ] Skip firewall (config)" in out
    assert "Setup Complete!" in out
    assert "dashboard.layeredge.io" in out
    assert f"Light Node PID: {launcher.launched[1].pid}" in out
    assert "abc123" not in out

    assert settings.env_file.read_text().endswith("PRIVATE_KEY=abc123\n")
    recorded = json.loads(settings.state_file.read_text())["processes"]
    assert [r["name"] for r in recorded] == ["merkle-service", "light-node"]
    assert launcher.envs[1]["PRIVATE_KEY"] == "abc123"
    assert launcher.envs[1]["PATH"] == "/usr/bin"


def test_steps_run_in_order(settings, kernel):
    assert _run(settings, kernel) == 0
    heads = [c[0] for c in kernel.calls]
    assert heads.index("/fake/bin/pkill") < heads.index("/fake/bin/git")
    assert heads.index("/fake/bin/git") < heads.index("cargo") < heads.index("go")


def test_firewall_opt_in(settings, kernel, capsys):
    kernel.available.add("ufw")
    kernel.on(("sudo", "ufw", "status"), stdout="Status: active\n")
    assert _run(settings, kernel, firewall=True) == 0
    assert ("sudo", "ufw", "allow", "3001/tcp") in kernel.calls
    assert "[  OK  ] Configure firewall (ufw)" in capsys.readouterr().out


def test_empty_key_exits_one_without_launching(settings, kernel, capsys):
    launcher = FakeLauncher()
    assert _run(settings, kernel, launcher=launcher, reader=lambda prompt: "") == 1

    err = capsys.readouterr().err
    assert "Error (credentials)" in err
    assert "An error occurred. Installation failed." in err
    assert launcher.launched == []
    assert kernel.count("cargo") == 0


def test_unexpected_exception_is_trapped(settings, kernel, capsys):
    def reader(prompt):
        raise RuntimeError("boom")

    assert _run(settings, kernel, reader=reader) == 1
    err = capsys.readouterr().err
    assert "Error (unhandled): RuntimeError: boom" in err
    assert "An error occurred. Installation failed." in err


def test_readiness_timeout_stops_prover(settings, kernel, capsys):
    launcher = FakeLauncher()
    assert _run(settings, kernel, launcher=launcher, ready=False) == 1

    assert launcher.names == ["merkle-service"]
    assert launcher.launched[0].stop_calls == 1
    assert kernel.count("go", "build") == 0
    assert "Error (proverTimeout)" in capsys.readouterr().err
    assert not settings.state_file.exists()


def test_existing_clone_is_removed_before_cloning(settings, kernel):
    (settings.repo_path / "stale").mkdir(parents=True)
    assert _run(settings, kernel) == 0
    assert not (settings.repo_path / "stale").exists()


def test_install_sequence_returns_state(settings, kernel):
    state = install_sequence(
        settings,
        kernel=kernel,
        reader=lambda prompt: "abc123",
        toolchains=[],
        tenv=ToolchainEnv(base_path="/usr/bin", base_environ={}),
        probe=lambda: True,
        launcher=FakeLauncher(),
        waiter=lambda probe, *, interval, timeout: True,
        logger=logging.getLogger("edgenode.test"),
    )
    assert state.installed == []
    assert state.run_config.private_key == "abc123"
    assert state.prover.name == "merkle-service"


def test_input_failure_exit_code(settings, kernel):
    def reader(prompt):
        raise InputFailure("Failed to read input. Please run in an interactive terminal.")

    assert _run(settings, kernel, reader=reader) == 1


def test_builds_run_without_the_private_key(settings, kernel):
    launcher = FakeLauncher()
    assert _run(settings, kernel, launcher=launcher) == 0

    cargo_env = kernel.envs[kernel.calls.index(("cargo", "build"))]
    go_env = kernel.envs[kernel.calls.index(("go", "build"))]
    assert "PRIVATE_KEY" not in cargo_env
    assert "PRIVATE_KEY" not in go_env
    assert cargo_env["PATH"] == "/usr/bin"
    assert all(e["PRIVATE_KEY"] == "abc123" for e in launcher.envs)


def test_node_build_failure_leaves_a_stoppable_record(settings, kernel, tmp_path, monkeypatch, capsys):
    kernel.on(("go", "build"), returncode=2)
    started = []

    def sleeper(spec, env):
        proc = launch_detached(spec.name, [sys.executable, "-c", "import time; time.sleep(30)"])
        started.append(proc)
        return proc

    try:
        assert _run(settings, kernel, launcher=sleeper) == 1
        assert [p.name for p in started] == ["merkle-service"]
        recorded = json.loads(settings.state_file.read_text())["processes"]
        assert [r["pid"] for r in recorded] == [started[0].pid]
        capsys.readouterr()

        monkeypatch.chdir(tmp_path)
        assert cli.main(["stop"]) == 0
        assert f"merkle-service (pid {started[0].pid}): stopped" in capsys.readouterr().out
        assert not pid_alive(started[0].pid)
        assert not settings.state_file.exists()
    finally:
        for proc in started:
            proc.stop(grace=1.0)
