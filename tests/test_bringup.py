from __future__ import annotations

from pathlib import Path

import pytest

from edgenode.errors import BuildFailure, LaunchFailure, ReadinessTimeout
from edgenode.probe import wait_until_ready
from edgenode.process import ProcessStatus
from edgenode.stages.bringup import BringUpSequencer, BringUpState, default_services

from conftest import FakeKernel, FakeLauncher

S = BringUpState


def _waiter(clock):
    def waiter(probe, *, interval, timeout):
        return wait_until_ready(probe, interval=interval, timeout=timeout,
                                clock=clock, sleep=clock.sleep)
    return waiter


def _sequencer(tmp_path: Path, clock, *, kernel=None, launcher=None, probe=None, **kwargs):
    prover, node = default_services(tmp_path / "light-node", "risc0-merkle-service", "light-node")
    return BringUpSequencer(
        prover,
        node,
        probe=probe or (lambda: True),
        kernel=kernel or FakeKernel(clock=clock),
        env=kwargs.pop("env", {"PRIVATE_KEY": "abc123"}),
        launcher=launcher or FakeLauncher(clock=clock),
        waiter=kwargs.pop("waiter", _waiter(clock)),
        **kwargs,
    )


def test_prover_never_ready_fails_without_touching_node(tmp_path, clock):
    kernel, launcher = FakeKernel(clock=clock), FakeLauncher(clock=clock)
    seq = _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher, probe=lambda: False)

    with pytest.raises(ReadinessTimeout) as info:
        seq.run()

    assert info.value.stage == "proverTimeout"
    assert seq.state is S.FAILED
    assert seq.failed_stage == "proverTimeout"
    assert kernel.count("go", "build") == 0
    assert launcher.names == ["merkle-service"]
    assert launcher.launched[0].stop_calls == 1
    assert launcher.launched[0].status is ProcessStatus.STOPPED
    assert seq.history[-2:] == [S.PROVER_STARTING, S.FAILED]
    assert clock.now == pytest.approx(30.0)


def test_node_built_once_and_only_after_prover_answers(tmp_path, clock):
    kernel, launcher = FakeKernel(clock=clock), FakeLauncher(clock=clock)
    seq = _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher,
                     probe=lambda: clock.now >= 5)

    result = seq.run()

    assert seq.state is S.COMPLETE
    assert kernel.count("go", "build") == 1
    go_build_at = kernel.times[kernel.calls.index(("go", "build"))]
    assert go_build_at >= 5
    assert launcher.names == ["merkle-service", "light-node"]
    assert launcher.times[1] >= 5
    assert result.prover is launcher.launched[0]
    assert result.node is launcher.launched[1]
    assert seq.history == [
        S.NOT_STARTED, S.PROVER_BUILDING, S.PROVER_BUILT, S.PROVER_STARTING,
        S.PROVER_READY, S.NODE_BUILDING, S.NODE_BUILT, S.NODE_RUNNING, S.COMPLETE,
    ]


def test_prover_build_failure_launches_nothing(tmp_path, clock):
    kernel = FakeKernel(clock=clock).on(("cargo", "build"), returncode=101)
    launcher = FakeLauncher(clock=clock)
    seq = _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher)

    with pytest.raises(BuildFailure):
        seq.run()

    assert launcher.launched == []
    assert seq.failed_stage == "build"
    assert kernel.count("go", "build") == 0
    assert seq.history[-1] is S.FAILED
    assert S.PROVER_BUILT not in seq.history


def test_node_build_failure_leaves_prover_running(tmp_path, clock):
    kernel = FakeKernel(clock=clock).on(("go", "build"), returncode=2)
    launcher = FakeLauncher(clock=clock)
    seq = _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher)

    with pytest.raises(BuildFailure):
        seq.run()

    assert launcher.names == ["merkle-service"]
    assert launcher.launched[0].stop_calls == 0
    assert seq.history[-2:] == [S.NODE_BUILDING, S.FAILED]


def test_spawn_error_becomes_launch_failure(tmp_path, clock):
    launcher = FakeLauncher(clock=clock, fail_on="light-node")
    seq = _sequencer(tmp_path, clock, launcher=launcher)

    with pytest.raises(LaunchFailure):
        seq.run()

    assert seq.failed_stage == "launch"
    assert seq.history[-2:] == [S.NODE_BUILT, S.FAILED]


def test_builds_and_launches_get_the_run_environment(tmp_path, clock):
    kernel, launcher = FakeKernel(clock=clock), FakeLauncher(clock=clock)
    env = {"PRIVATE_KEY": "abc123", "PATH": "/usr/bin:/fake/go/bin"}
    _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher, env=env).run()

    assert all(e == env for e in kernel.envs)
    assert all(e == env for e in launcher.envs)


def test_builds_never_see_the_private_key(tmp_path, clock):
    kernel, launcher = FakeKernel(clock=clock), FakeLauncher(clock=clock)
    build_env = {"PATH": "/usr/bin:/fake/go/bin"}
    env = dict(build_env, PRIVATE_KEY="abc123")
    _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher,
               env=env, build_env=build_env).run()

    assert kernel.count("cargo", "build") == 1
    assert kernel.count("go", "build") == 1
    assert all("PRIVATE_KEY" not in e for e in kernel.envs)
    assert all(e["PRIVATE_KEY"] == "abc123" for e in launcher.envs)


def test_transitions_are_reported(tmp_path, clock):
    seen = []
    seq = _sequencer(tmp_path, clock, on_transition=seen.append)
    seq.run()
    assert seen == seq.history[1:]


def test_sequencer_runs_only_once(tmp_path, clock):
    seq = _sequencer(tmp_path, clock)
    seq.run()
    with pytest.raises(RuntimeError):
        seq.run()


def test_default_services_layout(tmp_path):
    repo = tmp_path / "light-node"
    prover, node = default_services(repo, "risc0-merkle-service", "light-node", tmp_path / "logs")
    assert prover.cwd == repo / "risc0-merkle-service"
    assert prover.build_args == ("cargo", "build")
    assert prover.run_args == ("cargo", "run")
    assert node.cwd == repo
    assert node.build_args == ("go", "build")
    assert node.run_args == ("./light-node",)
    assert node.log_path == tmp_path / "logs" / "light-node.log"


def test_interrupt_while_waiting_stops_prover(tmp_path, clock):
    launcher = FakeLauncher(clock=clock)

    def interrupted(probe, *, interval, timeout):
        raise KeyboardInterrupt

    seq = _sequencer(tmp_path, clock, launcher=launcher, waiter=interrupted)

    with pytest.raises(KeyboardInterrupt):
        seq.run()

    assert launcher.launched[0].stop_calls == 1
    assert launcher.launched[0].status is ProcessStatus.STOPPED
    assert seq.state is S.FAILED
    assert seq.failed_stage == "unhandled"
    assert seq.history[-2:] == [S.PROVER_STARTING, S.FAILED]


def test_readiness_check_error_stops_prover(tmp_path, clock):
    kernel, launcher = FakeKernel(clock=clock), FakeLauncher(clock=clock)

    def broken():
        raise ValueError("unknown url type")

    seq = _sequencer(tmp_path, clock, kernel=kernel, launcher=launcher, probe=broken)

    with pytest.raises(ValueError):
        seq.run()

    assert launcher.launched[0].stop_calls == 1
    assert kernel.count("go", "build") == 0
    assert seq.state is S.FAILED
    assert seq.failed_stage == "unhandled"


def test_recorder_tracks_running_processes(tmp_path, clock):
    snapshots = []
    launcher = FakeLauncher(clock=clock)
    _sequencer(tmp_path, clock, launcher=launcher,
               recorder=lambda procs: snapshots.append([p.name for p in procs])).run()

    assert snapshots == [["merkle-service"], ["merkle-service", "light-node"]]


def test_recorder_sees_prover_before_node_build_fails(tmp_path, clock):
    snapshots = []
    kernel = FakeKernel(clock=clock).on(("go", "build"), returncode=2)
    seq = _sequencer(tmp_path, clock, kernel=kernel,
                     recorder=lambda procs: snapshots.append([p.name for p in procs]))

    with pytest.raises(BuildFailure):
        seq.run()

    assert snapshots == [["merkle-service"]]


def test_recorder_cleared_after_timeout_stop(tmp_path, clock):
    snapshots = []
    seq = _sequencer(tmp_path, clock, probe=lambda: False,
                     recorder=lambda procs: snapshots.append([p.name for p in procs]))

    with pytest.raises(ReadinessTimeout):
        seq.run()

    assert snapshots == [["merkle-service"], []]
