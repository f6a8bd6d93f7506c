#!/usr/bin/env python3
# edgenode/stages/environment.py
from __future__ import annotations

"""
Environment preparation: remove artifacts of a previous run.

Safe to call repeatedly; absent files and processes are not errors.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from edgenode.config import Settings
from edgenode.errors import StageFailure
from edgenode.kernel import Kernel
from edgenode.process import load_run_state

log = logging.getLogger(__name__)

# pkill: 0 = matched and signalled, 1 = nothing matched
_PKILL_OK = {0, 1}


@dataclass(slots=True)
class CleanupReport:
    stopped_pids: list[int] = field(default_factory=list)
    removed_paths: list[Path] = field(default_factory=list)
    patterns_signalled: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.stopped_pids or self.removed_paths or self.patterns_signalled)


def _stop_recorded(settings: Settings, report: CleanupReport) -> None:
    try:
        processes = load_run_state(settings.state_file)
    except ValueError as exc:
        log.warning("Ignoring unreadable run state: %s", exc)
        processes = []
    for proc in processes:
        if proc.stop():
            log.info("Stopped previous %s (pid %s)", proc.name, proc.pid)
            report.stopped_pids.append(int(proc.pid))


def _kill_stale_patterns(kernel: Kernel, patterns: tuple[str, ...], report: CleanupReport) -> None:
    if not patterns:
        return
    pkill = kernel.which("pkill")
    if not pkill:
        log.warning("Skipping process cleanup: 'pkill' not available on PATH")
        return
    for pattern in patterns:
        res = kernel.run([pkill, "-f", pattern])
        if res.returncode not in _PKILL_OK:
            raise StageFailure(
                f"pkill -f {pattern!r} failed: {res.summary()}", stage="cleanup")
        if res.returncode == 0:
            report.patterns_signalled.append(pattern)


def _remove(path: Path, report: CleanupReport) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            return
    except OSError as exc:
        raise StageFailure(f"Cannot remove {path}: {exc}", stage="cleanup") from exc
    report.removed_paths.append(path)


def prepare_environment(settings: Settings, *, kernel: Kernel | None = None) -> CleanupReport:
    """Stop previous services and delete the clone, stray archive and run state."""
    kernel = kernel or Kernel()
    report = CleanupReport()

    _stop_recorded(settings, report)
    _kill_stale_patterns(kernel, settings.stale_patterns, report)

    for path in (
        settings.repo_path,
        settings.workspace_path / settings.go_archive,
        settings.state_file,
    ):
        _remove(path, report)

    if report.changed:
        log.info("Cleanup complete (%d path(s) removed, %d process(es) stopped)",
                 len(report.removed_paths), len(report.stopped_pids))
    else:
        log.info("Cleanup complete (nothing to do)")
    return report
