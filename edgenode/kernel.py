#!/usr/bin/env python3
# edgenode/kernel.py
"""
Command execution interface.

A small, well-typed facade over subprocess for the installer stages:
- Running argument lists (no shell) and bash scripts (for `curl | sh`).
- Executable lookup against an explicit search path.

Stages receive a Kernel instance so tests can substitute a recording fake.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

# ---- Public result type -----------------------------------------------------


@dataclass(slots=True)
class ExecResult:
    """Normalized result for command execution."""
    args: tuple[str, ...]
    stdout: str
    stderr: str
    returncode: int
    timed_out: bool
    duration_sec: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def summary(self) -> str:
        """Last stderr line (or stdout) for error messages."""
        text = (self.stderr or self.stdout or "").strip()
        tail = text.splitlines()[-1] if text else ""
        return tail or f"exit={self.returncode}"


# ---- Kernel -----------------------------------------------------------------


class Kernel:
    """
    Thin interface to run external programs.

    Notes:
        - Avoids shell injection by passing argument lists to subprocess;
          only `run_shell` goes through bash, for vendor install scripts.
        - `stream=True` lets long builds/downloads write straight to the
          terminal instead of being captured.
    """

    def __init__(self, shell: str = "bash") -> None:
        self._shell = shell

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[os.PathLike | str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        stream: bool = False,
        encoding: str = "utf-8",
    ) -> ExecResult:
        """
        Run an argument list and return a normalized result.

        Args:
            args: Program and arguments.
            cwd: Working directory.
            env: Full environment for the child (None inherits ours).
            timeout: Seconds before terminating.
            stream: Do not capture stdout/stderr.
        """
        return self._exec(list(args), cwd=cwd, env=env, timeout=timeout,
                          stream=stream, encoding=encoding)

    def run_shell(
        self,
        script: str,
        *,
        cwd: Optional[os.PathLike | str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        stream: bool = True,
    ) -> ExecResult:
        """Run a script with `bash -c` (pipefail on)."""
        return self._exec([self._shell, "-o", "pipefail", "-c", script],
                          cwd=cwd, env=env, timeout=timeout, stream=stream,
                          encoding="utf-8")

    @staticmethod
    def which(executable: str, *, path: Optional[str] = None) -> Optional[str]:
        """Locate an executable on `path` (defaults to our PATH)."""
        return shutil.which(executable, path=path)

    # ---- Internals ----------------------------------------------------------

    def _exec(
        self,
        args: list[str],
        *,
        cwd: Optional[os.PathLike | str],
        env: Optional[Mapping[str, str]],
        timeout: Optional[float],
        stream: bool,
        encoding: str,
    ) -> ExecResult:
        start = time.perf_counter()
        pipe = None if stream else subprocess.PIPE
        try:
            completed = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                stdout=pipe,
                stderr=pipe,
                timeout=timeout,
                env=dict(env) if env is not None else None,
                cwd=cwd,
                text=False,  # capture bytes; decode ourselves
            )
            return ExecResult(
                args=tuple(args),
                stdout=(completed.stdout or b"").decode(encoding, errors="replace"),
                stderr=(completed.stderr or b"").decode(encoding, errors="replace"),
                returncode=completed.returncode,
                timed_out=False,
                duration_sec=time.perf_counter() - start,
            )
        except subprocess.TimeoutExpired as exc:
            return ExecResult(
                args=tuple(args),
                stdout=(exc.stdout or b"").decode(encoding, errors="replace"),
                stderr=(exc.stderr or b"").decode(encoding, errors="replace")
                or "Process timed out.",
                returncode=1,
                timed_out=True,
                duration_sec=time.perf_counter() - start,
            )
        except (FileNotFoundError, PermissionError) as exc:
            return ExecResult(
                args=tuple(args),
                stdout="",
                stderr=str(exc),
                returncode=127,
                timed_out=False,
                duration_sec=time.perf_counter() - start,
            )
