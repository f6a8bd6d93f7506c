#!/usr/bin/env python3
# edgenode/errors.py
from __future__ import annotations

"""
Failure taxonomy for the installer.

Every failure is fatal for the run: the pipeline stops at the first
InstallerError and exits with `exit_code`.
"""


class InstallerError(Exception):
    """Base class; `stage` names the step that failed."""

    stage: str = "install"
    exit_code: int = 1

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.args[0] if self.args else ''}"


class DependencyInstallFailure(InstallerError):
    """A toolchain could not be installed or verified."""
    stage = "dependencies"


class InputFailure(InstallerError):
    """The credential could not be read, or was empty."""
    stage = "credentials"


class BuildFailure(InstallerError):
    """A build step returned non-zero."""
    stage = "build"


class LaunchFailure(InstallerError):
    """A background process could not be spawned."""
    stage = "launch"


class ReadinessTimeout(InstallerError):
    """The proving service did not answer before the deadline."""
    stage = "proverTimeout"


class StageFailure(InstallerError):
    """Any other pipeline step (cleanup, firewall, repository) failed."""


class UnhandledFailure(InstallerError):
    """Wraps an unexpected exception caught by the top-level trap."""
    stage = "unhandled"
