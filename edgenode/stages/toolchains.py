#!/usr/bin/env python3
# edgenode/stages/toolchains.py
from __future__ import annotations

"""
Toolchain installation (Go, Rust, RISC Zero).

Each toolchain is checked by looking its executable up on the search path
held by a ToolchainEnv. Missing toolchains are installed, their bin
directories are added to the ToolchainEnv (not to os.environ), and, when
enabled, an export line is appended to the shell profile for future
sessions. Any failure is fatal.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from edgenode.config import Settings
from edgenode.errors import DependencyInstallFailure
from edgenode.kernel import ExecResult, Kernel

log = logging.getLogger(__name__)


@dataclass
class ToolchainEnv:
    """Explicit search path handed to every later stage and child process."""

    base_path: str = field(default_factory=lambda: os.environ.get("PATH", ""))
    extra_paths: list[str] = field(default_factory=list)
    base_environ: Mapping[str, str] = field(
        default_factory=lambda: dict(os.environ), repr=False)

    @property
    def path(self) -> str:
        parts = [p for p in self.base_path.split(os.pathsep) if p]
        for extra in self.extra_paths:
            if extra not in parts:
                parts.append(extra)
        return os.pathsep.join(parts)

    def add_path(self, directory: str | Path) -> None:
        entry = str(directory)
        if entry not in self.extra_paths:
            self.extra_paths.append(entry)

    def which(self, kernel: Kernel, executable: str) -> Optional[str]:
        return kernel.which(executable, path=self.path)

    def environ(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Full environment for a child process."""
        env = dict(self.base_environ)
        env["PATH"] = self.path
        if extra:
            env.update(extra)
        return env


InstallStep = Callable[[Kernel, ToolchainEnv], ExecResult]


@dataclass
class Toolchain:
    name: str
    executable: str
    install_steps: Sequence[InstallStep]
    bin_dirs: Sequence[Path] = ()
    profile_line: str | None = None
    component_steps: Sequence[InstallStep] = ()


def default_toolchains(settings: Settings, *, home: Path | None = None) -> list[Toolchain]:
    """Go, Rust and RISC Zero, installed the way their vendors document."""
    home = home or Path.home()
    archive = settings.workspace_path / settings.go_archive
    go_root = settings.go_install_root
    go_url = f"https://golang.org/dl/{settings.go_archive}"

    def download_go(kernel: Kernel, tenv: ToolchainEnv) -> ExecResult:
        return kernel.run(["wget", "-q", "-O", str(archive), go_url],
                          env=tenv.environ(), stream=True)

    def extract_go(kernel: Kernel, tenv: ToolchainEnv) -> ExecResult:
        res = kernel.run(["sudo", "tar", "-C", str(go_root), "-xzf", str(archive)],
                         env=tenv.environ(), stream=True)
        if res.ok:
            archive.unlink(missing_ok=True)
        return res

    def rustup(kernel: Kernel, tenv: ToolchainEnv) -> ExecResult:
        return kernel.run_shell(
            "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y",
            env=tenv.environ())

    def risc0(kernel: Kernel, tenv: ToolchainEnv) -> ExecResult:
        return kernel.run_shell("curl -L https://risczero.com/install | bash",
                                env=tenv.environ())

    def rzup_install(kernel: Kernel, tenv: ToolchainEnv) -> ExecResult:
        rzup = tenv.which(kernel, "rzup") or "rzup"
        return kernel.run([rzup, "install"], env=tenv.environ(), stream=True)

    return [
        Toolchain(
            name="go",
            executable="go",
            install_steps=(download_go, extract_go),
            bin_dirs=(go_root / "go" / "bin",),
            profile_line=f'export PATH="$PATH:{go_root / "go" / "bin"}"',
        ),
        Toolchain(
            name="rust",
            executable="rustc",
            install_steps=(rustup,),
            # rustup edits the profile itself
            bin_dirs=(home / ".cargo" / "bin",),
        ),
        Toolchain(
            name="risc0",
            executable="rzup",
            install_steps=(risc0,),
            bin_dirs=(home / ".risc0" / "bin",),
            profile_line='export PATH="$HOME/.risc0/bin:$PATH"',
            component_steps=(rzup_install,),
        ),
    ]


def persist_profile_line(profile: Path, line: str) -> bool:
    """Append `line` to the shell profile unless it is already there."""
    try:
        existing = profile.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        existing = []
    if line in existing:
        return False
    profile.parent.mkdir(parents=True, exist_ok=True)
    with profile.open("a", encoding="utf-8") as f:
        f.write(line + "\n")
    return True


def _run_steps(kernel: Kernel, tenv: ToolchainEnv, tool: Toolchain,
               steps: Sequence[InstallStep], what: str) -> None:
    for step in steps:
        res = step(kernel, tenv)
        if not res.ok:
            raise DependencyInstallFailure(
                f"{tool.name}: {what} failed ({res.summary()})")


def ensure_toolchains(
    toolchains: Sequence[Toolchain],
    *,
    kernel: Kernel | None = None,
    tenv: ToolchainEnv | None = None,
    profile: Path | None = None,
) -> tuple[ToolchainEnv, list[str]]:
    """
    Install whichever toolchains are missing.

    Returns the (updated) ToolchainEnv and the names that were installed.
    Toolchains already present are left untouched. Component steps run for
    every toolchain that defines them.
    """
    kernel = kernel or Kernel()
    tenv = tenv or ToolchainEnv()
    installed: list[str] = []

    for tool in toolchains:
        for directory in tool.bin_dirs:
            if Path(directory).is_dir():
                tenv.add_path(directory)

        if tenv.which(kernel, tool.executable):
            log.info("%s: found (%s)", tool.name, tool.executable)
        else:
            log.info("%s: not found, installing...", tool.name)
            _run_steps(kernel, tenv, tool, tool.install_steps, "install")
            for directory in tool.bin_dirs:
                tenv.add_path(directory)
            if profile is not None and tool.profile_line:
                if persist_profile_line(profile, tool.profile_line):
                    log.info("%s: PATH export added to %s", tool.name, profile)
            if not tenv.which(kernel, tool.executable):
                raise DependencyInstallFailure(
                    f"{tool.name}: '{tool.executable}' not found after installation")
            installed.append(tool.name)

        if tool.component_steps:
            log.info("%s: ensuring toolchain components...", tool.name)
            _run_steps(kernel, tenv, tool, tool.component_steps, "component install")

    return tenv, installed


def report_versions(kernel: Kernel, tenv: ToolchainEnv, executables: Sequence[str] = ("rzup",)) -> dict[str, str]:
    """Log `<exe> --version` for each executable; returns what was read."""
    versions: dict[str, str] = {}
    for exe in executables:
        path = tenv.which(kernel, exe)
        if not path:
            continue
        res = kernel.run([path, "--version"], env=tenv.environ())
        if res.ok:
            versions[exe] = res.stdout.strip()
            log.info("%s verified: %s", exe, versions[exe])
    return versions
