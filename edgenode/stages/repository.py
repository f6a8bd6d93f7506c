#!/usr/bin/env python3
# edgenode/stages/repository.py
from __future__ import annotations

"""Clone the node repository."""

import logging
from pathlib import Path

from edgenode.errors import DependencyInstallFailure, StageFailure
from edgenode.kernel import Kernel

log = logging.getLogger(__name__)


def clone_repository(url: str, dest: Path, *, kernel: Kernel | None = None,
                     env: dict[str, str] | None = None) -> Path:
    kernel = kernel or Kernel()
    git = kernel.which("git")
    if not git:
        raise DependencyInstallFailure("git is not installed")
    if dest.exists():
        raise StageFailure(f"{dest} already exists", stage="repository")

    log.info("Cloning %s into %s", url, dest)
    res = kernel.run([git, "clone", url, str(dest)], env=env, stream=True)
    if not res.ok:
        raise StageFailure(f"git clone failed: {res.summary()}", stage="repository")
    return dest
