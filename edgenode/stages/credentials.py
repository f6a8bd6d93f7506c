#!/usr/bin/env python3
# edgenode/stages/credentials.py
from __future__ import annotations

"""
Credential capture and the node's .env file.

The private key is read from the controlling terminal (/dev/tty) with
echo disabled, never from stdin, so a piped installer cannot feed it a
secret by accident. Alternatively it is unsealed from the vault.
"""

import logging
import os
from pathlib import Path
from typing import Callable

from edgenode.config import RunConfiguration, Settings, mask_secret
from edgenode.errors import InputFailure
from edgenode.vault import VaultError, unseal_secret

log = logging.getLogger(__name__)

TTY_PATH = "/dev/tty"
PROMPT_TEXT = "Enter your private key: "

SecretReader = Callable[[str], str]


def read_secret_from_tty(message: str = PROMPT_TEXT) -> str:
    """Prompt on the controlling terminal with input masked."""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.input import create_input
    from prompt_toolkit.output import create_output

    try:
        with open(TTY_PATH, "r", encoding="utf-8") as tty_in, \
                open(TTY_PATH, "w", encoding="utf-8") as tty_out:
            session: PromptSession[str] = PromptSession(
                input=create_input(stdin=tty_in),
                output=create_output(stdout=tty_out),
            )
            return session.prompt(message, is_password=True)
    except (OSError, EOFError, KeyboardInterrupt) as exc:
        raise InputFailure(
            "Failed to read input. Please run in an interactive terminal.") from exc


def obtain_credential(
    settings: Settings,
    *,
    source: str = "tty",
    reader: SecretReader | None = None,
) -> str:
    """Return the private key from the terminal or the vault."""
    if source == "vault":
        try:
            secret = unseal_secret(
                settings.vault_path,
                keyfile=settings.keystore_keyfile,
                passphrase=settings.keystore_passphrase,
            )
        except VaultError as exc:
            raise InputFailure(str(exc)) from exc
    elif source == "tty":
        secret = (reader or read_secret_from_tty)(PROMPT_TEXT)
    else:
        raise InputFailure(f"Unknown credential source: {source!r} (use 'tty' or 'vault')")

    secret = (secret or "").strip()
    if not secret:
        raise InputFailure("No private key entered. Please try again.")
    log.info("Private key captured: %s", mask_secret(secret))
    return secret


def _write_private(path: Path, text: str) -> None:
    """Write `text` so the file is never readable by other users."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(text)
    os.chmod(path, 0o600)


def write_run_configuration(settings: Settings, private_key: str,
                            *, path: Path | None = None) -> RunConfiguration:
    """Merge the credential with the defaults and write the .env file."""
    if not private_key or not private_key.strip():
        raise InputFailure("No private key entered. Please try again.")
    run_config = RunConfiguration.from_settings(settings, private_key.strip())
    target = path or settings.env_file
    _write_private(target, run_config.render())
    log.info("Wrote node configuration to %s", target)
    return run_config


def configure_credentials(
    settings: Settings,
    *,
    source: str = "tty",
    reader: SecretReader | None = None,
) -> RunConfiguration:
    return write_run_configuration(
        settings, obtain_credential(settings, source=source, reader=reader))
