#!/usr/bin/env python3
# edgenode/vault.py
from __future__ import annotations

"""Sealed credential file for the node's private key.

Backends:
- aes-gcm: KEK → AES-256-GCM seal.
- chachapoly1305: KEK → ChaCha20-Poly1305 seal.

KEK sources:
- keyfile: exactly 32 random bytes; created (mode 0600) on first seal.
- scrypt: derived from a passphrase when one is configured.

File format (JSON, version 1):
    {"version": 1, "alg": "...", "kek": "keyfile|scrypt",
     "salt": hex, "n": int, "r": int, "p": int,
     "nonce": hex, "ciphertext": hex}

The header fields are bound to the ciphertext as AEAD associated data, so
editing any of them makes unseal fail.
"""

import json
import os
from hashlib import scrypt as _scrypt
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

VAULT_VERSION = 1
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

_ALGS = {
    "aes-gcm": ("aes-256-gcm", AESGCM),
    "chachapoly1305": ("chacha20poly1305", ChaCha20Poly1305),
}
_CIPHERS = {label: cls for label, cls in _ALGS.values()}


class VaultError(Exception):
    """Raised when the vault cannot be read, written or authenticated."""


# ==== KEK derivation (scrypt or keyfile) ======================================

def ensure_keyfile(path: Path) -> Path:
    """Create a 32-byte random key file if it does not exist."""
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(os.urandom(32))
    return path


def _derive_kek(passphrase: Optional[str], *, keyfile: Optional[Path],
                salt: bytes, n: int, r: int, p: int) -> tuple[bytes, str]:
    """Derive a 32B KEK from a passphrase (scrypt) or read it from a keyfile.

    Returns:
        (kek, derivation_label) where derivation_label is 'scrypt' or 'keyfile'.
    """
    if passphrase:
        kek = _scrypt(passphrase.encode("utf-8"),
                      salt=salt, n=n, r=r, p=p, dklen=32)
        return kek, "scrypt"
    if keyfile is None:
        raise VaultError("Missing KEYSTORE_PASSPHRASE or KEYSTORE_KEYFILE")
    try:
        raw = Path(keyfile).read_bytes()
    except FileNotFoundError as exc:
        raise VaultError(f"Key file not found: {keyfile}") from exc
    if len(raw) != 32:
        raise VaultError("KEYSTORE_KEYFILE must contain exactly 32 bytes")
    return raw, "keyfile"


def _aad(header: dict) -> bytes:
    return json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8")


# ==== Public API ================================================================

def seal_secret(
    secret: str,
    vault_path: Path,
    *,
    backend: str = "aes-gcm",
    keyfile: Optional[Path] = None,
    passphrase: Optional[str] = None,
) -> Path:
    """Encrypt `secret` into `vault_path` (overwrites). Returns the path."""
    if not secret:
        raise VaultError("Refusing to seal an empty secret")
    if backend not in _ALGS:
        raise VaultError(f"Unsupported backend: {backend}")
    alg, cipher_cls = _ALGS[backend]

    if not passphrase and keyfile is not None:
        ensure_keyfile(keyfile)
    salt = os.urandom(16)
    kek, klabel = _derive_kek(passphrase, keyfile=keyfile, salt=salt,
                              n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)

    header = {
        "version": VAULT_VERSION,
        "alg": alg,
        "kek": klabel,
        "salt": salt.hex(),
        "n": SCRYPT_N, "r": SCRYPT_R, "p": SCRYPT_P,
    }
    nonce = os.urandom(12)
    ct = cipher_cls(kek).encrypt(nonce, secret.encode("utf-8"), _aad(header))

    vault_path.parent.mkdir(parents=True, exist_ok=True)
    doc = dict(header, nonce=nonce.hex(), ciphertext=ct.hex())
    vault_path.write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")
    try:
        os.chmod(vault_path, 0o600)
    except OSError:
        pass
    return vault_path


def unseal_secret(
    vault_path: Path,
    *,
    keyfile: Optional[Path] = None,
    passphrase: Optional[str] = None,
) -> str:
    """Return the plaintext secret stored in `vault_path`.

    Raises:
        VaultError: missing/corrupt file, wrong key, or tampered header.
    """
    try:
        doc = json.loads(vault_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise VaultError(f"No sealed key at {vault_path}; run 'edgenode seal-key'") from exc
    except json.JSONDecodeError as exc:
        raise VaultError(f"Corrupt vault file {vault_path}: {exc}") from exc

    try:
        header = {k: doc[k] for k in ("version", "alg", "kek", "salt", "n", "r", "p")}
        nonce = bytes.fromhex(str(doc["nonce"]))
        ct = bytes.fromhex(str(doc["ciphertext"]))
    except (KeyError, ValueError) as exc:
        raise VaultError(f"Corrupt vault file {vault_path}: {exc}") from exc

    if header["version"] != VAULT_VERSION:
        raise VaultError(f"Unsupported vault version: {header['version']}")
    cipher_cls = _CIPHERS.get(str(header["alg"]))
    if cipher_cls is None:
        raise VaultError(f"Unsupported alg in vault: {header['alg']}")

    klabel = str(header["kek"])
    if klabel == "scrypt" and not passphrase:
        raise VaultError("Vault was sealed with a passphrase; set KEYSTORE_PASSPHRASE")
    kek, _ = _derive_kek(
        passphrase if klabel == "scrypt" else None,
        keyfile=keyfile,
        salt=bytes.fromhex(str(header["salt"])),
        n=int(header["n"]), r=int(header["r"]), p=int(header["p"]),
    )
    try:
        plain = cipher_cls(kek).decrypt(nonce, ct, _aad(header))
    except InvalidTag as exc:
        raise VaultError("Vault authentication failed (wrong key or tampered file)") from exc
    return plain.decode("utf-8")
