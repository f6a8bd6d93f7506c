#!/usr/bin/env python3
# edgenode/config.py
from __future__ import annotations

"""
Installer configuration loader (stdlib-only).

Precedence (low → high):
  1) Built-in defaults
  2) Files in CWD: edgenode.ini, edgenode.json, edgenode.toml
  3) Environment variables prefixed EDGENODE_ (prefix stripped)

Validation:
  - READINESS_INTERVAL / READINESS_TIMEOUT: float > 0
  - API_REQUEST_TIMEOUT: int >= 1
  - PERSIST_PATH / CONFIGURE_FIREWALL: bool
  - FIREWALL_PORTS: comma-separated ints in 1..65535
  - READINESS_URL: http:// or https:// with a host
  - LOG_LEVEL: one of {'DEBUG','INFO','WARNING','ERROR','CRITICAL'}
  - KEYSTORE_BACKEND: 'aes-gcm' or 'chachapoly1305'
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
import configparser
import json
import os
import re
import tomllib
from urllib.parse import urlsplit

ENV_PREFIX = "EDGENODE_"

# ---------- defaults ----------

DEFAULTS: dict[str, Any] = {
    "WORKSPACE_PATH": ".",
    "REPO_URL": "https://github.com/Layer-Edge/light-node.git",
    "REPO_DIR": "light-node",
    "PROVER_DIR": "risc0-merkle-service",
    "NODE_BINARY": "light-node",
    # node .env defaults
    "GRPC_URL": "34.31.74.109:9090",
    "CONTRACT_ADDR": "cosmos1ufs3tlq4umljk0qfe8k5ya0x6hpavn897u2cnf9k0en9jr7qarqqt56709",
    "ZK_PROVER_URL": "http://127.0.0.1:3001",
    "API_REQUEST_TIMEOUT": 100,
    "POINTS_API": "http://127.0.0.1:8080",
    # prover readiness gate
    "READINESS_URL": "http://127.0.0.1:3001/process",
    "READINESS_INTERVAL": 1.0,
    "READINESS_TIMEOUT": 30.0,
    # toolchains
    "GO_VERSION": "1.21.8",
    "GO_INSTALL_ROOT": "/usr/local",
    "PROFILE_PATH": "~/.bashrc",
    "PERSIST_PATH": True,
    # host
    "CONFIGURE_FIREWALL": False,
    "FIREWALL_PORTS": "3001,8080,9090",
    "STALE_PATTERNS": "./light-node,cargo run",
    # logging
    "LOG_FILE_PATH": None,
    "LOG_LEVEL": "INFO",
    # sealed credential
    "VAULT_PATH": "~/.edgenode/vault.json",
    "KEYSTORE_BACKEND": "aes-gcm",
    "KEYSTORE_KEYFILE": "~/.edgenode/key.bin",
    "KEYSTORE_PASSPHRASE": None,
    # operator instructions
    "DASHBOARD_URL": "dashboard.layeredge.io",
    "POINTS_LOOKUP_URL": "https://light-node.layeredge.io/api/cli-node/points/{walletAddress}",
    "SUPPORT_URL": "discord.gg/layeredge",
}

ENV_FILE_KEYS = (
    "GRPC_URL",
    "CONTRACT_ADDR",
    "ZK_PROVER_URL",
    "API_REQUEST_TIMEOUT",
    "POINTS_API",
    "PRIVATE_KEY",
)

_ALLOWED_BACKENDS = {"aes-gcm", "chachapoly1305"}
_ALLOWED_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# ---------- data model ----------


@dataclass(frozen=True)
class Settings:
    workspace_path: Path
    repo_url: str
    repo_dir: str
    prover_dir: str
    node_binary: str

    grpc_url: str
    contract_addr: str
    zk_prover_url: str
    api_request_timeout: int
    points_api: str

    readiness_url: str
    readiness_interval: float
    readiness_timeout: float

    go_version: str
    go_install_root: Path
    profile_path: Path
    persist_path: bool

    configure_firewall: bool
    firewall_ports: tuple[int, ...]
    stale_patterns: tuple[str, ...]

    log_file_path: Path | None
    log_level: str

    vault_path: Path
    keystore_backend: str
    keystore_keyfile: Path
    keystore_passphrase: str | None = field(default=None, repr=False)

    dashboard_url: str = DEFAULTS["DASHBOARD_URL"]
    points_lookup_url: str = DEFAULTS["POINTS_LOOKUP_URL"]
    support_url: str = DEFAULTS["SUPPORT_URL"]

    # Unrecognized keys preserved for debugging/forward-compat
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def repo_path(self) -> Path:
        return self.workspace_path / self.repo_dir

    @property
    def prover_path(self) -> Path:
        return self.repo_path / self.prover_dir

    @property
    def env_file(self) -> Path:
        return self.repo_path / ".env"

    @property
    def state_dir(self) -> Path:
        return self.workspace_path / ".edgenode"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "run.json"

    @property
    def logs_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def go_archive(self) -> str:
        return f"go{self.go_version}.linux-amd64.tar.gz"


@dataclass(frozen=True)
class RunConfiguration:
    """The node's .env contents. The credential never shows up in repr()."""

    grpc_url: str
    contract_addr: str
    zk_prover_url: str
    api_request_timeout: int
    points_api: str
    private_key: str = field(repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, private_key: str) -> "RunConfiguration":
        return cls(
            grpc_url=settings.grpc_url,
            contract_addr=settings.contract_addr,
            zk_prover_url=settings.zk_prover_url,
            api_request_timeout=settings.api_request_timeout,
            points_api=settings.points_api,
            private_key=private_key,
        )

    def as_env(self) -> dict[str, str]:
        """Ordered KEY -> value mapping, same keys as the .env file."""
        return {
            "GRPC_URL": self.grpc_url,
            "CONTRACT_ADDR": self.contract_addr,
            "ZK_PROVER_URL": self.zk_prover_url,
            "API_REQUEST_TIMEOUT": str(self.api_request_timeout),
            "POINTS_API": self.points_api,
            "PRIVATE_KEY": self.private_key,
        }

    def render(self) -> str:
        return "".join(f"{k}={v}\n" for k, v in self.as_env().items())


def mask_secret(value: str) -> str:
    """Show at most the last four characters of a secret."""
    if len(value) <= 4:
        return "****"
    return "****" + value[-4:]


# ---------- file loaders (stdlib) ----------

def _load_ini_file(path: Path) -> dict[str, str]:
    cfg = configparser.ConfigParser()
    try:
        with path.open(encoding="utf-8") as f:
            cfg.read_file(f)
    except FileNotFoundError:
        return {}
    flat: dict[str, str] = {}
    for sec in cfg.sections():
        for k, v in cfg.items(sec):
            flat[k.upper()] = v
    return flat


def _load_json_file(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _load_toml_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc


def _flatten_mapping(obj: Any, prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested dicts to UPPER_SNAKE keys.
    Example: {'readiness': {'timeout': 60}} -> {'READINESS_TIMEOUT': 60}
    """
    flat: dict[str, Any] = {}
    if isinstance(obj, Mapping):
        for k, v in obj.items():
            key = f"{prefix}_{k}" if prefix else str(k)
            if isinstance(v, Mapping):
                flat.update(_flatten_mapping(v, key))
            else:
                flat[str(key).upper()] = v
    return flat


def _find_config_files(cwd: Path) -> list[Path]:
    return [
        cwd / "edgenode.ini",
        cwd / "edgenode.json",
        cwd / "edgenode.toml",
    ]


# ---------- normalization & coercion ----------

_BOOL_TRUE = {"1", "true", "yes", "y", "on"}
_BOOL_FALSE = {"0", "false", "no", "n", "off"}


def _as_bool(key: str, val: Any) -> bool:
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in _BOOL_TRUE:
        return True
    if s in _BOOL_FALSE:
        return False
    raise ValueError(f"{key}: expected boolean, got {val!r}")


def _as_int(key: str, val: Any) -> int:
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    try:
        return int(str(val).strip())
    except ValueError as exc:
        raise ValueError(f"{key}: expected integer, got {val!r}") from exc


def _as_float(key: str, val: Any) -> float:
    if isinstance(val, bool):
        raise ValueError(f"{key}: expected number, got {val!r}")
    try:
        return float(str(val).strip())
    except ValueError as exc:
        raise ValueError(f"{key}: expected number, got {val!r}") from exc


def _as_opt_str(val: Any) -> str | None:
    return None if val is None or str(val).strip().lower() in {"", "none"} else str(val)


def _as_path(val: Any, *, base: Path | None = None) -> Path:
    p = Path(os.path.expandvars(os.path.expanduser(str(val))))
    if not p.is_absolute() and base is not None:
        p = base / p
    return p.resolve()


def _as_csv(val: Any) -> tuple[str, ...]:
    if isinstance(val, (list, tuple)):
        items = [str(v) for v in val]
    else:
        items = str(val).split(",")
    return tuple(i.strip() for i in items if i.strip())


def _as_http_url(key: str, val: Any) -> str:
    url = str(val).strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"{key}: expected an http(s) URL, got {val!r}")
    return url


def _as_ports(key: str, val: Any) -> tuple[int, ...]:
    ports = tuple(_as_int(key, p) for p in _as_csv(val))
    for port in ports:
        if not 1 <= port <= 65535:
            raise ValueError(f"{key}: port out of range: {port}")
    return ports


# ---------- merge & load ----------

def _normalize_keys(d: Mapping[str, Any]) -> dict[str, Any]:
    return {str(k).upper(): v for k, v in d.items()}


def _merge_sources(cwd: Path, environ: Mapping[str, str]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(DEFAULTS)

    for file in _find_config_files(cwd):
        if file.suffix == ".ini":
            merged.update(_normalize_keys(_load_ini_file(file)))
        elif file.suffix == ".json":
            merged.update(_normalize_keys(
                _flatten_mapping(_load_json_file(file))))
        elif file.suffix == ".toml":
            merged.update(_normalize_keys(
                _flatten_mapping(_load_toml_file(file))))

    # Environment variables override all; only EDGENODE_-prefixed keys
    for k, v in environ.items():
        if k.startswith(ENV_PREFIX) and re.fullmatch(r"[A-Z0-9_]+", k):
            merged[k[len(ENV_PREFIX):]] = v
    return merged


def _validate_and_build(config: dict[str, Any], cwd: Path) -> Settings:
    workspace_path = _as_path(config["WORKSPACE_PATH"], base=cwd)

    readiness_interval = _as_float(
        "READINESS_INTERVAL", config["READINESS_INTERVAL"])
    readiness_timeout = _as_float(
        "READINESS_TIMEOUT", config["READINESS_TIMEOUT"])
    api_request_timeout = _as_int(
        "API_REQUEST_TIMEOUT", config["API_REQUEST_TIMEOUT"])
    if readiness_interval <= 0:
        raise ValueError("READINESS_INTERVAL must be > 0")
    if readiness_timeout <= 0:
        raise ValueError("READINESS_TIMEOUT must be > 0")
    if api_request_timeout < 1:
        raise ValueError("API_REQUEST_TIMEOUT must be >= 1")

    log_level = str(_as_opt_str(config["LOG_LEVEL"]) or "INFO").upper()
    if log_level not in _ALLOWED_LEVELS:
        raise ValueError(
            f"LOG_LEVEL must be one of {sorted(_ALLOWED_LEVELS)}, got {log_level!r}")

    backend = str(config["KEYSTORE_BACKEND"]).strip().lower()
    if backend not in _ALLOWED_BACKENDS:
        raise ValueError(
            f"KEYSTORE_BACKEND must be one of {sorted(_ALLOWED_BACKENDS)}, got {backend!r}")

    readiness_url = _as_http_url("READINESS_URL", config["READINESS_URL"])

    log_raw = _as_opt_str(config["LOG_FILE_PATH"])

    recognized = set(DEFAULTS.keys())
    extra = {k: v for k, v in config.items() if k not in recognized}

    return Settings(
        workspace_path=workspace_path,
        repo_url=str(config["REPO_URL"]),
        repo_dir=str(config["REPO_DIR"]),
        prover_dir=str(config["PROVER_DIR"]),
        node_binary=str(config["NODE_BINARY"]),
        grpc_url=str(config["GRPC_URL"]),
        contract_addr=str(config["CONTRACT_ADDR"]),
        zk_prover_url=str(config["ZK_PROVER_URL"]),
        api_request_timeout=api_request_timeout,
        points_api=str(config["POINTS_API"]),
        readiness_url=readiness_url,
        readiness_interval=readiness_interval,
        readiness_timeout=readiness_timeout,
        go_version=str(config["GO_VERSION"]),
        go_install_root=_as_path(config["GO_INSTALL_ROOT"]),
        profile_path=_as_path(config["PROFILE_PATH"]),
        persist_path=_as_bool("PERSIST_PATH", config["PERSIST_PATH"]),
        configure_firewall=_as_bool(
            "CONFIGURE_FIREWALL", config["CONFIGURE_FIREWALL"]),
        firewall_ports=_as_ports("FIREWALL_PORTS", config["FIREWALL_PORTS"]),
        stale_patterns=_as_csv(config["STALE_PATTERNS"]),
        log_file_path=None if log_raw is None else _as_path(
            log_raw, base=workspace_path),
        log_level=log_level,
        vault_path=_as_path(config["VAULT_PATH"]),
        keystore_backend=backend,
        keystore_keyfile=_as_path(config["KEYSTORE_KEYFILE"]),
        keystore_passphrase=_as_opt_str(config["KEYSTORE_PASSPHRASE"]),
        dashboard_url=str(config["DASHBOARD_URL"]),
        points_lookup_url=str(config["POINTS_LOOKUP_URL"]),
        support_url=str(config["SUPPORT_URL"]),
        extra=extra,
    )


# ---------- public API ----------

def load_settings(
    *,
    cwd: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """
    Load, merge, normalize, and validate configuration.
    No filesystem side-effects (no directory creation).
    """
    base = (cwd or Path.cwd()).resolve()
    raw = _merge_sources(base, os.environ if environ is None else environ)
    if overrides:
        raw.update(_normalize_keys(overrides))
    return _validate_and_build(raw, base)
