from __future__ import annotations
"""
escrowbook.config: configuration for the escrow order book

Covers:
- Custody identity (the address the order book holds funds and allowances as)
- Native asset presentation (symbol, decimals used for display ↔ base units)
- Signing (whether release digests bind the custody address)
- Storage (SQLite path; empty means in-memory)
- Log level

Environment overrides (all optional; sensible defaults provided):

  ESCROW_CUSTODY_ADDRESS=0x00000000000000000000000000000000000e5c70
  ESCROW_NATIVE_SYMBOL=ETH
  ESCROW_NATIVE_DECIMALS=18
  ESCROW_SIGNING_BIND_DOMAIN=false
  ESCROW_DB_PATH=escrow.db
  ESCROW_LOG_LEVEL=INFO

You can also load from a JSON or YAML file via
`ESCROW_CONFIG_FILE=/path/to/config.(json|yaml|yml)`. File values override
defaults; environment overrides the file.
"""


import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .address import normalize
from .errors import InvalidAddress

DEFAULT_CUSTODY_ADDRESS = "0x00000000000000000000000000000000000e5c70"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# -------------------------- Data classes --------------------------


@dataclass
class NativeAsset:
    """Native coin presentation; 1 display unit = 10**decimals base units."""
    symbol: str = "ETH"
    decimals: int = 18

    def validate(self) -> None:
        if not self.symbol:
            raise ValueError("native.symbol must be non-empty.")
        if not (0 <= self.decimals <= 77):
            raise ValueError(f"native.decimals must be in [0, 77] (got {self.decimals}).")


@dataclass
class SigningConfig:
    """When bind_domain is set, release digests include the custody address."""
    bind_domain: bool = False

    def validate(self) -> None:
        if not isinstance(self.bind_domain, bool):
            raise ValueError("signing.bind_domain must be a bool.")


@dataclass
class StorageConfig:
    db_path: str = ""  # "" -> in-memory store

    def validate(self) -> None:
        if not isinstance(self.db_path, str):
            raise ValueError("storage.db_path must be a string.")


@dataclass
class EscrowConfig:
    """Top-level configuration container."""
    custody_address: str = DEFAULT_CUSTODY_ADDRESS
    native: NativeAsset = field(default_factory=NativeAsset)
    signing: SigningConfig = field(default_factory=SigningConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    def validate(self) -> None:
        try:
            self.custody_address = normalize(self.custody_address, field="custody_address")
        except InvalidAddress as e:
            raise ValueError(str(e)) from e
        self.native.validate()
        self.signing.validate()
        self.storage.validate()
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS} (got {self.log_level!r}).")

    @property
    def domain(self) -> Optional[str]:
        """Address bound into release digests, or None when binding is off."""
        return self.custody_address if self.signing.bind_domain else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _parse_bool(v: Any, name: str) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("1", "true", "yes", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
    raise ValueError(f"Invalid bool for {name}: {v!r}")


def _getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return _parse_bool(v, name)


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v == "" else v


def from_mapping(data: Mapping[str, Any], base: Optional[EscrowConfig] = None) -> EscrowConfig:
    """Layer a (possibly partial) nested mapping over `base`."""
    cfg = base or EscrowConfig()
    native = data.get("native") or {}
    signing = data.get("signing") or {}
    storage = data.get("storage") or {}
    return EscrowConfig(
        custody_address=str(data.get("custody_address", cfg.custody_address)),
        native=NativeAsset(
            symbol=str(native.get("symbol", cfg.native.symbol)),
            decimals=int(native.get("decimals", cfg.native.decimals)),
        ),
        signing=SigningConfig(
            bind_domain=_parse_bool(signing.get("bind_domain", cfg.signing.bind_domain), "signing.bind_domain")
        ),
        storage=StorageConfig(db_path=str(storage.get("db_path", cfg.storage.db_path))),
        log_level=str(data.get("log_level", cfg.log_level)),
    )


def from_file(path: str | os.PathLike[str], base: Optional[EscrowConfig] = None) -> EscrowConfig:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"config file {p} must contain a mapping")
    return from_mapping(data, base)


def from_env(base: Optional[EscrowConfig] = None, prefix: str = "ESCROW_") -> EscrowConfig:
    """Build an EscrowConfig from environment variables layered on `base`."""
    cfg = base or EscrowConfig()
    return EscrowConfig(
        custody_address=_getenv_str(f"{prefix}CUSTODY_ADDRESS", cfg.custody_address),
        native=NativeAsset(
            symbol=_getenv_str(f"{prefix}NATIVE_SYMBOL", cfg.native.symbol),
            decimals=_getenv_int(f"{prefix}NATIVE_DECIMALS", cfg.native.decimals),
        ),
        signing=SigningConfig(
            bind_domain=_getenv_bool(f"{prefix}SIGNING_BIND_DOMAIN", cfg.signing.bind_domain)
        ),
        storage=StorageConfig(db_path=_getenv_str(f"{prefix}DB_PATH", cfg.storage.db_path)),
        log_level=_getenv_str(f"{prefix}LOG_LEVEL", cfg.log_level).upper(),
    )


def load_config(prefix: str = "ESCROW_") -> EscrowConfig:
    """Defaults ← optional config file ← environment; validated."""
    cfg = EscrowConfig()
    path = os.getenv(f"{prefix}CONFIG_FILE")
    if path:
        cfg = from_file(path, cfg)
    cfg = from_env(cfg, prefix=prefix)
    cfg.validate()
    return cfg


__all__ = [
    "DEFAULT_CUSTODY_ADDRESS",
    "NativeAsset",
    "SigningConfig",
    "StorageConfig",
    "EscrowConfig",
    "from_mapping",
    "from_file",
    "from_env",
    "load_config",
]
