"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .constants import OMNISOL_PROGRAM_ID

logger = logging.getLogger(__name__)

COMMITMENTS = ("processed", "confirmed", "finalized")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClusterConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    commitment: str = "confirmed"


@dataclass(frozen=True)
class ProgramConfig:
    program_id: str = str(OMNISOL_PROGRAM_ID)
    oracle: str = ""


@dataclass(frozen=True)
class WalletConfig:
    keypair_path: str = ""


@dataclass(frozen=True)
class AppConfig:
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    program: ProgramConfig = field(default_factory=ProgramConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)

    @property
    def program_id(self) -> Pubkey:
        return Pubkey.from_string(self.program.program_id)

    @property
    def oracle(self) -> Pubkey | None:
        if not self.program.oracle:
            return None
        return Pubkey.from_string(self.program.oracle)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_cluster(raw: dict[str, Any]) -> ClusterConfig:
    return ClusterConfig(
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        commitment=raw.get("commitment", "confirmed"),
    )


def _build_program(raw: dict[str, Any]) -> ProgramConfig:
    return ProgramConfig(
        # An unset ${VAR} interpolates to "", which means "use the default".
        program_id=raw.get("program_id") or str(OMNISOL_PROGRAM_ID),
        oracle=raw.get("oracle", "") or "",
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(keypair_path=raw.get("keypair_path", "") or "")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            current working directory.
    """
    load_dotenv()

    if config_path is None:
        config_path = Path.cwd() / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        cluster=_build_cluster(raw.get("cluster") or {}),
        program=_build_program(raw.get("program") or {}),
        wallet=_build_wallet(raw.get("wallet") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.cluster.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if cfg.cluster.rpc_timeout <= 0:
        raise ValueError("rpc_timeout must be positive")

    if cfg.cluster.commitment not in COMMITMENTS:
        raise ValueError(
            f"Unknown commitment '{cfg.cluster.commitment}', "
            f"expected one of {', '.join(COMMITMENTS)}"
        )

    for name in ("program_id", "oracle"):
        value = getattr(cfg.program, name)
        if not value:
            continue
        try:
            Pubkey.from_string(value)
        except ValueError as e:
            raise ValueError(f"Invalid {name} '{value}': {e}") from e


def load_keypair(path: str | Path) -> Keypair:
    """Read a keypair file in the Solana CLI format (JSON array of 64 bytes)."""
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Keypair file not found: {path}")
    with open(path) as f:
        secret = json.load(f)
    return Keypair.from_bytes(bytes(secret))
