"""Runtime configuration.

Sources, lowest precedence first:
1. Built-in defaults.
2. A JSON config file (``--config`` or ZKGATE_CONFIG).
3. Environment variables, after loading a ``.env`` file if present:
   ZKGATE_DATA_DIR, ZKGATE_LOG_LEVEL, ZKGATE_PROOF_SYSTEMS
   (comma-separated proof-system names).

Example config file:

    {
      "data_dir": "data",
      "log_level": "INFO",
      "proof_systems": ["groth16-bn254-v1"],
      "pipeline": [
        {"layer": "rate_limit", "config": {"max_calls": 10, "window_seconds": 60}}
      ]
    }
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from zkgate.crypto.digests import canonical_proof_system_name

DEFAULT_DATA_DIR = Path("data")
DEFAULT_PROOF_SYSTEMS = ("digest-sha256-v1",)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class GateConfig:
    """Resolved configuration for a zkgate process."""
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "WARNING"
    proof_systems: tuple[str, ...] = DEFAULT_PROOF_SYSTEMS
    pipeline: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    @property
    def events_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GateConfig:
        """Build a config from a mapping, validating every known key."""
        unknown = set(data) - {"data_dir", "log_level", "proof_systems", "pipeline"}
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        config = cls()
        if "data_dir" in data:
            config = replace(config, data_dir=Path(data["data_dir"]))
        if "log_level" in data:
            config = replace(config, log_level=_log_level(data["log_level"]))
        if "proof_systems" in data:
            config = replace(config, proof_systems=_proof_systems(data["proof_systems"]))
        if "pipeline" in data:
            specs = data["pipeline"]
            if not isinstance(specs, list):
                raise ValueError("pipeline must be a list of layer specs")
            config = replace(config, pipeline=tuple(dict(s) for s in specs))
        return config

    @classmethod
    def from_file(cls, path: Path) -> GateConfig:
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> GateConfig:
        """Overlay ZKGATE_* environment variables on this config."""
        env = os.environ if environ is None else environ
        config = self
        if env.get("ZKGATE_DATA_DIR"):
            config = replace(config, data_dir=Path(env["ZKGATE_DATA_DIR"]))
        if env.get("ZKGATE_LOG_LEVEL"):
            config = replace(config, log_level=_log_level(env["ZKGATE_LOG_LEVEL"]))
        if env.get("ZKGATE_PROOF_SYSTEMS"):
            names = [n for n in env["ZKGATE_PROOF_SYSTEMS"].split(",") if n.strip()]
            config = replace(config, proof_systems=_proof_systems(names))
        return config


def load_config(
    config_path: Optional[Path] = None,
    env_file: Optional[Path] = None,
) -> GateConfig:
    """Resolve configuration from defaults, file and environment.

    Args:
        config_path: JSON config file. Falls back to ZKGATE_CONFIG.
        env_file: .env file to load. Defaults to ./.env when present.
    """
    load_dotenv(env_file if env_file is not None else Path(".env"))

    if config_path is None and os.getenv("ZKGATE_CONFIG"):
        config_path = Path(os.environ["ZKGATE_CONFIG"])

    config = GateConfig.from_file(config_path) if config_path else GateConfig()
    return config.with_env()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, _log_level(level)),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _log_level(value: str) -> str:
    level = str(value).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {value}")
    return level


def _proof_systems(names: Any) -> tuple[str, ...]:
    if isinstance(names, str) or not isinstance(names, (list, tuple)):
        raise ValueError("proof_systems must be a list of names")
    return tuple(canonical_proof_system_name(n) for n in names)
