"""Helpers to load, validate and persist the migrator configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .schema import MigratorConfig

ENV_PREFIX = "WSP_MIGRATE_"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at {path}, found {type(data).__name__}")
    return data


def _write_yaml(path: Path, payload: Mapping[str, Any]):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False, allow_unicode=True)


def apply_env_overrides(raw: Mapping[str, Any], env: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay ``WSP_MIGRATE_*`` variables on a raw configuration payload."""

    payload: Dict[str, Any] = dict(raw)
    influx: Dict[str, Any] = dict(payload.get("influx") or {})
    mapping = {
        "INFLUX_ADDRESSES": "addresses",
        "INFLUX_DATABASE": "database",
        "INFLUX_USERNAME": "username",
        "INFLUX_PASSWORD": "password",
        "BATCH_SIZE": "batch_size",
        "WRITE_CONCURRENCY": "write_concurrency",
    }
    for suffix, key in mapping.items():
        value = env.get(ENV_PREFIX + suffix)
        if value not in (None, ""):
            influx[key] = value
    if influx:
        payload["influx"] = influx
    return payload


def load_config(path: Path, env: Optional[Mapping[str, Any]] = None) -> MigratorConfig:
    """Read and validate the migration configuration from a YAML file."""

    raw = _read_yaml(Path(path))
    if env:
        raw = apply_env_overrides(raw, env)
    return MigratorConfig.from_mapping(raw)


def save_config(config: MigratorConfig, path: Path):
    """Persist the configuration using the canonical schema."""

    _write_yaml(Path(path), config.to_dict())


def load_env_file(path: Path) -> Mapping[str, str]:
    """Load key/value pairs from a dotenv file."""

    values = dotenv_values(str(path))
    return {k: v for k, v in values.items() if v is not None}


def default_config() -> MigratorConfig:
    """Return a template configuration with placeholder values."""

    payload = {
        "migration": {
            "max_concurrent_files": 10,
            "database": "graphite",
            "host": "http://localhost:8086",
            "create_database_and_policies": True,
            "replication_factor": 1,
            "default_retention_policy": "",
            "default_duration": "",
            "interactive": True,
        },
        "rules": [
            {
                "pattern": r"servers\.(?P<host>[^.]+)\.(?P<metric>[^.]+)$",
                "measurement": "?metric",
                "tags": [{"key": "host", "value": "?host"}],
                "field": "value",
            }
        ],
        "influx": {
            "enabled": True,
            "addresses": ["http://localhost:8086"],
            "database": "graphite",
            "precision": "s",
            "batch_size": 5000,
            "batch_interval": "0s",
            "write_concurrency": 4,
            "retry": {"base_delay": "500ms", "max_attempts": 0},
        },
    }
    return MigratorConfig.from_mapping(payload)
