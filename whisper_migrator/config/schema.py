"""Typed configuration models implemented with dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from whisper_migrator.durations import parse_duration, validate_policy_duration

PRECISIONS = ("s", "ms", "u", "ns")


def _as_str(value: Any, field_name: str, *, optional: bool = False) -> Optional[str]:
    if value is None:
        if optional:
            return None
        raise ValueError(f"'{field_name}' is required")
    text = str(value).strip()
    if not text and not optional:
        raise ValueError(f"'{field_name}' must not be empty")
    return text or None


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        raise ValueError(f"'{field_name}' is required")
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a valid integer")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a valid integer") from exc
    return result


def _as_float(value: Any, field_name: str) -> float:
    if value is None:
        raise ValueError(f"'{field_name}' is required")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be numeric") from exc
    return result


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _as_duration(value: Any, field_name: str) -> str:
    """Validate a duration string eagerly and return it unchanged."""

    text = _as_str(value, field_name)
    try:
        parse_duration(text)
    except ValueError as exc:
        raise ValueError(f"'{field_name}' is not a valid duration: {text!r}") from exc
    return text  # type: ignore[return-value]


def _as_policy_duration(value: Any, field_name: str) -> str:
    text = _as_str(value, field_name)
    try:
        return validate_policy_duration(text)  # type: ignore[arg-type]
    except ValueError as exc:
        raise ValueError(f"'{field_name}' is not a valid retention duration: {exc}") from exc


def _as_list(value: Any, field_name: str) -> List[str]:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Sequence):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"{field_name} must be a list or a comma separated string")


def _normalize_address(address: str) -> str:
    if "://" not in address:
        address = f"http://{address}"
    return address.rstrip("/")


@dataclass
class RuleSettings:
    """One conversion rule; contents are validated lazily at match time."""

    pattern: str = ""
    measurement: str = ""
    tags: List[Tuple[str, str]] = field(default_factory=list)
    field: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RuleSettings":
        if not isinstance(data, Mapping):
            raise ValueError("rules[] entries must be mappings")
        tags_raw = data.get("tags", data.get("tag")) or []
        tags: List[Tuple[str, str]] = []
        if isinstance(tags_raw, Mapping):
            tags = [(str(key), "" if value is None else str(value)) for key, value in tags_raw.items()]
        elif isinstance(tags_raw, Sequence) and not isinstance(tags_raw, str):
            for item in tags_raw:
                if not isinstance(item, Mapping):
                    raise ValueError("rules[].tags entries must be {key, value} mappings")
                key = item.get("key")
                value = item.get("value")
                tags.append(("" if key is None else str(key), "" if value is None else str(value)))
        else:
            raise ValueError("rules[].tags must be a list or a mapping")

        field_raw = data.get("field", "")
        if isinstance(field_raw, Mapping):
            field_raw = field_raw.get("key", "")
        return cls(
            pattern=str(data.get("pattern", data.get("point_regex", "")) or ""),
            measurement=str(data.get("measurement", "") or ""),
            tags=tags,
            field=str(field_raw or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "measurement": self.measurement,
            "tags": [{"key": key, "value": value} for key, value in self.tags],
            "field": self.field,
        }


@dataclass
class RetrySettings:
    base_delay: str = "500ms"
    increment: Optional[str] = None
    max_attempts: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RetrySettings":
        if not data:
            return cls()
        base_delay = _as_duration(data.get("base_delay", "500ms"), "retry.base_delay")
        increment_raw = data.get("increment")
        increment = (
            _as_duration(increment_raw, "retry.increment") if increment_raw not in (None, "") else None
        )
        max_attempts = _as_int(data.get("max_attempts", 0), "retry.max_attempts")
        if max_attempts < 0:
            raise ValueError("retry.max_attempts must be >= 0 (0 retries forever)")
        return cls(base_delay=base_delay, increment=increment, max_attempts=max_attempts)

    @property
    def base_delay_s(self) -> float:
        return parse_duration(self.base_delay)

    @property
    def increment_s(self) -> float:
        if self.increment is None:
            return self.base_delay_s
        return parse_duration(self.increment)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_delay": self.base_delay,
            "increment": self.increment,
            "max_attempts": self.max_attempts,
        }


@dataclass
class InfluxSettings:
    enabled: bool = True
    addresses: List[str] = field(default_factory=lambda: ["http://localhost:8086"])
    database: str = "graphite"
    precision: str = "s"
    batch_size: int = 5000
    batch_interval: str = "0s"
    write_concurrency: int = 4
    timeout_s: float = 30.0
    username: Optional[str] = None
    password: Optional[str] = None
    verify_ssl: bool = True
    default_retention_policy: str = ""
    retry: RetrySettings = field(default_factory=RetrySettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "InfluxSettings":
        if not data:
            return cls()
        enabled = _as_bool(data.get("enabled"), True)
        addresses = [
            _normalize_address(item)
            for item in _as_list(
                data.get("addresses", data.get("address", ["http://localhost:8086"])), "influx.addresses"
            )
        ]
        if enabled and not addresses:
            raise ValueError("influx.addresses must list at least one address")
        database = _as_str(data.get("database", "graphite"), "influx.database")
        precision = (_as_str(data.get("precision", "s"), "influx.precision") or "s").lower()
        if precision not in PRECISIONS:
            raise ValueError(f"influx.precision must be one of {', '.join(PRECISIONS)}")
        batch_size = _as_int(data.get("batch_size", 5000), "influx.batch_size")
        if batch_size < 1:
            raise ValueError("influx.batch_size must be >= 1")
        batch_interval = _as_duration(data.get("batch_interval", "0s"), "influx.batch_interval")
        concurrency = _as_int(
            data.get("write_concurrency", data.get("concurrency", 4)), "influx.write_concurrency"
        )
        if concurrency < 1:
            raise ValueError("influx.write_concurrency must be >= 1")
        timeout_s = _as_float(data.get("timeout_s", 30.0), "influx.timeout_s")
        if timeout_s <= 0:
            raise ValueError("influx.timeout_s must be > 0")
        username = _as_str(data.get("username"), "influx.username", optional=True)
        password = _as_str(data.get("password"), "influx.password", optional=True)
        default_rp = _as_str(
            data.get("default_retention_policy"), "influx.default_retention_policy", optional=True
        )
        return cls(
            enabled=enabled,
            addresses=addresses,
            database=database,  # type: ignore[arg-type]
            precision=precision,
            batch_size=batch_size,
            batch_interval=batch_interval,
            write_concurrency=concurrency,
            timeout_s=timeout_s,
            username=username,
            password=password,
            verify_ssl=_as_bool(data.get("verify_ssl"), True),
            default_retention_policy=default_rp or "",
            retry=RetrySettings.from_mapping(data.get("retry")),
        )

    @property
    def batch_interval_s(self) -> float:
        return parse_duration(self.batch_interval)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "addresses": list(self.addresses),
            "database": self.database,
            "precision": self.precision,
            "batch_size": self.batch_size,
            "batch_interval": self.batch_interval,
            "write_concurrency": self.write_concurrency,
            "timeout_s": self.timeout_s,
            "username": self.username,
            "password": self.password,
            "verify_ssl": self.verify_ssl,
            "default_retention_policy": self.default_retention_policy,
            "retry": self.retry.to_dict(),
        }


@dataclass
class MigrationSettings:
    max_concurrent_files: int = 10
    database: str = "graphite"
    host: str = "http://localhost:8086"
    create_database_and_policies: bool = False
    replication_factor: int = 1
    default_retention_policy: str = ""
    default_duration: str = ""
    interactive: bool = False
    queue_size: int = 10_000
    merge_queue_size: int = 15_000
    archive_suffix: str = ".wsp"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MigrationSettings":
        if not data:
            return cls()
        max_files = _as_int(data.get("max_concurrent_files", 10), "migration.max_concurrent_files")
        if max_files < 1:
            raise ValueError("migration.max_concurrent_files must be >= 1")
        replication = _as_int(data.get("replication_factor", 1), "migration.replication_factor")
        if replication < 1:
            raise ValueError("migration.replication_factor must be >= 1")
        default_duration_raw = data.get("default_duration")
        default_duration = (
            _as_policy_duration(default_duration_raw, "migration.default_duration")
            if default_duration_raw not in (None, "")
            else ""
        )
        queue_size = _as_int(data.get("queue_size", 10_000), "migration.queue_size")
        merge_queue_size = _as_int(data.get("merge_queue_size", 15_000), "migration.merge_queue_size")
        if queue_size < 1 or merge_queue_size < 1:
            raise ValueError("migration queue sizes must be >= 1")
        suffix = _as_str(data.get("archive_suffix", ".wsp"), "migration.archive_suffix")
        host = _as_str(data.get("host", "http://localhost:8086"), "migration.host")
        return cls(
            max_concurrent_files=max_files,
            database=_as_str(data.get("database", "graphite"), "migration.database"),  # type: ignore[arg-type]
            host=_normalize_address(host),  # type: ignore[arg-type]
            create_database_and_policies=_as_bool(data.get("create_database_and_policies"), False),
            replication_factor=replication,
            default_retention_policy=_as_str(
                data.get("default_retention_policy"), "migration.default_retention_policy", optional=True
            )
            or "",
            default_duration=default_duration,
            interactive=_as_bool(data.get("interactive"), False),
            queue_size=queue_size,
            merge_queue_size=merge_queue_size,
            archive_suffix=suffix,  # type: ignore[arg-type]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_concurrent_files": self.max_concurrent_files,
            "database": self.database,
            "host": self.host,
            "create_database_and_policies": self.create_database_and_policies,
            "replication_factor": self.replication_factor,
            "default_retention_policy": self.default_retention_policy,
            "default_duration": self.default_duration,
            "interactive": self.interactive,
            "queue_size": self.queue_size,
            "merge_queue_size": self.merge_queue_size,
            "archive_suffix": self.archive_suffix,
        }


@dataclass
class MigratorConfig:
    migration: MigrationSettings = field(default_factory=MigrationSettings)
    rules: List[RuleSettings] = field(default_factory=list)
    influx: InfluxSettings = field(default_factory=InfluxSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MigratorConfig":
        rules_raw = data.get("rules") or []
        if not isinstance(rules_raw, Sequence) or isinstance(rules_raw, str):
            raise ValueError("rules must be a list")
        return cls(
            migration=MigrationSettings.from_mapping(data.get("migration")),
            rules=[RuleSettings.from_mapping(item) for item in rules_raw],
            influx=InfluxSettings.from_mapping(data.get("influx")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "migration": self.migration.to_dict(),
            "rules": [rule.to_dict() for rule in self.rules],
            "influx": self.influx.to_dict(),
        }
