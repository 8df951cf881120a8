"""Target registry: loads the exporter YAML and provides typed models.

Single source of truth for database targets and their probes.
The scheduler, query runner and status API all consume this.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from sqlgauge.errors import ConfigError
from sqlgauge.probes.coerce import ProbeMode

if TYPE_CHECKING:
    from sqlgauge.probes.connection import DatabaseHandle

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9101
DEFAULT_QUERY_TIMEOUT = 10  # seconds
DEFAULT_DB_PORT = 1522
DEFAULT_MAX_CONNS = 10
DEFAULT_INTERVAL_MINUTES = 1

_MODE_ALIASES = {
    "": ProbeMode.NUMERIC,
    "float": ProbeMode.NUMERIC,
    "numeric": ProbeMode.NUMERIC,
    "label": ProbeMode.LABEL,
    "string": ProbeMode.LABEL,
}


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProbeDefinition:
    """A single named SQL statement run on a schedule."""

    name: str
    sql: str
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    mode: ProbeMode = ProbeMode.NUMERIC


@dataclass(frozen=True)
class PoolLimits:
    """Connection pool limits; 0 for max_open means unlimited."""

    max_idle: int = DEFAULT_MAX_CONNS
    max_open: int = DEFAULT_MAX_CONNS


@dataclass
class DatabaseTarget:
    """A configured database plus its probes and live connection handle."""

    name: str
    host: str = ""
    port: int = DEFAULT_DB_PORT
    user: str = ""
    password: str = field(default="", repr=False)
    database: str = ""
    dsn: str = field(default="", repr=False)
    pool: PoolLimits = field(default_factory=PoolLimits)
    probes: list[ProbeDefinition] = field(default_factory=list)
    handle: DatabaseHandle | None = field(default=None, repr=False, compare=False)


@dataclass
class ExporterConfig:
    """Everything read from the configuration file at startup."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    query_timeout: int = DEFAULT_QUERY_TIMEOUT
    targets: list[DatabaseTarget] = field(default_factory=list)

    def target(self, name: str) -> DatabaseTarget | None:
        return next((t for t in self.targets if t.name == name), None)


# ── Registry ─────────────────────────────────────────────────────────────────


class TargetRegistry:
    """Loads and caches the exporter configuration."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_CONFIG_PATH
        self._config: ExporterConfig | None = None

    def load(self, force: bool = False) -> ExporterConfig:
        """Parse the YAML file. Raises ConfigError on anything unusable."""
        if self._config is not None and not force:
            return self._config

        if not self._path.exists():
            raise ConfigError(f"Configuration file not found: {self._path}")
        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to parse {self._path}: {e}") from e

        self._config = parse_config(raw or {})
        logger.info(
            "Loaded %d targets with %d probes from %s",
            len(self._config.targets), len(self.all_probes()), self._path,
        )
        return self._config

    @property
    def config(self) -> ExporterConfig:
        return self.load()

    @property
    def targets(self) -> list[DatabaseTarget]:
        return self.config.targets

    def all_probes(self) -> list[tuple[DatabaseTarget, ProbeDefinition]]:
        """Return all (target, probe) pairs for the scheduler."""
        return [(t, p) for t in self.targets for p in t.probes]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the configuration with credentials masked."""
        return config_to_dict(self.config)


# ── Parsers ──────────────────────────────────────────────────────────────────


def _get(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _parse_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{what} is not a valid integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ConfigError(f"{what} is not a valid integer: {value!r}")


def _parse_probe(raw: dict[str, Any], target_name: str) -> ProbeDefinition:
    if not isinstance(raw, dict):
        raise ConfigError(f"Query entry for {target_name} must be a mapping")
    name = str(_get(raw, "name", default="")).strip()
    sql = str(_get(raw, "sql", default="")).strip()
    if not name:
        raise ConfigError(f"Query on {target_name} has no name")
    if not sql:
        raise ConfigError(f"Query {target_name}/{name} has no sql")

    interval = _parse_int(
        _get(raw, "interval", default=DEFAULT_INTERVAL_MINUTES), f"{target_name}/{name} interval",
    )
    if interval < 1:
        raise ConfigError(f"{target_name}/{name} interval must be at least 1 minute")

    mode_raw = str(_get(raw, "type", "mode", default="float")).strip().lower()
    mode = _MODE_ALIASES.get(mode_raw)
    if mode is None:
        raise ConfigError(f"{target_name}/{name} has unknown type {mode_raw!r}")

    return ProbeDefinition(name=name, sql=sql, interval_minutes=interval, mode=mode)


def _parse_target(raw: dict[str, Any]) -> DatabaseTarget:
    if not isinstance(raw, dict):
        raise ConfigError("Database entry must be a mapping")
    database = str(_get(raw, "database", default="")).strip()
    name = str(_get(raw, "name", default=database)).strip()
    if not name:
        raise ConfigError("Database entry needs a 'database' or 'name'")

    # Each limit is bound to its own field.
    max_idle = _parse_int(
        _get(raw, "maxidleconns", "max_idle_conns", default=DEFAULT_MAX_CONNS), f"{name} maxIdleConns",
    )
    max_open = _parse_int(
        _get(raw, "maxopenconns", "max_open_conns", default=DEFAULT_MAX_CONNS), f"{name} maxOpenConns",
    )
    if max_idle < 0 or max_open < 0:
        raise ConfigError(f"{name} pool limits must not be negative")

    probes: list[ProbeDefinition] = []
    for q in _get(raw, "queries", default=[]) or []:
        probe = _parse_probe(q, name)
        if any(p.name == probe.name for p in probes):
            raise ConfigError(f"Duplicate query name {probe.name!r} on {name}")
        probes.append(probe)

    return DatabaseTarget(
        name=name,
        host=str(_get(raw, "host", default="")),
        port=_parse_int(_get(raw, "port", default=DEFAULT_DB_PORT), f"{name} port"),
        user=str(_get(raw, "user", default="")),
        password=str(_get(raw, "password", default="")),
        database=database,
        dsn=str(_get(raw, "dsn", default="")),
        pool=PoolLimits(max_idle=max_idle, max_open=max_open),
        probes=probes,
    )


def parse_config(raw: dict[str, Any]) -> ExporterConfig:
    """Build an ExporterConfig from an already-decoded YAML document."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping")

    timeout = _parse_int(
        _get(raw, "querytimeout", "query_timeout", default=DEFAULT_QUERY_TIMEOUT), "querytimeout",
    )
    if timeout < 1:
        raise ConfigError("querytimeout must be at least 1 second")

    targets: list[DatabaseTarget] = []
    for entry in _get(raw, "databases", default=[]) or []:
        target = _parse_target(entry)
        if any(t.name == target.name for t in targets):
            raise ConfigError(f"Duplicate database {target.name!r}")
        targets.append(target)

    return ExporterConfig(
        host=str(_get(raw, "host", default=DEFAULT_HOST)),
        port=_parse_int(_get(raw, "port", default=DEFAULT_PORT), "port"),
        query_timeout=timeout,
        targets=targets,
    )


def config_to_dict(config: ExporterConfig) -> dict[str, Any]:
    return {
        "host": config.host,
        "port": config.port,
        "querytimeout": config.query_timeout,
        "databases": [
            {
                "name": t.name,
                "host": t.host,
                "port": t.port,
                "user": t.user,
                "password": "***" if t.password else "",
                "database": t.database,
                "dsn": "***" if t.dsn else "",
                "maxidleconns": t.pool.max_idle,
                "maxopenconns": t.pool.max_open,
                "queries": [
                    {
                        "name": p.name, "sql": p.sql,
                        "interval": p.interval_minutes, "type": p.mode.value,
                    }
                    for p in t.probes
                ],
            }
            for t in config.targets
        ],
    }
