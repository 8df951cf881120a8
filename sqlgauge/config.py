from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process configuration loaded from environment / .env file.

    Targets, probes and the listen address live in the exporter YAML;
    this only covers how the process itself runs.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Exporter YAML (databases, queries, host/port, query timeout)
    exporter_config: str = "config.yaml"

    # Logging
    log_level: str = "INFO"
    log_file: str = ""  # empty = stdout
    log_json: bool = False

    # Metric names: <namespace>_<subsystem>_<metric>
    metrics_namespace: str = "oracledb"
    metrics_subsystem: str = "exporter"


settings = Settings()
