"""Entry point for the sqlgauge exporter (the `sqlgauge` console script)."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.panel import Panel

from sqlgauge.api.server import build_pipeline, create_app
from sqlgauge.config import settings
from sqlgauge.errors import ConfigError
from sqlgauge.logs import configure_logging
from sqlgauge.metrics.sink import MetricSink
from sqlgauge.probes.connection import close_targets, open_targets
from sqlgauge.targets.registry import ExporterConfig, TargetRegistry

console = Console()
logger = logging.getLogger(__name__)


def load_config(path: str) -> ExporterConfig:
    """Load the exporter YAML or exit non-zero."""
    try:
        return TargetRegistry(Path(path)).load()
    except ConfigError as e:
        logger.critical("Fatal error on reading configuration: %s", e)
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(1)


def run_server(config: ExporterConfig) -> None:
    """Serve /metrics and run every query on its schedule."""
    probes = sum(len(t.probes) for t in config.targets)
    console.print(
        Panel.fit(
            f"[bold]sqlgauge[/bold]\n"
            f"Listen:    {config.host}:{config.port}\n"
            f"Databases: {len(config.targets)}\n"
            f"Queries:   {probes}\n"
            f"Timeout:   {config.query_timeout}s",
            title="sqlgauge serve",
            border_style="green",
        )
    )
    logger.info("listen: %s:%s", config.host, config.port)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=settings.log_level.lower(),
    )


def run_check(registry_path: str) -> None:
    """Validate the configuration and print it with credentials masked."""
    registry = TargetRegistry(Path(registry_path))
    try:
        data = registry.to_dict()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(1)
    print(json.dumps(data, indent=4))


def run_once(config: ExporterConfig) -> None:
    """Run every query once and print the resulting exposition."""
    sink = MetricSink(namespace=settings.metrics_namespace, subsystem=settings.metrics_subsystem)
    _, scheduler = build_pipeline(config, sink)
    open_targets(config.targets)

    async def _run() -> int:
        try:
            return await scheduler.run_all_now()
        finally:
            await scheduler.stop()

    try:
        ran = asyncio.run(_run())
    finally:
        close_targets(config.targets)
    logger.info("Executed %d queries", ran)
    sys.stdout.write(sink.render().decode("utf-8"))


def main() -> None:
    parser = argparse.ArgumentParser(description="SQL query metrics exporter")
    parser.add_argument(
        "--config", default=settings.exporter_config,
        help=f"exporter YAML (default: {settings.exporter_config})",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Start the metrics server and query scheduler")
    sub.add_parser("check", help="Validate the configuration and print it")
    sub.add_parser("once", help="Run every query once and print the metrics")

    args = parser.parse_args()
    configure_logging(settings.log_level, settings.log_file, settings.log_json)

    if args.command in (None, "serve"):
        run_server(load_config(args.config))
    elif args.command == "check":
        run_check(args.config)
    elif args.command == "once":
        run_once(load_config(args.config))


if __name__ == "__main__":
    main()
