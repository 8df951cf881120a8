"""FastAPI server exposing the metrics endpoint and probe status."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sqlgauge.api.routes import router
from sqlgauge.config import settings
from sqlgauge.metrics.sink import MetricSink
from sqlgauge.probes.connection import ConnectionHealth, close_targets, open_targets
from sqlgauge.probes.runner import QueryRunner
from sqlgauge.probes.scheduler import ProbeScheduler
from sqlgauge.targets.registry import ExporterConfig

logger = logging.getLogger(__name__)


def build_pipeline(
    config: ExporterConfig,
    sink: MetricSink,
    health: ConnectionHealth | None = None,
) -> tuple[QueryRunner, ProbeScheduler]:
    """Wire health check, runner and scheduler around one shared sink."""
    health = health or ConnectionHealth(sink)
    runner = QueryRunner(health, sink, query_timeout=config.query_timeout)
    scheduler = ProbeScheduler(config.targets, runner)
    return runner, scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open connections and start the probe loops; tear down on shutdown."""
    config: ExporterConfig = app.state.config
    sink: MetricSink = app.state.sink
    health: ConnectionHealth = app.state.health or ConnectionHealth(sink)

    open_targets(config.targets, opener=health.opener)
    runner, scheduler = build_pipeline(config, sink, health)
    app.state.runner = runner
    app.state.scheduler = scheduler

    if app.state.autostart:
        try:
            await scheduler.start()
        except Exception:
            logger.exception("Probe scheduler failed to start")

    yield

    await scheduler.stop()
    close_targets(config.targets)


def create_app(
    config: ExporterConfig,
    sink: MetricSink | None = None,
    health: ConnectionHealth | None = None,
    autostart: bool = True,
) -> FastAPI:
    app = FastAPI(
        title="sqlgauge - SQL metrics exporter",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.sink = sink or MetricSink(
        namespace=settings.metrics_namespace, subsystem=settings.metrics_subsystem,
    )
    app.state.health = health
    app.state.autostart = autostart

    app.include_router(router)
    return app
