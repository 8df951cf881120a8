"""HTTP routes.

Endpoints:
  GET  /metrics                   Prometheus text exposition of all gauges
  GET  /healthz                   process liveness
  GET  /api/targets               configured databases/queries + latest outcome
  POST /api/targets/{name}/run    run all queries of one database now
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/metrics")
def metrics(request: Request) -> Response:
    sink = request.app.state.sink
    return Response(content=sink.render(), media_type=sink.content_type)


@router.get("/healthz")
def healthz(request: Request) -> dict[str, Any]:
    scheduler = getattr(request.app.state, "scheduler", None)
    return {"status": "ok", "scheduler_running": bool(scheduler and scheduler.running)}


@router.get("/api/targets")
def list_targets(request: Request) -> dict[str, Any]:
    """List every database with its queries and what the last run produced."""
    config = request.app.state.config
    runner = getattr(request.app.state, "runner", None)

    targets = []
    for t in config.targets:
        probes = []
        for p in t.probes:
            outcome = runner.last_outcome(t.name, p.name) if runner else None
            probes.append({
                "name": p.name,
                "interval_minutes": p.interval_minutes,
                "type": p.mode.value,
                "last": outcome.to_dict() if outcome else None,
            })
        targets.append({
            "name": t.name,
            "connected": t.handle is not None and not t.handle.closed,
            "queries": probes,
        })
    return {"targets": targets}


@router.post("/api/targets/{name}/run")
async def run_target(name: str, request: Request) -> dict[str, Any]:
    """Trigger an immediate run of one database's queries."""
    config = request.app.state.config
    if config.target(name) is None:
        raise HTTPException(404, f"Unknown database: {name}")

    scheduler = request.app.state.scheduler
    ran = await scheduler.run_target_probes(name)
    logger.info("Manual run of %s: %d queries executed", name, ran)
    return {"database": name, "executed": ran}
