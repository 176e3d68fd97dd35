"""Lightweight aiohttp status API for the daemon.

Read-only: daemon state, live task handles, and the tail of the result log.
Enabled with ``server.enabled: true`` in config.yaml.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from core.result_log import ResultLog
    from daemon.lifecycle import DaemonController
    from scheduler.runner import Scheduler

logger = logging.getLogger(__name__)

MAX_RESULTS = 500


def create_app(
    controller: DaemonController,
    scheduler: Scheduler,
    results: ResultLog,
) -> web.Application:
    """Create and configure the aiohttp application."""
    app = web.Application()

    # Store references for route handlers
    app["controller"] = controller
    app["scheduler"] = scheduler
    app["results"] = results

    app.router.add_get("/health", handle_health)
    app.router.add_get("/state/tasks", handle_get_tasks)
    app.router.add_get("/state/results", handle_get_results)

    return app


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

async def handle_health(request: web.Request) -> web.Response:
    """GET /health -- daemon state and handle count."""
    controller: DaemonController = request.app["controller"]
    scheduler: Scheduler = request.app["scheduler"]
    return web.json_response({
        "status": "ok",
        "state": controller.state.value,
        "pid": os.getpid(),
        "handles": len(scheduler.handles),
        "inflight": scheduler.inflight,
    })


async def handle_get_tasks(request: web.Request) -> web.Response:
    """GET /state/tasks -- every live handle with its time to next fire."""
    scheduler: Scheduler = request.app["scheduler"]
    return web.json_response(scheduler.snapshot())


async def handle_get_results(request: web.Request) -> web.Response:
    """GET /state/results?limit=N -- most recent outcomes, oldest first."""
    results: ResultLog = request.app["results"]

    try:
        limit = int(request.query.get("limit", "20"))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)
    if limit < 1:
        return web.json_response({"error": "limit must be positive"}, status=400)

    return web.json_response(results.tail(min(limit, MAX_RESULTS)))
