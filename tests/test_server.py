from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp import test_utils

from core.errors import ErrorKind
from core.models.tasks import Failure, Result
from core.result_log import ResultLog
from daemon.lifecycle import DaemonController
from daemon.pidfile import PidFile
from fakes import make_task
from scheduler.runner import Scheduler
from server import create_app


async def _noop(task) -> None:
    return None


def test_status_routes(tmp_path: Path) -> None:
    results = ResultLog(tmp_path / "results.jsonl")
    results.record(Result(task_name="news", model="llama3", text="first"))
    results.record(Failure(
        task_name="news", kind=ErrorKind.EXTRACTION_FAILED, stage="extraction", message="timeout",
    ))

    async def scenario() -> None:
        scheduler = Scheduler(runner=_noop)
        controller = DaemonController(
            scheduler=scheduler,
            load_tasks=lambda: [make_task(name="lunch", duration="12.30")],
            pid_file=PidFile(tmp_path / "daemon.pid"),
        )
        await controller.start()

        app = create_app(controller=controller, scheduler=scheduler, results=results)
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/health")
            assert resp.status == 200
            health = await resp.json()
            assert health["state"] == "running"
            assert health["handles"] == 1

            resp = await client.get("/state/tasks")
            tasks = await resp.json()
            assert [t["name"] for t in tasks] == ["lunch"]
            assert tasks[0]["schedule"] == "daily"
            assert tasks[0]["seconds_until_next_fire"] >= 0

            resp = await client.get("/state/results", params={"limit": "1"})
            rows = await resp.json()
            assert len(rows) == 1
            assert rows[0]["status"] == "failure"
            assert rows[0]["kind"] == "ExtractionFailed"

            resp = await client.get("/state/results", params={"limit": "many"})
            assert resp.status == 400

        await controller.stop()

    asyncio.run(scenario())
