"""web-observer entrypoint -- wires all components together and runs the daemon.

Usage:
    python main.py
    python main.py --home /path/to/home
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from aiohttp import web

from core.config import AppConfig, load_config
from core.duration import duration_seconds
from core.errors import FatalSetup
from core.models.tasks import Outcome
from core.result_log import ResultLog
from core.task_loader import find_task_file, load_task, load_tasks
from daemon.lifecycle import DaemonController
from daemon.pidfile import PidFile
from engine.pipeline import ExecutionPipeline
from plugins.extractors.selenium_browser import SeleniumExtractor
from plugins.inference.ollama import OllamaProvider
from scheduler.runner import Scheduler
from server import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application.

    Console output plus, when ``log_file`` is given, an append-only file.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
    # Quiet down noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("selenium").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="web-observer scheduled page summarizer")
    parser.add_argument(
        "--home",
        type=str,
        default=None,
        help="Home directory (default: ~/.web-observer)",
    )
    return parser.parse_args()


@dataclass
class Components:
    config: AppConfig
    results: ResultLog
    pipeline: ExecutionPipeline
    scheduler: Scheduler
    controller: DaemonController


def build_pipeline(config: AppConfig, results: ResultLog | None) -> ExecutionPipeline:
    inference_timeout = duration_seconds(config.pipeline.inference_timeout)
    return ExecutionPipeline(
        extractor=SeleniumExtractor(
            browser=config.extraction.browser,
            headless=config.extraction.headless,
        ),
        provider_factory=lambda host: OllamaProvider(host, timeout=inference_timeout),
        result_sink=results,
        max_retries=config.pipeline.max_retries,
        retry_delay=duration_seconds(config.pipeline.retry_delay),
        navigation_timeout=duration_seconds(config.pipeline.navigation_timeout),
        inference_attempts=config.pipeline.inference_attempts,
    )


def build_components(config: AppConfig) -> Components:
    """Create the result log, pipeline, scheduler and lifecycle controller."""
    results = ResultLog(config.result_log_path)
    pipeline = build_pipeline(config, results)
    scheduler = Scheduler(
        runner=pipeline.run,
        timezone=config.scheduler.timezone,
        heartbeat_interval=duration_seconds(config.scheduler.heartbeat_interval),
        allow_overlap=config.scheduler.allow_overlap,
    )
    controller = DaemonController(
        scheduler=scheduler,
        load_tasks=lambda: load_tasks(config.userscripts_path, config.ollama.default_host),
        pid_file=PidFile(config.pid_path),
        drain_timeout=duration_seconds(config.scheduler.shutdown_timeout),
    )
    return Components(
        config=config,
        results=results,
        pipeline=pipeline,
        scheduler=scheduler,
        controller=controller,
    )


async def run(config: AppConfig) -> None:
    """Run the daemon until SIGTERM/SIGINT."""
    logger = logging.getLogger("web_observer")
    components = build_components(config)

    runner: web.AppRunner | None = None
    if config.server.enabled:
        app = create_app(
            controller=components.controller,
            scheduler=components.scheduler,
            results=components.results,
        )
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, config.server.host, config.server.port)
        await site.start()
        logger.info(
            "Status API at http://%s:%d",
            config.server.host,
            config.server.port,
        )

    logger.info("State directory: %s", config.home_path)
    try:
        await components.controller.serve()
    finally:
        logger.info("Shutting down...")
        if runner is not None:
            await runner.cleanup()
        logger.info("Shutdown complete")


async def run_task_once(config: AppConfig, name: str) -> Outcome | None:
    """Run one task by name right away. None if no such task exists.

    Raises:
        InvalidInput: the definition file exists but is invalid.
    """
    path = find_task_file(config.userscripts_path, name)
    if path is None:
        return None
    task = load_task(path, config.ollama.default_host)
    pipeline = build_pipeline(config, ResultLog(config.result_log_path))
    scheduler = Scheduler(runner=pipeline.run, timezone=config.scheduler.timezone)
    return await scheduler.run_now(task)


def main() -> None:
    args = parse_args()
    try:
        config = load_config(home=args.home)
    except FatalSetup as exc:
        setup_logging("INFO")
        logging.getLogger("web_observer").error("%s", exc.message)
        raise SystemExit(1)

    setup_logging(config.logging.level, config.log_path)
    try:
        asyncio.run(run(config))
    except FatalSetup as exc:
        logging.getLogger("web_observer").error("%s", exc.message)
        raise SystemExit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
