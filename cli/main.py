"""web-observer CLI -- the `wo` command.

Usage:
    wo start              Start the daemon in the background
    wo stop               Stop the daemon
    wo status             Show daemon status
    wo reload             Re-read every task definition (starts the daemon if needed)
    wo run <name>         Run one task now and print the outcome
    wo list               List task definitions and their schedules
    wo daemon             Run the daemon in the foreground
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from core.config import AppConfig, load_config
from core.errors import FatalSetup, InvalidInput


def _load(args: argparse.Namespace) -> AppConfig:
    try:
        return load_config(home=args.home)
    except FatalSetup as exc:
        print(f"  {exc.message}")
        sys.exit(1)


def cmd_start(args: argparse.Namespace) -> None:
    """Start the daemon as a detached child process."""
    from daemon.supervisor import start_daemon
    from main import setup_logging

    config = _load(args)
    setup_logging("WARNING", config.log_path)
    sys.exit(start_daemon(config))


def cmd_stop(args: argparse.Namespace) -> None:
    from daemon.supervisor import stop_daemon
    from main import setup_logging

    config = _load(args)
    setup_logging("WARNING", config.log_path)
    sys.exit(stop_daemon(config))


def cmd_reload(args: argparse.Namespace) -> None:
    from daemon.supervisor import reload_daemon
    from main import setup_logging

    config = _load(args)
    setup_logging("WARNING", config.log_path)
    sys.exit(reload_daemon(config))


def cmd_status(args: argparse.Namespace) -> None:
    """Show daemon status and where things live."""
    from cli.banner import print_banner
    from core.task_loader import task_files
    from daemon.supervisor import daemon_status

    print_banner()
    config = _load(args)

    print(f"  Home:        {config.home_path}")
    print(f"  Userscripts: {config.userscripts_path} ({len(task_files(config.userscripts_path))} files)")
    print(f"  Results:     {config.result_log_path}")
    print(f"  Log:         {config.log_path}")
    print()
    code = daemon_status(config)
    print()
    sys.exit(code)


def cmd_run(args: argparse.Namespace) -> None:
    """Run one task now. Task failures still exit 0; the outcome is printed."""
    from main import run_task_once, setup_logging

    config = _load(args)
    setup_logging(config.logging.level, config.log_path)

    try:
        outcome = asyncio.run(run_task_once(config, args.name))
    except InvalidInput as exc:
        print(f"  Invalid task definition: {exc.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    if outcome is None:
        print(f"  Task '{args.name}' not found in {config.userscripts_path}")
        sys.exit(1)

    print(outcome.summary())


def cmd_list(args: argparse.Namespace) -> None:
    """List every definition file with its schedule or validation error."""
    from core.models.schedule import ScheduleRejection
    from core.schedule import parse_schedule
    from core.task_loader import load_task, task_files

    config = _load(args)
    paths = task_files(config.userscripts_path)
    if not paths:
        print(f"  No task definitions in {config.userscripts_path}")
        return

    print()
    for path in paths:
        try:
            task = load_task(path, config.ollama.default_host)
        except InvalidInput as exc:
            print(f"  {path.name:30s} INVALID: {exc.message}")
            continue
        schedule = parse_schedule(task.duration, config.scheduler.timezone)
        if isinstance(schedule, ScheduleRejection):
            when = f"NOT SCHEDULED: {schedule}"
        else:
            when = schedule.describe()
        print(f"  {task.name:30s} {when}")
    print()


def cmd_daemon(args: argparse.Namespace) -> None:
    """Run the daemon in the foreground (what `wo start` spawns)."""
    from main import run, setup_logging

    config = _load(args)
    setup_logging(config.logging.level, config.log_path)

    try:
        asyncio.run(run(config))
    except FatalSetup as exc:
        print(f"  {exc.message}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="wo",
        description="web-observer -- scheduled web page extraction and summarization",
    )
    parser.add_argument("--home", type=str, default=None, help="web-observer home directory")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("start", help="Start the daemon in the background")
    sub.add_parser("stop", help="Stop the daemon")
    sub.add_parser("status", help="Show daemon status")
    sub.add_parser("reload", help="Reload task definitions")

    run_parser = sub.add_parser("run", help="Run one task now")
    run_parser.add_argument("name", type=str, help="Task name or definition file name")

    sub.add_parser("list", help="List task definitions")
    sub.add_parser("daemon", help="Run the daemon in the foreground")

    return parser


def main() -> None:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    commands = {
        "start": cmd_start,
        "stop": cmd_stop,
        "status": cmd_status,
        "reload": cmd_reload,
        "run": cmd_run,
        "list": cmd_list,
        "daemon": cmd_daemon,
    }

    handler = commands.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
