from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from pathlib import Path
from typing import Optional, Sequence

from .activity import attach_log_file, configure_logging, detach_log_file
from .config import DEFAULT_SETTINGS, load_config
from .errors import ProvisionError
from .executors import LocalExecutor
from .preflight import PreflightChecker
from .prompts import ConsolePrompter
from .resolver import ConfigResolver
from .sequencer import Sequencer
from .steps import AUTORUN_ORDER, STEP_REGISTRY
from .types import Outcome, StepResult

logger = logging.getLogger(__name__)
activity = logging.getLogger("homeserver_provision.activity")

ANSI_ESCAPE = re.compile(r"\033\[[0-9;]*m")


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    ORANGE = "\033[38;5;208m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"


def echo(text: str, *, stream=None) -> None:
    """Print a line for the operator and mirror it, uncoloured, into the activity log."""
    print(text, file=stream or sys.stdout)
    activity.info(ANSI_ESCAPE.sub("", text).strip())


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Home server provisioning menu")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the KEY=value configuration source (default from settings: ./config.env)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=DEFAULT_SETTINGS,
        help=f"Path to the tool settings file (default: {DEFAULT_SETTINGS})",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--auto", action="store_true", help="Run the full setup without the menu")
    mode.add_argument(
        "--step",
        action="append",
        choices=sorted(STEP_REGISTRY),
        metavar="NAME",
        help="Run a single step by name (repeatable)",
    )
    mode.add_argument("--list-steps", action="store_true", help="List step names and exit")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without executing")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level for the console (default: INFO)",
    )
    return parser.parse_args(argv)


def list_steps() -> list[str]:
    lines = []
    for name, cls in STEP_REGISTRY.items():
        marker = "*" if name in AUTORUN_ORDER else " "
        lines.append(f"{marker} {name:<14} {cls.title}")
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    if args.list_steps:
        for line in list_steps():
            print(line)
        return 0

    configure_logging(args.log_level)
    log_handler = None
    try:
        settings = load_config(args.settings)
        config_path = args.config or settings.config_file
        executor = LocalExecutor(dry_run=args.dry_run)
        prompter = ConsolePrompter()
        checker = PreflightChecker(
            executor,
            required_commands=settings.required_commands,
            default_interface=settings.default_interface,
            net_class_dir=settings.net_class_dir,
        )
        checker.check_privilege()
        log_handler = attach_log_file(settings.log_file)
        logger.info("Starting home server setup")

        resolver = ConfigResolver(
            config_path,
            executor,
            prompter,
            environment_file=settings.environment_file,
        )
        config = resolver.resolve()
        readiness = checker.check(config)
        logger.info("Using interface %s, admin user %s", readiness.interface, readiness.user.name)

        summary = Summary()

        def report(result: StepResult) -> None:
            summary.add(result)
            echo(format_result(result))

        sequencer = Sequencer(config, settings, executor, prompter, reporter=report)
        if args.auto:
            sequencer.run_auto()
        elif args.step:
            for name in args.step:
                sequencer.run_step(name)
        else:
            sequencer.menu()
        echo(summary.render())
        return 0
    except ProvisionError as exc:
        logger.debug("fatal", exc_info=True)
        echo(colorize(str(exc), Ansi.RED), stream=sys.stderr)
        return 1
    except ValueError as exc:
        # Malformed configuration source or settings file.
        echo(colorize(f"Configuration invalid: {exc}", Ansi.RED), stream=sys.stderr)
        return 1
    except KeyboardInterrupt:
        echo(colorize("\nInterrupted.", Ansi.YELLOW), stream=sys.stderr)
        return 130
    finally:
        detach_log_file(log_handler)


def format_result(result: StepResult) -> str:
    if result.outcome is Outcome.PRECONDITION_NOT_MET:
        status, color = "precondition-not-met", Ansi.ORANGE
    elif result.failed:
        status, color = "failed", Ansi.RED
    elif result.outcome is Outcome.SKIPPED:
        status, color = "skipped", Ansi.YELLOW
    elif result.changed:
        status, color = "changed", Ansi.GREEN
    else:
        status, color = "ok", Ansi.BLUE
    return colorize(f"{result.step} {status} - {result.details}", color)


class Summary:
    def __init__(self) -> None:
        self.changed = 0
        self.ok = 0
        self.skipped = 0
        self.failures = 0

    def add(self, result: StepResult) -> None:
        if result.failed:
            self.failures += 1
        elif result.outcome is Outcome.SKIPPED:
            self.skipped += 1
        elif result.changed:
            self.changed += 1
        else:
            self.ok += 1

    def render(self) -> str:
        parts = [
            f"Changed: {self.changed}",
            f"Ok: {self.ok}",
            f"Skipped: {self.skipped}",
            f"Failures: {self.failures}",
        ]
        text = " | ".join(parts)
        color = Ansi.GREEN if self.failures == 0 else Ansi.RED
        return colorize(text, color)


if __name__ == "__main__":
    raise SystemExit(main())
