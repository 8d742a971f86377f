"""rush-pnpm CLI: runs the workspace's local PNPM with Rush's policy checks.

Usage:
  rush-pnpm [--rush-skip-checks] <verb> [verb-args...]
  rush-pnpm [-h | --help | -?]
  rush-pnpm -v | --version

Arguments are not parsed beyond the leading verb; everything is handed to
PNPM unchanged apart from the bypass option. The exit status is PNPM's own,
or 1 if the command was rejected or PNPM could not be run.
"""

from __future__ import annotations

import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from rush_pnpm.config import RushEnvironment, check_prerequisites, load_configuration
from rush_pnpm.errors import AlreadyReportedError, RushPnpmError
from rush_pnpm.invocation import InvocationOutcome, RushPnpmInvocation
from rush_pnpm.logging_config import clear_invocation_context, configure_logging, level_from_argv
from rush_pnpm.spawn import Spawner, spawn_sync
from rush_pnpm.terminal import Terminal

logger = structlog.get_logger(__name__)


def run(
    args: list[str],
    *,
    terminal: Terminal | None = None,
    environment: RushEnvironment | None = None,
    spawner: Spawner = spawn_sync,
    start: Path | None = None,
) -> InvocationOutcome:
    """Run one invocation and return its outcome; never raises RushPnpmError.

    This is the single place where errors are turned into output: anything
    already reported is silent here, everything else gets an ``ERROR:`` line.
    """
    terminal = terminal or Terminal()
    outcome = InvocationOutcome()
    try:
        config = load_configuration(start, environment)
        check_prerequisites(config, terminal)
        outcome = RushPnpmInvocation(config, terminal, spawner=spawner).execute(args)
    except AlreadyReportedError as exc:
        outcome.failure_reason = exc.message or "already reported"
    except RushPnpmError as exc:
        terminal.write_error_line("\n" + terminal.wrap("ERROR: " + exc.message))
        if exc.hint:
            terminal.write_hint_line(exc.hint)
        outcome.failure_reason = exc.message
    except KeyboardInterrupt:
        logger.info("interrupted")
        outcome.failure_reason = "interrupted"
    finally:
        clear_invocation_context()

    if outcome.failure_reason:
        logger.debug("invocation_failed", exit_status=outcome.exit_status, reason=outcome.failure_reason)
    return outcome


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else list(argv)

    try:
        environment = RushEnvironment()
    except ValidationError as exc:
        Terminal().write_error_line(f"ERROR: Invalid RUSH_* environment variable: {exc}")
        sys.exit(1)
    configure_logging(
        level_from_argv(args, environment.pnpm_log_level),
        json_output=environment.pnpm_log_json,
    )

    outcome = run(args, environment=environment)
    sys.exit(outcome.exit_status)


if __name__ == "__main__":
    main()
