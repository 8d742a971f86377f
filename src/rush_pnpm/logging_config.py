"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def level_from_argv(argv: list[str], default: str = "warning") -> str:
    """Pick the log level from ``--debug`` / ``--verbose`` on the command line.

    The flags are only peeked at; they still reach the package manager.
    """
    if "--debug" in argv:
        return "debug"
    if "--verbose" in argv:
        return "info"
    return default


def configure_logging(log_level: str = "warning", json_output: bool = False) -> None:
    """Configure structlog for structured logging.

    Args:
        log_level: Logging level string (debug/info/warning/error).
        json_output: If True, output JSON. If False, colored console.

    Output goes to stderr so the package manager's stdout stays parseable.
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def bind_invocation_context(verb: str | None, package_manager: str | None = None) -> None:
    """Bind the recognized verb to every log line of the current invocation."""
    ctx: dict[str, str] = {}
    if verb:
        ctx["verb"] = verb
    if package_manager:
        ctx["package_manager"] = package_manager
    structlog.contextvars.bind_contextvars(**ctx)


def clear_invocation_context() -> None:
    structlog.contextvars.clear_contextvars()
