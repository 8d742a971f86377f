"""Synchronous child-process spawning with inherited standard streams."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SpawnResult:
    """What the spawn reported.

    ``status`` is None when the child ended without an exit code (killed by a
    signal). ``error`` is set when the process could not be started at all.
    """

    status: int | None = None
    error: Exception | None = None


Spawner = Callable[[Path | str, Sequence[str], Mapping[str, str]], SpawnResult]


def _wait_through_interrupts(process: subprocess.Popen) -> int:
    # The child shares our terminal and gets the same SIGINT; it decides
    # when to exit, we only wait for it.
    while True:
        try:
            return process.wait()
        except KeyboardInterrupt:
            logger.debug("interrupt_forwarded_to_child", pid=process.pid)


def spawn_sync(
    executable: Path | str,
    args: Sequence[str],
    env: Mapping[str, str],
) -> SpawnResult:
    """Run *executable* to completion; stdin/stdout/stderr are not captured."""
    command = [str(executable), *args]
    logger.info("spawning_package_manager", command=command)
    try:
        process = subprocess.Popen(command, env=dict(env))
    except (OSError, ValueError) as exc:
        logger.debug("spawn_failed", error=str(exc))
        return SpawnResult(error=exc)

    returncode = _wait_through_interrupts(process)
    logger.info("package_manager_exited", returncode=returncode)
    if returncode < 0:
        return SpawnResult(status=None)
    return SpawnResult(status=returncode)
