"""Post-invocation synchronization, keyed by PNPM verb.

Handlers run only after the package manager exited with status 0. New verbs
are added by decorating a function with :func:`post_invocation`.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path

import structlog

from rush_pnpm.config import RushConfiguration
from rush_pnpm.terminal import Terminal

logger = structlog.get_logger(__name__)

PostInvocationHandler = Callable[[RushConfiguration, Terminal], None]

POST_INVOCATION_HANDLERS: dict[str, PostInvocationHandler] = {}


def post_invocation(verb: str) -> Callable[[PostInvocationHandler], PostInvocationHandler]:
    """Register the decorated function as the post-invocation handler for *verb*."""

    def decorator(handler: PostInvocationHandler) -> PostInvocationHandler:
        POST_INVOCATION_HANDLERS[verb] = handler
        return handler

    return decorator


def run_post_invocation(verb: str | None, config: RushConfiguration, terminal: Terminal) -> bool:
    """Run the handler registered for *verb*. Returns True if one ran."""
    if not verb:
        return False
    handler = POST_INVOCATION_HANDLERS.get(verb)
    if handler is None:
        return False
    logger.debug("post_invocation_sync", verb=verb, handler=handler.__name__)
    handler(config, terminal)
    return True


# ── File-sync primitives ─────────────────────────────────────────────────


def copy_files(source: Path, destination: Path) -> None:
    """Recursively copy *source* into *destination*, overwriting files."""
    shutil.copytree(source, destination, dirs_exist_ok=True)


def sync_file(source: Path, destination: Path) -> None:
    """Make *destination* match *source*: copy it, or delete it if *source* is gone."""
    if source.exists():
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    elif destination.exists():
        destination.unlink()


# ── Handlers ─────────────────────────────────────────────────────────────


@post_invocation("patch-commit")
def commit_patches(config: RushConfiguration, terminal: Terminal) -> None:
    """Move ``pnpm patch-commit`` output from common/temp into committed folders."""
    temp_patches = config.temp_patches_folder
    if not temp_patches.exists():
        logger.debug("no_temp_patches", folder=str(temp_patches))
        return

    # Patches first; the shrinkwrap sync is what makes the patch set "committed".
    copy_files(temp_patches, config.committed_patches_folder)
    sync_file(config.temp_shrinkwrap_filename, config.committed_shrinkwrap_filename)

    terminal.write_warning_line(
        'Rush refreshed the pnpm patch files in the "common/pnpm/patches" folder and shrinkwrap file.\n'
        "  Please commit this change to Git."
    )
