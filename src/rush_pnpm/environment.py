"""Builds the environment handed to the PNPM child process."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import structlog

from rush_pnpm.config import EnvironmentVariable

logger = structlog.get_logger(__name__)

WORKSPACE_DIR_VARIABLE = "NPM_CONFIG_WORKSPACE_DIR"
STORE_DIR_VARIABLE = "NPM_CONFIG_STORE_DIR"


def merge_environment(
    base: Mapping[str, str],
    workspace_folder: Path | str,
    store_path: Path | str | None = None,
    overrides: Mapping[str, EnvironmentVariable] | None = None,
) -> dict[str, str]:
    """Return the effective child environment.

    The workspace folder (and the store path, when given) always win. Declared
    *overrides* are applied in order: ``override=True`` entries replace any
    existing value, the rest only fill in keys that are still unset. *base* is
    never modified.
    """
    env = dict(base)
    env[WORKSPACE_DIR_VARIABLE] = str(workspace_folder)
    if store_path:
        env[STORE_DIR_VARIABLE] = str(store_path)

    skipped: list[str] = []
    for key, entry in (overrides or {}).items():
        if entry.override or key not in env:
            env[key] = entry.value
        else:
            skipped.append(key)

    logger.debug(
        "environment_merged",
        workspace_dir=env[WORKSPACE_DIR_VARIABLE],
        store_dir=env.get(STORE_DIR_VARIABLE),
        applied=sorted(set(overrides or {}) - set(skipped)),
        kept_existing=skipped,
    )
    return env
