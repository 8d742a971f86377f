"""Shared test fixtures."""

import json
import logging
from pathlib import Path

import pytest

from rush_pnpm.spawn import SpawnResult


@pytest.fixture(autouse=True)
def _clean_rush_environment(monkeypatch):
    """Keep the developer's RUSH_* variables out of the tests."""
    for name in ("RUSH_TEMP_FOLDER", "RUSH_PNPM_STORE_PATH", "RUSH_PNPM_LOG_LEVEL", "RUSH_PNPM_LOG_JSON"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """configure_logging() replaces the root handlers; put them back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def write_rush_json(root: Path, **overrides) -> Path:
    data = {
        "rushVersion": "5.100.0",
        "pnpmVersion": "8.6.0",
        "pnpmOptions": {"useWorkspaces": True},
        "projects": [],
    }
    data.update(overrides)
    path = root / "rush.json"
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def rush_workspace(tmp_path):
    """A Rush repo whose common/temp folder looks like "rush install" ran."""
    write_rush_json(tmp_path)
    temp = tmp_path / "common" / "temp"
    temp.mkdir(parents=True)
    (temp / "pnpm-workspace.yaml").write_text("packages:\n  - ../../apps/*\n", encoding="utf-8")
    binary = temp / "pnpm-local" / "node_modules" / ".bin" / "pnpm"
    binary.parent.mkdir(parents=True)
    binary.write_text("#!/bin/sh\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def rush_config(rush_workspace):
    from rush_pnpm.config import load_configuration

    return load_configuration(rush_workspace)


class FakeSpawner:
    """Records spawn calls instead of starting processes."""

    def __init__(self, result: SpawnResult | None = None) -> None:
        self.result = result or SpawnResult(status=0)
        self.calls: list[tuple[Path, list[str], dict[str, str]]] = []

    def __call__(self, executable, args, env):
        self.calls.append((Path(executable), list(args), dict(env)))
        return self.result


@pytest.fixture
def fake_spawner():
    return FakeSpawner()


@pytest.fixture
def make_spawner():
    return FakeSpawner
