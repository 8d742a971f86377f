"""Rush workspace configuration as seen by rush-pnpm.

Reads ``rush.json`` (and ``common/config/rush/pnpm-config.json`` when present),
validates both through Pydantic, and derives the folder layout the wrapper
needs: the common temp folder, the local PNPM binary, the store, and the
temporary vs. committed locations of patches and the shrinkwrap file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import json5
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from rush_pnpm.errors import AlreadyReportedError, ConfigurationError
from rush_pnpm.terminal import Terminal

logger = structlog.get_logger(__name__)

RUSH_JSON_FILENAME = "rush.json"
PNPM_CONFIG_FILENAME = "pnpm-config.json"
PNPM_WORKSPACE_FILENAME = "pnpm-workspace.yaml"
PNPM_PATCHES_FOLDER_NAME = "patches"
PNPM_SHRINKWRAP_FILENAME = "pnpm-lock.yaml"
PNPM_STORE_FOLDER_NAME = "pnpm-store"

INSTALL_HINT = 'Do you need to run "rush install" or "rush update"?'


class RushEnvironment(BaseSettings):
    """Environment variables that influence the workspace layout."""

    temp_folder: str | None = None
    pnpm_store_path: str | None = None
    pnpm_log_level: str = "warning"
    pnpm_log_json: bool = False

    model_config = {
        "env_prefix": "RUSH_",
    }


class EnvironmentVariable(BaseModel):
    """One entry of ``environmentVariables`` in the PNPM options."""

    value: str
    override: bool = False


class PnpmOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    use_workspaces: bool = Field(False, alias="useWorkspaces")
    pnpm_store: Literal["local", "global"] = Field("local", alias="pnpmStore")
    environment_variables: dict[str, EnvironmentVariable] = Field(
        default_factory=dict, alias="environmentVariables"
    )


class RushJson(BaseModel):
    """The subset of rush.json that rush-pnpm reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pnpm_version: str | None = Field(None, alias="pnpmVersion")
    npm_version: str | None = Field(None, alias="npmVersion")
    yarn_version: str | None = Field(None, alias="yarnVersion")
    pnpm_options: PnpmOptions = Field(default_factory=PnpmOptions, alias="pnpmOptions")

    @model_validator(mode="after")
    def _exactly_one_package_manager(self) -> RushJson:
        declared = [v for v in (self.pnpm_version, self.npm_version, self.yarn_version) if v]
        if len(declared) != 1:
            raise ValueError(
                'rush.json must specify exactly one of "pnpmVersion", "npmVersion" or "yarnVersion"'
            )
        return self

    @property
    def package_manager(self) -> Literal["pnpm", "npm", "yarn"]:
        if self.pnpm_version:
            return "pnpm"
        if self.npm_version:
            return "npm"
        return "yarn"


class RushConfiguration(BaseModel):
    """Resolved workspace configuration with derived paths."""

    rush_json_folder: Path
    package_manager: Literal["pnpm", "npm", "yarn"]
    pnpm_options: PnpmOptions = Field(default_factory=PnpmOptions)
    pnpm_options_source: Path | None = None
    temp_folder_override: Path | None = None
    store_path_override: Path | None = None

    # ── Folders ──────────────────────────────────────────────────────────

    @property
    def common_folder(self) -> Path:
        return self.rush_json_folder / "common"

    @property
    def common_rush_config_folder(self) -> Path:
        return self.common_folder / "config" / "rush"

    @property
    def common_temp_folder(self) -> Path:
        return self.temp_folder_override or self.common_folder / "temp"

    # ── Package manager ──────────────────────────────────────────────────

    @property
    def package_manager_tool_filename(self) -> Path:
        pm = self.package_manager
        return self.common_temp_folder / f"{pm}-local" / "node_modules" / ".bin" / pm

    @property
    def pnpm_workspace_file(self) -> Path:
        return self.common_temp_folder / PNPM_WORKSPACE_FILENAME

    @property
    def pnpm_store_path(self) -> Path | None:
        """Store directory handed to PNPM, or None to use its global store."""
        if self.store_path_override:
            return self.store_path_override
        if self.pnpm_options.pnpm_store == "local":
            return self.common_temp_folder / PNPM_STORE_FOLDER_NAME
        return None

    # ── Patches and shrinkwrap ───────────────────────────────────────────

    @property
    def temp_patches_folder(self) -> Path:
        return self.common_temp_folder / PNPM_PATCHES_FOLDER_NAME

    @property
    def committed_patches_folder(self) -> Path:
        return self.common_folder / "pnpm" / PNPM_PATCHES_FOLDER_NAME

    @property
    def temp_shrinkwrap_filename(self) -> Path:
        return self.common_temp_folder / PNPM_SHRINKWRAP_FILENAME

    @property
    def committed_shrinkwrap_filename(self) -> Path:
        return self.common_rush_config_folder / PNPM_SHRINKWRAP_FILENAME


def find_rush_json(start: Path | None = None) -> Path:
    """Walk up from *start* (default cwd) looking for ``rush.json``.

    Raises ConfigurationError if none is found.
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / RUSH_JSON_FILENAME
        if candidate.is_file():
            return candidate
    raise ConfigurationError(
        'The "rush-pnpm" command must be executed in a folder that is under a Rush workspace folder',
        hint=f"No {RUSH_JSON_FILENAME} was found from {current} up to the filesystem root.",
    )


def _read_json(path: Path) -> dict:
    try:
        data = json5.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a JSON object in {path}")
    return data


def load_configuration(
    start: Path | None = None,
    environment: RushEnvironment | None = None,
) -> RushConfiguration:
    """Locate and load the Rush configuration for the current workspace."""
    rush_json_path = find_rush_json(start)
    root = rush_json_path.parent

    try:
        env = environment or RushEnvironment()
        rush_json = RushJson.model_validate(_read_json(rush_json_path))

        pnpm_options = rush_json.pnpm_options
        options_source = rush_json_path
        pnpm_config_path = root / "common" / "config" / "rush" / PNPM_CONFIG_FILENAME
        if pnpm_config_path.is_file():
            pnpm_options = PnpmOptions.model_validate(_read_json(pnpm_config_path))
            options_source = pnpm_config_path
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid Rush configuration: {exc}") from exc

    if env.pnpm_store_path and not Path(env.pnpm_store_path).is_absolute():
        raise ConfigurationError(
            f"The RUSH_PNPM_STORE_PATH environment variable must be an absolute path: {env.pnpm_store_path}",
            hint="Unset RUSH_PNPM_STORE_PATH or point it at an absolute folder.",
        )

    config = RushConfiguration(
        rush_json_folder=root,
        package_manager=rush_json.package_manager,
        pnpm_options=pnpm_options,
        pnpm_options_source=options_source,
        temp_folder_override=Path(env.temp_folder).resolve() if env.temp_folder else None,
        store_path_override=Path(env.pnpm_store_path) if env.pnpm_store_path else None,
    )
    logger.debug(
        "configuration_loaded",
        rush_json=str(rush_json_path),
        package_manager=config.package_manager,
        pnpm_options_source=str(options_source),
    )
    return config


def check_prerequisites(config: RushConfiguration, terminal: Terminal) -> None:
    """Verify the workspace is ready for rush-pnpm, in a fixed order.

    Raises ConfigurationError for setup problems the top-level handler should
    report, or AlreadyReportedError after writing the diagnostic itself.
    """
    if config.package_manager != "pnpm":
        raise ConfigurationError(
            'The "rush-pnpm" command requires your rush.json to be configured to use the PNPM package manager',
            hint='Set "pnpmVersion" in rush.json to use PNPM.',
        )

    if not config.pnpm_options.use_workspaces:
        source = config.pnpm_options_source.name if config.pnpm_options_source else RUSH_JSON_FILENAME
        raise ConfigurationError(
            f'The "rush-pnpm" command requires the "useWorkspaces" setting to be enabled in {source}',
            hint=f'Set "useWorkspaces": true in {source}.',
        )

    if not config.pnpm_workspace_file.exists():
        terminal.write_error_line("Error: The PNPM workspace file has not been generated:")
        terminal.write_error_line(f"  {config.pnpm_workspace_file}\n")
        terminal.write_hint_line(INSTALL_HINT)
        raise AlreadyReportedError()

    if not config.package_manager_tool_filename.exists():
        terminal.write_error_line("Error: The PNPM local binary has not been installed yet.")
        terminal.write_hint_line("\n" + INSTALL_HINT)
        raise AlreadyReportedError()
