"""End-to-end control flow for one rush-pnpm invocation."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from rush_pnpm.config import RushConfiguration
from rush_pnpm.environment import merge_environment
from rush_pnpm.errors import AlreadyReportedError, InvocationError, RushPnpmError
from rush_pnpm.logging_config import bind_invocation_context
from rush_pnpm.policy import Classification, Decision, classify
from rush_pnpm.spawn import Spawner, spawn_sync
from rush_pnpm.sync import run_post_invocation
from rush_pnpm.terminal import Terminal

logger = structlog.get_logger(__name__)

FAILURE_EXIT_STATUS = 1


@dataclass
class InvocationOutcome:
    exit_status: int = FAILURE_EXIT_STATUS
    failure_reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class RushPnpmInvocation:
    """Classifies the arguments, runs PNPM and performs post-invocation sync.

    Rejections and spawn failures are raised as :class:`AlreadyReportedError`
    and :class:`InvocationError`; a completed spawn always produces an
    :class:`InvocationOutcome`, whatever the child's exit status.
    """

    def __init__(
        self,
        config: RushConfiguration,
        terminal: Terminal,
        *,
        spawner: Spawner = spawn_sync,
        base_environment: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._terminal = terminal
        self._spawner = spawner
        self._base_environment = base_environment

    def execute(self, args: list[str]) -> InvocationOutcome:
        classification = self.validate(args)
        outcome = self._run(args)
        if outcome.succeeded:
            try:
                run_post_invocation(classification.verb, self._config, self._terminal)
            except OSError as exc:
                raise RushPnpmError(
                    f'PNPM succeeded but synchronizing the "{classification.verb}" results failed: {exc}'
                ) from exc
        return outcome

    def validate(self, args: list[str]) -> Classification:
        """Classify *args* and report the result; raise if rejected."""
        classification = classify(args)
        bind_invocation_context(classification.verb, self._config.package_manager)
        self._report(classification)
        if classification.rejected:
            raise AlreadyReportedError(classification.diagnostic)
        return classification

    def _report(self, classification: Classification) -> None:
        terminal = self._terminal
        if classification.decision == Decision.REJECT:
            terminal.write_error_line(terminal.wrap(classification.diagnostic) + "\n")
            if classification.advisory:
                terminal.write_hint_line(classification.advisory)
        elif classification.decision == Decision.ALLOW_WITH_WARNING:
            terminal.write_warning_line(terminal.wrap(classification.diagnostic) + "\n")
            terminal.write_warning_line(classification.advisory + "\n")

    def _run(self, args: list[str]) -> InvocationOutcome:
        outcome = InvocationOutcome()
        config = self._config
        env = merge_environment(
            os.environ if self._base_environment is None else self._base_environment,
            workspace_folder=config.common_temp_folder,
            store_path=config.pnpm_store_path,
            overrides=config.pnpm_options.environment_variables,
        )

        result = self._spawner(config.package_manager_tool_filename, args, env)
        if result.error is not None:
            raise InvocationError(f"Failed to invoke PNPM: {result.error}")
        if result.status is None:
            raise InvocationError("Failed to invoke PNPM: Spawn completed without an exit code")

        outcome.exit_status = result.status
        if not outcome.succeeded:
            outcome.failure_reason = f"PNPM exited with status {result.status}"
        return outcome
