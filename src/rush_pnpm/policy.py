"""Argument classification: decides whether a PNPM command may run under Rush.

Only the leading verb is recognized; the rest of PNPM's command-line grammar
is never parsed. The checks are order-sensitive and must stay that way:
the bypass sentinel is honored as the very first token or directly after the
verb, and is rejected anywhere else.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

logger = structlog.get_logger(__name__)

RUSH_SKIP_CHECKS_PARAMETER = "--rush-skip-checks"

HELP_FLAGS = frozenset({"-h", "--help", "-?"})
VERSION_FLAGS = frozenset({"-v", "--version"})

_VERB_PATTERN = re.compile(r"[a-z]+([a-z0-9\-])*")

BYPASS_NOTICE = (
    f'To bypass this check, add "{RUSH_SKIP_CHECKS_PARAMETER}" as the very first command line option.'
)
RESYNC_NOTICE = '==> Consider running "rush install" or "rush update" afterwards.'


class Decision(StrEnum):
    ALLOW = "allow"
    ALLOW_WITH_WARNING = "allow_with_warning"
    REJECT = "reject"


class VerbPolicy(StrEnum):
    BLOCKED = "blocked"
    INSTALL = "install"
    STATE_MUTATING = "state_mutating"
    SAFE = "safe"
    UNKNOWN = "unknown"


# Synonyms are listed next to their canonical verb.
VERB_POLICIES: dict[str, VerbPolicy] = {
    # Blocked
    "import": VerbPolicy.BLOCKED,
    # Install family
    "add": VerbPolicy.INSTALL,
    "install": VerbPolicy.INSTALL,
    "i": VerbPolicy.INSTALL,
    "install-test": VerbPolicy.INSTALL,
    "it": VerbPolicy.INSTALL,
    # State mutating
    "link": VerbPolicy.STATE_MUTATING,
    "ln": VerbPolicy.STATE_MUTATING,
    "remove": VerbPolicy.STATE_MUTATING,
    "rm": VerbPolicy.STATE_MUTATING,
    "unlink": VerbPolicy.STATE_MUTATING,
    "update": VerbPolicy.STATE_MUTATING,
    "up": VerbPolicy.STATE_MUTATING,
    # Known safe
    "audit": VerbPolicy.SAFE,
    "exec": VerbPolicy.SAFE,
    "list": VerbPolicy.SAFE,
    "ls": VerbPolicy.SAFE,
    "outdated": VerbPolicy.SAFE,
    "pack": VerbPolicy.SAFE,
    "patch": VerbPolicy.SAFE,
    "patch-commit": VerbPolicy.SAFE,
    "prune": VerbPolicy.SAFE,
    "publish": VerbPolicy.SAFE,
    "rebuild": VerbPolicy.SAFE,
    "rb": VerbPolicy.SAFE,
    "root": VerbPolicy.SAFE,
    "run": VerbPolicy.SAFE,
    "start": VerbPolicy.SAFE,
    "store": VerbPolicy.SAFE,
    "test": VerbPolicy.SAFE,
    "t": VerbPolicy.SAFE,
    "why": VerbPolicy.SAFE,
}


@dataclass(frozen=True)
class Classification:
    """Outcome of :func:`classify` for one argument list.

    ``diagnostic`` explains a rejection or warning; ``advisory`` is the
    follow-up line (bypass notice or resync reminder). ``verb`` is only set
    when post-invocation handling may need it.
    """

    decision: Decision
    verb: str | None = None
    diagnostic: str = ""
    advisory: str = ""

    @property
    def rejected(self) -> bool:
        return self.decision == Decision.REJECT


def policy_for(verb: str) -> VerbPolicy:
    return VERB_POLICIES.get(verb, VerbPolicy.UNKNOWN)


# ── Per-policy outcomes ──────────────────────────────────────────────────


def _blocked(verb: str) -> Classification:
    return Classification(
        decision=Decision.REJECT,
        verb=verb,
        diagnostic=f'Error: The "pnpm {verb}" command is known to be incompatible with Rush\'s environment.',
        advisory=BYPASS_NOTICE,
    )


def _install(verb: str) -> Classification:
    return Classification(
        decision=Decision.REJECT,
        verb=verb,
        diagnostic=(
            f'Error: The "pnpm {verb}" command is incompatible with Rush\'s environment.'
            ' Use the "rush install" or "rush update" commands instead.'
        ),
        advisory=BYPASS_NOTICE,
    )


def _state_mutating(verb: str) -> Classification:
    return Classification(
        decision=Decision.ALLOW_WITH_WARNING,
        verb=verb,
        diagnostic=(
            f'Warning: The "pnpm {verb}" command makes changes that may invalidate'
            " Rush's workspace state."
        ),
        advisory=RESYNC_NOTICE,
    )


def _safe(verb: str) -> Classification:
    return Classification(decision=Decision.ALLOW, verb=verb)


def _unknown(verb: str) -> Classification:
    return Classification(
        decision=Decision.REJECT,
        verb=verb,
        diagnostic=(
            f'Error: The "pnpm {verb}" command has not been tested with Rush\'s environment.'
            " It may be incompatible."
        ),
        advisory=BYPASS_NOTICE,
    )


_OUTCOMES: dict[VerbPolicy, Callable[[str], Classification]] = {
    VerbPolicy.BLOCKED: _blocked,
    VerbPolicy.INSTALL: _install,
    VerbPolicy.STATE_MUTATING: _state_mutating,
    VerbPolicy.SAFE: _safe,
    VerbPolicy.UNKNOWN: _unknown,
}


# ── Classification ───────────────────────────────────────────────────────


def classify(args: list[str]) -> Classification:
    """Classify *args* (the tokens after ``rush-pnpm``).

    *args* is modified in place when a correctly placed bypass sentinel is
    removed; nothing else is ever changed.
    """
    result = _classify(args)
    logger.debug(
        "arguments_classified",
        decision=str(result.decision),
        verb=result.verb,
        args=list(args),
    )
    return result


def _classify(args: list[str]) -> Classification:
    if args and args[0] == RUSH_SKIP_CHECKS_PARAMETER:
        del args[0]
        return Classification(decision=Decision.ALLOW)

    if not args:
        return Classification(decision=Decision.ALLOW)

    first_arg = args[0]

    if any(arg in HELP_FLAGS for arg in args):
        return Classification(decision=Decision.ALLOW)

    if len(args) == 1 and first_arg in VERSION_FLAGS:
        return Classification(decision=Decision.ALLOW)

    if not _VERB_PATTERN.fullmatch(first_arg):
        return Classification(
            decision=Decision.REJECT,
            diagnostic=f'Warning: The "rush-pnpm" wrapper expects a command verb before "{first_arg}"',
            advisory=BYPASS_NOTICE,
        )

    verb = first_arg

    if len(args) > 1 and args[1] == RUSH_SKIP_CHECKS_PARAMETER:
        del args[1]
        return Classification(decision=Decision.ALLOW)

    if RUSH_SKIP_CHECKS_PARAMETER in args:
        # Past the verb the grammar is PNPM's; the token may belong to it.
        return Classification(
            decision=Decision.REJECT,
            diagnostic=(
                f'Error: The "{RUSH_SKIP_CHECKS_PARAMETER}" option must be the first parameter'
                ' for the "rush-pnpm" command.'
            ),
        )

    return _OUTCOMES[policy_for(verb)](verb)
