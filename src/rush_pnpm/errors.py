"""Custom exception classes for rush-pnpm."""


class RushPnpmError(Exception):
    """Base exception for rush-pnpm."""

    def __init__(self, message: str = "", hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(message)


class ConfigurationError(RushPnpmError):
    """The Rush workspace is missing or not set up for rush-pnpm."""


class InvocationError(RushPnpmError):
    """The package manager could not be spawned or reported no exit code."""


class AlreadyReportedError(RushPnpmError):
    """The diagnostic was already written; the top-level handler stays quiet."""
