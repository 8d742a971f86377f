"""rush-pnpm - policy-checked PNPM wrapper for Rush workspaces."""

__version__ = "0.1.0"
