"""Console output for rush-pnpm.

Errors and warnings go to stderr, everything else to stdout. Colors are only
emitted when the stream is a terminal (rich handles the detection).
"""

from __future__ import annotations

import textwrap

from rich.console import Console


def wrap_words(text: str, width: int = 80) -> str:
    """Word-wrap *text* to *width* columns, keeping explicit line breaks."""
    wrapped: list[str] = []
    for line in text.split("\n"):
        if not line.strip():
            wrapped.append(line)
            continue
        indent = line[: len(line) - len(line.lstrip())]
        wrapped.append(
            textwrap.fill(
                line,
                width=width,
                subsequent_indent=indent,
                break_long_words=False,
                break_on_hyphens=False,
            )
        )
    return "\n".join(wrapped)


class Terminal:
    """Thin wrapper over a stdout and a stderr :class:`rich.console.Console`."""

    def __init__(self, stdout: Console | None = None, stderr: Console | None = None) -> None:
        self._stdout = stdout or Console(highlight=False)
        self._stderr = stderr or Console(stderr=True, highlight=False)

    @property
    def width(self) -> int:
        return self._stderr.width

    def wrap(self, text: str) -> str:
        return wrap_words(text, self.width)

    def write_hint_line(self, text: str) -> None:
        self._print(self._stdout, text, "cyan")

    def write_error_line(self, text: str) -> None:
        self._print(self._stderr, text, "red")

    def write_warning_line(self, text: str) -> None:
        self._print(self._stderr, text, "yellow")

    @staticmethod
    def _print(console: Console, text: str, style: str | None) -> None:
        # Tokens such as "[foo]" come straight from the command line.
        console.print(text, style=style, markup=False, emoji=False, highlight=False, soft_wrap=True)
