"""Output rendering for the moon-verify CLI.

File: src/moon_verify/ui/render.py
Last updated: 2026-10-18

Purpose
- Provide a thin rendering layer over a ``rich`` console.
- Respect the NO_COLOR environment variable, the --no-color flag, and non-TTY stdout.

Functional requirements
- Plain-text output must be byte-stable: no wrapping, no markup, no highlighting.
- Diagnostics go to stderr so stdout carries only the report.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping
from typing import TextIO

from rich.console import Console
from rich.text import Text


def color_allowed(no_color_flag: bool, stream: TextIO | None = None) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    target = stream if stream is not None else sys.stdout
    return hasattr(target, "isatty") and target.isatty()


class CLIRenderer:
    """Thin CLI output renderer backed by ``rich``."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._color = color_allowed(no_color, self._stream)
        self._console = Console(
            file=self._stream,
            color_system="auto" if self._color else None,
            force_terminal=self._color,
            no_color=not self._color,
            highlight=False,
            markup=False,
            emoji=False,
            soft_wrap=True,
        )

    @property
    def color(self) -> bool:
        return self._color

    def report(self, body: Text) -> None:
        """Print a pre-built styled report; styles drop out when color is off."""

        self._console.print(body, end="")

    def text(self, line: str) -> None:
        """Print a plain text line."""

        self._console.print(Text(line))

    def json(self, payload: Mapping[str, object]) -> None:
        """Emit a JSON payload to stdout with deterministic formatting."""

        self._stream.write(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"
        )
        self._stream.flush()

    def error(self, message: str) -> None:
        """Print an error message to stderr."""

        sys.stderr.write(f"error: {message}\n")


def create_renderer(
    *, no_color: bool = False, stream: TextIO | None = None
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, stream=stream)


__all__ = ["CLIRenderer", "color_allowed", "create_renderer"]
