"""UI package exports for the CLI and its renderer."""

from moon_verify.ui.cli import CLIError, build_parser, run_cli
from moon_verify.ui.render import CLIRenderer, color_allowed, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "color_allowed",
    "create_renderer",
    "run_cli",
]
