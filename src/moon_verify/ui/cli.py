"""Command-line interface for moon-verify."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from moon_verify import __version__
from moon_verify.config import (
    SettingsLoadError,
    SettingsValidationError,
    dump_effective_settings,
    load_settings,
)
from moon_verify.observability.logging import LoggingConfig, setup_logging, shutdown_logging
from moon_verify.pipeline import VerificationCancelled, verify_workspace
from moon_verify.ui.render import CLIRenderer, create_renderer
from moon_verify.workspace.loader import EmptyWorkspaceError, NotAWorkspaceError


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for a single verification run."""

    parser = argparse.ArgumentParser(
        prog="moon-verify",
        description=(
            "moon-verify — validate a moon workspace's configuration and task graph.\n\n"
            "Examples:\n"
            "  moon-verify                 Verify the workspace in the current directory\n"
            "  moon-verify path/to/repo    Verify another workspace\n"
            "  moon-verify --json          Emit a machine-readable report\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "workspace",
        nargs="?",
        default=".",
        help="Workspace root containing the .moon directory (default: current directory).",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to verifier TOML settings (default: <workspace>/moon-verify.toml if present).",
    )
    parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Log progress to stderr; repeat for debug output.",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Explicit log level (overrides -v).",
    )
    parser.add_argument(
        "--log-format",
        choices=("json", "text"),
        default=None,
        help="Log line format on stderr.",
    )
    parser.add_argument(
        "--skip-external",
        action="store_true",
        default=False,
        help="Do not run the external 'moon check'.",
    )
    parser.add_argument(
        "--external-timeout",
        type=_positive_float,
        default=None,
        metavar="SECONDS",
        help="Timeout for the external check (default: 60).",
    )
    parser.add_argument(
        "--moon-binary",
        default=None,
        metavar="NAME",
        help="Executable used for the external check (default: moon).",
    )
    parser.add_argument(
        "--print-settings",
        action="store_true",
        default=False,
        help="Print the effective verifier settings as JSON and exit.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, run one verification, and return the process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _cmd_verify(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------


def _cmd_verify(args: argparse.Namespace) -> int:
    workspace = Path(args.workspace).expanduser()
    settings = _load_effective_settings(args, workspace)
    renderer = _get_renderer(args)

    if args.print_settings:
        renderer.text(dump_effective_settings(settings))
        return 0

    handle = setup_logging(
        LoggingConfig.from_settings(settings["observability"], level=_log_level(args))
    )
    try:
        reporter = verify_workspace(workspace, settings=settings)
    except NotAWorkspaceError as exc:
        raise CLIError(str(exc), exit_code=1) from exc
    except EmptyWorkspaceError as exc:
        raise CLIError(str(exc), exit_code=1) from exc
    except VerificationCancelled as exc:
        raise CLIError(str(exc), exit_code=1) from exc
    finally:
        shutdown_logging(handle)

    if args.json:
        renderer.json(reporter.to_dict())
    else:
        renderer.report(reporter.render_text())
    return reporter.exit_code()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_settings(args: argparse.Namespace, workspace: Path) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "external.timeout_seconds": args.external_timeout,
        "external.binary": args.moon_binary,
        "observability.log_format": args.log_format,
    }
    if args.skip_external:
        overrides["external.enabled"] = False

    try:
        return load_settings(args.config_path, workspace_root=workspace, cli_overrides=overrides)
    except (SettingsLoadError, SettingsValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _log_level(args: argparse.Namespace) -> str | None:
    if args.log_level is not None:
        return str(args.log_level)
    if args.verbose >= 2:
        return "DEBUG"
    if args.verbose == 1:
        return "INFO"
    return None


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Create a CLI renderer from the parsed namespace."""

    return create_renderer(no_color=bool(args.no_color))


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a number, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return value


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
