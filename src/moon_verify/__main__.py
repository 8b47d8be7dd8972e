"""Module entrypoint for ``python -m moon_verify``."""

from __future__ import annotations

from moon_verify.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
