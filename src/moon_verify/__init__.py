"""
moon-verify — package root

File: src/moon_verify/__init__.py
Last updated: 2026-10-18

Purpose
- Package root for the moon workspace configuration verifier.

Functional requirements
- Must not have side effects at import time (no settings loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
