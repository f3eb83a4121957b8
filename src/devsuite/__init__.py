"""DevSuite - event-sourced work sessions.

This package provides the session event log, lifecycle validation, and the
duration derivation engine that turns an append-only event log into session
and per-task time summaries.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("devsuite-sessions")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
