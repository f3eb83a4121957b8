# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared fixtures for the session test suite.

Provides:
- A controllable millisecond clock for recorder tests
- A recorder configuration isolated from the developer's environment
"""

from __future__ import annotations

import pytest

from devsuite.sessions import ConfigSessionRecorder


class FakeClock:
    """Callable epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned at t=1000ms."""
    return FakeClock(now=1000)


@pytest.fixture
def recorder_config(monkeypatch: pytest.MonkeyPatch) -> ConfigSessionRecorder:
    """Default recorder configuration, ignoring DEVSUITE_SESSIONS_* overrides."""
    for name in (
        "DEVSUITE_SESSIONS_ENFORCE_SINGLE_ACTIVE_SESSION",
        "DEVSUITE_SESSIONS_MAX_SUMMARY_LENGTH",
        "DEVSUITE_SESSIONS_WARN_ON_MISSING_START",
    ):
        monkeypatch.delenv(name, raising=False)
    return ConfigSessionRecorder(_env_file=None)
