"""Pytest fixtures and test utilities for the permission arbiter test suite."""

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from permission_arbiter.engine import PermissionArbiter
from permission_arbiter.simulation import HeadlessHost, RecordingRuntime


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a manually advanced clock for cooldown tests."""
    return FakeClock()


# ============================================================================
# RUNTIME / HOST FIXTURES
# ============================================================================


@pytest.fixture
def runtime():
    """
    Provide a wallet runtime that records every grant/deny/dismiss call.

    Returns:
        RecordingRuntime with no callbacks bound yet
    """
    return RecordingRuntime()


@pytest.fixture
def host():
    """Provide a host that starts unfocused."""
    return HeadlessHost(focused=False)


@pytest.fixture
def focused_host():
    """Provide a host that is already focused."""
    return HeadlessHost(focused=True)


@pytest.fixture
async def arbiter(runtime, host, clock):
    """
    Provide an arbiter bound to the recording runtime and headless host.

    Uses a 5 minute cooldown on the fake clock and a grace period long
    enough that it never fires unless a test waits for it.

    Cleanup:
        Cancels the grace timer and background work
    """
    engine = PermissionArbiter(
        runtime,
        host,
        cooldown_seconds=300,
        grace_period_seconds=20,
        focus_timeout=0.5,
        clock=clock,
    )
    engine.attach()
    yield engine
    await engine.close()


@pytest.fixture
def notifications(arbiter):
    """Collect every notification emitted by the arbiter fixture."""
    received = []
    arbiter.register_notification_callback(received.append)
    return received


# ============================================================================
# AUDIT FIXTURES
# ============================================================================


@pytest.fixture
def audit_log_path(tmp_path):
    """
    Provide a temporary audit log path.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to a not-yet-created audit.jsonl file
    """
    return tmp_path / "audit" / "audit.jsonl"


def read_audit_log(log_path: Path) -> list[Dict[str, Any]]:
    """Read every JSON Lines record from an audit log file."""
    if not log_path.exists():
        return []
    with open(log_path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
