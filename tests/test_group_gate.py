"""
Unit Tests for the Group Gate

Tests idle/pending transitions, grace timer arming and the episode
guard that keeps a stale timer from releasing a later episode.
"""

import asyncio

import pytest

from permission_arbiter.governance import GroupGate, GroupPhase


@pytest.mark.unit
def test_gate_starts_idle():
    """A new gate is idle and unarmed."""
    gate = GroupGate(grace_period_seconds=20)

    assert gate.phase is GroupPhase.IDLE
    assert not gate.pending
    assert not gate.armed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_enter_pending_arms_timer():
    """Entering pending arms one timer for a new episode."""
    gate = GroupGate(grace_period_seconds=20)

    assert gate.enter_pending(lambda episode: None) is True

    assert gate.pending
    assert gate.armed
    assert gate.episode == 1
    gate.to_idle()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_enter_pending_is_noop_while_pending():
    """Entering pending twice keeps the first episode."""
    gate = GroupGate(grace_period_seconds=20)
    gate.enter_pending(lambda episode: None)

    assert gate.enter_pending(lambda episode: None) is False
    assert gate.episode == 1
    gate.to_idle()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disarm_is_idempotent():
    """Disarming twice is harmless."""
    gate = GroupGate(grace_period_seconds=20)
    gate.enter_pending(lambda episode: None)

    assert gate.disarm() is True
    assert gate.disarm() is False
    assert gate.pending
    assert not gate.armed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_to_idle_disarms():
    """Going idle cancels the timer."""
    gate = GroupGate(grace_period_seconds=20)
    gate.enter_pending(lambda episode: None)

    gate.to_idle()

    assert gate.phase is GroupPhase.IDLE
    assert not gate.armed


@pytest.mark.unit
@pytest.mark.slow
@pytest.mark.asyncio
async def test_timer_fires_with_episode_number():
    """The expiry callback receives its episode number."""
    gate = GroupGate(grace_period_seconds=0.01)
    fired = []

    gate.enter_pending(fired.append)
    await asyncio.sleep(0.05)

    assert fired == [1]
    assert gate.claim_expiry(1) is True
    assert not gate.armed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_claim_expiry_rejects_stale_episode():
    """A timer from an earlier episode cannot claim expiry."""
    gate = GroupGate(grace_period_seconds=20)
    gate.enter_pending(lambda episode: None)
    gate.to_idle()
    gate.enter_pending(lambda episode: None)

    assert gate.claim_expiry(1) is False
    assert gate.claim_expiry(2) is True
    # Already claimed.
    assert gate.claim_expiry(2) is False
    gate.to_idle()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_claim_expiry_rejects_disarmed_timer():
    """A disarmed timer cannot claim expiry."""
    gate = GroupGate(grace_period_seconds=20)
    gate.enter_pending(lambda episode: None)
    gate.disarm()

    assert gate.claim_expiry(1) is False


@pytest.mark.unit
@pytest.mark.parametrize("grace", [0, -1])
def test_gate_rejects_non_positive_grace(grace):
    """A zero or negative grace period is rejected."""
    with pytest.raises(ValueError, match="grace_period_seconds must be > 0"):
        GroupGate(grace_period_seconds=grace)
