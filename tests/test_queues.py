"""Unit tests for typed queues and the deferral buffer."""

import pytest

from permission_arbiter.queues import DeferralBuffer, TypedQueue
from permission_arbiter.requests import (
    BasketRequest,
    GroupRequest,
    RequestKind,
    SpendingRequest,
)


def _basket(request_id, basket="invoices"):
    return BasketRequest(request_id=request_id, basket=basket)


@pytest.mark.unit
def test_queue_is_fifo():
    """Requests leave in the order they arrived."""
    queue = TypedQueue(RequestKind.BASKET)

    assert queue.push(_basket("b1")) is True
    assert queue.push(_basket("b2")) is False

    assert queue.front().request_id == "b1"
    assert queue.pop().request_id == "b1"
    assert queue.pop().request_id == "b2"
    assert queue.pop() is None
    assert queue.front() is None


@pytest.mark.unit
def test_queue_remove_by_request_id():
    """Removing by id takes that request out wherever it sits and leaves the rest in order."""
    queue = TypedQueue(RequestKind.BASKET)
    queue.push(_basket("b1"))
    queue.push(_basket("b2"))
    queue.push(_basket("b3"))

    assert queue.remove("b2").request_id == "b2"
    assert queue.remove("b2") is None
    assert [r.request_id for r in queue.snapshot()] == ["b1", "b3"]


@pytest.mark.unit
def test_queue_membership_by_request_id():
    """Membership is checked by request id."""
    queue = TypedQueue(RequestKind.BASKET)
    queue.push(_basket("b1"))

    assert "b1" in queue
    assert "b2" not in queue
    assert len(queue) == 1
    assert queue


@pytest.mark.unit
def test_queue_rejects_other_kinds():
    """A queue only takes requests of its own kind."""
    queue = TypedQueue(RequestKind.BASKET)

    with pytest.raises(ValueError, match="Cannot enqueue spending request"):
        queue.push(SpendingRequest(request_id="s1", authorization_amount=10))


@pytest.mark.unit
def test_queue_episode_defaults():
    """A new queue has a closed surface and assumes focus."""
    queue = TypedQueue(RequestKind.PROTOCOL)

    assert queue.surface_open is False
    assert queue.was_originally_focused is True


@pytest.mark.unit
def test_deferral_buffer_drain_preserves_order():
    """Draining returns each kind in arrival order and empties the buffer."""
    buffer = DeferralBuffer()
    buffer.add(_basket("b1"))
    buffer.add(SpendingRequest(request_id="s1", authorization_amount=10))
    buffer.add(_basket("b2"))

    assert len(buffer) == 3
    assert "s1" in buffer

    drained = buffer.drain()

    assert [r.request_id for r in drained[RequestKind.BASKET]] == ["b1", "b2"]
    assert [r.request_id for r in drained[RequestKind.SPENDING]] == ["s1"]
    assert drained[RequestKind.PROTOCOL] == []
    assert len(buffer) == 0
    assert "b1" not in buffer


@pytest.mark.unit
def test_deferral_buffer_refuses_groups():
    """Grouped requests are never deferred."""
    buffer = DeferralBuffer()

    with pytest.raises(ValueError, match="group requests cannot be deferred"):
        buffer.add(GroupRequest(request_id="g1"))


@pytest.mark.unit
def test_deferral_buffer_snapshot_is_a_copy():
    """A snapshot is unaffected by a later drain."""
    buffer = DeferralBuffer()
    buffer.add(_basket("b1"))

    snapshot = buffer.snapshot()
    buffer.drain()

    assert [r.request_id for r in snapshot[RequestKind.BASKET]] == ["b1"]
