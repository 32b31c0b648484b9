"""Typed FIFO queues and the deferral buffer."""

from collections import deque
from typing import Optional

from .requests import DEFERRABLE_KINDS, PermissionRequest, RequestKind


class TypedQueue:
    """
    FIFO queue of requests of a single kind.

    The front element is the one currently shown on the review surface.
    Each queue also carries the state of its current open episode: whether
    its review surface is open and whether the host was already focused when
    the episode began.
    """

    def __init__(self, kind: RequestKind):
        self.kind = kind
        self._items: deque[PermissionRequest] = deque()
        self.surface_open = False
        # Assume focused until the episode's focus query answers, so an early
        # drain never hands back focus that was not borrowed.
        self.was_originally_focused = True

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __contains__(self, request_id: object) -> bool:
        return any(item.request_id == request_id for item in self._items)

    def push(self, request: PermissionRequest) -> bool:
        """
        Append a request.

        Returns:
            True if the queue was empty before the push (a new episode begins)
        """
        if request.kind is not self.kind:
            raise ValueError(
                f"Cannot enqueue {request.kind.value} request on {self.kind.value} queue"
            )
        was_empty = not self._items
        self._items.append(request)
        return was_empty

    def pop(self) -> Optional[PermissionRequest]:
        """Remove and return the front request, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def remove(self, request_id: str) -> Optional[PermissionRequest]:
        """Remove and return the request with this id, or None if it is not queued."""
        for item in self._items:
            if item.request_id == request_id:
                self._items.remove(item)
                return item
        return None

    def front(self) -> Optional[PermissionRequest]:
        return self._items[0] if self._items else None

    def snapshot(self) -> tuple[PermissionRequest, ...]:
        return tuple(self._items)


class DeferralBuffer:
    """FIFO lists, one per deferrable kind, holding requests while a group is pending."""

    def __init__(self):
        self._lists: dict[RequestKind, list[PermissionRequest]] = {
            kind: [] for kind in DEFERRABLE_KINDS
        }

    def __len__(self) -> int:
        return sum(len(items) for items in self._lists.values())

    def __contains__(self, request_id: object) -> bool:
        return any(
            item.request_id == request_id
            for items in self._lists.values()
            for item in items
        )

    def add(self, request: PermissionRequest) -> None:
        if request.kind not in self._lists:
            raise ValueError(f"{request.kind.value} requests cannot be deferred")
        self._lists[request.kind].append(request)

    def drain(self) -> dict[RequestKind, list[PermissionRequest]]:
        """Take every buffered request, leaving the buffer empty."""
        drained = self._lists
        self._lists = {kind: [] for kind in DEFERRABLE_KINDS}
        return drained

    def snapshot(self) -> dict[RequestKind, tuple[PermissionRequest, ...]]:
        return {kind: tuple(items) for kind, items in self._lists.items()}
