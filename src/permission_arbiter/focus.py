"""Focus arbitration against the host application."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from .config import Config
from .queues import TypedQueue


class HostEnvironment(ABC):
    """Abstract host application owning window focus.

    All methods are async to support IPC with a desktop shell.
    """

    @abstractmethod
    async def is_focused(self) -> bool:
        """Return True if the host application currently has focus."""
        pass

    @abstractmethod
    async def request_focus(self) -> None:
        pass

    @abstractmethod
    async def relinquish_focus(self) -> None:
        pass


class FocusArbitrator:
    """
    Requests and relinquishes host focus on queue episode boundaries.

    Focus is requested when a queue's first item arrives and the host was
    not focused; it is handed back on drain only if it was borrowed. A
    failed or hung focus query is treated as "already focused" so that a
    query failure never steals focus.
    """

    def __init__(self, host: HostEnvironment, query_timeout: Optional[float] = None):
        if query_timeout is None:
            query_timeout = Config.FOCUS_QUERY_TIMEOUT
        self.host = host
        self.query_timeout = query_timeout

    async def _query_focused(self) -> bool:
        try:
            return bool(
                await asyncio.wait_for(self.host.is_focused(), timeout=self.query_timeout)
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Focus query timed out after {self.query_timeout}s; assuming focused"
            )
        except Exception as e:
            logger.warning(f"Focus query failed: {e}; assuming focused")
        return True

    async def begin_episode(self, queue: TypedQueue) -> None:
        """Record the host's focus state for a newly opened episode, borrowing focus if needed."""
        focused = await self._query_focused()
        queue.was_originally_focused = focused
        if focused:
            return
        try:
            await self.host.request_focus()
            logger.debug(f"Requested focus for {queue.kind.value} queue")
        except Exception as e:
            logger.warning(f"Focus request failed for {queue.kind.value} queue: {e}")

    async def end_episode(self, queue: TypedQueue) -> None:
        """Hand focus back if this episode borrowed it."""
        borrowed = not queue.was_originally_focused
        queue.was_originally_focused = True
        if not borrowed:
            return
        try:
            await self.host.relinquish_focus()
            logger.debug(f"Relinquished focus after {queue.kind.value} queue drained")
        except Exception as e:
            logger.warning(
                f"Focus relinquish failed for {queue.kind.value} queue: {e}"
            )
