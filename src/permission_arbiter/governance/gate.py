"""Group gate state machine with its grace-period timer."""

import asyncio
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from ..config import Config


class GroupPhase(str, Enum):
    """Whether a grouped-permission negotiation is pending."""

    IDLE = "idle"
    PENDING = "pending"


class GroupGate:
    """
    Idle/pending gate controlling delivery of non-group requests.

    Each pending episode owns exactly one grace timer: armed on
    ``idle -> pending`` and disarmed by whichever release path runs first.
    The episode counter lets a late timer callback recognise that the
    episode it was armed for has already been released.
    """

    def __init__(self, grace_period_seconds: Optional[float] = None):
        if grace_period_seconds is None:
            grace_period_seconds = Config.GROUP_GRACE_PERIOD_SECONDS
        if grace_period_seconds <= 0:
            raise ValueError(
                f"grace_period_seconds must be > 0, got {grace_period_seconds}"
            )
        self.grace_period_seconds = grace_period_seconds
        self.phase = GroupPhase.IDLE
        self.episode = 0
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self.phase is GroupPhase.PENDING

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def enter_pending(self, on_expired: Callable[[int], None]) -> bool:
        """
        Transition idle -> pending and arm the grace timer.

        Args:
            on_expired: Called with the episode number when the grace period lapses

        Returns:
            True if the gate transitioned, False if it was already pending
        """
        if self.pending:
            return False
        self.phase = GroupPhase.PENDING
        self.episode += 1
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.grace_period_seconds, on_expired, self.episode)
        logger.info(
            f"Group gate pending (episode {self.episode}, "
            f"grace {self.grace_period_seconds}s)"
        )
        return True

    def disarm(self) -> bool:
        """Cancel the grace timer if still armed. Safe to call repeatedly."""
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def claim_expiry(self, episode: int) -> bool:
        """
        Claim a fired grace timer for release.

        Returns:
            True only if the timer belongs to the current, still-armed episode
        """
        if self._timer is None or episode != self.episode or not self.pending:
            return False
        self._timer = None
        return True

    def to_idle(self) -> None:
        self.disarm()
        if self.pending:
            self.phase = GroupPhase.IDLE
            logger.info(f"Group gate idle (episode {self.episode} closed)")
