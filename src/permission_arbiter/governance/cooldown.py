"""Cooldown tracker suppressing repeat grouped prompts."""

import time
from typing import Callable, Optional

from loguru import logger

from ..config import Config
from ..requests import GroupedPermissions, normalize_originator


def cooldown_key(originator: str, permissions: Optional[GroupedPermissions]) -> str:
    """
    Compute the cooldown key for a grouped request.

    The key is the normalized originator, narrowed to
    ``originator|counterparty`` when the group consists only of
    security-level-2 protocol permissions against a single counterparty.

    Args:
        originator: Requesting application
        permissions: Requested grouped permissions

    Returns:
        Deterministic cooldown key
    """
    normalized = normalize_originator(originator)
    if permissions is None:
        return normalized

    protocols = permissions.protocol_permissions
    only_protocols = (
        bool(protocols)
        and not permissions.basket_access
        and not permissions.certificate_access
        and permissions.spending_authorization is None
    )
    if not only_protocols:
        return normalized

    if not all(p.security_level == 2 for p in protocols):
        return normalized

    counterparties = {p.counterparty or Config.DEFAULT_COUNTERPARTY for p in protocols}
    if len(counterparties) != 1:
        return normalized

    return f"{normalized}|{counterparties.pop()}"


class CooldownTracker:
    """
    Keyed suppression map for grouped requests.

    Also remembers the key computed for each accepted grouped request, since
    the inputs used to compute it are no longer at hand when it resolves.
    """

    def __init__(
        self,
        duration_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if duration_seconds is None:
            duration_seconds = Config.GROUP_COOLDOWN_SECONDS
        if duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be > 0, got {duration_seconds}")
        self.duration_seconds = duration_seconds
        self._clock = clock or time.monotonic
        self._until: dict[str, float] = {}
        self._keys_by_request: dict[str, str] = {}

    def is_suppressed(self, key: str) -> bool:
        until = self._until.get(key)
        if until is None:
            return False
        if self._clock() < until:
            return True
        # Expired; drop it so the map does not grow without bound.
        del self._until[key]
        return False

    def start(self, key: str) -> None:
        self._until[key] = self._clock() + self.duration_seconds
        logger.info(f"Group cooldown started for {key} ({self.duration_seconds}s)")

    def remember(self, request_id: str, key: str) -> None:
        self._keys_by_request[request_id] = key

    def forget(self, request_id: str) -> Optional[str]:
        return self._keys_by_request.pop(request_id, None)

    def start_for_request(self, request_id: str) -> Optional[str]:
        """Start the cooldown remembered for a grouped request, if any."""
        key = self.forget(request_id)
        if key is not None:
            self.start(key)
        return key
