"""Notifications emitted by the arbiter to the UI layer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .requests import RequestKind


class NotificationType(str, Enum):
    """Kinds of notification delivered to registered callbacks."""

    SURFACE_OPENED = "surface_opened"
    SURFACE_CLOSED = "surface_closed"
    RUNTIME_ERROR = "runtime_error"
    PERMISSIONS_CHANGED = "permissions_changed"
    GROUP_SUPPRESSED = "group_suppressed"


@dataclass
class ArbiterNotification:
    """
    A single notification.

    Attributes:
        type: Notification type
        kind: Queue the notification concerns
        request_id: Request concerned, when there is one
        message: Human-readable text suitable for a toast
        details: Structured extra data
    """

    type: NotificationType
    kind: RequestKind
    request_id: Optional[str] = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
