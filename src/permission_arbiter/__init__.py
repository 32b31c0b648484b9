"""Permission Arbiter - arbitration of wallet permission prompts."""

__version__ = "0.1.0"

from .engine import GroupOutcome, PermissionArbiter
from .focus import HostEnvironment
from .governance import GroupDecision, GroupPhase, build_decision, is_covered
from .notifications import ArbiterNotification, NotificationType
from .requests import GroupedPermissions, RequestKind
from .runtime import WalletRuntime

__all__ = [
    "ArbiterNotification",
    "GroupDecision",
    "GroupOutcome",
    "GroupPhase",
    "GroupedPermissions",
    "HostEnvironment",
    "NotificationType",
    "PermissionArbiter",
    "RequestKind",
    "WalletRuntime",
    "build_decision",
    "is_covered",
    "__version__",
]
