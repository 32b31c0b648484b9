"""Group gating: decision evaluation, cooldown suppression and the pending gate."""

from .cooldown import CooldownTracker, cooldown_key
from .decision import (
    ALL_PROTOCOLS,
    CertificateRule,
    GroupDecision,
    build_decision,
    is_covered,
)
from .gate import GroupGate, GroupPhase

__all__ = [
    "ALL_PROTOCOLS",
    "CertificateRule",
    "CooldownTracker",
    "GroupDecision",
    "GroupGate",
    "GroupPhase",
    "build_decision",
    "cooldown_key",
    "is_covered",
]
