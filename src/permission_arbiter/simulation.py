"""In-memory runtime and host used to replay arbitration scenarios."""

import asyncio
from typing import Any, Dict, List, Optional

from loguru import logger

from .engine import PermissionArbiter
from .focus import HostEnvironment
from .requests import RequestKind
from .runtime import RuntimeCallback, WalletRuntime


class RecordingRuntime(WalletRuntime):
    """Wallet runtime that records every call and lets callers raise events."""

    def __init__(self):
        self.callbacks: Dict[str, RuntimeCallback] = {}
        self.calls: List[Dict[str, Any]] = []

    def bind_callback(self, event_name: str, callback: RuntimeCallback) -> None:
        self.callbacks[event_name] = callback

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        callback = self.callbacks.get(event_name)
        if callback is None:
            raise KeyError(f"No callback bound for {event_name}")
        await callback(payload)

    def _record(self, method: str, request_id: str, **details: Any) -> None:
        self.calls.append({"method": method, "request_id": request_id, **details})

    async def grant_permission(self, request_id: str, **options: Any) -> None:
        self._record("grant_permission", request_id, options=options)

    async def deny_permission(self, request_id: str) -> None:
        self._record("deny_permission", request_id)

    async def grant_grouped_permission(
        self, request_id: str, granted: Dict[str, Any], expiry: Optional[int] = None
    ) -> None:
        self._record("grant_grouped_permission", request_id, granted=granted, expiry=expiry)

    async def deny_grouped_permission(self, request_id: str) -> None:
        self._record("deny_grouped_permission", request_id)

    async def dismiss_grouped_permission(self, request_id: str) -> None:
        self._record("dismiss_grouped_permission", request_id)

    async def grant_counterparty_permission(
        self, request_id: str, granted: Dict[str, Any], expiry: Optional[int] = None
    ) -> None:
        self._record(
            "grant_counterparty_permission", request_id, granted=granted, expiry=expiry
        )

    async def deny_counterparty_permission(self, request_id: str) -> None:
        self._record("deny_counterparty_permission", request_id)


class HeadlessHost(HostEnvironment):
    """Host with a simple focus flag that records focus requests."""

    def __init__(self, focused: bool = False):
        self.focused = focused
        self.calls: List[str] = []

    async def is_focused(self) -> bool:
        return self.focused

    async def request_focus(self) -> None:
        self.calls.append("request_focus")
        self.focused = True

    async def relinquish_focus(self) -> None:
        self.calls.append("relinquish_focus")
        self.focused = False


async def replay(
    steps: List[Dict[str, Any]],
    arbiter: PermissionArbiter,
    runtime: RecordingRuntime,
) -> None:
    """
    Drive an arbiter through a list of scenario steps.

    Step forms:
        {"callback": "<runtime event name>", "payload": {...}}
        {"action": "grant"|"deny"|"dismiss"|"advance", "kind": "<queue>",
         "granted": {...}, "options": {...}}
        {"sleep": seconds}
    """
    for index, step in enumerate(steps):
        if "callback" in step:
            await runtime.emit(step["callback"], step.get("payload") or {})
        elif "action" in step:
            action = step["action"]
            kind = RequestKind(step.get("kind", RequestKind.GROUP.value))
            if action == "grant":
                await arbiter.grant(kind, step.get("granted"), **(step.get("options") or {}))
            elif action == "deny":
                await arbiter.deny(kind)
            elif action == "dismiss":
                await arbiter.dismiss(kind)
            elif action == "advance":
                await arbiter.advance(kind)
            else:
                raise ValueError(f"Step {index}: unknown action {action!r}")
        elif "sleep" in step:
            await asyncio.sleep(float(step["sleep"]))
        else:
            raise ValueError(f"Step {index}: expected callback, action or sleep")
        logger.debug(f"Replayed step {index}: {step}")


def summarize(
    arbiter: PermissionArbiter, runtime: RecordingRuntime, host: HeadlessHost
) -> Dict[str, Any]:
    """Render the arbiter state and recorded calls as JSON-friendly data."""
    return {
        "phase": arbiter.phase.value,
        "queues": {
            kind.value: [r.request_id for r in arbiter.snapshot(kind)]
            for kind in RequestKind
        },
        "surfaces_open": [
            kind.value for kind in RequestKind if arbiter.is_surface_open(kind)
        ],
        "deferred": {
            kind.value: [r.request_id for r in requests]
            for kind, requests in arbiter.deferred_snapshot().items()
        },
        "runtime_calls": runtime.calls,
        "host_calls": host.calls,
    }
