"""Permission request arbitration engine.

Receives permission requests from the wallet runtime, serializes them into
per-kind review queues, and holds individual requests back while a grouped
permission negotiation is pending so the user is not asked twice for the
same capability.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger

from .audit import AuditEvent, AuditLogger
from .errors import MalformedRequestError
from .focus import FocusArbitrator, HostEnvironment
from .governance import (
    CooldownTracker,
    GroupDecision,
    GroupGate,
    GroupPhase,
    build_decision,
    cooldown_key,
    is_covered,
)
from .notifications import ArbiterNotification, NotificationType
from .queues import DeferralBuffer, TypedQueue
from .requests import (
    DEFERRABLE_KINDS,
    BasketRequest,
    CertificateRequest,
    CounterpartyRequest,
    GroupRequest,
    PermissionRequest,
    ProtocolRequest,
    RequestKind,
    SpendingRequest,
    normalize_originator,
)
from .runtime import (
    BASKET_ACCESS_EVENT,
    CERTIFICATE_ACCESS_EVENT,
    COUNTERPARTY_PERMISSION_EVENT,
    GROUPED_PERMISSION_EVENT,
    PROTOCOL_PERMISSION_EVENT,
    SPENDING_AUTHORIZATION_EVENT,
    WalletRuntime,
)


class GroupOutcome(str, Enum):
    """How a grouped request was resolved."""

    GRANTED = "granted"
    DENIED = "denied"
    DISMISSED = "dismissed"


_GROUP_AUDIT_EVENTS = {
    GroupOutcome.GRANTED: AuditEvent.GROUP_GRANTED,
    GroupOutcome.DENIED: AuditEvent.GROUP_DENIED,
    GroupOutcome.DISMISSED: AuditEvent.GROUP_DISMISSED,
}

_GROUP_OPERATIONS = {
    GroupOutcome.GRANTED: "grant",
    GroupOutcome.DENIED: "deny",
    GroupOutcome.DISMISSED: "dismiss",
}


class PermissionArbiter:
    """
    Single owner of the typed queues, deferral buffer, group gate and cooldowns.

    All mutation happens on one asyncio event loop. Every state change that
    must be atomic (enqueue, defer, release partitioning, gate transitions)
    runs without an ``await`` in the middle; only focus handling, runtime
    calls and notification delivery suspend.

    The UI reads queues through ``snapshot``/``current``/``is_surface_open``
    and mutates them only through ``advance``, ``grant``, ``deny`` and
    ``dismiss``.
    """

    def __init__(
        self,
        runtime: WalletRuntime,
        host: HostEnvironment,
        *,
        cooldown_seconds: Optional[float] = None,
        grace_period_seconds: Optional[float] = None,
        focus_timeout: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        """
        Initialize the arbiter.

        Args:
            runtime: Wallet runtime that originates and resolves requests
            host: Host application owning window focus
            cooldown_seconds: Group re-prompt suppression window (Config default)
            grace_period_seconds: Auto-release window for a pending group (Config default)
            focus_timeout: Bound on the "is focused" query (Config default)
            clock: Monotonic clock used for cooldowns
            audit: Audit logger (disabled unless a path is configured)
        """
        self.runtime = runtime
        self._queues: Dict[RequestKind, TypedQueue] = {
            kind: TypedQueue(kind) for kind in RequestKind
        }
        self._deferred = DeferralBuffer()
        self._gate = GroupGate(grace_period_seconds)
        self._cooldowns = CooldownTracker(cooldown_seconds, clock)
        self._focus = FocusArbitrator(host, focus_timeout)
        self._audit = audit if audit is not None else AuditLogger()
        self._notification_callbacks = []
        self._background: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()

    # ========================================================================
    # Read-only views
    # ========================================================================

    @property
    def phase(self) -> GroupPhase:
        return self._gate.phase

    @property
    def grace_timer_armed(self) -> bool:
        return self._gate.armed

    def snapshot(self, kind: RequestKind) -> tuple[PermissionRequest, ...]:
        """Ordered queue contents; the front is the request currently displayed."""
        return self._queues[kind].snapshot()

    def current(self, kind: RequestKind) -> Optional[PermissionRequest]:
        return self._queues[kind].front()

    def is_surface_open(self, kind: RequestKind) -> bool:
        return self._queues[kind].surface_open

    def deferred_snapshot(self) -> dict[RequestKind, tuple[PermissionRequest, ...]]:
        return self._deferred.snapshot()

    def is_suppressed(self, key: str) -> bool:
        return self._cooldowns.is_suppressed(key)

    def _is_known(self, request_id: str) -> bool:
        if request_id in self._deferred:
            return True
        return any(request_id in queue for queue in self._queues.values())

    # ========================================================================
    # Notifications
    # ========================================================================

    def register_notification_callback(self, callback) -> None:
        """
        Register a callback for arbiter notifications.

        Args:
            callback: Async or sync function taking an ArbiterNotification
        """
        self._notification_callbacks.append(callback)

    def unregister_notification_callback(self, callback) -> None:
        if callback in self._notification_callbacks:
            self._notification_callbacks.remove(callback)

    async def _notify(self, notification: ArbiterNotification) -> None:
        for callback in list(self._notification_callbacks):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(notification)
                else:
                    callback(notification)
            except Exception as e:
                logger.error(f"Error in notification callback: {e}")

    def _record(self, event: AuditEvent, **fields: Any) -> None:
        try:
            self._audit.log(event, **fields)
        except Exception as e:
            logger.error(f"Failed to write {event.value} audit record: {e}")

    async def _runtime_failed(
        self, kind: RequestKind, request_id: str, operation: str, error: Exception
    ) -> None:
        logger.error(f"Runtime {operation} failed for {kind.value} request {request_id}: {error}")
        self._record(
            AuditEvent.RUNTIME_CALL_FAILED,
            request_id=request_id,
            kind=kind.value,
            operation=operation,
            error=str(error),
        )
        await self._notify(
            ArbiterNotification(
                type=NotificationType.RUNTIME_ERROR,
                kind=kind,
                request_id=request_id,
                message=f"Failed to {operation} {kind.value} permission: {error}",
                details={"operation": operation},
            )
        )

    # ========================================================================
    # Runtime binding
    # ========================================================================

    def attach(self, runtime: Optional[WalletRuntime] = None) -> None:
        """Bind the six inbound callbacks on the runtime."""
        runtime = runtime or self.runtime
        self.runtime = runtime
        runtime.bind_callback(BASKET_ACCESS_EVENT, self.on_basket_access_requested)
        runtime.bind_callback(CERTIFICATE_ACCESS_EVENT, self.on_certificate_access_requested)
        runtime.bind_callback(PROTOCOL_PERMISSION_EVENT, self.on_protocol_permission_requested)
        runtime.bind_callback(
            SPENDING_AUTHORIZATION_EVENT, self.on_spending_authorization_requested
        )
        runtime.bind_callback(GROUPED_PERMISSION_EVENT, self.on_grouped_permission_requested)
        runtime.bind_callback(
            COUNTERPARTY_PERMISSION_EVENT, self.on_counterparty_permission_requested
        )
        logger.debug("Arbiter callbacks bound to wallet runtime")

    # ========================================================================
    # Inbound callbacks
    # ========================================================================

    async def on_basket_access_requested(self, payload: Dict[str, Any]) -> None:
        await self._receive(BasketRequest, payload)

    async def on_certificate_access_requested(self, payload: Dict[str, Any]) -> None:
        await self._receive(CertificateRequest, payload)

    async def on_protocol_permission_requested(self, payload: Dict[str, Any]) -> None:
        await self._receive(ProtocolRequest, payload)

    async def on_spending_authorization_requested(self, payload: Dict[str, Any]) -> None:
        await self._receive(SpendingRequest, payload)

    async def on_counterparty_permission_requested(self, payload: Dict[str, Any]) -> None:
        await self._receive(CounterpartyRequest, payload)

    async def on_grouped_permission_requested(self, payload: Dict[str, Any]) -> None:
        request = self._parse(GroupRequest, payload)
        if request is None:
            return

        key = cooldown_key(request.originator, request.permissions)
        if self._cooldowns.is_suppressed(key):
            logger.info(
                f"Grouped request {request.request_id} suppressed by cooldown {key}"
            )
            self._record(
                AuditEvent.GROUP_SUPPRESSED,
                request_id=request.request_id,
                kind=RequestKind.GROUP.value,
                cooldown_key=key,
            )
            try:
                await self.runtime.dismiss_grouped_permission(request.request_id)
            except Exception as e:
                logger.warning(
                    f"Failed to dismiss grouped request {request.request_id} "
                    f"during cooldown: {e}"
                )
            await self._notify(
                ArbiterNotification(
                    type=NotificationType.GROUP_SUPPRESSED,
                    kind=RequestKind.GROUP,
                    request_id=request.request_id,
                    details={"cooldown_key": key},
                )
            )
            return

        self._cooldowns.remember(request.request_id, key)
        await self._enqueue(request)

    def _parse(self, request_type, payload: Dict[str, Any]) -> Optional[PermissionRequest]:
        try:
            request = request_type.from_callback(payload)
        except MalformedRequestError as e:
            logger.warning(f"Ignoring runtime callback: {e}")
            return None
        if self._is_known(request.request_id):
            logger.warning(
                f"Ignoring duplicate {request.kind.value} request {request.request_id}"
            )
            return None
        return request

    async def _receive(self, request_type, payload: Dict[str, Any]) -> None:
        request = self._parse(request_type, payload)
        if request is None:
            return
        if self._gate.pending:
            self._deferred.add(request)
            logger.debug(
                f"Deferred {request.kind.value} request {request.request_id} "
                "while group is pending"
            )
            self._record(
                AuditEvent.REQUEST_DEFERRED,
                request_id=request.request_id,
                kind=request.kind.value,
                originator=request.originator,
            )
            return
        await self._enqueue(request)

    # ========================================================================
    # Queue episodes
    # ========================================================================

    async def _enqueue(self, request: PermissionRequest) -> None:
        queue = self._queues[request.kind]
        opened = queue.push(request)
        if request.kind is RequestKind.GROUP:
            self._gate.enter_pending(self._on_grace_expired)
        logger.debug(
            f"Queued {request.kind.value} request {request.request_id} "
            f"(depth {len(queue)})"
        )
        self._record(
            AuditEvent.REQUEST_QUEUED,
            request_id=request.request_id,
            kind=request.kind.value,
            originator=request.originator,
        )
        if opened:
            await self._open_surface(queue)

    async def _open_surface(self, queue: TypedQueue) -> None:
        await self._focus.begin_episode(queue)
        if not queue:
            # Drained while the focus query was in flight.
            await self._focus.end_episode(queue)
            return
        if queue.surface_open:
            return
        queue.surface_open = True
        await self._notify(
            ArbiterNotification(
                type=NotificationType.SURFACE_OPENED,
                kind=queue.kind,
                request_id=queue.front().request_id,
            )
        )

    async def _close_surface(self, queue: TypedQueue) -> None:
        was_open = queue.surface_open
        queue.surface_open = False
        await self._focus.end_episode(queue)
        if was_open:
            await self._notify(
                ArbiterNotification(type=NotificationType.SURFACE_CLOSED, kind=queue.kind)
            )

    async def advance(self, kind: RequestKind) -> Optional[PermissionRequest]:
        """
        Pop the front request of a queue.

        Closes the review surface (handing focus back if it was borrowed)
        when the queue drains. For the group queue, a drain while the gate
        is still pending is a bare pop: deferred requests are released with
        no decision. A group queue that still holds stacked groups re-enters
        pending for the next one.

        Returns:
            The removed request, or None if the queue was empty
        """
        request = self._queues[kind].pop()
        if request is None:
            logger.debug(f"advance({kind.value}) on empty queue")
            return None
        await self._retire(request)
        return request

    async def _settle(self, request: PermissionRequest) -> None:
        """Remove a just-resolved request from its queue, wherever it now sits."""
        if self._queues[request.kind].remove(request.request_id) is None:
            logger.warning(
                f"{request.kind.value} request {request.request_id} "
                "left its queue while being resolved"
            )
            return
        await self._retire(request)

    async def _retire(self, request: PermissionRequest) -> None:
        kind = request.kind
        queue = self._queues[kind]

        if kind is RequestKind.GROUP:
            # Resolved groups already consumed their key; a bare pop starts no cooldown.
            self._cooldowns.forget(request.request_id)
            if not queue:
                self._gate.disarm()

        if not queue:
            await self._close_surface(queue)

        if kind is RequestKind.GROUP:
            if not queue and self._gate.pending:
                logger.info(
                    f"Group request {request.request_id} abandoned; releasing deferrals"
                )
                await self.release(None)
            elif queue and not self._gate.pending:
                self._gate.enter_pending(self._on_grace_expired)

    # ========================================================================
    # Release
    # ========================================================================

    def _partition(self, decision: Optional[GroupDecision]) -> list[TypedQueue]:
        """
        Drain the deferral buffer, drop covered requests and requeue the rest.

        Runs without suspending so no arrival can interleave with it. Every
        drained request is back in a queue (or dropped as covered) before
        any audit record is written.

        Returns:
            Queues that transitioned from empty and need their surface opened
        """
        self._gate.disarm()
        drained = self._deferred.drain()

        covered = []
        released = []
        for kind in DEFERRABLE_KINDS:
            for request in drained[kind]:
                if is_covered(decision, request):
                    covered.append(request)
                else:
                    released.append(request)

        self._gate.to_idle()

        opened = []
        for request in released:
            queue = self._queues[request.kind]
            if queue.push(request):
                opened.append(queue)

        for request in covered:
            logger.debug(
                f"{request.kind.value} request {request.request_id} covered by group grant"
            )
            self._record(
                AuditEvent.REQUEST_COVERED,
                request_id=request.request_id,
                kind=request.kind.value,
            )
        for request in released:
            self._record(
                AuditEvent.REQUEST_RELEASED,
                request_id=request.request_id,
                kind=request.kind.value,
            )

        if covered or released:
            logger.info(
                f"Released deferred requests: {len(released)} requeued, "
                f"{len(covered)} covered"
            )
        return opened

    async def release(self, decision: Optional[GroupDecision]) -> None:
        """
        Release every deferred request against a group decision.

        Covered requests are dropped; the rest return to their queues,
        opening review surfaces for queues that were empty. Leaves the
        deferral buffer empty and the gate idle. ``None`` covers nothing.
        """
        for queue in self._partition(decision):
            await self._open_surface(queue)

    def _on_grace_expired(self, episode: int) -> None:
        if not self._gate.claim_expiry(episode):
            return
        logger.warning(
            f"Group negotiation unanswered after {self._gate.grace_period_seconds}s; "
            "releasing deferred requests"
        )
        front = self._queues[RequestKind.GROUP].front()
        self._record(
            AuditEvent.GROUP_GRACE_EXPIRED,
            request_id=front.request_id if front else None,
            kind=RequestKind.GROUP.value,
            episode=episode,
        )
        opened = self._partition(None)
        if opened:
            self._spawn(self._open_surfaces(opened))

    async def _open_surfaces(self, queues: list[TypedQueue]) -> None:
        for queue in queues:
            await self._open_surface(queue)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background arbiter task failed: {error}")

    # ========================================================================
    # Resolution entry points
    # ========================================================================

    def _claim(self, kind: RequestKind) -> Optional[PermissionRequest]:
        """Take the front request for resolution unless one is already in flight."""
        request = self._queues[kind].front()
        if request is None:
            logger.warning(f"No {kind.value} request to resolve")
            return None
        if request.request_id in self._in_flight:
            logger.warning(
                f"{kind.value} request {request.request_id} is already being resolved"
            )
            return None
        self._in_flight.add(request.request_id)
        return request

    async def _resolve_group(
        self, outcome: GroupOutcome, granted: Optional[Any] = None
    ) -> bool:
        request = self._claim(RequestKind.GROUP)
        if request is None:
            return False
        try:
            await self._answer_group(request, outcome, granted)
        finally:
            self._in_flight.discard(request.request_id)
        return True

    async def _answer_group(
        self, request: GroupRequest, outcome: GroupOutcome, granted: Optional[Any]
    ) -> None:
        # The user answered inside the window; only the release may end this episode now.
        self._gate.disarm()

        decision = None
        try:
            if outcome is GroupOutcome.GRANTED:
                if granted is None:
                    granted = request.permissions
                if not isinstance(granted, Mapping):
                    granted = build_payload(granted)
                await self.runtime.grant_grouped_permission(
                    request.request_id, granted, expiry=0
                )
                decision = build_decision(granted)
            elif outcome is GroupOutcome.DENIED:
                await self.runtime.deny_grouped_permission(request.request_id)
            else:
                await self.runtime.dismiss_grouped_permission(request.request_id)
        except Exception as e:
            # The grant was not confirmed, so nothing is treated as covered.
            decision = None
            await self._runtime_failed(
                RequestKind.GROUP, request.request_id, _GROUP_OPERATIONS[outcome], e
            )

        try:
            await self.release(decision)
        except Exception as e:
            logger.error(f"Failed to release grouped decision: {e}")
            self._gate.to_idle()

        self._cooldowns.start_for_request(request.request_id)
        self._record(
            _GROUP_AUDIT_EVENTS[outcome],
            request_id=request.request_id,
            kind=RequestKind.GROUP.value,
            originator=request.originator,
        )
        await self._settle(request)

    async def grant(
        self, kind: RequestKind, granted: Optional[Any] = None, **options: Any
    ) -> bool:
        """
        Grant the request at the front of a queue and remove it.

        Args:
            kind: Queue to act on
            granted: For group/counterparty requests, the payload actually
                granted (defaults to everything requested)
            **options: Passed to the runtime's single-permission grant

        Returns:
            False if the queue was empty or its front request is already
            being resolved
        """
        if kind is RequestKind.GROUP:
            return await self._resolve_group(GroupOutcome.GRANTED, granted)

        request = self._claim(kind)
        if request is None:
            return False

        try:
            try:
                if kind is RequestKind.COUNTERPARTY:
                    await self._grant_counterparty(
                        request, granted, options.get("expiry", 0)
                    )
                else:
                    await self.runtime.grant_permission(request.request_id, **options)
                self._record(
                    AuditEvent.PERMISSION_GRANTED,
                    request_id=request.request_id,
                    kind=kind.value,
                    originator=request.originator,
                )
            except Exception as e:
                await self._runtime_failed(kind, request.request_id, "grant", e)
            await self._settle(request)
        finally:
            self._in_flight.discard(request.request_id)
        return True

    async def _grant_counterparty(
        self, request: CounterpartyRequest, granted: Optional[Any], expiry: int
    ) -> None:
        if granted is None:
            granted = {"protocols": request.permissions.to_payload()["protocolPermissions"]}
        await self.runtime.grant_counterparty_permission(
            request.request_id, granted, expiry=expiry
        )
        await self._notify(
            ArbiterNotification(
                type=NotificationType.PERMISSIONS_CHANGED,
                kind=RequestKind.COUNTERPARTY,
                request_id=request.request_id,
                details={
                    "op": "grant-counterparty",
                    "originator": normalize_originator(request.originator),
                    "counterparty": request.counterparty,
                },
            )
        )

    async def deny(self, kind: RequestKind) -> bool:
        """Deny the request at the front of a queue and remove it."""
        if kind is RequestKind.GROUP:
            return await self._resolve_group(GroupOutcome.DENIED)

        request = self._claim(kind)
        if request is None:
            return False

        try:
            try:
                if kind is RequestKind.COUNTERPARTY:
                    await self.runtime.deny_counterparty_permission(request.request_id)
                else:
                    await self.runtime.deny_permission(request.request_id)
                self._record(
                    AuditEvent.PERMISSION_DENIED,
                    request_id=request.request_id,
                    kind=kind.value,
                    originator=request.originator,
                )
            except Exception as e:
                await self._runtime_failed(kind, request.request_id, "deny", e)
            await self._settle(request)
        finally:
            self._in_flight.discard(request.request_id)
        return True

    async def dismiss(self, kind: RequestKind = RequestKind.GROUP) -> bool:
        """Dismiss the grouped request at the front of the group queue."""
        if kind is not RequestKind.GROUP:
            raise ValueError(f"Only grouped requests can be dismissed, got {kind.value}")
        return await self._resolve_group(GroupOutcome.DISMISSED)

    async def close(self) -> None:
        """Cancel the grace timer and any background surface work."""
        self._gate.disarm()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def build_payload(granted: Any) -> Dict[str, Any]:
    """Render a grant given as GroupedPermissions into the runtime payload shape."""
    to_payload = getattr(granted, "to_payload", None)
    if callable(to_payload):
        return to_payload()
    logger.warning(
        f"Grouped grant of type {type(granted).__name__} is not a payload; granting nothing"
    )
    return {}
