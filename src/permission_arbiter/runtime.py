"""Wallet runtime interface consumed by the arbiter.

The runtime originates permission requests through bound callbacks and
performs the actual grant/deny/dismiss operations. The arbiter only ever
talks to it through this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

# Runtime event names, one per request kind.
BASKET_ACCESS_EVENT = "onBasketAccessRequested"
CERTIFICATE_ACCESS_EVENT = "onCertificateAccessRequested"
PROTOCOL_PERMISSION_EVENT = "onProtocolPermissionRequested"
SPENDING_AUTHORIZATION_EVENT = "onSpendingAuthorizationRequested"
GROUPED_PERMISSION_EVENT = "onGroupedPermissionRequested"
COUNTERPARTY_PERMISSION_EVENT = "onCounterpartyPermissionRequested"

RuntimeCallback = Callable[[Dict[str, Any]], Awaitable[None]]


class WalletRuntime(ABC):
    """Abstract wallet runtime.

    All operations are async; implementations may raise on failure, which
    the arbiter treats as non-fatal.
    """

    @abstractmethod
    def bind_callback(self, event_name: str, callback: RuntimeCallback) -> Any:
        """Register a coroutine to be invoked when the runtime raises ``event_name``."""
        pass

    @abstractmethod
    async def grant_permission(self, request_id: str, **options: Any) -> Any:
        """Grant a single basket/certificate/protocol/spending request.

        Args:
            request_id: Runtime-issued request identifier
            **options: Grant options (e.g. ``ephemeral``, ``amount``, ``expiry``)
        """
        pass

    @abstractmethod
    async def deny_permission(self, request_id: str) -> Any:
        pass

    @abstractmethod
    async def grant_grouped_permission(
        self, request_id: str, granted: Dict[str, Any], expiry: Optional[int] = None
    ) -> Any:
        """Grant a grouped request.

        Args:
            request_id: Runtime-issued request identifier
            granted: GroupedPermissions payload actually granted
            expiry: Grant expiry (0 = never expires)
        """
        pass

    @abstractmethod
    async def deny_grouped_permission(self, request_id: str) -> Any:
        pass

    @abstractmethod
    async def dismiss_grouped_permission(self, request_id: str) -> Any:
        """Resolve a grouped request without showing any UI."""
        pass

    @abstractmethod
    async def grant_counterparty_permission(
        self, request_id: str, granted: Dict[str, Any], expiry: Optional[int] = None
    ) -> Any:
        pass

    @abstractmethod
    async def deny_counterparty_permission(self, request_id: str) -> Any:
        pass
