"""Request model: the six request kinds surfaced by the wallet runtime."""

from .models import (
    DEFERRABLE_KINDS,
    BasketAccess,
    BasketRequest,
    CertificateAccess,
    CertificateRequest,
    CounterpartyRequest,
    GroupedPermissions,
    GroupRequest,
    LineItem,
    PermissionRequest,
    PermissionType,
    ProtocolPermission,
    ProtocolRequest,
    RequestKind,
    SpendingAuthorization,
    SpendingRequest,
    classify_protocol,
    normalize_originator,
    protocol_key,
)

__all__ = [
    "DEFERRABLE_KINDS",
    "BasketAccess",
    "BasketRequest",
    "CertificateAccess",
    "CertificateRequest",
    "CounterpartyRequest",
    "GroupedPermissions",
    "GroupRequest",
    "LineItem",
    "PermissionRequest",
    "PermissionType",
    "ProtocolPermission",
    "ProtocolRequest",
    "RequestKind",
    "SpendingAuthorization",
    "SpendingRequest",
    "classify_protocol",
    "normalize_originator",
    "protocol_key",
]
