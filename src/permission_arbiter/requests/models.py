"""Data models for permission requests raised by the wallet runtime."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional

from ..config import Config
from ..errors import MalformedRequestError

_SCHEME_PREFIX = re.compile(r"^https?://")


class RequestKind(str, Enum):
    """The six request queues arbitrated by the engine."""

    BASKET = "basket"
    CERTIFICATE = "certificate"
    PROTOCOL = "protocol"
    SPENDING = "spending"
    GROUP = "group"
    COUNTERPARTY = "counterparty"


# Kinds that are held back while a grouped negotiation is pending.
DEFERRABLE_KINDS = (
    RequestKind.BASKET,
    RequestKind.CERTIFICATE,
    RequestKind.PROTOCOL,
    RequestKind.SPENDING,
    RequestKind.COUNTERPARTY,
)


class PermissionType(str, Enum):
    """Display classification of a protocol request."""

    IDENTITY = "identity"
    PROTOCOL = "protocol"
    RENEWAL = "renewal"
    BASKET = "basket"


def normalize_originator(originator: Optional[str]) -> str:
    """Strip a leading http:// or https:// scheme from an originator."""
    return _SCHEME_PREFIX.sub("", originator or "")


def protocol_key(
    security_level: Any, protocol_id: str, counterparty: Optional[str] = None
) -> str:
    """
    Compute the coverage key for a protocol permission.

    Level 2 protocols are scoped per counterparty and use the composite
    ``name|counterparty`` form; every other level uses the bare name.
    """
    if security_level == 2:
        return f"{protocol_id}|{counterparty or Config.DEFAULT_COUNTERPARTY}"
    return protocol_id


def classify_protocol(protocol_id: str, renewal: bool) -> PermissionType:
    """Classify a protocol request for display."""
    if protocol_id == "identity resolution":
        return PermissionType.IDENTITY
    if renewal:
        return PermissionType.RENEWAL
    if "basket" in protocol_id:
        return PermissionType.BASKET
    return PermissionType.PROTOCOL


def _field_names(raw: Any) -> tuple[str, ...]:
    """Certificate fields arrive either as a mapping of name->value or as a list."""
    if isinstance(raw, Mapping):
        return tuple(str(name) for name in raw.keys())
    if isinstance(raw, (list, tuple, set, frozenset)):
        return tuple(name for name in raw if isinstance(name, str))
    return ()


def _split_protocol_id(raw: Any) -> tuple[Optional[int], Optional[str]]:
    """Split a runtime ``[securityLevel, name]`` protocol id."""
    if isinstance(raw, (list, tuple)) and len(raw) > 1 and isinstance(raw[1], str):
        return raw[0], raw[1]
    if isinstance(raw, str):
        return None, raw
    return None, None


def _collection(payload: Mapping[str, Any], *names: str) -> list:
    """First collection present under any of the given names; non-lists read as empty."""
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value if isinstance(value, (list, tuple)) else []
    return []


# ============================================================================
# Grouped permissions
# ============================================================================


@dataclass(frozen=True)
class SpendingAuthorization:
    amount: int
    description: str = ""


@dataclass(frozen=True)
class ProtocolPermission:
    security_level: int
    protocol_id: str
    counterparty: Optional[str] = None
    description: str = ""

    @property
    def key(self) -> str:
        return protocol_key(self.security_level, self.protocol_id, self.counterparty)


@dataclass(frozen=True)
class BasketAccess:
    basket: str
    description: str = ""


@dataclass(frozen=True)
class CertificateAccess:
    type: str
    verifier_public_key: str = ""
    fields: tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class GroupedPermissions:
    """
    Aggregate of permissions requested (or granted) in one grouped prompt.

    Mirrors the runtime's ``GroupedPermissions`` payload. ``from_payload``
    tolerates missing collections and skips entries it cannot interpret;
    ``to_payload`` renders the runtime's camelCase shape back.
    """

    spending_authorization: Optional[SpendingAuthorization] = None
    protocol_permissions: tuple[ProtocolPermission, ...] = ()
    basket_access: tuple[BasketAccess, ...] = ()
    certificate_access: tuple[CertificateAccess, ...] = ()

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "GroupedPermissions":
        if isinstance(payload, GroupedPermissions):
            return payload
        if not isinstance(payload, Mapping):
            return cls()

        spending = None
        raw_spending = payload.get("spendingAuthorization", payload.get("spending"))
        if isinstance(raw_spending, Mapping):
            amount = raw_spending.get("amount", raw_spending.get("satoshis"))
            if isinstance(amount, int) and not isinstance(amount, bool):
                spending = SpendingAuthorization(
                    amount=amount,
                    description=raw_spending.get("description") or "",
                )

        protocols = []
        for entry in _collection(payload, "protocolPermissions", "protocols"):
            if not isinstance(entry, Mapping):
                continue
            level, name = _split_protocol_id(entry.get("protocolID", entry.get("name")))
            if name is None:
                continue
            protocols.append(
                ProtocolPermission(
                    security_level=level if isinstance(level, int) else 0,
                    protocol_id=name,
                    counterparty=entry.get("counterparty"),
                    description=entry.get("description") or "",
                )
            )

        baskets = []
        for entry in _collection(payload, "basketAccess", "baskets"):
            if isinstance(entry, str):
                baskets.append(BasketAccess(basket=entry))
            elif isinstance(entry, Mapping) and isinstance(entry.get("basket"), str):
                baskets.append(
                    BasketAccess(
                        basket=entry["basket"],
                        description=entry.get("description") or "",
                    )
                )

        certificates = []
        for entry in _collection(payload, "certificateAccess", "certificates"):
            if not isinstance(entry, Mapping):
                continue
            cert_type = entry.get("type", entry.get("certificateType"))
            if not isinstance(cert_type, str):
                continue
            certificates.append(
                CertificateAccess(
                    type=cert_type,
                    verifier_public_key=entry.get("verifierPublicKey") or "",
                    fields=_field_names(entry.get("fields")),
                    description=entry.get("description") or "",
                )
            )

        return cls(
            spending_authorization=spending,
            protocol_permissions=tuple(protocols),
            basket_access=tuple(baskets),
            certificate_access=tuple(certificates),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "protocolPermissions": [
                {
                    "protocolID": [p.security_level, p.protocol_id],
                    "counterparty": p.counterparty,
                    "description": p.description,
                }
                for p in self.protocol_permissions
            ],
            "basketAccess": [
                {"basket": b.basket, "description": b.description}
                for b in self.basket_access
            ],
            "certificateAccess": [
                {
                    "type": c.type,
                    "verifierPublicKey": c.verifier_public_key,
                    "fields": list(c.fields),
                    "description": c.description,
                }
                for c in self.certificate_access
            ],
        }
        if self.spending_authorization is not None:
            payload["spendingAuthorization"] = {
                "amount": self.spending_authorization.amount,
                "description": self.spending_authorization.description,
            }
        return payload

    def is_empty(self) -> bool:
        return (
            self.spending_authorization is None
            and not self.protocol_permissions
            and not self.basket_access
            and not self.certificate_access
        )


# ============================================================================
# Requests
# ============================================================================


@dataclass(kw_only=True)
class PermissionRequest:
    """
    Common fields of every request surfaced by the wallet runtime.

    Attributes:
        request_id: Runtime-issued identifier, unique across all kinds
        originator: Identifier of the calling application
        reason: Optional human-readable reason supplied by the application
        renewal: True if this re-requests an expiring grant
    """

    kind: ClassVar[RequestKind]

    request_id: str
    originator: str = ""
    reason: Optional[str] = None
    renewal: bool = False

    @classmethod
    def _common(cls, payload: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise MalformedRequestError(cls.kind.value, "payload is not a mapping")
        request_id = payload.get("requestID")
        if not request_id:
            raise MalformedRequestError(cls.kind.value, "missing requestID")
        return {
            "request_id": str(request_id),
            "originator": payload.get("originator") or "",
            "reason": payload.get("reason"),
            "renewal": bool(payload.get("renewal", False)),
        }


@dataclass(kw_only=True)
class BasketRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.BASKET

    basket: Optional[str] = None

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "BasketRequest":
        common = cls._common(payload)
        return cls(basket=payload.get("basket"), **common)


@dataclass(kw_only=True)
class CertificateRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.CERTIFICATE

    certificate_type: str
    fields: frozenset[str] = field(default_factory=frozenset)
    verifier_public_key: str = ""

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "CertificateRequest":
        common = cls._common(payload)
        certificate = payload.get("certificate")
        if not isinstance(certificate, Mapping):
            certificate = {}
        return cls(
            certificate_type=certificate.get("certType") or "",
            fields=frozenset(_field_names(certificate.get("fields"))),
            verifier_public_key=certificate.get("verifier") or "",
            **common,
        )


@dataclass(kw_only=True)
class ProtocolRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.PROTOCOL

    protocol_security_level: int
    protocol_id: str
    counterparty: Optional[str] = None
    permission_type: PermissionType = PermissionType.PROTOCOL

    @property
    def key(self) -> str:
        return protocol_key(
            self.protocol_security_level, self.protocol_id, self.counterparty
        )

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "ProtocolRequest":
        common = cls._common(payload)
        level, name = _split_protocol_id(payload.get("protocolID"))
        if name is None or not isinstance(level, int):
            raise MalformedRequestError(cls.kind.value, "missing protocolID")
        return cls(
            protocol_security_level=level,
            protocol_id=name,
            counterparty=payload.get("counterparty"),
            permission_type=classify_protocol(name, common["renewal"]),
            **common,
        )


@dataclass(frozen=True)
class LineItem:
    description: str
    satoshis: int


@dataclass(kw_only=True)
class SpendingRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.SPENDING

    authorization_amount: int
    line_items: tuple[LineItem, ...] = ()
    transaction_amount: int = 0
    total_past_spending: int = 0
    amount_previously_authorized: int = 0

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "SpendingRequest":
        common = cls._common(payload)
        spending = payload.get("spending")
        if not isinstance(spending, Mapping) or not isinstance(
            spending.get("satoshis"), int
        ):
            raise MalformedRequestError(cls.kind.value, "missing spending.satoshis")
        line_items = tuple(
            LineItem(
                description=str(item.get("description") or ""),
                satoshis=int(item.get("satoshis") or 0),
            )
            for item in spending.get("lineItems") or []
            if isinstance(item, Mapping)
        )
        return cls(
            authorization_amount=spending["satoshis"],
            line_items=line_items,
            **common,
        )


@dataclass(kw_only=True)
class CounterpartyRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.COUNTERPARTY

    counterparty: str
    counterparty_label: Optional[str] = None
    permissions: GroupedPermissions = field(default_factory=GroupedPermissions)

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "CounterpartyRequest":
        common = cls._common(payload)
        permissions = payload.get("permissions")
        if not isinstance(permissions, Mapping):
            raise MalformedRequestError(cls.kind.value, "missing permissions")
        return cls(
            counterparty=payload.get("counterparty") or "",
            counterparty_label=payload.get("counterpartyLabel"),
            permissions=GroupedPermissions.from_payload(permissions),
            **common,
        )


@dataclass(kw_only=True)
class GroupRequest(PermissionRequest):
    kind: ClassVar[RequestKind] = RequestKind.GROUP

    permissions: GroupedPermissions = field(default_factory=GroupedPermissions)

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "GroupRequest":
        common = cls._common(payload)
        permissions = payload.get("permissions")
        if not isinstance(permissions, Mapping):
            raise MalformedRequestError(cls.kind.value, "missing permissions")
        return cls(permissions=GroupedPermissions.from_payload(permissions), **common)

