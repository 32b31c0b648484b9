"""Decision evaluator: normalize grouped grants and test deferred requests for coverage."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from loguru import logger

from ..requests import (
    BasketRequest,
    CertificateRequest,
    CounterpartyRequest,
    GroupedPermissions,
    PermissionRequest,
    ProtocolRequest,
    SpendingRequest,
    protocol_key,
)

ALL_PROTOCOLS = "all"


@dataclass(frozen=True)
class CertificateRule:
    """Allowed certificate type; an empty field set means any fields."""

    type: str
    fields: frozenset[str] = frozenset()


@dataclass(frozen=True)
class GroupDecision:
    """
    Canonical allow-set built from a grouped grant.

    Attributes:
        protocols: ``"all"`` or a set of protocol keys (``name`` or ``name|counterparty``)
        baskets: Basket names granted
        certificates: Certificate rules granted
        spending_up_to: Satoshi ceiling, or None for no spending coverage
    """

    protocols: Union[frozenset[str], str] = frozenset()
    baskets: frozenset[str] = frozenset()
    certificates: tuple[CertificateRule, ...] = ()
    spending_up_to: Optional[int] = None


def _entries(granted: Mapping[str, Any], *names: str) -> list:
    for name in names:
        value = granted.get(name)
        if value is not None:
            return value if isinstance(value, (list, tuple)) else []
    return []


def _protocol_keys(granted: Mapping[str, Any]) -> Union[frozenset[str], str]:
    raw = granted.get("protocolPermissions", granted.get("protocols"))
    if raw == ALL_PROTOCOLS:
        return ALL_PROTOCOLS

    keys = set()
    for entry in _entries(granted, "protocolPermissions", "protocols"):
        if not isinstance(entry, Mapping):
            continue
        protocol_id = entry.get("protocolID")
        if (
            isinstance(protocol_id, (list, tuple))
            and len(protocol_id) > 1
            and isinstance(protocol_id[1], str)
        ):
            keys.add(protocol_key(protocol_id[0], protocol_id[1], entry.get("counterparty")))
        elif isinstance(protocol_id, str):
            keys.add(protocol_id)
        elif isinstance(entry.get("name"), str):
            keys.add(entry["name"])
    return frozenset(keys)


def _baskets(granted: Mapping[str, Any]) -> frozenset[str]:
    names = set()
    for entry in _entries(granted, "basketAccess", "baskets"):
        if isinstance(entry, str):
            names.add(entry)
        elif isinstance(entry, Mapping) and isinstance(entry.get("basket"), str):
            names.add(entry["basket"])
    return frozenset(names)


def _certificates(granted: Mapping[str, Any]) -> tuple[CertificateRule, ...]:
    rules = []
    for entry in _entries(granted, "certificateAccess", "certificates"):
        if not isinstance(entry, Mapping):
            continue
        cert_type = entry.get("type", entry.get("certificateType"))
        if not isinstance(cert_type, str):
            continue
        raw_fields = entry.get("fields") or []
        if isinstance(raw_fields, Mapping):
            raw_fields = list(raw_fields.keys())
        if not isinstance(raw_fields, (list, tuple, set, frozenset)):
            raw_fields = []
        fields = frozenset(f for f in raw_fields if isinstance(f, str))
        rules.append(CertificateRule(type=cert_type, fields=fields))
    return tuple(rules)


def _spending_cap(granted: Mapping[str, Any]) -> Optional[int]:
    spending = granted.get("spendingAuthorization", granted.get("spending"))
    if not spending:
        return None
    if isinstance(spending, (int, float)) and not isinstance(spending, bool):
        return int(spending)
    if isinstance(spending, Mapping):
        for name in ("satoshis", "amount"):
            value = spending.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return int(value)
    return None


def build_decision(granted: Any) -> GroupDecision:
    """
    Normalize a grouped grant payload into a GroupDecision.

    Accepts the runtime's camelCase payload (and its short aliases
    ``protocols``/``baskets``/``certificates``/``spending``) or a
    GroupedPermissions instance. Missing or malformed collections
    degrade to empty; a missing spending cap means no spending coverage.

    Args:
        granted: Loosely-typed grant payload

    Returns:
        Fully populated GroupDecision
    """
    if isinstance(granted, GroupedPermissions):
        granted = granted.to_payload()
    if not isinstance(granted, Mapping):
        if granted is not None:
            logger.warning(
                f"Grouped grant payload of type {type(granted).__name__} ignored; "
                "treating as an empty grant"
            )
        return GroupDecision()

    return GroupDecision(
        protocols=_protocol_keys(granted),
        baskets=_baskets(granted),
        certificates=_certificates(granted),
        spending_up_to=_spending_cap(granted),
    )


def _protocol_allowed(decision: GroupDecision, key: str) -> bool:
    if decision.protocols == ALL_PROTOCOLS:
        return True
    return key in decision.protocols


def _certificate_allowed(
    decision: GroupDecision, cert_type: str, fields: frozenset[str]
) -> bool:
    if not cert_type:
        return False
    for rule in decision.certificates:
        if rule.type != cert_type:
            continue
        if not rule.fields or fields <= rule.fields:
            return True
    return False


def _bundle_covered(decision: GroupDecision, request: CounterpartyRequest) -> bool:
    """
    A counterparty bundle is covered only when every permission it bundles is.

    Protocol entries without their own counterparty are scoped to the
    bundle's counterparty. An empty bundle is never covered.
    """
    permissions = request.permissions
    if permissions.is_empty():
        return False

    for permission in permissions.protocol_permissions:
        key = protocol_key(
            permission.security_level,
            permission.protocol_id,
            permission.counterparty or request.counterparty,
        )
        if not _protocol_allowed(decision, key):
            return False
    for access in permissions.basket_access:
        if access.basket not in decision.baskets:
            return False
    for access in permissions.certificate_access:
        if not _certificate_allowed(decision, access.type, frozenset(access.fields)):
            return False
    spending = permissions.spending_authorization
    if spending is not None and (
        decision.spending_up_to is None or spending.amount > decision.spending_up_to
    ):
        return False
    return True


def is_covered(decision: Optional[GroupDecision], request: PermissionRequest) -> bool:
    """Return True if the request's capability is already implied by the decision."""
    if decision is None:
        return False
    if isinstance(request, BasketRequest):
        return bool(request.basket) and request.basket in decision.baskets
    if isinstance(request, CertificateRequest):
        return _certificate_allowed(decision, request.certificate_type, request.fields)
    if isinstance(request, ProtocolRequest):
        return _protocol_allowed(decision, request.key)
    if isinstance(request, SpendingRequest):
        return (
            decision.spending_up_to is not None
            and request.authorization_amount <= decision.spending_up_to
        )
    if isinstance(request, CounterpartyRequest):
        return _bundle_covered(decision, request)
    return False
