"""
Unit Tests for the Decision Evaluator

Tests build_decision() normalization and is_covered() per request kind.
"""

import pytest

from permission_arbiter.governance import (
    ALL_PROTOCOLS,
    CertificateRule,
    GroupDecision,
    build_decision,
    is_covered,
)
from permission_arbiter.requests import (
    BasketRequest,
    CertificateRequest,
    CounterpartyRequest,
    GroupedPermissions,
    ProtocolRequest,
    SpendingRequest,
)


def _protocol(level, name, counterparty=None):
    return ProtocolRequest(
        request_id="p",
        protocol_security_level=level,
        protocol_id=name,
        counterparty=counterparty,
    )


def _certificate(cert_type, fields):
    return CertificateRequest(
        request_id="c", certificate_type=cert_type, fields=frozenset(fields)
    )


# ============================================================================
# build_decision
# ============================================================================


@pytest.mark.unit
def test_build_decision_from_runtime_payload():
    """The runtime's camelCase grant becomes a decision."""
    decision = build_decision(
        {
            "protocolPermissions": [
                {"protocolID": [2, "pay"], "counterparty": "Alice"},
                {"protocolID": [1, "notes"], "counterparty": "Bob"},
                {"protocolID": [2, "chat"]},
            ],
            "basketAccess": [{"basket": "invoices"}],
            "certificateAccess": [{"type": "identity", "fields": ["name"]}],
            "spendingAuthorization": {"amount": 5000, "description": "fees"},
        }
    )

    assert decision.protocols == frozenset({"pay|Alice", "notes", "chat|self"})
    assert decision.baskets == frozenset({"invoices"})
    assert decision.certificates == (CertificateRule("identity", frozenset({"name"})),)
    assert decision.spending_up_to == 5000


@pytest.mark.unit
def test_build_decision_accepts_short_aliases():
    """Short collection names are read like the long ones."""
    decision = build_decision(
        {
            "protocols": ["bare-name", {"name": "named"}],
            "baskets": ["todo", {"basket": "notes"}],
            "certificates": [{"certificateType": "kyc", "fields": {"age": 1}}],
            "spending": {"satoshis": 42},
        }
    )

    assert decision.protocols == frozenset({"named"})
    assert decision.baskets == frozenset({"todo", "notes"})
    assert decision.certificates[0].type == "kyc"
    assert decision.certificates[0].fields == frozenset({"age"})
    assert decision.spending_up_to == 42


@pytest.mark.unit
def test_build_decision_string_protocol_ids():
    """Bare string protocol ids are accepted."""
    decision = build_decision({"protocolPermissions": [{"protocolID": "legacy"}]})

    assert decision.protocols == frozenset({"legacy"})


@pytest.mark.unit
def test_build_decision_all_protocols_sentinel():
    """The "all" sentinel allows every protocol."""
    decision = build_decision({"protocolPermissions": "all"})

    assert decision.protocols == ALL_PROTOCOLS
    assert is_covered(decision, _protocol(2, "anything", "Zed"))


@pytest.mark.unit
@pytest.mark.parametrize("payload", [None, "granted", 17, [], {}])
def test_build_decision_degrades_to_empty(payload):
    """Anything that is not a grant becomes an empty decision."""
    decision = build_decision(payload)

    assert decision == GroupDecision()
    assert decision.spending_up_to is None


@pytest.mark.unit
def test_build_decision_malformed_collections_are_empty():
    """Collections of the wrong type read as empty."""
    decision = build_decision(
        {
            "protocolPermissions": {"not": "a list"},
            "basketAccess": "invoices",
            "certificateAccess": [None, {"type": 3}],
            "spendingAuthorization": {"amount": "5000"},
        }
    )

    assert decision.protocols == frozenset()
    assert decision.baskets == frozenset()
    assert decision.certificates == ()
    assert decision.spending_up_to is None


@pytest.mark.unit
def test_build_decision_from_grouped_permissions():
    """A GroupedPermissions grant is read through its payload."""
    permissions = GroupedPermissions.from_payload(
        {"basketAccess": [{"basket": "invoices"}]}
    )

    assert build_decision(permissions).baskets == frozenset({"invoices"})


# ============================================================================
# is_covered
# ============================================================================


@pytest.mark.unit
def test_nothing_is_covered_by_null_decision():
    """No decision covers nothing."""
    assert not is_covered(None, BasketRequest(request_id="b", basket="invoices"))
    assert not is_covered(None, SpendingRequest(request_id="s", authorization_amount=1))


@pytest.mark.unit
def test_basket_coverage_is_exact():
    """Basket coverage needs an exact name match."""
    decision = build_decision({"basketAccess": [{"basket": "invoices"}]})

    assert is_covered(decision, BasketRequest(request_id="b1", basket="invoices"))
    assert not is_covered(decision, BasketRequest(request_id="b2", basket="receipts"))
    assert not is_covered(decision, BasketRequest(request_id="b3", basket=None))


@pytest.mark.unit
def test_certificate_coverage_field_subset():
    """Certificates are covered when their fields are a subset of the grant."""
    decision = build_decision(
        {"certificateAccess": [{"type": "identity", "fields": ["name", "email"]}]}
    )

    assert is_covered(decision, _certificate("identity", ["name"]))
    assert is_covered(decision, _certificate("identity", ["name", "email"]))
    assert not is_covered(decision, _certificate("identity", ["name", "phone"]))
    assert not is_covered(decision, _certificate("other", ["name"]))


@pytest.mark.unit
def test_certificate_rule_without_fields_allows_any():
    """A certificate grant with no fields allows any fields."""
    decision = build_decision({"certificateAccess": [{"type": "identity"}]})

    assert is_covered(decision, _certificate("identity", ["anything", "at all"]))


@pytest.mark.unit
def test_protocol_level_two_is_scoped_by_counterparty():
    """Level 2 protocols are covered per counterparty."""
    decision = build_decision(
        {"protocolPermissions": [{"protocolID": [2, "pay"], "counterparty": "Alice"}]}
    )

    assert is_covered(decision, _protocol(2, "pay", "Alice"))
    assert not is_covered(decision, _protocol(2, "pay", "Bob"))


@pytest.mark.unit
def test_protocol_lower_levels_ignore_counterparty():
    """Lower-level protocols are covered by name alone."""
    decision = build_decision({"protocolPermissions": [{"protocolID": [1, "notes"]}]})

    assert is_covered(decision, _protocol(1, "notes", "Anyone"))
    assert is_covered(decision, _protocol(0, "notes"))
    assert not is_covered(decision, _protocol(2, "notes", "Anyone"))


@pytest.mark.unit
def test_spending_cap():
    """Spending up to the cap is covered."""
    decision = build_decision({"spendingAuthorization": {"amount": 5000}})

    assert is_covered(decision, SpendingRequest(request_id="s1", authorization_amount=3000))
    assert is_covered(decision, SpendingRequest(request_id="s2", authorization_amount=5000))
    assert not is_covered(
        decision, SpendingRequest(request_id="s3", authorization_amount=7000)
    )


@pytest.mark.unit
def test_spending_not_covered_without_cap():
    """No cap means no spending is covered."""
    decision = build_decision({"basketAccess": [{"basket": "invoices"}]})

    assert not is_covered(decision, SpendingRequest(request_id="s", authorization_amount=0))


@pytest.mark.unit
def test_counterparty_bundle_needs_every_permission():
    """A bundle is covered only if every permission is."""
    bundle = CounterpartyRequest(
        request_id="cp",
        counterparty="Alice",
        permissions=GroupedPermissions.from_payload(
            {"protocols": [{"protocolID": [2, "chat"]}, {"protocolID": [2, "pay"]}]}
        ),
    )
    partial = build_decision(
        {"protocolPermissions": [{"protocolID": [2, "chat"], "counterparty": "Alice"}]}
    )
    full = build_decision(
        {
            "protocolPermissions": [
                {"protocolID": [2, "chat"], "counterparty": "Alice"},
                {"protocolID": [2, "pay"], "counterparty": "Alice"},
            ]
        }
    )

    assert not is_covered(partial, bundle)
    assert is_covered(full, bundle)


@pytest.mark.unit
def test_empty_counterparty_bundle_is_never_covered():
    """An empty bundle is never covered."""
    bundle = CounterpartyRequest(request_id="cp", counterparty="Alice")

    assert not is_covered(build_decision({"protocolPermissions": "all"}), bundle)
