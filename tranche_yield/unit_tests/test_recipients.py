"""
Recipient Registry Tests
========================

Validation of weighted recipient sets, per-recipient splits, and atomic
replacement in the registry.
"""

import pytest

from tranche_yield.engine.errors import InvalidRecipients, InvariantViolation
from tranche_yield.engine.recipients import (
    Recipient,
    RecipientKind,
    RecipientRegistry,
    RecipientSet,
)


def test_from_entries_accepts_pairs_dicts_and_recipients() -> None:
    """Recipient entries may be tuples, mappings or Recipient objects."""
    rs = RecipientSet.from_entries(
        [
            ("treasury", 5_000),
            {"address": "ops", "weight_bips": 3_000},
            Recipient("grants", 2_000),
        ]
    )
    assert [r.address for r in rs] == ["treasury", "ops", "grants"]
    assert rs.total_weight == 10_000


@pytest.mark.parametrize(
    "entries",
    [
        [],
        [("a", 9_999)],
        [("a", 5_000), ("b", 5_001)],
        [("a", 10_000), ("b", 0)],
        [("a", 11_000), ("b", -1_000)],
        [("a", 5_000), ("a", 5_000)],
        [("", 10_000)],
        [("a", 5_000.0), ("b", 5_000)],
        [("a", True), ("b", 9_999)],
        [{"address": "a"}],
        ["not-a-pair"],
    ],
    ids=[
        "empty",
        "short",
        "over",
        "zero-weight",
        "negative-weight",
        "duplicate",
        "empty-address",
        "float-weight",
        "bool-weight",
        "missing-field",
        "malformed",
    ],
)
def test_invalid_sets_rejected(entries) -> None:
    """
    Test recipient set validation.

    Empty sets, non-positive or non-integer weights, duplicate or blank
    addresses and weight sums other than 10000 are all rejected.
    """
    with pytest.raises(InvalidRecipients):
        RecipientSet.from_entries(entries)


def test_split_floors_each_recipient() -> None:
    """Each recipient amount is floored; the remainder is not redistributed."""
    rs = RecipientSet.from_entries([("a", 3_333), ("b", 3_333), ("c", 3_334)])
    split = rs.split(100)
    assert split == [("a", 33), ("b", 33), ("c", 33)]
    # remainder stays below the number of recipients
    assert 100 - sum(amount for _, amount in split) < len(rs)


def test_split_keeps_zero_entries() -> None:
    rs = RecipientSet.from_entries([("a", 9_999), ("b", 1)])
    assert rs.split(0) == [("a", 0), ("b", 0)]
    assert rs.split(5_000) == [("a", 4_999), ("b", 0)]


def test_split_rejects_corrupted_weights() -> None:
    """A set whose weights no longer sum to 10000 refuses to split."""
    corrupted = RecipientSet([Recipient("a", 6_000), Recipient("b", 3_000)])
    with pytest.raises(InvariantViolation):
        corrupted.split(100)


def test_to_list_round_trips() -> None:
    rs = RecipientSet.from_entries([("a", 4_000), ("b", 6_000)])
    assert RecipientSet.from_entries(rs.to_list()) == rs


# =============================================================================
# Registry
# =============================================================================


def test_registry_starts_unconfigured() -> None:
    registry = RecipientRegistry()
    assert not registry.is_configured()
    with pytest.raises(InvalidRecipients):
        registry.get(RecipientKind.PROTOCOL)
    assert registry.snapshot() == {"protocol": [], "residual": []}


def test_set_recipients_returns_previous() -> None:
    registry = RecipientRegistry()
    assert registry.set_recipients(RecipientKind.PROTOCOL, [("a", 10_000)]) is None
    previous = registry.set_recipients(RecipientKind.PROTOCOL, [("b", 10_000)])
    assert [r.address for r in previous] == ["a"]
    assert [r.address for r in registry.get(RecipientKind.PROTOCOL)] == ["b"]


def test_failed_replacement_keeps_old_set() -> None:
    """Replacement is atomic: an invalid update leaves the previous set in place."""
    registry = RecipientRegistry()
    registry.set_recipients(RecipientKind.RESIDUAL, [("reserve", 10_000)])
    with pytest.raises(InvalidRecipients):
        registry.set_recipients(RecipientKind.RESIDUAL, [("x", 5_000), ("y", 4_000)])
    assert registry.get(RecipientKind.RESIDUAL).to_list() == [
        {"address": "reserve", "weight_bips": 10_000}
    ]


def test_kind_accepts_string_value() -> None:
    registry = RecipientRegistry()
    registry.set_recipients("protocol", [("a", 10_000)])
    registry.set_recipients("residual", [("b", 10_000)])
    assert registry.is_configured()
    assert registry.snapshot()["residual"] == [{"address": "b", "weight_bips": 10_000}]
