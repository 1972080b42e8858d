"""
Recipient Registry
==================

Weighted recipient sets for the two non-tranche earnings groups:

- **Protocol** recipients share the protocol fee.
- **Residual** recipients share whatever post-fee yield the tranches do
  not claim.

Each set is an ordered tuple of ``(address, weight_bips)`` entries whose
weights are strictly positive integers summing to exactly 10000. Sets are
immutable; the registry replaces a whole set atomically, validating the
new one before the old one is discarded.

Per-recipient amounts are floored (``amount * weight // 10000``). The
remainder, at most ``len(set) - 1`` smallest units, is not redistributed.

Example
-------
>>> from tranche_yield.engine.recipients import RecipientRegistry, RecipientKind
>>> registry = RecipientRegistry()
>>> registry.set_recipients(RecipientKind.PROTOCOL, [("treasury", 6000), ("ops", 4000)])
>>> [amount for _, amount in registry.get(RecipientKind.PROTOCOL).split(101)]
[60, 40]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import InvalidRecipients, InvariantViolation
from .fixed_point import BIPS

logger = logging.getLogger("TrancheYield.Registry")


class RecipientKind(str, Enum):
    """Which earnings group a recipient set applies to."""

    PROTOCOL = "protocol"
    RESIDUAL = "residual"


@dataclass(frozen=True)
class Recipient:
    """A single weighted payee."""

    address: str
    weight_bips: int

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "weight_bips": self.weight_bips}


RecipientLike = Union[Recipient, Tuple[str, int], Dict[str, Any]]


def _coerce(entry: RecipientLike) -> Recipient:
    if isinstance(entry, Recipient):
        return entry
    if isinstance(entry, dict):
        try:
            return Recipient(address=entry["address"], weight_bips=entry["weight_bips"])
        except KeyError as e:
            raise InvalidRecipients(f"Recipient entry missing field {e}") from e
    try:
        address, weight = entry
    except (TypeError, ValueError) as e:
        raise InvalidRecipients(f"Malformed recipient entry: {entry!r}") from e
    return Recipient(address=address, weight_bips=weight)


class RecipientSet(tuple):
    """
    Validated, ordered tuple of recipients.

    Build instances through :meth:`from_entries`, which rejects anything
    that does not satisfy the weight invariant.
    """

    @classmethod
    def from_entries(cls, entries: Iterable[RecipientLike]) -> "RecipientSet":
        """
        Validate and freeze a recipient list.

        Parameters
        ----------
        entries : iterable
            ``Recipient`` objects, ``(address, weight)`` pairs or
            ``{"address": ..., "weight_bips": ...}`` dicts.

        Raises
        ------
        InvalidRecipients
            If the list is empty, any weight is not a positive integer, an
            address is empty or repeated, or weights do not sum to 10000.
        """
        recipients = [_coerce(e) for e in entries]
        if not recipients:
            raise InvalidRecipients("Recipient list is empty")

        seen = set()
        total = 0
        for r in recipients:
            if not isinstance(r.address, str) or not r.address:
                raise InvalidRecipients(f"Recipient address must be a non-empty string: {r.address!r}")
            if r.address in seen:
                raise InvalidRecipients(f"Duplicate recipient: {r.address}")
            seen.add(r.address)
            # bool is an int subclass; reject it explicitly
            if isinstance(r.weight_bips, bool) or not isinstance(r.weight_bips, int):
                raise InvalidRecipients(f"Weight for {r.address} must be an integer")
            if r.weight_bips <= 0:
                raise InvalidRecipients(f"Weight for {r.address} must be positive, got {r.weight_bips}")
            total += r.weight_bips

        if total != BIPS:
            raise InvalidRecipients(f"Recipient weights sum to {total}, expected {BIPS}")
        return cls(recipients)

    @property
    def total_weight(self) -> int:
        return sum(r.weight_bips for r in self)

    def split(self, amount: int) -> List[Tuple[str, int]]:
        """
        Allocate ``amount`` across the set by weight.

        Returns
        -------
        list of (str, int)
            ``(address, amount)`` pairs in set order. Entries that round to
            zero are kept.

        Raises
        ------
        InvariantViolation
            If the weights no longer sum to 10000.
        """
        if self.total_weight != BIPS:
            raise InvariantViolation(f"Recipient weights sum to {self.total_weight} after validation")
        return [(r.address, amount * r.weight_bips // BIPS) for r in self]

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self]


class RecipientRegistry:
    """
    Holds the protocol and residual recipient sets.

    Sets start empty (``None``) until installed. Replacement goes through
    :meth:`set_recipients`, which validates first and swaps second, so a
    failed call leaves the previous set in place.
    """

    def __init__(self) -> None:
        self._sets: Dict[RecipientKind, Optional[RecipientSet]] = {
            RecipientKind.PROTOCOL: None,
            RecipientKind.RESIDUAL: None,
        }

    def get(self, kind: RecipientKind) -> RecipientSet:
        """Return the installed set for ``kind``."""
        current = self._sets[RecipientKind(kind)]
        if current is None:
            raise InvalidRecipients(f"No {RecipientKind(kind).value} recipients installed")
        return current

    def is_configured(self) -> bool:
        return all(s is not None for s in self._sets.values())

    def set_recipients(
        self, kind: RecipientKind, entries: Sequence[RecipientLike]
    ) -> Optional[RecipientSet]:
        """
        Atomically replace the set for ``kind``.

        Returns
        -------
        RecipientSet or None
            The previous set (``None`` if none was installed).
        """
        kind = RecipientKind(kind)
        new_set = RecipientSet.from_entries(entries)
        previous = self._sets[kind]
        self._sets[kind] = new_set
        logger.info(f"Installed {len(new_set)} {kind.value} recipients")
        return previous

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            kind.value: (s.to_list() if s is not None else [])
            for kind, s in self._sets.items()
        }
