"""Stakeholder model — one payee of a dividend distribution.

Stakeholders are constructed from untrusted input at the start of a
computation, are immutable afterwards, and are never persisted.

Identity is an EVM address canonicalized to EIP-55 checksum form, so
case-insensitive uniqueness reduces to plain equality of ``identity``.
Attributes only feed the optional performance bonus; they never affect
identity or uniqueness.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping, Optional

from eth_utils import is_hex_address, to_checksum_address

from privest.errors import InvalidInput

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PERFORMANCE_SCORE_KEY = "performanceScore"


def canonical_identity(value: Any) -> str:
    """Return the checksummed form of an address, or raise InvalidInput.

    Accepts ``0x`` + 40 hex characters in any case. Surrounding whitespace
    is stripped. The zero address is rejected.
    """
    if not isinstance(value, str):
        raise InvalidInput("Investor address is required")
    candidate = value.strip()
    if not candidate.startswith("0x") or not is_hex_address(candidate):
        raise InvalidInput(f"Invalid Ethereum address format: {value!r}")
    if candidate.lower() == ZERO_ADDRESS:
        raise InvalidInput("Investor address must not be the zero address")
    return to_checksum_address(candidate)


def to_decimal(value: Any, name: str) -> Decimal:
    """Convert an untrusted numeric value to a finite Decimal.

    Floats go through ``str()`` so that ``0.1`` becomes ``Decimal("0.1")``.
    Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{name} must be a valid number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidInput(f"{name} must be a valid number") from exc
    else:
        raise InvalidInput(f"{name} must be a valid number")
    if not result.is_finite():
        raise InvalidInput(f"{name} must be finite")
    return result


@dataclass(frozen=True)
class Stakeholder:
    """A single payee with a contribution weight.

    Usage:
        holder = Stakeholder("0x71c7656ec7ab88b098defb751b7401b5f6d8976f", "300000")
        holder.identity   # "0x71C7656EC7ab88b098defB751B7401B5f6d8976F"
        holder.weight     # Decimal("300000")
    """
    identity: str
    weight: Decimal
    label: str = ""
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity", canonical_identity(self.identity))
        weight = to_decimal(self.weight, "Stake")
        if weight <= 0:
            raise InvalidInput("Stake must be greater than zero")
        object.__setattr__(self, "weight", weight)
        if self.label is None:
            object.__setattr__(self, "label", "")
        elif not isinstance(self.label, str):
            raise InvalidInput("Investor name must be a string")
        if not isinstance(self.attributes, Mapping):
            raise InvalidInput("Investor metadata must be an object")
        object.__setattr__(
            self, "attributes", MappingProxyType(dict(self.attributes))
        )
        # Validate eagerly so a bad score fails at construction, not mid-run.
        _ = self.performance_score

    @property
    def performance_score(self) -> Optional[Decimal]:
        """The optional performance score, or None if absent.

        Scores outside [0, 100] are accepted here and clamped by the
        bonus formula.
        """
        raw = self.attributes.get(PERFORMANCE_SCORE_KEY)
        if raw is None:
            return None
        return to_decimal(raw, "performanceScore")

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.identity,
            "stake": str(self.weight),
            "name": self.label,
            "metadata": dict(self.attributes),
        }
