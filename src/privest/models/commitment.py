"""Commitment models — the ordered (investors, amounts) pair and its digest.

The commitment is the single artifact the computing party and the ledger
agree on. Its encoding is a versioned wire protocol: field order, byte
widths, the unit conversion and the hash construction are all part of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any

from privest.errors import InvalidPolicy

# Bump on any change to field order, widths, conversion or hash structure.
COMMITMENT_VERSION = "1"


@dataclass(frozen=True)
class UnitConversion:
    """Conversion from the engine's decimal unit to the ledger's integer unit.

    base_units = truncate(amount * rate * 10**decimals)
    """
    rate: Decimal = Decimal("0.0005")
    decimals: int = 18
    rounding: str = ROUND_DOWN

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise InvalidPolicy("conversion rate must be positive")
        if not 0 <= self.decimals <= 36:
            raise InvalidPolicy("conversion decimals must be between 0 and 36")


@dataclass(frozen=True)
class Commitment:
    """Ordered investor and amount lists plus their commitment hash.

    Invariants (checked by the builder, the decoder and the ledger):
    len(investors) == len(amounts) > 0, every amount > 0, every investor a
    valid non-zero address, and result_hash == H(investors, amounts).
    """
    investors: tuple[str, ...]
    amounts: tuple[int, ...]
    result_hash: str

    @property
    def total(self) -> int:
        return sum(self.amounts)

    def verify(self) -> None:
        """Recompute the hash and raise EncodingError if it differs."""
        from privest.crypto.commitment_builder import verify_commitment
        verify_commitment(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "investors": list(self.investors),
            "amounts": [str(a) for a in self.amounts],
            "resultHash": self.result_hash,
        }
