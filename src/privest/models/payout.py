"""Payout models — tiers, engine settings, per-stakeholder payout records.

All monetary values use Decimal for exact arithmetic. No floats in finance.

Invariants enforced by the engine that produces these records:
- final_amount >= settings.min_payout
- effective_bonus <= settings.bonus_cap
- sum(final_amount) is the quantity committed to the ledger. It may exceed
  the nominal pool, because tier multipliers, performance bonuses and the
  minimum-payout floor all inflate individual amounts. That inflation is
  reported in PayoutSummary.allocation_percentage, never reconciled away.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict

from privest.errors import InvalidPolicy


@dataclass(frozen=True)
class Tier:
    """A weight bracket mapping to a reward multiplier."""
    tier_id: str
    threshold: Decimal
    multiplier: Decimal
    name: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.tier_id,
            "name": self.name,
            "threshold": str(self.threshold),
            "multiplier": str(self.multiplier),
            "description": self.description,
        }


@dataclass(frozen=True)
class EngineSettings:
    """Per-run engine configuration.

    Passed explicitly to PayoutEngine.compute so one engine can be exercised
    against several policies without global state.
    """
    enable_bonus: bool = True
    min_payout: Decimal = Decimal("1")
    rounding_precision: int = 2
    bonus_cap: Decimal = Decimal("1.50")
    max_stakeholders: int = 100
    max_weight: Decimal = Decimal("1000000000000")
    min_total: Decimal = Decimal("0.01")
    max_total: Decimal = Decimal("1000000000")

    def __post_init__(self) -> None:
        if self.min_payout < 0:
            raise InvalidPolicy("min_payout must be non-negative")
        if not 0 <= self.rounding_precision <= 18:
            raise InvalidPolicy("rounding_precision must be between 0 and 18")
        if self.bonus_cap < 1:
            raise InvalidPolicy("bonus_cap must be at least 1.0")
        if self.max_stakeholders < 1:
            raise InvalidPolicy("max_stakeholders must be positive")
        if self.max_weight <= 0:
            raise InvalidPolicy("max_weight must be positive")
        if self.min_total <= 0 or self.max_total < self.min_total:
            raise InvalidPolicy("total bounds must satisfy 0 < min_total <= max_total")

    @property
    def quantum(self) -> Decimal:
        """The rounding unit, e.g. Decimal("0.01") for two places."""
        return Decimal(1).scaleb(-self.rounding_precision)


@dataclass(frozen=True)
class PayoutRecord:
    """One stakeholder's payout with every intermediate value kept for audit.

    base_share and effective_bonus are unrounded; only final_amount is
    rounded, so final_amount can be recomputed from the other fields.
    """
    identity: str
    original_weight: Decimal
    base_share: Decimal
    tier_id: str
    multiplier: Decimal
    raw_multiplier: Decimal
    effective_bonus: Decimal
    final_amount: Decimal
    label: str = ""
    floored: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "investor": self.identity,
            "name": self.label,
            "originalStake": str(self.original_weight),
            "baseShare": str(self.base_share),
            "tier": self.tier_id,
            "multiplier": str(self.multiplier),
            "rawMultiplier": str(self.raw_multiplier),
            "effectiveBonus": str(self.effective_bonus),
            "finalPayout": str(self.final_amount),
            "floored": self.floored,
        }


@dataclass(frozen=True)
class PayoutSummary:
    """Aggregate view of a computation run."""
    total_amount: Decimal
    total_payout: Decimal
    allocation_percentage: Decimal
    stakeholder_count: int
    tier_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProfit": str(self.total_amount),
            "totalPayout": str(self.total_payout),
            "allocationPercentage": str(self.allocation_percentage),
            "investorCount": self.stakeholder_count,
            "tierDistribution": dict(self.tier_distribution),
        }
