"""Payout engine — derives per-stakeholder dividend amounts.

The formula is fully deterministic and runs identically wherever the
result is later verified:

    base_share      = total_amount × weight / Σ weight
    raw_multiplier  = tier.multiplier [× performance_multiplier(score, weight)]
    effective_bonus = min(raw_multiplier, bonus_cap)
    amount          = max(base_share × effective_bonus, min_payout)
    final_amount    = round_half_up(amount, rounding_precision)

Invariants:
- Records are emitted in input order; order is part of the commitment.
- final_amount >= min_payout and effective_bonus <= bonus_cap.
- Σ final_amount may exceed total_amount. Multipliers and the floor inflate
  the distributed sum on purpose; summarize() reports it, nothing trims it.
- Pure: no clock, no randomness, one fixed decimal context.
"""

from __future__ import annotations

import logging
from collections import Counter
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Sequence

from privest.errors import DegenerateInput, InvalidInput
from privest.models.payout import EngineSettings, PayoutRecord, PayoutSummary
from privest.models.stakeholder import Stakeholder
from privest.policy.resolver import TierPolicy

logger = logging.getLogger("privest.compensation.engine")

# Wide enough that pro-rata division of any in-range total is exact to
# far below the rounding quantum.
_ENGINE_CONTEXT = Context(prec=50, rounding=ROUND_HALF_EVEN)


class PayoutEngine:
    """Computes payout records for one distribution run.

    Stateless; the same instance can serve any number of runs and policies.

    Usage:
        engine = PayoutEngine()
        records = engine.compute(
            total_amount=Decimal("1000000"),
            stakeholders=holders,
            policy=resolver.tier_policy(),
            settings=resolver.engine_settings(),
        )
        summary = engine.summarize(Decimal("1000000"), records)
    """

    def compute(
        self,
        total_amount: Decimal,
        stakeholders: Sequence[Stakeholder],
        policy: TierPolicy,
        settings: EngineSettings,
    ) -> tuple[PayoutRecord, ...]:
        """Compute one PayoutRecord per stakeholder, in input order.

        Raises:
            InvalidInput: non-positive or out-of-range total, empty or
                oversized stakeholder list, weight above max_weight,
                duplicate identities.
            DegenerateInput: total weight is zero.
        """
        self._validate(total_amount, stakeholders, settings)

        with localcontext(_ENGINE_CONTEXT):
            total_weight = sum((s.weight for s in stakeholders), Decimal(0))
            if total_weight == 0:
                raise DegenerateInput("Total stake cannot be zero")

            logger.debug(
                "Computing payouts: %d stakeholders, total weight %s",
                len(stakeholders), total_weight,
            )
            return tuple(
                self._payout_for(s, total_amount, total_weight, policy, settings)
                for s in stakeholders
            )

    def summarize(
        self,
        total_amount: Decimal,
        records: Sequence[PayoutRecord],
    ) -> PayoutSummary:
        """Aggregate a run's records. allocation_percentage may exceed 100."""
        with localcontext(_ENGINE_CONTEXT):
            total_payout = sum((r.final_amount for r in records), Decimal(0))
            allocation = (total_payout / total_amount * 100).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        return PayoutSummary(
            total_amount=total_amount,
            total_payout=total_payout,
            allocation_percentage=allocation,
            stakeholder_count=len(records),
            tier_distribution=dict(Counter(r.tier_id for r in records)),
        )

    def _payout_for(
        self,
        holder: Stakeholder,
        total_amount: Decimal,
        total_weight: Decimal,
        policy: TierPolicy,
        settings: EngineSettings,
    ) -> PayoutRecord:
        base_share = total_amount * holder.weight / total_weight
        tier = policy.resolve(holder.weight)

        raw_multiplier = tier.multiplier
        score = holder.performance_score
        if settings.enable_bonus and score is not None:
            raw_multiplier = raw_multiplier * policy.performance_multiplier(
                score, holder.weight
            )

        effective_bonus = min(raw_multiplier, settings.bonus_cap)
        amount = base_share * effective_bonus
        floored = amount < settings.min_payout
        if floored:
            amount = settings.min_payout
        final_amount = amount.quantize(settings.quantum, rounding=ROUND_HALF_UP)

        return PayoutRecord(
            identity=holder.identity,
            original_weight=holder.weight,
            base_share=base_share,
            tier_id=tier.tier_id,
            multiplier=tier.multiplier,
            raw_multiplier=raw_multiplier,
            effective_bonus=effective_bonus,
            final_amount=final_amount,
            label=holder.label,
            floored=floored,
        )

    def _validate(
        self,
        total_amount: Decimal,
        stakeholders: Sequence[Stakeholder],
        settings: EngineSettings,
    ) -> None:
        if not isinstance(total_amount, Decimal) or not total_amount.is_finite():
            raise InvalidInput("Total profit must be a finite Decimal")
        if total_amount <= 0:
            raise InvalidInput("Total profit must be greater than zero")
        if total_amount > settings.max_total:
            raise InvalidInput(f"Total profit exceeds maximum of {settings.max_total}")
        if not stakeholders:
            raise InvalidInput("Investors array is required and cannot be empty")
        if len(stakeholders) > settings.max_stakeholders:
            raise InvalidInput(
                f"Exceeds maximum investor limit of {settings.max_stakeholders}"
            )

        seen: set[str] = set()
        for index, holder in enumerate(stakeholders, 1):
            if not isinstance(holder, Stakeholder):
                raise InvalidInput(f"Investor {index}: not a Stakeholder")
            if holder.weight > settings.max_weight:
                raise InvalidInput(
                    f"Investor {index}: stake exceeds maximum of {settings.max_weight}"
                )
            if holder.identity in seen:
                raise InvalidInput(
                    f"Duplicate investor addresses detected: {holder.identity}"
                )
            seen.add(holder.identity)
