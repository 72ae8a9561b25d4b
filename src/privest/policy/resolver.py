"""Policy resolver — loads the tier table, engine settings and unit conversion.

Configuration lives in ``config/policy.json``. Numbers are parsed as Decimal
so that multipliers such as 1.10 are exact. Every value the engine, encoder
and ledger need is returned as an explicit, frozen value object; nothing
reads configuration from module-level state.

Tier invariants (validated on construction, fail-closed):
- at least one tier, unique thresholds
- a zero-threshold catch-all tier exists
- every multiplier >= 1.0
- multipliers are non-decreasing with threshold, so a larger weight never
  resolves to a smaller multiplier
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Context, Decimal, localcontext
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from privest.errors import InvalidPolicy
from privest.models.commitment import COMMITMENT_VERSION, UnitConversion
from privest.models.payout import EngineSettings, Tier

logger = logging.getLogger("privest.policy.resolver")

POLICY_FILENAME = "policy.json"

# Fixed context for the bonus formula so log10 results are reproducible.
_BONUS_CONTEXT = Context(prec=50, rounding=ROUND_HALF_UP)

_SUPPORTED_ROUNDING = {"ROUND_DOWN": ROUND_DOWN, "ROUND_HALF_UP": ROUND_HALF_UP}


@dataclass(frozen=True)
class PerformanceBonus:
    """Coefficients of the confidential performance bonus.

    multiplier = 1
               + clamp(score, 0, 100) / 100 * score_coefficient
               + log10(weight + 1) / log10(stake_reference) * stake_coefficient
    """
    score_coefficient: Decimal = Decimal("0.15")
    stake_coefficient: Decimal = Decimal("0.05")
    stake_reference: Decimal = Decimal("1000000")

    def __post_init__(self) -> None:
        if self.score_coefficient < 0 or self.stake_coefficient < 0:
            raise InvalidPolicy("bonus coefficients must be non-negative")
        if self.stake_reference <= 1:
            raise InvalidPolicy("stake_reference must be greater than 1")


@dataclass(frozen=True)
class TierPolicy:
    """Validated tier table plus the performance bonus function.

    Usage:
        policy = resolver.tier_policy()
        tier = policy.resolve(Decimal("250000"))     # silver
        bonus = policy.performance_multiplier(Decimal("85"), Decimal("250000"))
    """
    tiers: tuple[Tier, ...]
    performance: PerformanceBonus = field(default_factory=PerformanceBonus)

    def __post_init__(self) -> None:
        if not self.tiers:
            raise InvalidPolicy("tier table must not be empty")
        ordered = tuple(sorted(self.tiers, key=lambda t: t.threshold, reverse=True))
        thresholds = [t.threshold for t in ordered]
        if len(set(thresholds)) != len(thresholds):
            raise InvalidPolicy("tier thresholds must be unique")
        if ordered[-1].threshold != 0:
            raise InvalidPolicy("a zero-threshold catch-all tier is required")
        if any(t.threshold < 0 for t in ordered):
            raise InvalidPolicy("tier thresholds must be non-negative")
        for tier in ordered:
            if tier.multiplier < 1:
                raise InvalidPolicy(
                    f"tier {tier.tier_id}: multiplier {tier.multiplier} is below 1.0"
                )
        for higher, lower in zip(ordered, ordered[1:]):
            if higher.multiplier < lower.multiplier:
                raise InvalidPolicy(
                    f"tier {higher.tier_id} has a lower multiplier than "
                    f"tier {lower.tier_id} despite a higher threshold"
                )
        object.__setattr__(self, "tiers", ordered)

    def resolve(self, weight: Decimal) -> Tier:
        """Return the tier with the highest threshold <= weight."""
        for tier in self.tiers:
            if weight >= tier.threshold:
                return tier
        # Unreachable: the catch-all has threshold 0 and weights are positive.
        return self.tiers[-1]

    def performance_multiplier(self, score: Decimal, weight: Decimal) -> Decimal:
        """Monotonic bonus factor in score and weight magnitude."""
        p = self.performance
        with localcontext(_BONUS_CONTEXT):
            clamped = min(max(score, Decimal(0)), Decimal(100))
            base_score = clamped / Decimal(100)
            stake_factor = (weight + 1).log10() / p.stake_reference.log10()
            return (
                Decimal(1)
                + base_score * p.score_coefficient
                + stake_factor * p.stake_coefficient
            )


def _decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidPolicy(f"{name} must be numeric")
    try:
        result = Decimal(str(value))
    except ArithmeticError as exc:
        raise InvalidPolicy(f"{name} must be numeric") from exc
    if not result.is_finite():
        raise InvalidPolicy(f"{name} must be finite")
    return result


def parse_tiers(raw: Sequence[Mapping[str, Any]]) -> tuple[Tier, ...]:
    tiers = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise InvalidPolicy(f"tiers[{i}] must be an object")
        try:
            tiers.append(Tier(
                tier_id=str(entry["id"]),
                threshold=_decimal(entry["threshold"], f"tiers[{i}].threshold"),
                multiplier=_decimal(entry["multiplier"], f"tiers[{i}].multiplier"),
                name=str(entry.get("name", "")),
                description=str(entry.get("description", "")),
            ))
        except KeyError as exc:
            raise InvalidPolicy(f"tiers[{i}] is missing field {exc.args[0]!r}") from exc
    return tuple(tiers)


class PolicyResolver:
    """Resolves policy value objects from a configuration mapping.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        policy = resolver.tier_policy()
        settings = resolver.engine_settings()
        conversion = resolver.unit_conversion()
    """

    def __init__(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise InvalidPolicy("policy must be a JSON object")
        self._data = data
        self._tier_policy = self._build_tier_policy()
        self._settings = self._build_settings()
        self._conversion = self._build_conversion()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load policy.json from a configuration directory."""
        path = Path(config_dir) / POLICY_FILENAME
        if not path.exists():
            raise InvalidPolicy(f"Policy file not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"), parse_float=Decimal)
        except json.JSONDecodeError as exc:
            raise InvalidPolicy(f"Policy file is not valid JSON: {path}: {exc.msg}") from exc
        logger.debug("Loaded policy from %s", path)
        return cls(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PolicyResolver:
        return cls(data)

    def tier_policy(self) -> TierPolicy:
        return self._tier_policy

    def engine_settings(self) -> EngineSettings:
        return self._settings

    def unit_conversion(self) -> UnitConversion:
        return self._conversion

    def commitment_version(self) -> str:
        version = str(self._data.get("commitment_version", COMMITMENT_VERSION))
        if version != COMMITMENT_VERSION:
            raise InvalidPolicy(
                f"Policy targets commitment version {version}, "
                f"this build implements {COMMITMENT_VERSION}"
            )
        return version

    def _section(self, name: str) -> Mapping[str, Any]:
        section = self._data.get(name, {})
        if not isinstance(section, Mapping):
            raise InvalidPolicy(f"{name} must be an object")
        return section

    def _build_tier_policy(self) -> TierPolicy:
        raw_tiers = self._data.get("tiers")
        if not isinstance(raw_tiers, list):
            raise InvalidPolicy("policy must define a 'tiers' list")
        bonus_raw = self._section("performance_bonus")
        defaults = PerformanceBonus()
        bonus = PerformanceBonus(
            score_coefficient=_decimal(
                bonus_raw.get("score_coefficient", defaults.score_coefficient),
                "performance_bonus.score_coefficient",
            ),
            stake_coefficient=_decimal(
                bonus_raw.get("stake_coefficient", defaults.stake_coefficient),
                "performance_bonus.stake_coefficient",
            ),
            stake_reference=_decimal(
                bonus_raw.get("stake_reference", defaults.stake_reference),
                "performance_bonus.stake_reference",
            ),
        )
        return TierPolicy(tiers=parse_tiers(raw_tiers), performance=bonus)

    def _build_settings(self) -> EngineSettings:
        raw = self._section("settings")
        limits = self._section("limits")
        defaults = EngineSettings()
        enable_bonus = raw.get("enable_performance_bonus", defaults.enable_bonus)
        if not isinstance(enable_bonus, bool):
            raise InvalidPolicy("settings.enable_performance_bonus must be a boolean")
        precision = raw.get("rounding_precision", defaults.rounding_precision)
        max_stakeholders = limits.get("max_investors", defaults.max_stakeholders)
        if isinstance(precision, bool) or not isinstance(precision, int):
            raise InvalidPolicy("settings.rounding_precision must be an integer")
        if isinstance(max_stakeholders, bool) or not isinstance(max_stakeholders, int):
            raise InvalidPolicy("limits.max_investors must be an integer")
        return EngineSettings(
            enable_bonus=enable_bonus,
            min_payout=_decimal(raw.get("min_payout", defaults.min_payout), "settings.min_payout"),
            rounding_precision=precision,
            bonus_cap=_decimal(raw.get("max_bonus_cap", defaults.bonus_cap), "settings.max_bonus_cap"),
            max_stakeholders=max_stakeholders,
            max_weight=_decimal(limits.get("max_stake", defaults.max_weight), "limits.max_stake"),
            min_total=_decimal(limits.get("min_profit", defaults.min_total), "limits.min_profit"),
            max_total=_decimal(limits.get("max_profit", defaults.max_total), "limits.max_profit"),
        )

    def _build_conversion(self) -> UnitConversion:
        raw = self._section("conversion")
        defaults = UnitConversion()
        decimals = raw.get("native_decimals", defaults.decimals)
        if isinstance(decimals, bool) or not isinstance(decimals, int):
            raise InvalidPolicy("conversion.native_decimals must be an integer")
        rounding_name = raw.get("rounding", "ROUND_DOWN")
        rounding: Optional[str] = (
            _SUPPORTED_ROUNDING.get(rounding_name) if isinstance(rounding_name, str) else None
        )
        if rounding is None:
            raise InvalidPolicy(
                f"conversion.rounding must be one of {sorted(_SUPPORTED_ROUNDING)}"
            )
        return UnitConversion(
            rate=_decimal(raw.get("usd_to_native_rate", defaults.rate), "conversion.usd_to_native_rate"),
            decimals=decimals,
            rounding=rounding,
        )
