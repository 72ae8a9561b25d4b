"""Tests for the policy resolver — proves tier tables and settings load and validate."""

import copy
import json
import pytest
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from pathlib import Path

from privest.errors import InvalidPolicy
from privest.models.payout import Tier
from privest.policy.resolver import PerformanceBonus, PolicyResolver, TierPolicy


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def raw_policy() -> dict:
    return json.loads((CONFIG_DIR / "policy.json").read_text(encoding="utf-8"), parse_float=Decimal)


def _tier(tier_id: str, threshold: str, multiplier: str) -> Tier:
    return Tier(tier_id=tier_id, threshold=Decimal(threshold), multiplier=Decimal(multiplier))


class TestTierResolution:
    @pytest.mark.parametrize("weight,expected", [
        ("1", "base"),
        ("9999.99", "base"),
        ("10000", "bronze"),
        ("99999", "bronze"),
        ("100000", "silver"),
        ("400000", "silver"),
        ("500000", "gold"),
        ("999999", "gold"),
        ("1000000", "platinum"),
        ("50000000", "platinum"),
    ])
    def test_thresholds(self, resolver: PolicyResolver, weight: str, expected: str) -> None:
        assert resolver.tier_policy().resolve(Decimal(weight)).tier_id == expected

    def test_multipliers_are_exact(self, resolver: PolicyResolver) -> None:
        tier = resolver.tier_policy().resolve(Decimal("250000"))
        assert tier.multiplier == Decimal("1.10")

    def test_tiers_sorted_descending(self, resolver: PolicyResolver) -> None:
        thresholds = [t.threshold for t in resolver.tier_policy().tiers]
        assert thresholds == sorted(thresholds, reverse=True)

    def test_monotonic_in_weight(self, resolver: PolicyResolver) -> None:
        policy = resolver.tier_policy()
        weights = [Decimal(w) for w in ("1", "5000", "10000", "75000", "100000",
                                        "300000", "500000", "800000", "1000000", "10000000")]
        multipliers = [policy.resolve(w).multiplier for w in weights]
        assert multipliers == sorted(multipliers)


class TestPerformanceMultiplier:
    def test_no_score_no_stake_baseline(self) -> None:
        policy = TierPolicy(tiers=(_tier("base", "0", "1"),))
        assert policy.performance_multiplier(Decimal(0), Decimal(0)) == Decimal(1)

    def test_full_score_at_reference_stake(self) -> None:
        policy = TierPolicy(tiers=(_tier("base", "0", "1"),))
        value = policy.performance_multiplier(Decimal(100), Decimal(999999))
        assert value == Decimal("1.20")

    def test_score_is_clamped(self) -> None:
        policy = TierPolicy(tiers=(_tier("base", "0", "1"),))
        weight = Decimal("5000")
        assert policy.performance_multiplier(Decimal(250), weight) == \
            policy.performance_multiplier(Decimal(100), weight)
        assert policy.performance_multiplier(Decimal(-20), weight) == \
            policy.performance_multiplier(Decimal(0), weight)

    def test_monotonic_in_score_and_weight(self, resolver: PolicyResolver) -> None:
        policy = resolver.tier_policy()
        by_score = [policy.performance_multiplier(Decimal(s), Decimal(1000)) for s in (0, 25, 50, 99)]
        by_weight = [policy.performance_multiplier(Decimal(50), Decimal(w)) for w in (1, 100, 10**4, 10**8)]
        assert by_score == sorted(by_score)
        assert by_weight == sorted(by_weight)

    def test_invalid_bonus_reference(self) -> None:
        with pytest.raises(InvalidPolicy):
            PerformanceBonus(stake_reference=Decimal(1))


class TestTierTableValidation:
    def test_empty_table_rejected(self) -> None:
        with pytest.raises(InvalidPolicy, match="must not be empty"):
            TierPolicy(tiers=())

    def test_catch_all_required(self) -> None:
        with pytest.raises(InvalidPolicy, match="catch-all"):
            TierPolicy(tiers=(_tier("silver", "100", "1.1"),))

    def test_duplicate_thresholds_rejected(self) -> None:
        with pytest.raises(InvalidPolicy, match="unique"):
            TierPolicy(tiers=(_tier("a", "0", "1"), _tier("b", "0", "1.1")))

    def test_multiplier_below_one_rejected(self) -> None:
        with pytest.raises(InvalidPolicy, match="below 1.0"):
            TierPolicy(tiers=(_tier("base", "0", "0.9"),))

    def test_non_monotonic_table_rejected(self) -> None:
        with pytest.raises(InvalidPolicy, match="lower multiplier"):
            TierPolicy(tiers=(
                _tier("base", "0", "1.2"),
                _tier("big", "1000", "1.1"),
            ))


class TestSettings:
    def test_engine_settings_loaded(self, resolver: PolicyResolver) -> None:
        settings = resolver.engine_settings()
        assert settings.enable_bonus is True
        assert settings.min_payout == Decimal("1")
        assert settings.rounding_precision == 2
        assert settings.bonus_cap == Decimal("1.50")
        assert settings.max_stakeholders == 100
        assert settings.min_total == Decimal("0.01")
        assert settings.max_total == Decimal("1000000000")
        assert settings.quantum == Decimal("0.01")

    def test_unit_conversion_loaded(self, resolver: PolicyResolver) -> None:
        conversion = resolver.unit_conversion()
        assert conversion.rate == Decimal("0.0005")
        assert conversion.decimals == 18
        assert conversion.rounding == ROUND_DOWN

    def test_half_up_conversion_accepted(self, raw_policy: dict) -> None:
        raw_policy["conversion"]["rounding"] = "ROUND_HALF_UP"
        assert PolicyResolver.from_dict(raw_policy).unit_conversion().rounding == ROUND_HALF_UP

    def test_unknown_rounding_rejected(self, raw_policy: dict) -> None:
        raw_policy["conversion"]["rounding"] = "ROUND_CEILING"
        with pytest.raises(InvalidPolicy):
            PolicyResolver.from_dict(raw_policy)

    def test_bonus_cap_below_one_rejected(self, raw_policy: dict) -> None:
        raw_policy["settings"]["max_bonus_cap"] = Decimal("0.9")
        with pytest.raises(InvalidPolicy):
            PolicyResolver.from_dict(raw_policy)

    def test_missing_tiers_rejected(self, raw_policy: dict) -> None:
        del raw_policy["tiers"]
        with pytest.raises(InvalidPolicy, match="tiers"):
            PolicyResolver.from_dict(raw_policy)

    def test_tier_missing_field_rejected(self, raw_policy: dict) -> None:
        del raw_policy["tiers"][0]["multiplier"]
        with pytest.raises(InvalidPolicy, match="multiplier"):
            PolicyResolver.from_dict(raw_policy)

    def test_commitment_version(self, resolver: PolicyResolver, raw_policy: dict) -> None:
        assert resolver.commitment_version() == "1"
        other = copy.deepcopy(raw_policy)
        other["commitment_version"] = "2"
        with pytest.raises(InvalidPolicy, match="commitment version"):
            PolicyResolver.from_dict(other).commitment_version()

    def test_missing_config_dir(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidPolicy, match="not found"):
            PolicyResolver.from_config_dir(tmp_path)


class TestMalformedPolicy:
    def test_invalid_json_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "policy.json").write_text('{"tiers": [', encoding="utf-8")
        with pytest.raises(InvalidPolicy, match="not valid JSON"):
            PolicyResolver.from_config_dir(tmp_path)

    def test_top_level_must_be_object(self, tmp_path: Path) -> None:
        (tmp_path / "policy.json").write_text("[]", encoding="utf-8")
        with pytest.raises(InvalidPolicy, match="JSON object"):
            PolicyResolver.from_config_dir(tmp_path)

    @pytest.mark.parametrize("section", ["settings", "limits", "conversion", "performance_bonus"])
    def test_non_object_section_rejected(self, raw_policy: dict, section: str) -> None:
        raw_policy[section] = []
        with pytest.raises(InvalidPolicy, match=f"{section} must be an object"):
            PolicyResolver.from_dict(raw_policy)

    def test_non_object_tier_rejected(self, raw_policy: dict) -> None:
        raw_policy["tiers"][0] = "platinum"
        with pytest.raises(InvalidPolicy, match=r"tiers\[0\] must be an object"):
            PolicyResolver.from_dict(raw_policy)

    def test_non_string_rounding_rejected(self, raw_policy: dict) -> None:
        raw_policy["conversion"]["rounding"] = ["ROUND_DOWN"]
        with pytest.raises(InvalidPolicy, match="conversion.rounding"):
            PolicyResolver.from_dict(raw_policy)


class TestShippedPolicyInvariants:
    def test_invariant_checks(self, capsys) -> None:
        """check_invariants.check() returns 0 — shipped policy is consistent."""
        import sys
        sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "tools"))
        from check_invariants import check
        assert check() == 0
        assert "Invariant check passed." in capsys.readouterr().out
