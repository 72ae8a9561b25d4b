#!/usr/bin/env python3
"""PriVest invariant checks against the executable payout policy.

Usage:
    python3 tools/check_invariants.py
"""

import json
import sys
from decimal import Decimal
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
POLICY_PATH = ROOT / "config" / "policy.json"

# Add src to path for privest imports
sys.path.insert(0, str(ROOT / "src"))

from privest.errors import PrivestError  # noqa: E402
from privest.models.commitment import COMMITMENT_VERSION  # noqa: E402
from privest.policy.resolver import PolicyResolver  # noqa: E402
from privest.service import PrivestService  # noqa: E402

REFERENCE_INPUT = {
    "totalProfit": 1000000,
    "investors": [
        {"address": "0x71C7656EC7ab88b098defB751B7401B5f6d8976F", "stake": 400000},
        {"address": "0xAb5801a7D398351b8bE11C439e05C5B3259aeC9B", "stake": 350000},
        {"address": "0x4B20993Bc481177ec7E8f571ceCaE8A9e22C02db", "stake": 250000},
    ],
    "config": {"enablePerformanceBonus": False},
}
REFERENCE_PAYOUTS = [Decimal("440000.00"), Decimal("385000.00"), Decimal("275000.00")]


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle, parse_float=Decimal)


def check_tiers(tiers: list, errors: list[str]) -> None:
    """Validate the tier table independently of the resolver."""
    if not tiers:
        errors.append("tiers must not be empty")
        return
    ids = [t.get("id") for t in tiers]
    if len(set(ids)) != len(ids):
        errors.append("tier ids must be unique")
    thresholds = [Decimal(str(t["threshold"])) for t in tiers]
    if len(set(thresholds)) != len(thresholds):
        errors.append("tier thresholds must be unique")
    if Decimal(0) not in thresholds:
        errors.append("a catch-all tier with threshold 0 is required")
    for tier in tiers:
        if Decimal(str(tier["multiplier"])) < 1:
            errors.append(f"tier {tier.get('id')} multiplier must be >= 1.0")
    ordered = sorted(tiers, key=lambda t: Decimal(str(t["threshold"])))
    for lower, higher in zip(ordered, ordered[1:]):
        if Decimal(str(higher["multiplier"])) < Decimal(str(lower["multiplier"])):
            errors.append(
                f"tier {higher.get('id')} multiplier must not be below tier {lower.get('id')}"
            )


def check() -> int:
    policy = load_json(POLICY_PATH)
    errors: list[str] = []

    # --- Commitment protocol ---
    if str(policy.get("commitment_version")) != COMMITMENT_VERSION:
        errors.append(
            f"commitment_version must be {COMMITMENT_VERSION}, "
            f"got {policy.get('commitment_version')}"
        )

    # --- Tier table ---
    check_tiers(policy.get("tiers", []), errors)

    # --- Settings and limits ---
    settings = policy["settings"]
    if settings["max_bonus_cap"] < 1:
        errors.append("max_bonus_cap must be >= 1.0")
    if settings["min_payout"] < 0:
        errors.append("min_payout must be non-negative")
    limits = policy["limits"]
    if limits["max_investors"] < 1:
        errors.append("max_investors must be positive")
    if not 0 < limits["min_profit"] <= limits["max_profit"]:
        errors.append("profit limits must satisfy 0 < min_profit <= max_profit")

    # --- Unit conversion ---
    conversion = policy["conversion"]
    if conversion["usd_to_native_rate"] <= 0:
        errors.append("usd_to_native_rate must be positive")
    if conversion.get("rounding") != "ROUND_DOWN":
        errors.append("conversion must truncate (ROUND_DOWN)")

    # --- Reference scenario ---
    try:
        service = PrivestService(PolicyResolver.from_dict(policy))
        result = service.run_calculation(REFERENCE_INPUT)
    except PrivestError as exc:
        errors.append(f"policy rejected by resolver: {exc.reason}")
    else:
        if not result.success:
            errors.append(f"reference scenario failed: {result.errors}")
        else:
            payouts = [r.final_amount for r in result.data["records"]]
            if payouts != REFERENCE_PAYOUTS:
                errors.append(f"reference payouts changed: {[str(p) for p in payouts]}")
            verified = service.verify_callback(result.data["callback"])
            if not verified.success or verified.data["commitment"] != result.data["commitment"]:
                errors.append("reference callback does not decode to its commitment")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
