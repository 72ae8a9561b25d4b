"""Output files for a calculation run.

output.json           what the ledger callback carries, plus its ABI hex
detailed-report.json  full audit records (only when the run asks for it)
summary.txt           short human-readable summary
error.json            written instead of the above when a run fails

Amounts in output.json are integer base units as decimal strings; amounts
in the detailed report are the engine's decimal values.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from privest.models.commitment import COMMITMENT_VERSION
from privest.service import ServiceResult

logger = logging.getLogger("privest.reporting")

OUTPUT_FILE = "output.json"
DETAILED_REPORT_FILE = "detailed-report.json"
SUMMARY_FILE = "summary.txt"
ERROR_FILE = "error.json"


def _write_json(path: Path, data: dict[str, Any]) -> None:
    # Input metadata is parsed with Decimal floats.
    text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    path.write_text(text + "\n", encoding="utf-8")


def _timestamp(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_output(result: ServiceResult) -> dict[str, Any]:
    """The ledger-facing output document."""
    commitment = result.data["commitment"]
    records = result.data["records"]
    return {
        "version": COMMITMENT_VERSION,
        "investors": [
            {
                "address": address,
                "amount": str(amount),
                "name": record.label,
                "tier": record.tier_id,
            }
            for address, amount, record in zip(commitment.investors, commitment.amounts, records)
        ],
        "resultHash": commitment.result_hash,
        "callbackData": "0x" + result.data["callback"].hex(),
        "summary": {
            "totalPayout": str(result.data["summary"].total_payout),
            "totalBaseUnits": str(commitment.total),
            "investorCount": len(records),
        },
    }


def build_detailed_report(result: ServiceResult, now: Optional[datetime] = None) -> dict[str, Any]:
    calculation = result.data["calculation"]
    settings = result.data["settings"]
    return {
        "calculationDetails": {
            "timestamp": _timestamp(now),
            "currency": calculation.options.currency,
            "configUsed": {
                "enablePerformanceBonus": settings.enable_bonus,
                "minPayout": str(settings.min_payout),
                "roundingPrecision": settings.rounding_precision,
                "bonusCap": str(settings.bonus_cap),
            },
            "metadata": dict(calculation.metadata),
        },
        "investors": [r.to_dict() for r in result.data["records"]],
        "summary": result.data["summary"].to_dict(),
        "resultHash": result.data["commitment"].result_hash,
    }


def build_summary_text(result: ServiceResult, now: Optional[datetime] = None) -> str:
    calculation = result.data["calculation"]
    summary = result.data["summary"]
    currency = calculation.options.currency
    average = (summary.total_payout / summary.stakeholder_count).quantize(Decimal("0.01"))
    lines = [
        "PriVest Confidential Calculation Summary",
        "========================================",
        f"Calculation ID: {calculation.metadata.get('calculationId', 'N/A')}",
        f"Timestamp: {_timestamp(now)}",
        "",
        "Input Summary:",
        f"- Total Profit: {summary.total_amount} {currency}",
        f"- Investor Count: {summary.stakeholder_count}",
        "",
        "Output Summary:",
        f"- Total Payout: {summary.total_payout} {currency}",
        f"- Allocation: {summary.allocation_percentage}% of profits",
        f"- Average Payout: {average}",
        "",
        "Tier Distribution:",
    ]
    lines.extend(
        f"  {tier}: {count} investors"
        for tier, count in sorted(summary.tier_distribution.items())
    )
    lines.extend(["", f"Result Hash: {result.data['commitment'].result_hash}"])
    return "\n".join(lines) + "\n"


def write_outputs(
    result: ServiceResult,
    out_dir: Path,
    now: Optional[datetime] = None,
) -> list[Path]:
    """Write the files for a run and return their paths.

    A failed run produces error.json only.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    if not result.success:
        path = out_dir / ERROR_FILE
        _write_json(path, {
            "success": False,
            "errors": result.errors,
            "timestamp": _timestamp(now),
        })
        logger.info("Error details written to %s", path)
        return [path]

    written = [out_dir / OUTPUT_FILE]
    _write_json(written[0], build_output(result))

    if result.data["calculation"].options.include_detailed_report:
        path = out_dir / DETAILED_REPORT_FILE
        _write_json(path, build_detailed_report(result, now))
        written.append(path)

    path = out_dir / SUMMARY_FILE
    path.write_text(build_summary_text(result, now), encoding="utf-8")
    written.append(path)

    for path in written:
        logger.info("Wrote %s", path)
    return written
