"""PriVest CLI — run confidential dividend calculations from the command line.

Usage:
    python -m privest.cli compute --input input.json --out out/
    python -m privest.cli verify --payload 0x...
    python -m privest.cli tiers
    python -m privest.cli task-id --label "distribution-2026-q3"

Environment (a .env file in the working directory is honoured):
    PRIVEST_CONFIG_DIR   policy directory (default: config/)
    PRIVEST_LOG_LEVEL    logging level (default: WARNING)
    PRIVEST_OUTPUT_DIR   output directory for compute (fallback: IEXEC_OUT)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from privest.crypto.commitment_builder import task_id_from_label
from privest.errors import InvalidInput, PrivestError
from privest.intake.parser import load_calculation_input
from privest.policy.resolver import PolicyResolver
from privest.reporting import write_outputs
from privest.service import PrivestService, ServiceResult

logger = logging.getLogger("privest.cli")

DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def _fail(errors: list[dict]) -> int:
    print(json.dumps({"success": False, "errors": errors}, indent=2), file=sys.stderr)
    return 1


def _make_service(config_dir: Path) -> PrivestService:
    return PrivestService(PolicyResolver.from_config_dir(config_dir))


def cmd_compute(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    try:
        calculation = load_calculation_input(
            Path(args.input), service.resolver.engine_settings()
        )
    except InvalidInput as exc:
        result = ServiceResult.failure(exc)
    else:
        result = service.run_calculation(calculation)

    out_dir = args.out or os.environ.get("PRIVEST_OUTPUT_DIR") or os.environ.get("IEXEC_OUT")
    if out_dir:
        write_outputs(result, Path(out_dir))

    if not result.success:
        return _fail(result.errors)

    summary = result.data["summary"]
    print(json.dumps({
        "success": True,
        "resultHash": result.data["commitment"].result_hash,
        "investorCount": summary.stakeholder_count,
        "totalPayout": str(summary.total_payout),
        "allocationPercentage": str(summary.allocation_percentage),
    }, indent=2))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    result = service.verify_callback(args.payload)
    if not result.success:
        return _fail(result.errors)
    print(json.dumps({"valid": True, **result.data["commitment"].to_dict()}, indent=2))
    return 0


def cmd_tiers(args: argparse.Namespace) -> int:
    resolver = PolicyResolver.from_config_dir(args.config)
    tiers = [t.to_dict() for t in resolver.tier_policy().tiers]
    print(json.dumps({"tiers": tiers}, indent=2))
    return 0


def cmd_task_id(args: argparse.Namespace) -> int:
    print(task_id_from_label(args.label))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="privest",
        description="PriVest confidential dividend distribution",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("PRIVEST_CONFIG_DIR") or DEFAULT_CONFIG),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("PRIVEST_LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # compute
    p_compute = sub.add_parser("compute", help="Compute payouts and the result commitment")
    p_compute.add_argument("--input", required=True, help="Path to input JSON")
    p_compute.add_argument("--out", help="Directory for output files")

    # verify
    p_verify = sub.add_parser("verify", help="Decode and verify a callback payload")
    p_verify.add_argument("--payload", required=True, help="ABI-encoded callback as hex")

    # tiers
    sub.add_parser("tiers", help="Show the configured tier table")

    # task-id
    p_task = sub.add_parser("task-id", help="Derive a task id from a label")
    p_task.add_argument("--label", required=True, help="Task label")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "compute": cmd_compute,
        "verify": cmd_verify,
        "tiers": cmd_tiers,
        "task-id": cmd_task_id,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except PrivestError as exc:
        logger.error("%s: %s", exc.kind.value, exc.reason)
        return _fail([exc.to_dict()])


if __name__ == "__main__":
    raise SystemExit(main())
