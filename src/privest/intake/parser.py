"""Calculation input parsing — one explicit input shape, failing closed.

Accepted document (JSON text, UTF-8 bytes, or an already-parsed mapping):

    {
      "totalProfit": 1000000,
      "investors": [
        {"address": "0x...", "stake": 400000, "name": "Fund A",
         "metadata": {"performanceScore": 85}}
      ],
      "config": {"enablePerformanceBonus": false},
      "metadata": {...}
    }

Investors are keyed objects only. Positional arrays, unknown keys,
oversized documents and anything else ambiguous are rejected with
InvalidInput rather than interpreted.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from privest.errors import InvalidInput, InvalidPolicy
from privest.models.payout import EngineSettings
from privest.models.stakeholder import Stakeholder, to_decimal

MAX_INPUT_SIZE = 1024 * 1024
SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP")

_DOCUMENT_KEYS = frozenset({"totalProfit", "investors", "config", "metadata"})
_INVESTOR_KEYS = frozenset({"address", "stake", "name", "metadata"})
_CONFIG_KEYS = frozenset({
    "enablePerformanceBonus",
    "minPayout",
    "roundingPrecision",
    "currency",
    "includeDetailedReport",
})


@dataclass(frozen=True)
class RunOptions:
    """Per-run overrides supplied with the input. None means "use policy"."""
    enable_bonus: Optional[bool] = None
    min_payout: Optional[Decimal] = None
    rounding_precision: Optional[int] = None
    currency: str = "USD"
    include_detailed_report: bool = False

    def apply(self, settings: EngineSettings) -> EngineSettings:
        """Return settings with this run's overrides applied."""
        changes: dict[str, Any] = {}
        if self.enable_bonus is not None:
            changes["enable_bonus"] = self.enable_bonus
        if self.min_payout is not None:
            changes["min_payout"] = self.min_payout
        if self.rounding_precision is not None:
            changes["rounding_precision"] = self.rounding_precision
        if not changes:
            return settings
        try:
            return dataclasses.replace(settings, **changes)
        except InvalidPolicy as exc:
            raise InvalidInput(f"Invalid config: {exc.reason}") from exc


@dataclass(frozen=True)
class CalculationInput:
    """A fully validated computation request."""
    total_amount: Decimal
    stakeholders: tuple[Stakeholder, ...]
    options: RunOptions = field(default_factory=RunOptions)
    metadata: Mapping[str, Any] = field(default_factory=dict)


def _load_document(data: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        if len(data) > MAX_INPUT_SIZE:
            raise InvalidInput(f"Input exceeds {MAX_INPUT_SIZE} bytes")
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidInput("Input must be UTF-8 encoded") from exc
    if isinstance(data, str):
        if len(data.encode("utf-8")) > MAX_INPUT_SIZE:
            raise InvalidInput(f"Input exceeds {MAX_INPUT_SIZE} bytes")
        try:
            data = json.loads(data, parse_float=Decimal)
        except json.JSONDecodeError as exc:
            raise InvalidInput(f"Input is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, Mapping):
        raise InvalidInput("Input must be a JSON object")
    return data


def _reject_unknown(obj: Mapping[str, Any], allowed: frozenset, where: str) -> None:
    unknown = sorted(set(obj) - allowed)
    if unknown:
        raise InvalidInput(f"Unknown {where} field(s): {', '.join(map(str, unknown))}")


def _parse_stakeholder(raw: Any, index: int) -> Stakeholder:
    if isinstance(raw, (list, tuple)):
        raise InvalidInput(
            f"Investor {index}: positional records are not accepted, use an object"
        )
    if not isinstance(raw, Mapping):
        raise InvalidInput(f"Investor {index}: must be an object")
    _reject_unknown(raw, _INVESTOR_KEYS, f"investor {index}")
    if "address" not in raw or "stake" not in raw:
        raise InvalidInput(f"Investor {index}: address and stake are required")
    try:
        return Stakeholder(
            identity=raw["address"],
            weight=raw["stake"],
            label=raw.get("name", ""),
            attributes=raw.get("metadata") or {},
        )
    except InvalidInput as exc:
        raise InvalidInput(f"Investor {index}: {exc.reason}") from exc


def _parse_options(raw: Any) -> RunOptions:
    if raw is None:
        return RunOptions()
    if not isinstance(raw, Mapping):
        raise InvalidInput("config must be an object")
    _reject_unknown(raw, _CONFIG_KEYS, "config")

    enable_bonus = raw.get("enablePerformanceBonus")
    if enable_bonus is not None and not isinstance(enable_bonus, bool):
        raise InvalidInput("config.enablePerformanceBonus must be a boolean")
    include_report = raw.get("includeDetailedReport", False)
    if not isinstance(include_report, bool):
        raise InvalidInput("config.includeDetailedReport must be a boolean")

    min_payout = None
    if raw.get("minPayout") is not None:
        min_payout = to_decimal(raw["minPayout"], "config.minPayout")

    precision = raw.get("roundingPrecision")
    if precision is not None and (isinstance(precision, bool) or not isinstance(precision, int)):
        raise InvalidInput("config.roundingPrecision must be an integer")

    currency = raw.get("currency", "USD")
    if currency not in SUPPORTED_CURRENCIES:
        raise InvalidInput(
            f"config.currency must be one of {', '.join(SUPPORTED_CURRENCIES)}"
        )

    return RunOptions(
        enable_bonus=enable_bonus,
        min_payout=min_payout,
        rounding_precision=precision,
        currency=currency,
        include_detailed_report=include_report,
    )


def parse_calculation_input(
    data: Union[str, bytes, Mapping[str, Any]],
    settings: Optional[EngineSettings] = None,
) -> CalculationInput:
    """Parse and validate a computation request.

    Limits (total range, investor count, maximum stake) come from settings.

    Raises:
        InvalidInput: on any malformed, ambiguous or out-of-range field.
    """
    settings = settings or EngineSettings()
    doc = _load_document(data)
    _reject_unknown(doc, _DOCUMENT_KEYS, "top-level")

    missing = [k for k in ("totalProfit", "investors") if k not in doc]
    if missing:
        raise InvalidInput(f"Missing required fields: {', '.join(missing)}")

    total = to_decimal(doc["totalProfit"], "totalProfit")
    if total < settings.min_total or total > settings.max_total:
        raise InvalidInput(
            f"Total profit must be between {settings.min_total} and {settings.max_total}"
        )

    raw_investors = doc["investors"]
    if not isinstance(raw_investors, list) or not raw_investors:
        raise InvalidInput("Investors must be a non-empty array")
    if len(raw_investors) > settings.max_stakeholders:
        raise InvalidInput(f"Maximum {settings.max_stakeholders} investors allowed")

    stakeholders = tuple(
        _parse_stakeholder(raw, i) for i, raw in enumerate(raw_investors, 1)
    )
    seen: set[str] = set()
    for i, holder in enumerate(stakeholders, 1):
        if holder.weight > settings.max_weight:
            raise InvalidInput(f"Investor {i}: stake exceeds maximum of {settings.max_weight}")
        if holder.identity in seen:
            raise InvalidInput("Duplicate investor addresses detected")
        seen.add(holder.identity)

    metadata = doc.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise InvalidInput("metadata must be an object")

    return CalculationInput(
        total_amount=total,
        stakeholders=stakeholders,
        options=_parse_options(doc.get("config")),
        metadata=MappingProxyType(dict(metadata)),
    )


def load_calculation_input(
    path: Path,
    settings: Optional[EngineSettings] = None,
) -> CalculationInput:
    """Read and parse an input file. A missing file is an error, never a default."""
    path = Path(path)
    if not path.is_file():
        raise InvalidInput(f"Input file not found: {path}")
    if path.stat().st_size > MAX_INPUT_SIZE:
        raise InvalidInput(f"Input exceeds {MAX_INPUT_SIZE} bytes")
    return parse_calculation_input(path.read_bytes(), settings)
