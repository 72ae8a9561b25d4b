"""PriVest service — the confidential calculation run as a single facade.

One run is: parse the request → compute payouts → summarize → build the
commitment → encode the ledger callback. Every failure is returned as a
structured error ({"kind", "reason"}); there is no fallback to sample data
and no partial result.

The service holds no state between runs apart from the policy it was
constructed with, so it can be called from any number of workers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from privest.compensation.engine import PayoutEngine
from privest.crypto.commitment_builder import CommitmentBuilder, decode_callback, encode_callback
from privest.errors import EncodingError, PrivestError
from privest.intake.parser import CalculationInput, parse_calculation_input
from privest.policy.resolver import PolicyResolver

logger = logging.getLogger("privest.service")


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[dict[str, Any]] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def failure(error: PrivestError) -> ServiceResult:
        return ServiceResult(success=False, errors=[error.to_dict()])


class PrivestService:
    """Runs confidential dividend calculations against one policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = PrivestService(resolver)
        result = service.run_calculation(Path("input.json").read_bytes())
        if result.success:
            payload = result.data["callback"]
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        engine: Optional[PayoutEngine] = None,
    ) -> None:
        resolver.commitment_version()
        self._resolver = resolver
        self._engine = engine or PayoutEngine()
        self._builder = CommitmentBuilder(resolver.unit_conversion())

    @property
    def resolver(self) -> PolicyResolver:
        return self._resolver

    def run_calculation(
        self,
        raw_input: Union[str, bytes, Mapping[str, Any], CalculationInput],
    ) -> ServiceResult:
        """Run one calculation end to end.

        raw_input is a request document, or a CalculationInput already parsed
        with load_calculation_input against this service's policy.

        data on success:
            calculation: the parsed CalculationInput
            settings: the EngineSettings actually used (policy + overrides)
            records: tuple of PayoutRecord, in input order
            summary: PayoutSummary
            commitment: Commitment
            callback: ABI-encoded callback bytes
        """
        policy_settings = self._resolver.engine_settings()
        try:
            if isinstance(raw_input, CalculationInput):
                calculation = raw_input
            else:
                calculation = parse_calculation_input(raw_input, policy_settings)
            settings = calculation.options.apply(policy_settings)
            logger.info(
                "Computing payouts for %d investors", len(calculation.stakeholders)
            )
            records = self._engine.compute(
                calculation.total_amount,
                calculation.stakeholders,
                self._resolver.tier_policy(),
                settings,
            )
            summary = self._engine.summarize(calculation.total_amount, records)
            commitment = self._builder.commit(records)
            callback = encode_callback(commitment)
        except PrivestError as exc:
            logger.error("Calculation failed (%s): %s", exc.kind.value, exc.reason)
            return ServiceResult.failure(exc)

        logger.info(
            "Calculation complete: total payout %s (%s%% of profit), result hash %s",
            summary.total_payout, summary.allocation_percentage, commitment.result_hash,
        )
        return ServiceResult(
            success=True,
            data={
                "calculation": calculation,
                "settings": settings,
                "records": records,
                "summary": summary,
                "commitment": commitment,
                "callback": callback,
            },
        )

    def verify_callback(self, payload: Union[bytes, str]) -> ServiceResult:
        """Decode a callback (bytes or 0x-hex) and check its commitment hash."""
        try:
            if isinstance(payload, str):
                text = payload[2:] if payload.startswith("0x") else payload
                try:
                    payload = bytes.fromhex(text)
                except ValueError as exc:
                    raise EncodingError("Callback payload is not valid hex") from exc
            commitment = decode_callback(payload)
        except PrivestError as exc:
            return ServiceResult.failure(exc)
        return ServiceResult(success=True, data={"commitment": commitment})
