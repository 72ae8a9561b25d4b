"""Result submission gateway — the seam between off-ledger computation and the ledger.

The confidential-computation network delivers (task_id, callback bytes)
here once the payout engine and commitment builder have run. The gateway
performs no computation of its own: it decodes, re-checks the commitment
invariants (the upstream computation is not trusted) and forwards the
commitment to the ledger's registration transition under the bridge
identity.

Every failure comes back as a rejected SubmissionResult carrying the error
kind and reason. Nothing is retried here; resubmitting after a terminal
rejection requires a corrected computation and, for DuplicateTask, a fresh
task id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from privest.compensation.ledger import PayoutLedger
from privest.crypto.attestation import recover_signer
from privest.crypto.commitment_builder import decode_callback, verify_commitment
from privest.errors import (
    EncodingError,
    ErrorKind,
    PrivestError,
    Unauthorized,
)
from privest.models.commitment import Commitment
from privest.models.stakeholder import canonical_identity

logger = logging.getLogger("privest.gateway.submission")

# Rejections that a later resubmission of the same task could overcome.
_RECOVERABLE = frozenset({ErrorKind.UNAUTHORIZED})


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of one submission.

    terminal is True when resubmitting the same task and commitment can
    never succeed.
    """
    accepted: bool
    task_id: Optional[str] = None
    result_hash: Optional[str] = None
    kind: Optional[ErrorKind] = None
    reason: str = ""
    terminal: bool = False

    @staticmethod
    def rejected(task_id: Any, error: PrivestError) -> SubmissionResult:
        return SubmissionResult(
            accepted=False,
            task_id=task_id if isinstance(task_id, str) else None,
            kind=error.kind,
            reason=error.reason,
            terminal=error.kind not in _RECOVERABLE,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"accepted": self.accepted, "taskId": self.task_id}
        if self.accepted:
            data["resultHash"] = self.result_hash
        else:
            data["error"] = {"kind": self.kind.value, "reason": self.reason}
            data["terminal"] = self.terminal
        return data


class ResultSubmissionGateway:
    """Validates delivered commitments and registers them on the ledger.

    Usage:
        gateway = ResultSubmissionGateway(ledger, bridge_identity=BRIDGE)
        result = gateway.receive_result(task_id, callback_bytes)
        if not result.accepted:
            print(result.kind, result.reason)
    """

    def __init__(
        self,
        ledger: PayoutLedger,
        bridge_identity: str,
        enclave_signer: Optional[str] = None,
    ) -> None:
        self._ledger = ledger
        self._handle = ledger.connect(bridge_identity)
        self._enclave_signer = (
            canonical_identity(enclave_signer) if enclave_signer else None
        )

    @property
    def bridge_identity(self) -> str:
        return self._handle.caller

    def submit(self, task_id: Any, commitment: Commitment) -> SubmissionResult:
        """Check a decoded commitment and forward it for registration."""
        try:
            if not isinstance(commitment, Commitment):
                raise EncodingError("Submission must be a Commitment")
            verify_commitment(commitment)
            event = self._handle.register(
                task_id,
                commitment.investors,
                commitment.amounts,
                commitment.result_hash,
            )
        except PrivestError as exc:
            logger.warning("Submission rejected (%s): %s", exc.kind.value, exc.reason)
            return SubmissionResult.rejected(task_id, exc)

        logger.info("Submission accepted for task %s", event.task_id)
        return SubmissionResult(
            accepted=True,
            task_id=event.task_id,
            result_hash=event.result_hash,
        )

    def receive_result(self, task_id: Any, payload: bytes) -> SubmissionResult:
        """Entry point for the computation network's callback."""
        try:
            commitment = decode_callback(payload)
        except EncodingError as exc:
            logger.warning("Callback for task %s could not be decoded: %s", task_id, exc.reason)
            return SubmissionResult.rejected(task_id, exc)
        return self.submit(task_id, commitment)

    def receive_signed_result(
        self,
        task_id: Any,
        payload: bytes,
        signature: Any,
    ) -> SubmissionResult:
        """Like receive_result, but require the enclave's signature on the hash."""
        try:
            commitment = decode_callback(payload)
            if self._enclave_signer is None:
                raise Unauthorized("No enclave signer configured")
            signer = recover_signer(commitment.result_hash, signature)
            if signer != self._enclave_signer:
                raise Unauthorized(f"Result signed by {signer}, expected enclave signer")
        except PrivestError as exc:
            logger.warning("Signed submission rejected (%s): %s", exc.kind.value, exc.reason)
            return SubmissionResult.rejected(task_id, exc)
        return self.submit(task_id, commitment)
