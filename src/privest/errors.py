"""Error taxonomy — every failure carries a machine-readable kind and a reason.

Engine and encoder failures are terminal for the run. Ledger rejections are
terminal per call and leave no partial state behind. Boundary layers (the
submission gateway, the calculation service, the CLI) convert these into
structured results with ``to_dict()``; the core never catches and continues.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Machine-readable error kinds. Values are part of the external contract."""
    INVALID_INPUT = "InvalidInput"
    DEGENERATE_INPUT = "DegenerateInput"
    ENCODING_ERROR = "EncodingError"
    INVALID_POLICY = "InvalidPolicy"
    DUPLICATE_TASK = "DuplicateTask"
    ARRAY_LENGTH_MISMATCH = "ArrayLengthMismatch"
    INVALID_ADDRESS = "InvalidAddress"
    INVALID_AMOUNT = "InvalidAmount"
    HASH_MISMATCH = "HashMismatch"
    TASK_NOT_FOUND = "TaskNotFound"
    NO_DIVIDEND_AVAILABLE = "NoDividendAvailable"
    TRANSFER_FAILED = "TransferFailed"
    UNAUTHORIZED = "Unauthorized"


class PrivestError(Exception):
    """Base class for all structured PriVest failures."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "reason": self.reason}


class InvalidInput(PrivestError, ValueError):
    """Malformed stakeholder data, out-of-range totals, too many stakeholders."""
    kind = ErrorKind.INVALID_INPUT


class DegenerateInput(PrivestError, ValueError):
    """Inputs that pass validation but cannot produce a distribution."""
    kind = ErrorKind.DEGENERATE_INPUT


class EncodingError(PrivestError, ValueError):
    """Commitment construction or callback decoding failed."""
    kind = ErrorKind.ENCODING_ERROR


class InvalidPolicy(PrivestError, ValueError):
    """Tier table or engine configuration violates its invariants."""
    kind = ErrorKind.INVALID_POLICY


class LedgerRejection(PrivestError):
    """A ledger call was rejected. No state change was committed."""


class DuplicateTask(LedgerRejection):
    kind = ErrorKind.DUPLICATE_TASK


class ArrayLengthMismatch(LedgerRejection):
    kind = ErrorKind.ARRAY_LENGTH_MISMATCH


class InvalidAddress(LedgerRejection):
    kind = ErrorKind.INVALID_ADDRESS


class InvalidAmount(LedgerRejection):
    kind = ErrorKind.INVALID_AMOUNT


class HashMismatch(LedgerRejection):
    kind = ErrorKind.HASH_MISMATCH


class TaskNotFound(LedgerRejection):
    kind = ErrorKind.TASK_NOT_FOUND


class NoDividendAvailable(LedgerRejection):
    kind = ErrorKind.NO_DIVIDEND_AVAILABLE


class TransferFailed(LedgerRejection):
    kind = ErrorKind.TRANSFER_FAILED


class Unauthorized(LedgerRejection):
    kind = ErrorKind.UNAUTHORIZED
