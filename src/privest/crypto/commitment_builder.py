"""Commitment builder — canonical encoding and hashing of a payout result.

This is a wire protocol shared with the ledger, pinned as
COMMITMENT_VERSION "1":

    investors_hash = keccak256(abi.encode(address[] investors))
    amounts_hash   = keccak256(abi.encode(uint256[] amounts))
    result_hash    = keccak256(investors_hash ‖ amounts_hash)

The last step is Solidity's ``keccak256(abi.encodePacked(bytes32, bytes32))``.
Amounts are converted to the ledger's integer unit with
``truncate(amount × rate × 10**decimals)``. Record order is preserved
exactly; nothing here sorts, deduplicates or reorders.

The callback delivered to the ledger is
``abi.encode(address[] investors, uint256[] amounts, bytes32 result_hash)``.
Decoding accepts that shape only, and only in its canonical encoding.
"""

from __future__ import annotations

import logging
from decimal import Context, Decimal, localcontext
from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from web3 import Web3

from privest.errors import EncodingError, InvalidInput
from privest.models.commitment import Commitment, UnitConversion
from privest.models.payout import PayoutRecord
from privest.models.stakeholder import canonical_identity

logger = logging.getLogger("privest.crypto.commitment_builder")

CALLBACK_TYPES = ("address[]", "uint256[]", "bytes32")

_UINT256_MAX = (1 << 256) - 1
_CONVERSION_CONTEXT = Context(prec=80)


def to_base_units(amount: Decimal, conversion: UnitConversion) -> int:
    """Convert an engine amount to the ledger's integer unit."""
    with localcontext(_CONVERSION_CONTEXT):
        scaled = amount * conversion.rate * Decimal(10) ** conversion.decimals
        return int(scaled.to_integral_value(rounding=conversion.rounding))


def _hash_bytes(investors: Sequence[str], amounts: Sequence[int]) -> bytes:
    investors_hash = keccak(encode(["address[]"], [list(investors)]))
    amounts_hash = keccak(encode(["uint256[]"], [list(amounts)]))
    return bytes(Web3.solidity_keccak(["bytes32", "bytes32"], [investors_hash, amounts_hash]))


def commitment_hash(investors: Sequence[str], amounts: Sequence[int]) -> str:
    """Compute the commitment hash as ``0x`` + 64 lowercase hex characters.

    Investors must already be valid addresses and amounts valid uint256
    values; use validate_arrays first on untrusted data.
    """
    return "0x" + _hash_bytes(investors, amounts).hex()


def validate_arrays(investors: Sequence[Any], amounts: Sequence[Any]) -> tuple[tuple[str, ...], tuple[int, ...]]:
    """Check the commitment invariants and return canonical arrays.

    Raises EncodingError on empty or mismatched arrays, invalid, zero or
    duplicate addresses, and non-positive or non-uint256 amounts.
    """
    if len(investors) == 0 or len(amounts) == 0:
        raise EncodingError("No investors in commitment")
    if len(investors) != len(amounts):
        raise EncodingError("Investor and amount count mismatch")
    canonical: list[str] = []
    for address in investors:
        try:
            canonical.append(canonical_identity(address))
        except InvalidInput as exc:
            raise EncodingError(f"Invalid address: {address!r}") from exc
    if len(set(canonical)) != len(canonical):
        raise EncodingError("Duplicate investor addresses in commitment")
    checked: list[int] = []
    for amount in amounts:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise EncodingError(f"Amount must be an integer: {amount!r}")
        if amount <= 0:
            raise EncodingError("Non-positive amount found")
        if amount > _UINT256_MAX:
            raise EncodingError("Amount exceeds uint256")
        checked.append(amount)
    return tuple(canonical), tuple(checked)


def verify_commitment(commitment: Commitment) -> None:
    """Raise EncodingError unless the commitment satisfies every invariant."""
    investors, amounts = validate_arrays(commitment.investors, commitment.amounts)
    expected = commitment_hash(investors, amounts)
    if normalize_hash(commitment.result_hash) != expected:
        raise EncodingError("Result hash mismatch")


def normalize_hash(value: Any) -> str:
    """Return a 32-byte hash as lowercase ``0x`` hex, or raise EncodingError."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise EncodingError("Result hash must be 32 bytes")
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        body = value[2:] if value.startswith("0x") else ""
        if len(body) != 64:
            raise EncodingError("Result hash must be 0x-prefixed 32-byte hex")
        try:
            bytes.fromhex(body)
        except ValueError as exc:
            raise EncodingError("Result hash must be 0x-prefixed 32-byte hex") from exc
        return "0x" + body.lower()
    raise EncodingError("Result hash must be bytes or hex string")


def normalize_task_id(value: Any) -> str:
    """Return a task id as lowercase ``0x`` hex of exactly 32 bytes."""
    try:
        return normalize_hash(value)
    except EncodingError as exc:
        raise InvalidInput("Task id must be a 32-byte value") from exc


def task_id_from_label(label: str) -> str:
    """Derive a task id as keccak256 of a UTF-8 label."""
    return "0x" + keccak(text=label).hex()


class CommitmentBuilder:
    """Builds a Commitment from engine output.

    Usage:
        builder = CommitmentBuilder(resolver.unit_conversion())
        commitment = builder.commit(records)
        payload = encode_callback(commitment)
    """

    def __init__(self, conversion: UnitConversion) -> None:
        self._conversion = conversion

    def commit(self, records: Sequence[PayoutRecord]) -> Commitment:
        """Convert, validate and hash records, preserving their order.

        Raises EncodingError if any identity is invalid or any amount is
        non-positive after conversion (e.g. truncated to zero).
        """
        investors = [r.identity for r in records]
        amounts = [to_base_units(r.final_amount, self._conversion) for r in records]
        investors_c, amounts_c = validate_arrays(investors, amounts)
        result_hash = commitment_hash(investors_c, amounts_c)
        logger.debug(
            "Built commitment over %d payouts: %s", len(investors_c), result_hash
        )
        return Commitment(investors=investors_c, amounts=amounts_c, result_hash=result_hash)


def encode_callback(commitment: Commitment) -> bytes:
    """ABI-encode a commitment as (address[], uint256[], bytes32)."""
    verify_commitment(commitment)
    return encode(
        list(CALLBACK_TYPES),
        [
            list(commitment.investors),
            list(commitment.amounts),
            bytes.fromhex(normalize_hash(commitment.result_hash)[2:]),
        ],
    )


def decode_callback(payload: bytes) -> Commitment:
    """Decode and verify an ABI-encoded callback.

    Raises EncodingError for any payload that is not the canonical encoding
    of (address[], uint256[], bytes32) or that violates the commitment
    invariants, including a hash that does not match the arrays.
    """
    if not isinstance(payload, (bytes, bytearray)):
        raise EncodingError("Callback payload must be bytes")
    payload = bytes(payload)
    try:
        investors, amounts, result_hash = decode(list(CALLBACK_TYPES), payload)
    except (DecodingError, ValueError, OverflowError) as exc:
        raise EncodingError(f"Invalid callback data: {exc}") from exc

    investors_c, amounts_c = validate_arrays(list(investors), list(amounts))
    commitment = Commitment(
        investors=investors_c,
        amounts=amounts_c,
        result_hash=normalize_hash(result_hash),
    )
    if encode(list(CALLBACK_TYPES), [list(investors_c), list(amounts_c), result_hash]) != payload:
        raise EncodingError("Invalid callback data: non-canonical encoding")
    verify_commitment(commitment)
    return commitment
