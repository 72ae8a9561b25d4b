"""Enclave attestation — signs and recovers the signer of a result hash.

The confidential worker signs the 32-byte commitment hash with its enclave
key (EIP-191 personal-sign, as any wallet would). The submission gateway
recovers the signer and compares it to the enclave identity it trusts.
This proves which key produced a commitment; it does not replace the
ledger's own hash recomputation.
"""

from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from privest.crypto.commitment_builder import normalize_hash
from privest.errors import EncodingError


def _message(result_hash: Any):
    return encode_defunct(primitive=bytes.fromhex(normalize_hash(result_hash)[2:]))


def sign_result(result_hash: Any, private_key: str) -> str:
    """Sign a result hash, returning a 65-byte signature as ``0x`` hex."""
    signed = Account.sign_message(_message(result_hash), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


def recover_signer(result_hash: Any, signature: Any) -> str:
    """Return the checksummed address that signed result_hash.

    Raises EncodingError if the signature is malformed.
    """
    try:
        return Account.recover_message(_message(result_hash), signature=signature)
    except (BadSignature, ValidationError, ValueError, TypeError) as exc:
        raise EncodingError(f"Invalid result signature: {exc}") from exc
