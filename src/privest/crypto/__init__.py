"""Cryptographic primitives — commitment hashing, callback encoding, attestation."""

from privest.crypto.commitment_builder import (
    CommitmentBuilder,
    commitment_hash,
    decode_callback,
    encode_callback,
)
from privest.crypto.attestation import recover_signer, sign_result

__all__ = [
    "CommitmentBuilder",
    "commitment_hash",
    "decode_callback",
    "encode_callback",
    "recover_signer",
    "sign_result",
]
