"""Tests for result attestation — proves the enclave signer is recoverable from a hash."""

import pytest

from eth_account import Account

from privest.crypto.attestation import recover_signer, sign_result
from privest.crypto.commitment_builder import commitment_hash
from privest.errors import EncodingError


ENCLAVE_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
ADDR_A = "0x71C7656EC7ab88b098defB751B7401B5f6d8976F"


def _hash() -> str:
    return commitment_hash([ADDR_A], [440000])


class TestSignAndRecover:
    def test_recovers_signer(self) -> None:
        signature = sign_result(_hash(), ENCLAVE_KEY)
        assert recover_signer(_hash(), signature) == Account.from_key(ENCLAVE_KEY).address

    def test_signature_is_65_bytes_hex(self) -> None:
        signature = sign_result(_hash(), ENCLAVE_KEY)
        assert signature.startswith("0x")
        assert len(bytes.fromhex(signature[2:])) == 65

    def test_accepts_raw_hash_bytes(self) -> None:
        raw = bytes.fromhex(_hash()[2:])
        signature = sign_result(raw, ENCLAVE_KEY)
        assert recover_signer(_hash(), signature) == Account.from_key(ENCLAVE_KEY).address

    def test_other_key_recovers_other_address(self) -> None:
        signature = sign_result(_hash(), OTHER_KEY)
        assert recover_signer(_hash(), signature) != Account.from_key(ENCLAVE_KEY).address

    def test_different_hash_recovers_different_signer(self) -> None:
        signature = sign_result(_hash(), ENCLAVE_KEY)
        other_hash = commitment_hash([ADDR_A], [440001])
        assert recover_signer(other_hash, signature) != Account.from_key(ENCLAVE_KEY).address

    def test_malformed_signature_rejected(self) -> None:
        with pytest.raises(EncodingError, match="Invalid result signature"):
            recover_signer(_hash(), "0x1234")

    def test_malformed_hash_rejected(self) -> None:
        with pytest.raises(EncodingError):
            sign_result("0xabc", ENCLAVE_KEY)
