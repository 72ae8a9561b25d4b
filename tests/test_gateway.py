"""Tests for the result submission gateway — proves decode, re-check and registration."""

import pytest

from eth_abi import encode
from eth_account import Account

from privest.compensation.ledger import PayoutLedger
from privest.compensation.treasury import InMemoryTransferor, NativeTreasury
from privest.crypto.attestation import sign_result
from privest.crypto.commitment_builder import (
    commitment_hash,
    encode_callback,
    task_id_from_label,
)
from privest.errors import ErrorKind
from privest.gateway.submission import ResultSubmissionGateway, SubmissionResult
from privest.models.commitment import Commitment


OWNER = "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4"
BRIDGE = "0x78731D3Ca6b7E34aC0F824c42a7cC18A495cabaB"
ADDR_A = "0x71C7656EC7ab88b098defB751B7401B5f6d8976F"
ADDR_B = "0xAb5801a7D398351b8bE11C439e05C5B3259aeC9B"

ENCLAVE_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32

TASK = task_id_from_label("gateway-1")


def _commitment() -> Commitment:
    investors = (ADDR_A, ADDR_B)
    amounts = (220000000000000000000, 192500000000000000000)
    return Commitment(investors, amounts, commitment_hash(investors, amounts))


def _ledger(authorize: bool = True) -> PayoutLedger:
    ledger = PayoutLedger(OWNER, treasury=NativeTreasury(InMemoryTransferor()), clock=lambda: 1)
    if authorize:
        ledger.connect(OWNER).authorize_submitter(BRIDGE)
    return ledger


def _gateway(ledger: PayoutLedger, **kwargs) -> ResultSubmissionGateway:
    return ResultSubmissionGateway(ledger, bridge_identity=BRIDGE, **kwargs)


class TestReceiveResult:
    def test_valid_callback_registers_task(self) -> None:
        ledger = _ledger()
        commitment = _commitment()
        result = _gateway(ledger).receive_result(TASK, encode_callback(commitment))

        assert result.accepted
        assert result.task_id == TASK
        assert result.result_hash == commitment.result_hash
        assert ledger.task_details(TASK) == (commitment.result_hash, 1)
        assert [p.amount for p in ledger.payouts(TASK)] == list(commitment.amounts)

    def test_duplicate_submission_is_terminal(self) -> None:
        ledger = _ledger()
        gateway = _gateway(ledger)
        payload = encode_callback(_commitment())
        gateway.receive_result(TASK, payload)

        result = gateway.receive_result(TASK, payload)
        assert not result.accepted
        assert result.kind == ErrorKind.DUPLICATE_TASK
        assert result.terminal

    def test_garbage_payload_rejected(self) -> None:
        ledger = _ledger()
        result = _gateway(ledger).receive_result(TASK, b"\x00\x01\x02")
        assert not result.accepted
        assert result.kind == ErrorKind.ENCODING_ERROR
        assert result.terminal
        assert ledger.task_info(TASK).exists is False

    def test_hash_mismatch_in_payload_rejected(self) -> None:
        ledger = _ledger()
        commitment = _commitment()
        payload = encode(
            ["address[]", "uint256[]", "bytes32"],
            [list(commitment.investors), list(commitment.amounts), b"\x00" * 32],
        )
        result = _gateway(ledger).receive_result(TASK, payload)
        assert result.kind == ErrorKind.ENCODING_ERROR
        assert "Result hash mismatch" in result.reason
        assert ledger.task_info(TASK).exists is False

    def test_unauthorized_bridge_is_not_terminal(self) -> None:
        ledger = _ledger(authorize=False)
        gateway = _gateway(ledger)
        payload = encode_callback(_commitment())

        result = gateway.receive_result(TASK, payload)
        assert result.kind == ErrorKind.UNAUTHORIZED
        assert not result.terminal

        ledger.connect(OWNER).authorize_submitter(BRIDGE)
        assert gateway.receive_result(TASK, payload).accepted

    def test_malformed_task_id_rejected(self) -> None:
        result = _gateway(_ledger()).receive_result("task-1", encode_callback(_commitment()))
        assert result.kind == ErrorKind.INVALID_INPUT
        assert result.task_id == "task-1"


class TestSubmit:
    def test_tampered_commitment_rejected(self) -> None:
        commitment = _commitment()
        tampered = Commitment(
            commitment.investors,
            (commitment.amounts[0] + 1, commitment.amounts[1]),
            commitment.result_hash,
        )
        result = _gateway(_ledger()).submit(TASK, tampered)
        assert result.kind == ErrorKind.ENCODING_ERROR
        assert result.terminal

    def test_non_commitment_rejected(self) -> None:
        result = _gateway(_ledger()).submit(TASK, {"investors": []})
        assert result.kind == ErrorKind.ENCODING_ERROR

    def test_bridge_identity_is_checksummed(self) -> None:
        gateway = ResultSubmissionGateway(_ledger(), bridge_identity=BRIDGE.lower())
        assert gateway.bridge_identity == BRIDGE


class TestSignedResult:
    def test_enclave_signature_accepted(self) -> None:
        commitment = _commitment()
        enclave = Account.from_key(ENCLAVE_KEY).address
        gateway = _gateway(_ledger(), enclave_signer=enclave)
        signature = sign_result(commitment.result_hash, ENCLAVE_KEY)

        result = gateway.receive_signed_result(TASK, encode_callback(commitment), signature)
        assert result.accepted

    def test_wrong_signer_rejected(self) -> None:
        commitment = _commitment()
        enclave = Account.from_key(ENCLAVE_KEY).address
        ledger = _ledger()
        gateway = _gateway(ledger, enclave_signer=enclave)
        signature = sign_result(commitment.result_hash, OTHER_KEY)

        result = gateway.receive_signed_result(TASK, encode_callback(commitment), signature)
        assert result.kind == ErrorKind.UNAUTHORIZED
        assert ledger.task_info(TASK).exists is False

    def test_no_signer_configured(self) -> None:
        commitment = _commitment()
        signature = sign_result(commitment.result_hash, ENCLAVE_KEY)
        result = _gateway(_ledger()).receive_signed_result(
            TASK, encode_callback(commitment), signature
        )
        assert result.kind == ErrorKind.UNAUTHORIZED
        assert "No enclave signer" in result.reason

    def test_malformed_signature(self) -> None:
        commitment = _commitment()
        enclave = Account.from_key(ENCLAVE_KEY).address
        result = _gateway(_ledger(), enclave_signer=enclave).receive_signed_result(
            TASK, encode_callback(commitment), "0x1234"
        )
        assert result.kind == ErrorKind.ENCODING_ERROR


class TestSubmissionResult:
    def test_accepted_to_dict(self) -> None:
        result = SubmissionResult(accepted=True, task_id=TASK, result_hash="0x" + "ab" * 32)
        assert result.to_dict() == {
            "accepted": True,
            "taskId": TASK,
            "resultHash": "0x" + "ab" * 32,
        }

    def test_rejected_to_dict(self) -> None:
        ledger = _ledger()
        result = _gateway(ledger).receive_result(TASK, b"")
        data = result.to_dict()
        assert data["accepted"] is False
        assert data["error"]["kind"] == "EncodingError"
        assert data["terminal"] is True


@pytest.mark.parametrize("payload", ["0xdeadbeef", None, 42])
def test_non_bytes_payload_rejected(payload) -> None:
    result = _gateway(_ledger()).receive_result(TASK, payload)
    assert result.kind == ErrorKind.ENCODING_ERROR
