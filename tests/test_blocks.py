import json

import pytest

from boostrelay.blocks import (
    BuilderSubmitBlockRequest,
    SignedBeaconBlock,
    SignedBlindedBeaconBlock,
)
from boostrelay.types import EmptyPayloadError

HASH_A = "0x" + "11" * 32
HASH_B = "0x" + "22" * 32
SIG = "0x" + "ab" * 96


def _submission(with_withdrawals=True):
    payload = {
        "parent_hash": HASH_B,
        "block_hash": HASH_A,
        "block_number": "77",
        "gas_limit": "30000000",
        "gas_used": "21000",
        "timestamp": "1680000000",
        "transactions": ["0x03", "0x04"],
    }
    if with_withdrawals:
        payload["withdrawals"] = [
            {"index": "5", "validator_index": "10", "address": "0x" + "00" * 20, "amount": "15640"}
        ]
    return {
        "message": {
            "slot": "123",
            "parent_hash": HASH_B,
            "block_hash": HASH_A,
            "value": "1000000000",
        },
        "execution_payload": payload,
        "signature": SIG,
    }


def test_capella_submission_accessors():
    req = BuilderSubmitBlockRequest.from_json(json.dumps(_submission()))
    assert req.capella is not None and req.bellatrix is None
    assert req.slot() == 123
    assert req.block_hash() == HASH_A
    assert req.parent_hash() == HASH_B
    assert req.value() == 1000000000
    assert req.num_tx() == 2
    assert req.block_number() == 77
    assert req.gas_used() == 21000
    assert req.gas_limit() == 30000000
    assert req.timestamp() == 1680000000
    assert req.has_execution_payload() is True
    assert req.withdrawals()[0]["amount"] == "15640"


def test_submission_without_withdrawals_is_bellatrix():
    req = BuilderSubmitBlockRequest.from_json(_submission(with_withdrawals=False))
    assert req.bellatrix is not None and req.capella is None
    assert req.withdrawals() is None
    assert req.slot() == 123


def test_submission_round_trip():
    data = _submission()
    req = BuilderSubmitBlockRequest.from_json(data)
    again = BuilderSubmitBlockRequest.from_json(req.to_json())
    assert again == req
    assert json.loads(req.to_json()) == data


def test_submission_rejects_non_object():
    with pytest.raises(ValueError):
        BuilderSubmitBlockRequest.from_json("[1, 2]")


def test_empty_submission_defaults_and_error():
    req = BuilderSubmitBlockRequest()
    assert req.slot() == 0
    assert req.block_hash() == ""
    assert req.value() is None
    assert req.has_execution_payload() is False
    with pytest.raises(EmptyPayloadError):
        req.to_json()


def test_signed_beacon_block():
    data = {
        "message": {"slot": "42", "body": {"execution_payload": {"block_hash": HASH_A}}},
        "signature": SIG,
    }
    block = SignedBeaconBlock(capella=data)
    assert block.slot() == 42
    assert block.block_hash() == HASH_A
    assert json.loads(block.to_json()) == data


def test_signed_beacon_block_prefers_capella():
    cap = {"message": {"slot": "2", "body": {"execution_payload": {"block_hash": HASH_A}}}}
    bel = {"message": {"slot": "1", "body": {"execution_payload": {"block_hash": HASH_B}}}}
    block = SignedBeaconBlock(bellatrix=bel, capella=cap)
    assert block.slot() == 2
    assert block.block_hash() == HASH_A


def test_empty_signed_beacon_block():
    block = SignedBeaconBlock()
    assert block.slot() == 0
    assert block.block_hash() == ""
    with pytest.raises(EmptyPayloadError):
        block.to_json()


def test_signed_blinded_beacon_block():
    data = {
        "message": {
            "slot": "9",
            "proposer_index": "17",
            "body": {"execution_payload_header": {"block_hash": HASH_B, "block_number": "55"}},
        },
        "signature": SIG,
    }
    block = SignedBlindedBeaconBlock(bellatrix=data)
    assert block.slot() == 9
    assert block.proposer_index() == 17
    assert block.block_hash() == HASH_B
    assert block.block_number() == 55
    assert block.signature() == bytes.fromhex(SIG[2:])
    assert json.loads(block.to_json()) == data


def test_empty_signed_blinded_beacon_block():
    block = SignedBlindedBeaconBlock()
    assert block.signature() is None
    assert block.block_number() == 0
    assert block.proposer_index() == 0
    with pytest.raises(EmptyPayloadError):
        block.to_json()