"""Network details and bid trace records exchanged by the relay."""

from __future__ import annotations

import binascii
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .common import RelayError
from .utils import (
    DOMAIN_TYPE_APP_BUILDER,
    DOMAIN_TYPE_BEACON_PROPOSER,
    compute_domain,
    u256_str_to_uint256,
)

ETH_NETWORK_ROPSTEN = "ropsten"
ETH_NETWORK_SEPOLIA = "sepolia"
ETH_NETWORK_GOERLI = "goerli"
ETH_NETWORK_MAINNET = "mainnet"
ETH_NETWORK_ZHEJIANG = "zhejiang"
ETH_NETWORK_CUSTOM = "custom"

CAPELLA_FORK_VERSION_ROPSTEN = "0x03001020"
CAPELLA_FORK_VERSION_SEPOLIA = "0x90000072"
CAPELLA_FORK_VERSION_GOERLI = "0x03001020"
CAPELLA_FORK_VERSION_MAINNET = "0x03000000"

GENESIS_FORK_VERSION_ZHEJIANG = "0x00000069"
GENESIS_VALIDATORS_ROOT_ZHEJIANG = (
    "0x53a92d8f2bb1d85f62d16a156e6ebcd1bcaba652d0900b2c2f387826f3481f6f"
)
BELLATRIX_FORK_VERSION_ZHEJIANG = "0x00000071"
CAPELLA_FORK_VERSION_ZHEJIANG = "0x00000072"

ZERO_ROOT_HEX = "0x" + "00" * 32

# (genesis fork version, genesis validators root, bellatrix fork version, capella fork version)
_KNOWN_NETWORKS: dict[str, tuple[str, str, str, str]] = {
    ETH_NETWORK_ROPSTEN: (
        "0x80000069",
        "0x44f1e56283ca88b35c789f7f449e52339bc1fefe3a45913a43a6d16edcd33cf1",
        "0x80000071",
        CAPELLA_FORK_VERSION_ROPSTEN,
    ),
    ETH_NETWORK_SEPOLIA: (
        "0x90000069",
        "0xd8ea171f3c94aea21ebc42a1ed61052acf3f9209c00e4efbaaddac09ed9b8078",
        "0x90000071",
        CAPELLA_FORK_VERSION_SEPOLIA,
    ),
    ETH_NETWORK_GOERLI: (
        "0x00001020",
        "0x043db0d9a83813551ee2f33450d23797757d430911a9320530ad8a0eabc43efb",
        "0x02001020",
        CAPELLA_FORK_VERSION_GOERLI,
    ),
    ETH_NETWORK_MAINNET: (
        "0x00000000",
        "0x4b363db94e286120d76eb905340fdd4e54bfe9f06bf33ff6cf5ad27f511bfe95",
        "0x02000000",
        CAPELLA_FORK_VERSION_MAINNET,
    ),
    ETH_NETWORK_ZHEJIANG: (
        GENESIS_FORK_VERSION_ZHEJIANG,
        GENESIS_VALIDATORS_ROOT_ZHEJIANG,
        BELLATRIX_FORK_VERSION_ZHEJIANG,
        CAPELLA_FORK_VERSION_ZHEJIANG,
    ),
}


class UnknownNetworkError(RelayError, ValueError):
    """The network name is not one the relay knows."""

    def __init__(self, network_name: str) -> None:
        super().__init__(f"unknown network: {network_name}")
        self.network_name = network_name


class EmptyPayloadError(RelayError, ValueError):
    """A versioned container holds no payload."""

    def __init__(self, message: str = "empty payload") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class EthNetworkDetails:
    """Fork versions, genesis root and signing domains of a network."""

    name: str
    genesis_fork_version_hex: str
    genesis_validators_root_hex: str
    bellatrix_fork_version_hex: str
    capella_fork_version_hex: str
    domain_builder: bytes
    domain_beacon_proposer_bellatrix: bytes
    domain_beacon_proposer_capella: bytes

    def __str__(self) -> str:
        return (
            f"EthNetworkDetails{{Name: {self.name}, "
            f"GenesisForkVersionHex: {self.genesis_fork_version_hex}, "
            f"GenesisValidatorsRootHex: {self.genesis_validators_root_hex}, "
            f"BellatrixForkVersionHex: {self.bellatrix_fork_version_hex}, "
            f"CapellaForkVersionHex: {self.capella_fork_version_hex}, "
            f"DomainBuilder: {self.domain_builder.hex()}, "
            f"DomainBeaconProposerBellatrix: {self.domain_beacon_proposer_bellatrix.hex()}, "
            f"DomainBeaconProposerCapella: {self.domain_beacon_proposer_capella.hex()}}}"
        )


def new_eth_network_details(network_name: str) -> EthNetworkDetails:
    """Details for a named network; 'custom' reads them from the environment.

    Raises UnknownNetworkError for an unknown name and InvalidForkVersionError
    for a malformed fork version.
    """
    if network_name == ETH_NETWORK_CUSTOM:
        genesis_fork, genesis_root, bellatrix_fork, capella_fork = (
            os.environ.get("GENESIS_FORK_VERSION", ""),
            os.environ.get("GENESIS_VALIDATORS_ROOT", ""),
            os.environ.get("BELLATRIX_FORK_VERSION", ""),
            os.environ.get("CAPELLA_FORK_VERSION", ""),
        )
    elif network_name in _KNOWN_NETWORKS:
        genesis_fork, genesis_root, bellatrix_fork, capella_fork = _KNOWN_NETWORKS[
            network_name
        ]
    else:
        raise UnknownNetworkError(network_name)

    domain_builder = compute_domain(DOMAIN_TYPE_APP_BUILDER, genesis_fork, ZERO_ROOT_HEX)
    domain_bellatrix = compute_domain(
        DOMAIN_TYPE_BEACON_PROPOSER, bellatrix_fork, genesis_root
    )
    domain_capella = compute_domain(DOMAIN_TYPE_BEACON_PROPOSER, capella_fork, genesis_root)

    return EthNetworkDetails(
        name=network_name,
        genesis_fork_version_hex=genesis_fork,
        genesis_validators_root_hex=genesis_root,
        bellatrix_fork_version_hex=bellatrix_fork,
        capella_fork_version_hex=capella_fork,
        domain_builder=domain_builder,
        domain_beacon_proposer_bellatrix=domain_bellatrix,
        domain_beacon_proposer_capella=domain_capella,
    )


def _to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def _from_hex(value: Any, length: int, name: str) -> bytes:
    if not isinstance(value, str):
        raise ValueError(f"{name}: expected a hex string")
    text = value[2:] if value[:2] in ("0x", "0X") else value
    try:
        raw = binascii.unhexlify(text)
    except binascii.Error as exc:
        raise ValueError(f"{name}: invalid hex: {exc}") from exc
    if len(raw) != length:
        raise ValueError(f"{name}: expected {length} bytes, got {len(raw)}")
    return raw


def _parse_uint(value: Any, name: str, bits: int = 64) -> int:
    if not isinstance(value, str) or not value.isdigit():
        raise ValueError(f"{name}: expected a decimal string")
    number = int(value)
    if number >= 1 << bits:
        raise ValueError(f"{name}: value out of range")
    return number


def _require(data: Mapping[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"{key} missing")
    return data[key]


@dataclass
class BoostBidTrace:
    """Bid trace whose value is a 32-byte little-endian number."""

    slot: int = 0
    parent_hash: bytes = bytes(32)
    block_hash: bytes = bytes(32)
    builder_pubkey: bytes = bytes(48)
    proposer_pubkey: bytes = bytes(48)
    proposer_fee_recipient: bytes = bytes(20)
    gas_limit: int = 0
    gas_used: int = 0
    value: bytes = bytes(32)


@dataclass
class BidTrace:
    """Bid trace whose value is an integer."""

    slot: int = 0
    parent_hash: bytes = bytes(32)
    block_hash: bytes = bytes(32)
    builder_pubkey: bytes = bytes(48)
    proposer_pubkey: bytes = bytes(48)
    proposer_fee_recipient: bytes = bytes(20)
    gas_limit: int = 0
    gas_used: int = 0
    value: int = 0


def boost_bid_to_bid_trace(bid_trace: BoostBidTrace | None) -> BidTrace | None:
    """Convert a byte-valued bid trace into an integer-valued one."""
    if bid_trace is None:
        return None
    return BidTrace(
        slot=bid_trace.slot,
        parent_hash=bytes(bid_trace.parent_hash),
        block_hash=bytes(bid_trace.block_hash),
        builder_pubkey=bytes(bid_trace.builder_pubkey),
        proposer_pubkey=bytes(bid_trace.proposer_pubkey),
        proposer_fee_recipient=bytes(bid_trace.proposer_fee_recipient),
        gas_limit=bid_trace.gas_limit,
        gas_used=bid_trace.gas_used,
        value=u256_str_to_uint256(bid_trace.value),
    )


_BID_CSV_HEADER = [
    "slot",
    "parent_hash",
    "block_hash",
    "builder_pubkey",
    "proposer_pubkey",
    "proposer_fee_recipient",
    "gas_limit",
    "gas_used",
    "value",
    "num_tx",
    "block_number",
]


def _csv_bool(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class BidTraceV2JSON:
    """Bid trace in its exported form, with hex and decimal strings."""

    slot: int = 0
    parent_hash: str = ""
    block_hash: str = ""
    builder_pubkey: str = ""
    proposer_pubkey: str = ""
    proposer_fee_recipient: str = ""
    gas_limit: int = 0
    gas_used: int = 0
    value: str = ""
    num_tx: int = 0
    block_number: int = 0

    def csv_header(self) -> list[str]:
        return list(_BID_CSV_HEADER)

    def to_csv_record(self) -> list[str]:
        return [
            str(self.slot),
            self.parent_hash,
            self.block_hash,
            self.builder_pubkey,
            self.proposer_pubkey,
            self.proposer_fee_recipient,
            str(self.gas_limit),
            str(self.gas_used),
            self.value,
            str(self.num_tx),
            str(self.block_number),
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": str(self.slot),
            "parent_hash": self.parent_hash,
            "block_hash": self.block_hash,
            "builder_pubkey": self.builder_pubkey,
            "proposer_pubkey": self.proposer_pubkey,
            "proposer_fee_recipient": self.proposer_fee_recipient,
            "gas_limit": str(self.gas_limit),
            "gas_used": str(self.gas_used),
            "value": self.value,
            "num_tx": str(self.num_tx),
            "block_number": str(self.block_number),
        }


@dataclass
class BidTraceV2WithTimestampJSON(BidTraceV2JSON):
    """Exported bid trace with its receive time."""

    timestamp: int = 0
    timestamp_ms: int = 0
    optimistic_submission: bool = False

    def csv_header(self) -> list[str]:
        return [*_BID_CSV_HEADER, "timestamp", "timestamp_ms", "optimistic_submission"]

    def to_csv_record(self) -> list[str]:
        return [
            *super().to_csv_record(),
            str(self.timestamp),
            str(self.timestamp_ms),
            _csv_bool(self.optimistic_submission),
        ]

    def to_dict(self) -> dict[str, Any]:
        entry = super().to_dict()
        if self.timestamp:
            entry["timestamp"] = str(self.timestamp)
        if self.timestamp_ms:
            entry["timestamp_ms"] = str(self.timestamp_ms)
        entry["optimistic_submission"] = self.optimistic_submission
        return entry


@dataclass
class BidTraceV2(BidTrace):
    """Bid trace with block number and transaction count."""

    block_number: int = 0
    num_tx: int = 0

    def to_json_entry(self) -> BidTraceV2JSON:
        """The exported form of this trace."""
        return BidTraceV2JSON(
            slot=self.slot,
            parent_hash=_to_hex(self.parent_hash),
            block_hash=_to_hex(self.block_hash),
            builder_pubkey=_to_hex(self.builder_pubkey),
            proposer_pubkey=_to_hex(self.proposer_pubkey),
            proposer_fee_recipient=_to_hex(self.proposer_fee_recipient),
            gas_limit=self.gas_limit,
            gas_used=self.gas_used,
            value=str(self.value),
            num_tx=self.num_tx,
            block_number=self.block_number,
        )

    def to_json(self) -> str:
        """Compact JSON text of this trace."""
        return json.dumps(self.to_json_entry().to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes | Mapping[str, Any]) -> BidTraceV2:
        """Parse a trace from JSON text or a decoded mapping.

        Raises ValueError when a field is missing or malformed.
        """
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        if not isinstance(data, Mapping):
            raise ValueError("bid trace must be a JSON object")
        num_tx = data.get("num_tx")
        block_number = data.get("block_number")
        return cls(
            slot=_parse_uint(_require(data, "slot"), "slot"),
            parent_hash=_from_hex(_require(data, "parent_hash"), 32, "parent_hash"),
            block_hash=_from_hex(_require(data, "block_hash"), 32, "block_hash"),
            builder_pubkey=_from_hex(
                _require(data, "builder_pubkey"), 48, "builder_pubkey"
            ),
            proposer_pubkey=_from_hex(
                _require(data, "proposer_pubkey"), 48, "proposer_pubkey"
            ),
            proposer_fee_recipient=_from_hex(
                _require(data, "proposer_fee_recipient"), 20, "proposer_fee_recipient"
            ),
            gas_limit=_parse_uint(_require(data, "gas_limit"), "gas_limit"),
            gas_used=_parse_uint(_require(data, "gas_used"), "gas_used"),
            value=_parse_uint(_require(data, "value"), "value", bits=256),
            num_tx=0 if num_tx is None else _parse_uint(num_tx, "num_tx"),
            block_number=0
            if block_number is None
            else _parse_uint(block_number, "block_number"),
        )