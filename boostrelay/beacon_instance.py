"""Client for a single beacon node's HTTP API and event stream."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import requests

from .beacon_fetch import BeaconRequestError, fetch_beacon

_UINT = re.compile(r"[0-9]+")
_UINT64_LIMIT = 1 << 64
_ADDRESS_LENGTH = 20

T = TypeVar("T")


class _Sink(Protocol):
    def put(self, item: Any) -> None: ...


def _mapping(value: Any, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{name}: expected a JSON object")
    return value


def _list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{name}: expected a JSON array")
    return value


def _parse_uint(value: Any, name: str) -> int:
    if not isinstance(value, str) or not _UINT.fullmatch(value):
        raise ValueError(f"{name}: expected a decimal string, got {value!r}")
    number = int(value)
    if number >= _UINT64_LIMIT:
        raise ValueError(f"{name}: value out of range")
    return number


def _uint(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    return _parse_uint(value, key)


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a string")
    return value


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{key}: expected a boolean")
    return value


def _required(data: Mapping[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"{key} missing")
    return data[key]


@dataclass(frozen=True)
class HeadEventData:
    """Data of a head event."""

    slot: int = 0
    block: str = ""
    state: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> HeadEventData:
        data = _mapping(data, "head event")
        return cls(slot=_uint(data, "slot"), block=_str(data, "block"), state=_str(data, "state"))


@dataclass(frozen=True)
class Withdrawal:
    """A withdrawal from the consensus layer to an execution address."""

    index: int
    validator_index: int
    address: str
    amount: int

    @classmethod
    def from_dict(cls, data: Any) -> Withdrawal:
        """Parse a withdrawal; every field is required."""
        data = _mapping(data, "withdrawal")
        address = _required(data, "address")
        if not isinstance(address, str) or address[:2] not in ("0x", "0X"):
            raise ValueError("address: expected a 0x-prefixed hex string")
        try:
            raw = bytes.fromhex(address[2:])
        except ValueError as exc:
            raise ValueError(f"address: invalid hex: {exc}") from exc
        if len(raw) != _ADDRESS_LENGTH:
            raise ValueError("address: incorrect length")
        return cls(
            index=_parse_uint(_required(data, "index"), "index"),
            validator_index=_parse_uint(_required(data, "validator_index"), "validator_index"),
            address="0x" + raw.hex(),
            amount=_parse_uint(_required(data, "amount"), "amount"),
        )


@dataclass(frozen=True)
class PayloadAttributes:
    """Attributes the next execution payload must satisfy."""

    timestamp: int = 0
    prev_randao: str = ""
    suggested_fee_recipient: str = ""
    withdrawals: list[Withdrawal] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> PayloadAttributes:
        data = _mapping(data, "payload_attributes")
        return cls(
            timestamp=_uint(data, "timestamp"),
            prev_randao=_str(data, "prev_randao"),
            suggested_fee_recipient=_str(data, "suggested_fee_recipient"),
            withdrawals=[
                Withdrawal.from_dict(item)
                for item in _list(data.get("withdrawals"), "withdrawals")
            ],
        )


@dataclass(frozen=True)
class PayloadAttributesEventData:
    """Data of a payload_attributes event."""

    proposer_index: int = 0
    proposal_slot: int = 0
    parent_block_number: int = 0
    parent_block_root: str = ""
    parent_block_hash: str = ""
    payload_attributes: PayloadAttributes = field(default_factory=PayloadAttributes)

    @classmethod
    def from_dict(cls, data: Any) -> PayloadAttributesEventData:
        data = _mapping(data, "data")
        return cls(
            proposer_index=_uint(data, "proposer_index"),
            proposal_slot=_uint(data, "proposal_slot"),
            parent_block_number=_uint(data, "parent_block_number"),
            parent_block_root=_str(data, "parent_block_root"),
            parent_block_hash=_str(data, "parent_block_hash"),
            payload_attributes=PayloadAttributes.from_dict(data.get("payload_attributes")),
        )


@dataclass(frozen=True)
class PayloadAttributesEvent:
    """A payload_attributes event with its fork version."""

    version: str = ""
    data: PayloadAttributesEventData = field(default_factory=PayloadAttributesEventData)

    @classmethod
    def from_dict(cls, data: Any) -> PayloadAttributesEvent:
        data = _mapping(data, "payload_attributes event")
        return cls(
            version=_str(data, "version"),
            data=PayloadAttributesEventData.from_dict(data.get("data")),
        )


@dataclass(frozen=True)
class ValidatorResponseValidatorData:
    """The validator record of a state validator entry."""

    pubkey: str = ""
    withdrawal_credentials: str = ""
    effective_balance: str = ""
    slashed: bool = False
    activation_eligibility: int = 0
    activation_epoch: int = 0
    exit_epoch: int = 0
    withdrawable_epoch: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> ValidatorResponseValidatorData:
        data = _mapping(data, "validator")
        return cls(
            pubkey=_str(data, "pubkey"),
            withdrawal_credentials=_str(data, "withdrawal_credentials"),
            effective_balance=_str(data, "effective_balance"),
            slashed=_bool(data, "slashed"),
            activation_eligibility=_uint(data, "activation_eligibility_epoch"),
            activation_epoch=_uint(data, "activation_epoch"),
            exit_epoch=_uint(data, "exit_epoch"),
            withdrawable_epoch=_uint(data, "withdrawable_epoch"),
        )


@dataclass(frozen=True)
class ValidatorResponseEntry:
    """A validator in the registry with its index, balance and status."""

    index: int = 0
    balance: str = ""
    status: str = ""
    validator: ValidatorResponseValidatorData = field(
        default_factory=ValidatorResponseValidatorData
    )

    @classmethod
    def from_dict(cls, data: Any) -> ValidatorResponseEntry:
        data = _mapping(data, "validator entry")
        return cls(
            index=_uint(data, "index"),
            balance=_str(data, "balance"),
            status=_str(data, "status"),
            validator=ValidatorResponseValidatorData.from_dict(data.get("validator")),
        )


@dataclass(frozen=True)
class SyncStatus:
    """Head slot and syncing flag of a beacon node."""

    head_slot: int = 0
    is_syncing: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> SyncStatus:
        """Parse the 'data' object of a syncing response."""
        data = _mapping(data, "sync status")
        return cls(head_slot=_uint(data, "head_slot"), is_syncing=_bool(data, "is_syncing"))


@dataclass(frozen=True)
class ProposerDuty:
    """The validator due to propose at a slot."""

    slot: int = 0
    pubkey: str = ""
    validator_index: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> ProposerDuty:
        data = _mapping(data, "proposer duty")
        return cls(
            slot=_uint(data, "slot"),
            pubkey=_str(data, "pubkey"),
            validator_index=_uint(data, "validator_index"),
        )


@dataclass(frozen=True)
class ProposerDutiesResponse:
    """Proposer duties for every slot of an epoch."""

    data: list[ProposerDuty] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ProposerDutiesResponse:
        data = _mapping(data, "proposer duties")
        return cls(data=[ProposerDuty.from_dict(item) for item in _list(data.get("data"), "data")])


@dataclass(frozen=True)
class HeaderMessage:
    """The message of a beacon block header."""

    slot: int = 0
    proposer_index: int = 0
    parent_root: str = ""


@dataclass(frozen=True)
class HeaderResponse:
    """A beacon block header with its root."""

    root: str = ""
    message: HeaderMessage | None = None

    @classmethod
    def from_dict(cls, data: Any) -> HeaderResponse:
        body = _mapping(_mapping(data, "header response").get("data"), "data")
        header = _mapping(body.get("header"), "header")
        raw_message = header.get("message")
        message = None
        if raw_message is not None:
            raw_message = _mapping(raw_message, "message")
            message = HeaderMessage(
                slot=_uint(raw_message, "slot"),
                proposer_index=_uint(raw_message, "proposer_index"),
                parent_root=_str(raw_message, "parent_root"),
            )
        return cls(root=_str(body, "root"), message=message)


@dataclass(frozen=True)
class BlockResponse:
    """Slot and execution payload of a beacon block."""

    slot: int = 0
    execution_payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> BlockResponse:
        body = _mapping(_mapping(data, "block response").get("data"), "data")
        message = _mapping(body.get("message"), "message")
        block_body = _mapping(message.get("body"), "body")
        payload = _mapping(block_body.get("execution_payload"), "execution_payload")
        return cls(slot=_uint(message, "slot"), execution_payload=dict(payload))


@dataclass(frozen=True)
class GenesisResponse:
    """Genesis time, validators root and fork version of the chain."""

    genesis_time: int = 0
    genesis_validators_root: str = ""
    genesis_fork_version: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> GenesisResponse:
        body = _mapping(_mapping(data, "genesis response").get("data"), "data")
        return cls(
            genesis_time=_uint(body, "genesis_time"),
            genesis_validators_root=_str(body, "genesis_validators_root"),
            genesis_fork_version=_str(body, "genesis_fork_version"),
        )


@dataclass(frozen=True)
class SpecResponse:
    """Selected chain specification values, read from the top-level object."""

    seconds_per_slot: int = 0
    deposit_contract_address: str = ""
    deposit_network_id: str = ""
    domain_aggregate_and_proof: str = ""
    inactivity_penalty_quotient: str = ""
    inactivity_penalty_quotient_altair: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> SpecResponse:
        data = _mapping(data, "spec response")
        return cls(
            seconds_per_slot=_uint(data, "SECONDS_PER_SLOT"),
            deposit_contract_address=_str(data, "DEPOSIT_CONTRACT_ADDRESS"),
            deposit_network_id=_str(data, "DEPOSIT_NETWORK_ID"),
            domain_aggregate_and_proof=_str(data, "DOMAIN_AGGREGATE_AND_PROOF"),
            inactivity_penalty_quotient=_str(data, "INACTIVITY_PENALTY_QUOTIENT"),
            inactivity_penalty_quotient_altair=_str(data, "INACTIVITY_PENALTY_QUOTIENT_ALTAIR"),
        )


@dataclass(frozen=True)
class ForkScheduleEntry:
    """One fork of the schedule."""

    previous_version: str = ""
    current_version: str = ""
    epoch: int = 0


@dataclass(frozen=True)
class ForkScheduleResponse:
    """All forks of the chain, in schedule order."""

    data: list[ForkScheduleEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ForkScheduleResponse:
        entries = []
        for item in _list(_mapping(data, "fork schedule").get("data"), "data"):
            item = _mapping(item, "fork")
            entries.append(
                ForkScheduleEntry(
                    previous_version=_str(item, "previous_version"),
                    current_version=_str(item, "current_version"),
                    epoch=_uint(item, "epoch"),
                )
            )
        return cls(data=entries)


@dataclass(frozen=True)
class RandaoResponse:
    """The RANDAO mix of a state."""

    randao: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> RandaoResponse:
        body = _mapping(_mapping(data, "randao response").get("data"), "data")
        return cls(randao=_str(body, "randao"))


@dataclass(frozen=True)
class WithdrawalsResponse:
    """The expected withdrawals of a state."""

    withdrawals: list[Withdrawal] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> WithdrawalsResponse:
        body = _mapping(_mapping(data, "withdrawals response").get("data"), "data")
        return cls(
            withdrawals=[
                Withdrawal.from_dict(item)
                for item in _list(body.get("withdrawals"), "withdrawals")
            ]
        )


def iter_sse_data(lines: Iterable[str | bytes]) -> Iterator[str]:
    """Yield the data of each complete server-sent event in a stream of lines."""
    buffer: list[str] = []
    for line in lines:
        if isinstance(line, (bytes, bytearray)):
            line = line.decode("utf-8", errors="replace")
        line = line.rstrip("\r\n")
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name == "data":
            buffer.append(value[1:] if value.startswith(" ") else value)


class ProdBeaconInstance:
    """A beacon node reached over its HTTP API."""

    def __init__(self, beacon_uri: str) -> None:
        self.beacon_uri = beacon_uri
        self._log = logging.getLogger("boostrelay").getChild("beacon_instance")
        self._fields = {"component": "beaconInstance", "beaconURI": beacon_uri}
        self._stopped = threading.Event()

    @property
    def uri(self) -> str:
        return self.beacon_uri

    def close(self) -> None:
        """Stop running event subscriptions."""
        self._stopped.set()

    def _get(self, path: str, parser: Callable[[Any], T]) -> T:
        url = f"{self.beacon_uri}{path}"
        response = fetch_beacon("GET", url)
        body = response.json()
        try:
            return parser(body)
        except (ValueError, TypeError) as exc:
            raise BeaconRequestError(
                f"could not unmarshal response for {url} from "
                f"{response.body.decode(errors='replace')}: {exc}",
                response.status_code,
            ) from exc

    def _subscribe(self, topic: str, parser: Callable[[Any], Any], queue: _Sink) -> None:
        url = f"{self.beacon_uri}/eth/v1/events?topics={topic}"
        fields = {**self._fields, "url": url}
        self._log.info("subscribing to %s events", topic, extra=fields)
        while not self._stopped.is_set():
            try:
                with requests.get(
                    url, headers={"Accept": "text/event-stream"}, stream=True
                ) as response:
                    response.raise_for_status()
                    for data in iter_sse_data(response.iter_lines()):
                        try:
                            event = parser(json.loads(data))
                        except (ValueError, TypeError) as exc:
                            self._log.error(
                                "could not unmarshal %s event: %s", topic, exc, extra=fields
                            )
                            continue
                        queue.put(event)
                        if self._stopped.is_set():
                            return
            except requests.RequestException as exc:
                self._log.error(
                    "failed to subscribe to %s events: %s", topic, exc, extra=fields
                )
                if self._stopped.wait(1.0):
                    return
            if self._stopped.is_set():
                return
            self._log.warning("%s event stream ended, reconnecting", topic, extra=fields)
            if self._stopped.wait(0.5):
                return

    def subscribe_to_head_events(self, queue: _Sink) -> None:
        """Put every head event into the queue until closed, reconnecting as needed."""
        self._subscribe("head", HeadEventData.from_dict, queue)

    def subscribe_to_payload_attributes_events(self, queue: _Sink) -> None:
        """Put every payload_attributes event into the queue until closed."""
        self._subscribe("payload_attributes", PayloadAttributesEvent.from_dict, queue)

    def get_state_validators(self, state_id: str) -> dict[str, ValidatorResponseEntry]:
        """Active and pending validators keyed by lower-case public key."""

        def parse(body: Any) -> dict[str, ValidatorResponseEntry]:
            entries = _list(_mapping(body, "validators response").get("data"), "data")
            validators = {}
            for item in entries:
                entry = ValidatorResponseEntry.from_dict(item)
                validators[entry.validator.pubkey.lower()] = entry
            return validators

        return self._get(
            f"/eth/v1/beacon/states/{state_id}/validators?status=active,pending", parse
        )

    def sync_status(self) -> SyncStatus:
        return self._get(
            "/eth/v1/node/syncing",
            lambda body: SyncStatus.from_dict(_mapping(body, "syncing").get("data")),
        )

    def current_slot(self) -> int:
        return self.sync_status().head_slot

    def get_proposer_duties(self, epoch: int) -> ProposerDutiesResponse:
        return self._get(
            f"/eth/v1/validator/duties/proposer/{epoch}", ProposerDutiesResponse.from_dict
        )

    def get_header(self) -> HeaderResponse:
        return self._get("/eth/v1/beacon/headers/head", HeaderResponse.from_dict)

    def get_header_for_slot(self, slot: int) -> HeaderResponse:
        return self._get(f"/eth/v1/beacon/headers/{slot}", HeaderResponse.from_dict)

    def get_block(self, block_id: str) -> BlockResponse:
        """Block by id: 'head' or a slot number."""
        return self._get(f"/eth/v2/beacon/blocks/{block_id}", BlockResponse.from_dict)

    def get_block_for_slot(self, slot: int) -> BlockResponse:
        return self._get(f"/eth/v2/beacon/blocks/{slot}", BlockResponse.from_dict)

    def publish_block(self, block: Any) -> int:
        """Publish a signed block and return the HTTP status code."""
        return fetch_beacon("POST", f"{self.beacon_uri}/eth/v1/beacon/blocks", block).status_code

    def get_genesis(self) -> GenesisResponse:
        return self._get("/eth/v1/beacon/genesis", GenesisResponse.from_dict)

    def get_spec(self) -> SpecResponse:
        return self._get("/eth/v1/config/spec", SpecResponse.from_dict)

    def get_fork_schedule(self) -> ForkScheduleResponse:
        return self._get("/eth/v1/config/fork_schedule", ForkScheduleResponse.from_dict)

    def get_randao(self, slot: int) -> RandaoResponse:
        return self._get(f"/eth/v1/beacon/states/{slot}/randao", RandaoResponse.from_dict)

    def get_withdrawals(self, slot: int) -> WithdrawalsResponse:
        return self._get(
            f"/eth/v1/beacon/states/{slot}/withdrawals", WithdrawalsResponse.from_dict
        )