"""Versioned beacon blocks and builder block submissions."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .types import EmptyPayloadError


def _uint(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected an unsigned integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ValueError(f"expected an unsigned integer, got {value!r}")


def _hex_bytes(value: str) -> bytes:
    text = value[2:] if value[:2] in ("0x", "0X") else value
    return bytes.fromhex(text)


def _dump(data: Mapping[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))


def _pick(capella: Mapping[str, Any] | None, bellatrix: Mapping[str, Any] | None):
    return capella if capella is not None else bellatrix


@dataclass
class SignedBeaconBlock:
    """A signed beacon block of the bellatrix or capella fork, as decoded JSON."""

    bellatrix: dict[str, Any] | None = None
    capella: dict[str, Any] | None = None

    def slot(self) -> int:
        block = _pick(self.capella, self.bellatrix)
        if block is None:
            return 0
        return _uint(block["message"]["slot"])

    def block_hash(self) -> str:
        block = _pick(self.capella, self.bellatrix)
        if block is None:
            return ""
        return block["message"]["body"]["execution_payload"]["block_hash"]

    def to_json(self) -> str:
        """JSON text of the held block, capella first.

        Raises EmptyPayloadError when no block is held.
        """
        block = _pick(self.capella, self.bellatrix)
        if block is None:
            raise EmptyPayloadError()
        return _dump(block)


@dataclass
class SignedBlindedBeaconBlock:
    """A signed blinded beacon block of the bellatrix or capella fork."""

    bellatrix: dict[str, Any] | None = None
    capella: dict[str, Any] | None = None

    def _block(self) -> dict[str, Any] | None:
        return _pick(self.capella, self.bellatrix)

    def _header(self) -> Mapping[str, Any]:
        return self._block()["message"]["body"]["execution_payload_header"]

    def slot(self) -> int:
        if self._block() is None:
            return 0
        return _uint(self._block()["message"]["slot"])

    def block_hash(self) -> str:
        if self._block() is None:
            return ""
        return self._header()["block_hash"]

    def block_number(self) -> int:
        if self._block() is None:
            return 0
        return _uint(self._header()["block_number"])

    def proposer_index(self) -> int:
        if self._block() is None:
            return 0
        return _uint(self._block()["message"]["proposer_index"])

    def signature(self) -> bytes | None:
        block = self._block()
        if block is None:
            return None
        return _hex_bytes(block["signature"])

    def to_json(self) -> str:
        """JSON text of the held block, capella first.

        Raises EmptyPayloadError when no block is held.
        """
        block = self._block()
        if block is None:
            raise EmptyPayloadError()
        return _dump(block)


def _is_capella_submission(data: Mapping[str, Any]) -> bool:
    payload = data.get("execution_payload")
    return (
        isinstance(data.get("message"), Mapping)
        and isinstance(payload, Mapping)
        and "withdrawals" in payload
        and "signature" in data
    )


@dataclass
class BuilderSubmitBlockRequest:
    """A block submitted by a builder, bellatrix or capella."""

    bellatrix: dict[str, Any] | None = None
    capella: dict[str, Any] | None = None

    @classmethod
    def from_json(cls, data: str | bytes | Mapping[str, Any]) -> BuilderSubmitBlockRequest:
        """Parse a submission; a payload with withdrawals is taken as capella.

        Raises ValueError when the data is not a JSON object.
        """
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        if not isinstance(data, Mapping):
            raise ValueError("block submission must be a JSON object")
        if _is_capella_submission(data):
            return cls(capella=dict(data))
        return cls(bellatrix=dict(data))

    def _request(self) -> dict[str, Any] | None:
        return _pick(self.capella, self.bellatrix)

    def _payload(self) -> Mapping[str, Any]:
        return self._request()["execution_payload"]

    def _message(self) -> Mapping[str, Any]:
        return self._request()["message"]

    def to_json(self) -> str:
        """JSON text of the held submission, capella first.

        Raises EmptyPayloadError when no submission is held.
        """
        request = self._request()
        if request is None:
            raise EmptyPayloadError()
        return _dump(request)

    def has_execution_payload(self) -> bool:
        request = self._request()
        if request is None:
            return False
        return request.get("execution_payload") is not None

    def slot(self) -> int:
        if self._request() is None:
            return 0
        return _uint(self._message()["slot"])

    def block_hash(self) -> str:
        if self._request() is None:
            return ""
        return self._message()["block_hash"]

    def parent_hash(self) -> str:
        if self._request() is None:
            return ""
        return self._message()["parent_hash"]

    def value(self) -> int | None:
        if self._request() is None:
            return None
        return _uint(self._message()["value"])

    def num_tx(self) -> int:
        if self._request() is None:
            return 0
        return len(self._payload().get("transactions") or [])

    def block_number(self) -> int:
        if self._request() is None:
            return 0
        return _uint(self._payload()["block_number"])

    def gas_used(self) -> int:
        if self._request() is None:
            return 0
        return _uint(self._payload()["gas_used"])

    def gas_limit(self) -> int:
        if self._request() is None:
            return 0
        return _uint(self._payload()["gas_limit"])

    def timestamp(self) -> int:
        if self._request() is None:
            return 0
        return _uint(self._payload()["timestamp"])

    def withdrawals(self) -> list[dict[str, Any]] | None:
        if self.capella is None:
            return None
        return list(self.capella["execution_payload"]["withdrawals"] or [])