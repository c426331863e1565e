"""Helpers for environment settings, HTTP requests, signing domains and hex values."""

from __future__ import annotations

import binascii
import hashlib
import json
import os
import re
from collections.abc import Mapping
from typing import Any

import requests

from .common import RelayError, slots_per_epoch

DOMAIN_TYPE_BEACON_PROPOSER = bytes.fromhex("00000000")
DOMAIN_TYPE_APP_BUILDER = bytes.fromhex("00000001")

PUBLIC_KEY_LENGTH = 48
HASH32_LENGTH = 32

_HEX_PREFIX = re.compile(r"[0-9a-fA-F]*")


class InvalidForkVersionError(RelayError, ValueError):
    """A fork version is not a 0x-prefixed 4-byte hex string."""

    def __init__(self, message: str = "invalid fork version") -> None:
        super().__init__(message)


class HTTPErrorResponseError(RelayError):
    """The server answered with an HTTP error status."""

    def __init__(self, status_code: int, body: str, response: Any = None) -> None:
        super().__init__(f"got an HTTP error response: {status_code} / {body}")
        self.status_code = status_code
        self.body = body
        self.response = response


class IncorrectLengthError(RelayError, ValueError):
    """A decoded value has the wrong number of bytes."""

    def __init__(self, message: str = "incorrect length") -> None:
        super().__init__(message)


def slot_pos(slot: int) -> int:
    """Position of the slot in its epoch, 1-based."""
    return slot % slots_per_epoch() + 1


def make_request(
    method: str,
    url: str,
    payload: Any = None,
    session: requests.Session | None = None,
) -> requests.Response:
    """Send a JSON request and return the response.

    Raises HTTPErrorResponseError for status codes above 299, and TypeError
    when the payload cannot be encoded as JSON.
    """
    body = None if payload is None else json.dumps(payload).encode()
    sender = session if session is not None else requests
    response = sender.request(
        method, url, data=body, headers={"Content-Type": "application/json"}
    )
    if response.status_code > 299:
        text = response.text
        response.close()
        raise HTTPErrorResponseError(response.status_code, text, response)
    return response


def _hex_to_hash(value: str) -> bytes:
    """Lenient hex to 32 bytes: invalid tails are dropped, left-padded, cropped from the left."""
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    if len(value) % 2:
        value = "0" + value
    digits = _HEX_PREFIX.match(value).group(0)
    digits = digits[: len(digits) - len(digits) % 2]
    raw = bytes.fromhex(digits)[-HASH32_LENGTH:]
    return raw.rjust(HASH32_LENGTH, b"\x00")


def _decode_prefixed_hex(value: str) -> bytes:
    if not value or value[:2] not in ("0x", "0X"):
        raise ValueError("hex string without 0x prefix")
    try:
        return binascii.unhexlify(value[2:])
    except binascii.Error as exc:
        raise ValueError(str(exc)) from exc


def compute_domain(
    domain_type: bytes, fork_version_hex: str, genesis_validators_root_hex: str
) -> bytes:
    """Compute the 32-byte signing domain for a fork version and genesis root."""
    domain_type = bytes(domain_type)
    if len(domain_type) != 4:
        raise ValueError("domain type must be 4 bytes")
    genesis_validators_root = _hex_to_hash(genesis_validators_root_hex)
    try:
        fork_version = _decode_prefixed_hex(fork_version_hex)
    except ValueError as exc:
        raise InvalidForkVersionError() from exc
    if len(fork_version) != 4:
        raise InvalidForkVersionError()
    fork_data_root = hashlib.sha256(
        fork_version.ljust(32, b"\x00") + genesis_validators_root
    ).digest()
    return domain_type + fork_data_root[:28]


def get_env(key: str, default_value: str) -> str:
    """Value of an environment variable, or the default when unset."""
    return os.environ.get(key, default_value)


def get_slice_env(key: str, default_value: list[str] | None) -> list[str] | None:
    """Comma-separated environment variable as a list, or the default when unset."""
    value = os.environ.get(key)
    if value is None:
        return default_value
    return value.split(",")


def get_env_str_slice(key: str, default_value: list[str] | None) -> list[str] | None:
    """Comma-separated environment variable as a list, or the default when unset."""
    return get_slice_env(key, default_value)


def _header(headers: Mapping[str, str], name: str) -> str:
    wanted = name.lower()
    return next(
        (value for key, value in headers.items() if key.lower() == wanted), ""
    )


def get_ip_x_forwarded_for(headers: Mapping[str, str], remote_addr: str) -> str:
    """Client address: first X-Forwarded-For entry, else the remote address."""
    forwarded = _header(headers, "X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0]
    return remote_addr


def get_mev_boost_version_from_user_agent(ua: str) -> str:
    """Version from a user agent such as 'mev-boost/1.0.1 go-http-client', or '-'."""
    first = ua.split(" ")[0]
    if first.startswith("mev-boost"):
        parts = first.split("/")
        if len(parts) == 2:
            return parts[1]
    return "-"


def u256_str_to_uint256(value: bytes) -> int:
    """Integer from a 32-byte little-endian value."""
    return int.from_bytes(bytes(value), "little")


def _decode_fixed(s: str, length: int) -> bytes:
    if s.startswith("0x"):
        s = s[2:]
    try:
        raw = binascii.unhexlify(s)
    except binascii.Error as exc:
        raise ValueError(str(exc)) from exc
    if len(raw) != length:
        raise IncorrectLengthError()
    return raw


def str_to_phase0_pubkey(s: str) -> bytes:
    """Decode a hex BLS public key of 48 bytes."""
    return _decode_fixed(s, PUBLIC_KEY_LENGTH)


def str_to_phase0_hash(s: str) -> bytes:
    """Decode a hex 32-byte hash."""
    return _decode_fixed(s, HASH32_LENGTH)