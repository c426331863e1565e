"""JSON requests to a beacon node's HTTP API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import requests

from .common import RelayError


class BeaconHTTPError(RelayError):
    """The beacon node answered with an HTTP error status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"got an HTTP error response: {message}")
        self.status_code = status_code
        self.message = message


class BeaconRequestError(RelayError):
    """A beacon request could not be sent, or its answer could not be read."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class BeaconResponse:
    """Status and body of a successful beacon node response."""

    url: str
    status_code: int
    body: bytes

    def json(self) -> Any:
        """Decoded JSON body; raises BeaconRequestError when it is not JSON."""
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise BeaconRequestError(
                f"could not unmarshal response for {self.url} from "
                f"{self.body.decode(errors='replace')}: {exc}",
                self.status_code,
            ) from exc


def _encode(payload: Any) -> bytes:
    to_json = getattr(payload, "to_json", None)
    if callable(to_json):
        text = to_json()
        return text.encode() if isinstance(text, str) else bytes(text)
    return json.dumps(payload).encode()


def fetch_beacon(method: str, url: str, payload: Any = None) -> BeaconResponse:
    """Send a request to a beacon node and return its response.

    Raises BeaconHTTPError for status codes of 300 and above, and
    BeaconRequestError when the request fails or an error body is unreadable.
    """
    headers = {"accept": "application/json"}
    body = None
    if payload is not None:
        try:
            body = _encode(payload)
        except (TypeError, ValueError) as exc:
            raise BeaconRequestError(f"could not marshal request: {exc}") from exc
        headers["Content-Type"] = "application/json"

    try:
        response = requests.request(method, url, data=body, headers=headers)
    except requests.RequestException as exc:
        raise BeaconRequestError(f"client refused for {url}: {exc}") from exc

    with response:
        content = response.content
        status = response.status_code

    if status >= 300:
        try:
            error = json.loads(content)
            message = error.get("message", "") if isinstance(error, dict) else None
        except ValueError as exc:
            raise BeaconRequestError(
                f"could not unmarshal error response from beacon node for {url} "
                f"from {content.decode(errors='replace')}: {exc}",
                status,
            ) from exc
        if message is None:
            raise BeaconRequestError(
                f"could not unmarshal error response from beacon node for {url} "
                f"from {content.decode(errors='replace')}",
                status,
            )
        raise BeaconHTTPError(status, str(message))

    return BeaconResponse(url=url, status_code=status, body=content)