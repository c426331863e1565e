import json

import pytest
import requests
import responses

from boostrelay.beacon_fetch import (
    BeaconHTTPError,
    BeaconRequestError,
    fetch_beacon,
)
from boostrelay.blocks import SignedBeaconBlock

BASE = "http://localhost:3500"


def test_get_returns_decoded_body():
    url = BASE + "/eth/v1/node/syncing"
    body = {"data": {"head_slot": "251114", "is_syncing": False}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, json=body)
        result = fetch_beacon("GET", url)
        assert rsps.calls[0].request.headers["accept"] == "application/json"
        assert "Content-Type" not in rsps.calls[0].request.headers
    assert result.status_code == 200
    assert result.json() == body


def test_post_sends_json_payload():
    url = BASE + "/eth/v1/beacon/blocks"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, url, body="", status=200)
        result = fetch_beacon("POST", url, {"a": 1})
        request = rsps.calls[0].request
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.body) == {"a": 1}
    assert result.status_code == 200


def test_post_uses_to_json_of_payload():
    url = BASE + "/eth/v1/beacon/blocks"
    data = {"message": {"slot": "1", "body": {"execution_payload": {"block_hash": "0x00"}}}}
    block = SignedBeaconBlock(capella=data)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, url, status=202)
        result = fetch_beacon("POST", url, block)
        assert json.loads(rsps.calls[0].request.body) == data
    assert result.status_code == 202


def test_error_status_with_message():
    url = BASE + "/eth/v1/beacon/genesis"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, json={"code": 404, "message": "not found"}, status=404)
        with pytest.raises(BeaconHTTPError) as info:
            fetch_beacon("GET", url)
    assert info.value.status_code == 404
    assert info.value.message == "not found"
    assert str(info.value) == "got an HTTP error response: not found"


def test_error_status_with_unreadable_body():
    url = BASE + "/eth/v1/beacon/genesis"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, body="oops", status=500)
        with pytest.raises(BeaconRequestError) as info:
            fetch_beacon("GET", url)
    assert info.value.status_code == 500


def test_connection_failure():
    url = BASE + "/eth/v1/config/spec"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, body=requests.ConnectionError("refused"))
        with pytest.raises(BeaconRequestError) as info:
            fetch_beacon("GET", url)
    assert "client refused" in str(info.value)


def test_invalid_json_success_body():
    url = BASE + "/eth/v1/config/spec"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, body="not json", status=200)
        result = fetch_beacon("GET", url)
    with pytest.raises(BeaconRequestError):
        result.json()


def test_unencodable_payload():
    with pytest.raises(BeaconRequestError) as info:
        fetch_beacon("POST", BASE + "/x", {"a": object()})
    assert "could not marshal request" in str(info.value)