import json
import logging
from datetime import timedelta

import pytest

from boostrelay.common import (
    BuilderStatus,
    HTTPServerTimeouts,
    InvalidHashError,
    InvalidPubkeyError,
    InvalidSignatureError,
    InvalidSlotError,
    Profile,
    RelayError,
    ServerAlreadyRunningError,
    duration_per_epoch,
    duration_per_slot,
    log_setup,
    seconds_per_slot,
    slots_per_epoch,
)


def test_profile_str_joins_fields_in_order():
    assert str(Profile(1, 2, 3, 4, 5)) == "1,2,3,4,5"


def test_profile_defaults_to_zero():
    assert str(Profile()) == "0,0,0,0,0"


def test_default_slot_settings(monkeypatch):
    monkeypatch.delenv("SEC_PER_SLOT", raising=False)
    monkeypatch.delenv("SLOTS_PER_EPOCH", raising=False)
    assert seconds_per_slot() == 12
    assert slots_per_epoch() == 32
    assert duration_per_slot() == timedelta(seconds=12)
    assert duration_per_epoch() == duration_per_slot() * 32


def test_slot_settings_from_env(monkeypatch):
    monkeypatch.setenv("SEC_PER_SLOT", "4")
    monkeypatch.setenv("SLOTS_PER_EPOCH", "8")
    assert seconds_per_slot() == 4
    assert slots_per_epoch() == 8
    assert duration_per_slot() == timedelta(seconds=4)
    assert duration_per_epoch() == timedelta(seconds=4) * 8


def test_invalid_env_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("SEC_PER_SLOT", "abc")
    assert seconds_per_slot() == 12


@pytest.mark.parametrize(
    "cls, message",
    [
        (ServerAlreadyRunningError, "server already running"),
        (InvalidSlotError, "invalid slot"),
        (InvalidHashError, "invalid hash"),
        (InvalidPubkeyError, "invalid pubkey"),
        (InvalidSignatureError, "invalid signature"),
    ],
)
def test_error_messages(cls, message):
    error = cls()
    assert str(error) == message
    assert isinstance(error, RelayError)


def test_timeouts_and_builder_status_defaults():
    timeouts = HTTPServerTimeouts(read=timedelta(seconds=2))
    assert timeouts.read == timedelta(seconds=2)
    assert timeouts.idle == timedelta(0)
    status = BuilderStatus(is_high_prio=True)
    assert (status.is_high_prio, status.is_blacklisted, status.is_optimistic) == (
        True,
        False,
        False,
    )


def test_log_setup_level():
    assert log_setup(False, "debug").level == logging.DEBUG
    assert log_setup(False, "WARN").level == logging.WARNING
    assert log_setup(False, "").level == logging.INFO


def test_log_setup_invalid_level():
    with pytest.raises(ValueError, match="Invalid loglevel: nonsense"):
        log_setup(False, "nonsense")


def test_log_setup_json_output(capsys):
    logger = log_setup(True, "info")
    logger.info("hello", extra={"slot": 5})
    logger.debug("hidden")
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["msg"] == "hello"
    assert entry["level"] == "info"
    assert entry["slot"] == 5


def test_log_setup_text_output(capsys):
    logger = log_setup(False, "info")
    logger.warning("two words", extra={"uri": "localhost"})
    out = capsys.readouterr().out
    assert 'msg="two words"' in out
    assert "level=warning" in out
    assert "uri=localhost" in out