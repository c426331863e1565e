import pytest

from boostrelay.cli import VERSION, build_parser, main

ENV_KEYS = [
    "NETWORK",
    "BEACON_URIS",
    "REDIS_URI",
    "REDIS_READONLY_URI",
    "POSTGRES_DSN",
    "MEMCACHED_URIS",
    "LOG_JSON",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_version_command(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out == f"boost-relay {VERSION}\n"


def test_root_prints_name_and_help(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert out.startswith(f"mev-boost-relay {VERSION}\n")
    assert "version" in out


def test_unknown_command_exits():
    with pytest.raises(SystemExit) as excinfo:
        main(["nonsense"])
    assert excinfo.value.code == 2


def test_defaults_without_environment(clean_env):
    args = build_parser().parse_args([])
    assert args.beacon_uris == ["http://localhost:3500"]
    assert args.redis_uri == "localhost:6379"
    assert args.log_level == "info"
    assert args.memcached_uris is None
    assert args.log_json is False
    assert args.network == ""


def test_defaults_from_environment(clean_env):
    clean_env.setenv("BEACON_URIS", "http://a,http://b")
    clean_env.setenv("NETWORK", "goerli")
    clean_env.setenv("LOG_JSON", "1")
    clean_env.setenv("MEMCACHED_URIS", "m1")
    args = build_parser().parse_args(["version"])
    assert args.command == "version"
    assert args.beacon_uris == ["http://a", "http://b"]
    assert args.network == "goerli"
    assert args.log_json is True
    assert args.memcached_uris == ["m1"]