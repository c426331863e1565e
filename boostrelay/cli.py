"""Command line entry point of the relay."""

from __future__ import annotations

import argparse
import os

from .utils import get_env, get_slice_env

VERSION = "dev"


def build_parser() -> argparse.ArgumentParser:
    """Parser with the relay's subcommands; defaults come from the environment."""
    parser = argparse.ArgumentParser(
        prog="mev-boost-relay", description=f"mev-boost-relay {VERSION}"
    )
    subcommands = parser.add_subparsers(dest="command")
    subcommands.add_parser(
        "version",
        help="Print the version number the relay application",
        description="All software has versions. This is the boost relay's",
    )
    parser.set_defaults(
        network=get_env("NETWORK", ""),
        beacon_uris=get_slice_env("BEACON_URIS", ["http://localhost:3500"]),
        redis_uri=get_env("REDIS_URI", "localhost:6379"),
        redis_readonly_uri=get_env("REDIS_READONLY_URI", ""),
        postgres_dsn=get_env("POSTGRES_DSN", ""),
        memcached_uris=get_slice_env("MEMCACHED_URIS", None),
        log_json=os.environ.get("LOG_JSON", "") != "",
        log_level=get_env("LOG_LEVEL", "info"),
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line; returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "version":
        print(f"boost-relay {VERSION}")
        return 0
    print(f"mev-boost-relay {VERSION}")
    parser.print_help()
    return 0