"""Beacon-node clients, bid trace and block types, and helpers for a block-builder relay."""

__version__ = "0.1.0"

__all__ = [
    "beacon_fetch",
    "beacon_instance",
    "blocks",
    "cli",
    "common",
    "multi_beacon_client",
    "types",
    "utils",
]