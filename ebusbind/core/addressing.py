"""eBUS address constants and helpers."""

from __future__ import annotations

import re

BROADCAST_ADDRESS = 0xFE
SYN = 0xAA

# both nibbles of a master address come from this set, giving 25 masters
_MASTER_NIBBLES = frozenset({0x0, 0x1, 0x3, 0x7, 0xF})
_HEX_BYTE_RE = re.compile(r"^(0x)?[0-9a-f]{1,2}$", re.IGNORECASE)


def is_master_address(address: int) -> bool:
    return (address >> 4) & 0x0F in _MASTER_NIBBLES and address & 0x0F in _MASTER_NIBBLES


def master_address_for(address: int) -> int | None:
    """Return the master address paired with a slave address.

    Every master ``M`` owns the slave address ``M + 5``. Master addresses map
    to themselves; addresses without a paired master return ``None``.
    """
    if is_master_address(address):
        return address
    candidate = (address - 5) & 0xFF
    if is_master_address(candidate):
        return candidate
    return None


def parse_address(value: str | int | None) -> int | None:
    """Parse a hex address string such as ``"15"`` or ``"0x15"``.

    Empty values return ``None``; malformed values raise ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, int):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"address {value} is out of byte range")
        return value
    normalized = value.strip()
    if not normalized:
        return None
    if not _HEX_BYTE_RE.match(normalized):
        raise ValueError(f"'{value}' is not a hex byte address")
    return int(normalized, 16)


def format_address(address: int | None) -> str:
    if address is None:
        return "--"
    return f"{address:02X}"


def hex_dump(data: bytes) -> str:
    return " ".join(f"{b:02X}" for b in data)
