from __future__ import annotations

import pytest

from ebusbind.core.addressing import (
    BROADCAST_ADDRESS,
    format_address,
    hex_dump,
    is_master_address,
    master_address_for,
    parse_address,
)
from ebusbind.core.telegram import crc8, prepare_send_telegram


def test_crc8_known_values() -> None:
    assert crc8(b"\x01") == 0x01
    assert crc8(b"\x01\x00") == 0x9B
    assert crc8(b"") == 0x00


def test_crc8_escapes_sync_and_escape_bytes() -> None:
    assert crc8(b"\xaa") == crc8(b"\xa9\x01")
    assert crc8(b"\xa9") == crc8(b"\xa9\x00")


def test_prepare_send_telegram_appends_crc() -> None:
    data = bytes.fromhex("ff15070400")
    prepared = prepare_send_telegram(data)
    assert prepared[:-1] == data
    assert prepared[-1] == crc8(data)


def test_prepare_send_telegram_keeps_valid_crc() -> None:
    data = bytes.fromhex("ff15070400")
    complete = data + bytes([crc8(data)])
    assert prepare_send_telegram(complete) == complete


def test_prepare_send_telegram_rejects_bad_crc_and_length() -> None:
    data = bytes.fromhex("ff15070400")
    with pytest.raises(ValueError):
        prepare_send_telegram(data + bytes([(crc8(data) + 1) & 0xFF]))
    with pytest.raises(ValueError):
        prepare_send_telegram(bytes.fromhex("ff150704020102030405"))
    with pytest.raises(ValueError):
        prepare_send_telegram(bytes.fromhex("ff15"))


def test_master_addresses() -> None:
    assert is_master_address(0x10)
    assert is_master_address(0xFF)
    assert is_master_address(0x37)
    assert not is_master_address(0x15)
    assert not is_master_address(BROADCAST_ADDRESS)


def test_master_address_for_slave() -> None:
    assert master_address_for(0x15) == 0x10
    assert master_address_for(0x08) == 0x03
    assert master_address_for(0x10) == 0x10
    assert master_address_for(0x52) is None


def test_parse_and_format_address() -> None:
    assert parse_address("15") == 0x15
    assert parse_address("0x15") == 0x15
    assert parse_address("  ") is None
    assert parse_address(None) is None
    with pytest.raises(ValueError):
        parse_address("zz")
    with pytest.raises(ValueError):
        parse_address("123")
    assert format_address(0x0A) == "0A"
    assert format_address(None) == "--"
    assert hex_dump(b"\x10\xfe\x07") == "10 FE 07"
