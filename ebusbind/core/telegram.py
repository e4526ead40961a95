"""Telegram helpers shared by the bridge and bus clients."""

from __future__ import annotations

from ebusbind.core.addressing import SYN

_CRC_POLYNOMIAL = 0x9B
_ESCAPE = 0xA9
HEADER_LENGTH = 5


def _crc_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = ((crc << 1) ^ _CRC_POLYNOMIAL) & 0xFF if crc & 0x80 else (crc << 1) & 0xFF
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _crc_table()


def crc8(data: bytes, crc: int = 0) -> int:
    """eBUS CRC-8 (polynomial 0x9B) over the escaped byte stream."""
    for byte in data:
        if byte == SYN:
            expanded: tuple[int, ...] = (_ESCAPE, 0x01)
        elif byte == _ESCAPE:
            expanded = (_ESCAPE, 0x00)
        else:
            expanded = (byte,)
        for value in expanded:
            crc = _CRC_TABLE[crc] ^ value
    return crc


def prepare_send_telegram(data: bytes) -> bytes:
    """Append the CRC to a master telegram ``QQ ZZ PB SB NN DATA`` if it is missing.

    Raises ``ValueError`` when the length byte does not fit the data.
    """
    if len(data) < HEADER_LENGTH:
        raise ValueError("telegram must contain at least source, target, command and length")
    expected = HEADER_LENGTH + data[4]
    if len(data) == expected:
        return data + bytes([crc8(data)])
    if len(data) == expected + 1:
        if crc8(data[:-1]) != data[-1]:
            raise ValueError(f"CRC {data[-1]:02X} does not match telegram")
        return data
    raise ValueError(f"length byte {data[4]} does not match {len(data) - HEADER_LENGTH} data bytes")
