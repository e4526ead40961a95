"""In-memory emulated bus client.

Builds and records telegrams without touching a serial port or network
socket. Request building covers commands whose master data is constant
(polling requests); decoding resolves the command from the catalog but leaves
payload values to a real codec.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from ebusbind.core.addressing import hex_dump
from ebusbind.core.errors import DecodeError, EncodeError, TransportSendError, UnknownCommandError
from ebusbind.core.model import CommandCollection, DecodedFrame, MethodVariant
from ebusbind.core.telegram import HEADER_LENGTH, crc8
from ebusbind.transports.base import ConnectionStatus

LOGGER = logging.getLogger(__name__)


class EmulatorBusClient:
    def __init__(
        self,
        catalog: Callable[[], Mapping[str, CommandCollection]],
        *,
        master_address: int = 0xFF,
        status: ConnectionStatus = ConnectionStatus.CONNECTED,
    ) -> None:
        self._catalog = catalog
        self.master_address = master_address
        self.status = status
        self.sent: list[tuple[bytes, int | None]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def connection_status(self) -> ConnectionStatus:
        return self.status

    def build_request(
        self,
        collection_id: str,
        command_id: str,
        method: MethodVariant,
        target: int,
        values: Mapping[str, Any] | None = None,
    ) -> bytes:
        if method.master and values:
            raise EncodeError(
                f"Emulator cannot encode values for {collection_id}.{command_id} ({method.method.value})"
            )
        data = method.data
        if len(data) > 16:
            raise EncodeError(f"Master data of {collection_id}.{command_id} exceeds 16 bytes")

        telegram = bytes([self.master_address, target]) + method.command + bytes([len(data)]) + data
        return telegram + bytes([crc8(telegram)])

    def send(self, raw: bytes, priority: int | None = None) -> int:
        if self.status is not ConnectionStatus.CONNECTED:
            raise TransportSendError(f"Bus is {self.status.value}, unable to send {hex_dump(raw)}")
        LOGGER.debug("Emulated send %s (priority %s)", hex_dump(raw), priority)
        with self._lock:
            self.sent.append((bytes(raw), priority))
            return next(self._ids)

    def decode_frame(self, raw: bytes) -> DecodedFrame:
        if len(raw) < HEADER_LENGTH:
            raise DecodeError(f"Telegram too short: {hex_dump(raw)}")

        source, destination = raw[0], raw[1]
        command = raw[2:4]
        length = raw[4]
        data = raw[HEADER_LENGTH:HEADER_LENGTH + length]
        if len(data) != length:
            raise DecodeError(f"Telegram length byte {length} does not match data: {hex_dump(raw)}")
        end = HEADER_LENGTH + length
        if len(raw) > end and crc8(raw[:end]) != raw[end]:
            raise DecodeError(f"CRC mismatch in telegram {hex_dump(raw)}")

        for collection in self._catalog().values():
            for definition in collection.commands:
                for variant in definition.methods.values():
                    if variant.command != command or not data.startswith(variant.data):
                        continue
                    return DecodedFrame(
                        collection_id=collection.id,
                        command_id=definition.id,
                        method=variant.method,
                        source=source,
                        destination=destination,
                        raw=bytes(raw),
                    )

        raise UnknownCommandError(f"No command found for telegram {hex_dump(raw)}")
