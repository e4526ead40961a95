"""Thin facade over the bus client used by the router, devices and scheduler."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from ebusbind.core.addressing import hex_dump, master_address_for, parse_address
from ebusbind.core.errors import EncodeError
from ebusbind.core.model import CommandCollection, DecodedFrame, Method, MethodVariant, TelegramType
from ebusbind.core.telegram import prepare_send_telegram
from ebusbind.transports.base import BusClient, ConnectionStatus

POLL_PRIORITY = 2
LOGGER = logging.getLogger(__name__)


class Bridge:
    def __init__(
        self,
        client: BusClient,
        catalog: Callable[[], Mapping[str, CommandCollection]],
    ) -> None:
        self._client = client
        self._catalog = catalog

    @property
    def client(self) -> BusClient:
        return self._client

    def connection_status(self) -> ConnectionStatus:
        return self._client.connection_status()

    def is_connected(self) -> bool:
        return self.connection_status() is ConnectionStatus.CONNECTED

    def decode(self, raw: bytes) -> DecodedFrame:
        return self._client.decode_frame(raw)

    def send(self, raw: bytes, priority: int | None = None) -> int:
        return self._client.send(raw, priority)

    def find_method(self, collection_id: str, command_id: str, method: Method) -> MethodVariant | None:
        collection = self._catalog().get(collection_id)
        if collection is None:
            return None
        command = collection.command(command_id)
        if command is None:
            return None
        return command.method(method)

    def build_poll_request(self, collection_id: str, command_id: str, slave_address: int | None) -> bytes | None:
        """Build the raw GET telegram used for polling, or None if polling is not possible.

        Raises ``EncodeError`` when the bus client cannot encode the request.
        """
        variant = self.find_method(collection_id, command_id, Method.GET)
        if variant is None:
            LOGGER.error("Unable to find command method %s %s %s !", Method.GET.value, command_id, collection_id)
            return None

        if variant.telegram_type is not TelegramType.MASTER_SLAVE:
            LOGGER.warning("Polling is only available for master-slave commands!")
            return None

        if slave_address is None:
            LOGGER.warning("Unable to poll, device has no slave address defined!")
            return None

        return self._client.build_request(collection_id, command_id, variant, slave_address)

    def build_setter_request(
        self,
        collection_id: str,
        command_id: str,
        slave_address: int,
        values: Mapping[str, Any],
    ) -> bytes | None:
        variant = self.find_method(collection_id, command_id, Method.SET)
        if variant is None:
            LOGGER.error("Unable to find setter command with id %s", command_id)
            return None

        target = slave_address
        # master-master telegrams go to the master address of the device
        if variant.telegram_type is TelegramType.MASTER_MASTER:
            master = master_address_for(slave_address)
            if master is not None:
                target = master

        return self._client.build_request(collection_id, command_id, variant, target, values)

    def send_raw_telegram(self, raw_hex: str) -> int | None:
        """Send a complete hex telegram from source address on; a missing CRC is added."""
        normalized = raw_hex.strip().replace(" ", "")
        if not normalized:
            return None
        try:
            data = prepare_send_telegram(bytes.fromhex(normalized))
        except ValueError as exc:
            raise EncodeError(f"Invalid raw telegram '{raw_hex}': {exc}") from exc
        LOGGER.debug("Send raw telegram %s", hex_dump(data))
        return self.send(data)

    def send_command(
        self,
        collection_id: str,
        command_id: str,
        destination: str,
        values: Mapping[str, Any] | None = None,
    ) -> int:
        variant = self.find_method(collection_id, command_id, Method.SET)
        if variant is None:
            # second try with a broadcast
            variant = self.find_method(collection_id, command_id, Method.BROADCAST)
        if variant is None:
            raise EncodeError(f"Unable to find a SET or BROADCAST command with id {collection_id}.{command_id}")

        try:
            target = parse_address(destination)
        except ValueError as exc:
            raise EncodeError(f"Invalid destination address '{destination}'") from exc
        if target is None:
            raise EncodeError("Parameter 'destination' is required!")

        telegram = self._client.build_request(collection_id, command_id, variant, target, values)
        return self.send(telegram)
