"""Address-based routing of decoded telegrams to device instances."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from ebusbind.core.addressing import (
    BROADCAST_ADDRESS,
    format_address,
    is_master_address,
    master_address_for,
)
from ebusbind.core.model import AddressFilter, DecodedFrame

LOGGER = logging.getLogger(__name__)


def comparison_master(address_filter: AddressFilter) -> int | None:
    if address_filter.master_address is not None:
        return address_filter.master_address
    if address_filter.slave_address is not None:
        return master_address_for(address_filter.slave_address)
    return None


def accepts(frame: DecodedFrame, collection_id: str, address_filter: AddressFilter) -> bool:
    """Return True if a device of ``collection_id`` with ``address_filter`` owns ``frame``.

    The three rules (broadcast, source master, destination) are independent
    and OR-ed; the first one that matches wins.
    """
    if frame.collection_id != collection_id:
        return False

    source = frame.source
    destination = frame.destination
    master = comparison_master(address_filter)

    if address_filter.accept_broadcasts and destination == BROADCAST_ADDRESS:
        if master is not None and source == master:
            return True

    if address_filter.accept_master and address_filter.master_address is not None:
        if source == address_filter.master_address:
            return True

    if address_filter.accept_slave:
        if is_master_address(destination) and master is not None and destination == master:
            # master-master telegram
            return True
        if address_filter.slave_address is not None and destination == address_filter.slave_address:
            # master-slave telegram
            return True

    return False


class FrameConsumer(Protocol):
    device_id: str
    collection_id: str

    @property
    def address_filter(self) -> AddressFilter | None:
        """Current filter, or None while the device is not configured."""

    def handle_frame(self, frame: DecodedFrame) -> None:
        """Process a frame this consumer accepted."""


class Dispatcher:
    """Hands decoded frames to every device instance that accepts them."""

    def __init__(self, consumers: Iterable[FrameConsumer] = ()) -> None:
        self._consumers: dict[str, FrameConsumer] = {c.device_id: c for c in consumers}

    def register(self, consumer: FrameConsumer) -> None:
        self._consumers[consumer.device_id] = consumer

    def unregister(self, device_id: str) -> FrameConsumer | None:
        return self._consumers.pop(device_id, None)

    def consumers(self) -> list[FrameConsumer]:
        return list(self._consumers.values())

    def _matching(self, frame: DecodedFrame) -> list[FrameConsumer]:
        matched: list[FrameConsumer] = []
        for consumer in list(self._consumers.values()):
            address_filter = consumer.address_filter
            if address_filter is None:
                continue
            if accepts(frame, consumer.collection_id, address_filter):
                matched.append(consumer)
        return matched

    def route(self, frame: DecodedFrame) -> str | None:
        matched = self._matching(frame)
        return matched[0].device_id if matched else None

    def dispatch(self, frame: DecodedFrame) -> tuple[str, ...]:
        LOGGER.debug(
            "Received telegram from address %s to %s with command %s",
            format_address(frame.source),
            format_address(frame.destination),
            frame.command_id,
        )
        matched = self._matching(frame)
        for consumer in matched:
            consumer.handle_frame(frame)

        if not matched:
            LOGGER.debug(
                "No device has accepted the command %s from %s to %s ...",
                frame.command_id,
                format_address(frame.source),
                format_address(frame.destination),
            )
        return tuple(c.device_id for c in matched)
