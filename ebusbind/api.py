"""Stable public API for building integrations on top of ebusbind.

This module is the supported integration surface for host runtimes and
scripts. Avoid importing from private/internal modules unless intentionally
depending on non-stable internals.
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ebusbind.core.device import DeviceHandler, DeviceStatus, StateCallback, StatusDetail
from ebusbind.core.errors import (
    CatalogLoadError,
    CatalogValidationError,
    ControllerError,
    DecodeError,
    DeviceNotFoundError,
    EBusBindError,
    EncodeError,
    ProjectionError,
    TransportError,
    TransportSendError,
    UnknownCommandError,
)
from ebusbind.core.metrics import MetricsSnapshot
from ebusbind.core.model import (
    AddressFilter,
    CapabilityGroup,
    CapabilityNode,
    Category,
    CommandCollection,
    DecodedFrame,
    DeviceTypeDescriptor,
)
from ebusbind.core.projector import TypeRegistry
from ebusbind.core.service import EBusService
from ebusbind.core.state import OnOff, Quantity, UnDef
from ebusbind.core.timer import Timer
from ebusbind.transports.base import BusClient, ConnectionStatus
from ebusbind.transports.emulator import EmulatorBusClient

__all__ = [
    "EBusBindError",
    "CatalogLoadError",
    "CatalogValidationError",
    "ProjectionError",
    "DeviceNotFoundError",
    "EncodeError",
    "DecodeError",
    "UnknownCommandError",
    "TransportError",
    "TransportSendError",
    "ControllerError",
    "AddressFilter",
    "CapabilityGroup",
    "CapabilityNode",
    "Category",
    "CommandCollection",
    "DecodedFrame",
    "DeviceTypeDescriptor",
    "TypeRegistry",
    "DeviceStatus",
    "StatusDetail",
    "OnOff",
    "Quantity",
    "UnDef",
    "MetricsSnapshot",
    "BusClient",
    "ConnectionStatus",
    "EmulatorBusClient",
    "Client",
]


class Client:
    """Public client for interacting with ebusbind core capabilities.

    A `Client` instance wraps catalog loading, capability projection, device
    routing and polling behind a stable API intended for host runtimes.
    Without an explicit bus client the in-memory emulator is used.
    """

    def __init__(
        self,
        *,
        client: BusClient | None = None,
        timer: Timer | None = None,
        extra_paths: Iterable[Path] = (),
        collections: Iterable[CommandCollection] | None = None,
        on_state: StateCallback | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._service = EBusService(
            client=client,
            timer=timer,
            extra_paths=extra_paths,
            collections=collections,
            on_state=on_state,
            rng=rng,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def registry(self) -> TypeRegistry:
        return self._service.registry

    @property
    def metrics(self) -> MetricsSnapshot:
        return self._service.metrics.snapshot()

    def reload(self, collections: Iterable[CommandCollection] | None = None) -> TypeRegistry:
        return self._service.reload(collections)

    def list_collections(self) -> list[CommandCollection]:
        return self._service.list_collections()

    def list_device_types(self) -> list[DeviceTypeDescriptor]:
        return self._service.list_device_types()

    def add_device(
        self,
        device_id: str,
        collection_id: str,
        config: Mapping[str, Any] | None = None,
    ) -> DeviceHandler:
        return self._service.add_device(device_id, collection_id, config)

    def remove_device(self, device_id: str) -> None:
        self._service.remove_device(device_id)

    def get_device(self, device_id: str) -> DeviceHandler:
        return self._service.device(device_id)

    def update_device_config(self, device_id: str, config: Mapping[str, Any]) -> DeviceHandler:
        return self._service.update_device_config(device_id, config)

    def link_capability(self, device_id: str, capability_id: str) -> None:
        self._service.link_capability(device_id, capability_id)

    def unlink_capability(self, device_id: str, capability_id: str) -> None:
        self._service.unlink_capability(device_id, capability_id)

    def relink_all(self, device_id: str) -> None:
        self._service.relink_all(device_id)

    def connection_status_changed(self, status: ConnectionStatus) -> None:
        self._service.connection_status_changed(status)

    def route(self, frame: DecodedFrame) -> str | None:
        return self._service.route(frame)

    def dispatch_telegram(self, raw: bytes) -> tuple[str, ...]:
        return self._service.dispatch_telegram(raw)

    def handle_command(self, device_id: str, capability_id: str, value: Any) -> int | None:
        return self._service.handle_command(device_id, capability_id, value)

    def send_command(
        self,
        collection_id: str,
        command_id: str,
        destination: str,
        values: Mapping[str, Any] | None = None,
    ) -> int:
        return self._service.send_command(collection_id, command_id, destination, values)

    def send_raw_telegram(self, raw_hex: str) -> int | None:
        return self._service.send_raw_telegram(raw_hex)

    def close(self) -> None:
        self._service.close()
