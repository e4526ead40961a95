"""Service layer used by the CLI and host integrations."""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ebusbind.core.addressing import hex_dump, parse_address
from ebusbind.core.bridge import Bridge
from ebusbind.core.catalog_loader import load_collections
from ebusbind.core.device import DeviceHandler, StateCallback
from ebusbind.core.errors import DecodeError, DeviceNotFoundError, EBusBindError, EncodeError, UnknownCommandError
from ebusbind.core.metrics import BridgeMetrics
from ebusbind.core.model import CommandCollection, DecodedFrame, DeviceTypeDescriptor
from ebusbind.core.projector import TypeProjector, TypeRegistry
from ebusbind.core.router import Dispatcher
from ebusbind.core.timer import RepeatingTimer, Timer
from ebusbind.transports.base import BusClient, ConnectionStatus
from ebusbind.transports.emulator import EmulatorBusClient

LOGGER = logging.getLogger(__name__)


class EBusService:
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
        self.projector = TypeProjector()
        self.metrics = BridgeMetrics()
        self.load_warnings: tuple[str, ...] = ()
        self._extra_paths = tuple(extra_paths)
        self._on_state = on_state
        self._rng = rng
        self._owns_timer = timer is None
        self.timer: Timer = timer or RepeatingTimer()
        self.client = client or EmulatorBusClient(self._collections)
        self.bridge = Bridge(self.client, self._collections)
        self.dispatcher = Dispatcher()
        self._devices: dict[str, DeviceHandler] = {}
        self._lock = threading.RLock()
        self.reload(collections)

    @property
    def registry(self) -> TypeRegistry:
        return self.projector.registry

    def _collections(self) -> Mapping[str, CommandCollection]:
        return self.projector.registry.collections

    def reload(self, collections: Iterable[CommandCollection] | None = None) -> TypeRegistry:
        """Rebuild the type registry and re-initialize devices whose collection changed.

        Without ``collections`` the packaged, user and extra catalog sources
        are loaded. A ``ProjectionError`` leaves the previous registry active.
        """
        if collections is None:
            loaded = load_collections(self._extra_paths)
            collections = loaded.collections.values()
            self.load_warnings = loaded.warnings

        registry = self.projector.reload(collections)
        for device in self.devices():
            device.refresh_type(registry)
        return registry

    def list_collections(self) -> list[CommandCollection]:
        return sorted(self.registry.collections.values(), key=lambda c: c.id)

    def list_device_types(self) -> list[DeviceTypeDescriptor]:
        return sorted(self.registry.device_types.values(), key=lambda d: d.id)

    def devices(self) -> list[DeviceHandler]:
        with self._lock:
            return list(self._devices.values())

    def device(self, device_id: str) -> DeviceHandler:
        with self._lock:
            handler = self._devices.get(device_id)
        if handler is None:
            raise DeviceNotFoundError(f"Unknown device '{device_id}'")
        return handler

    def add_device(
        self,
        device_id: str,
        collection_id: str,
        config: Mapping[str, Any] | None = None,
    ) -> DeviceHandler:
        with self._lock:
            if device_id in self._devices:
                raise EBusBindError(f"Device '{device_id}' already exists")
            handler = DeviceHandler(
                device_id,
                collection_id,
                self.bridge,
                self.timer,
                config=config,
                on_state=self._on_state,
                rng=self._rng,
            )
            self._devices[device_id] = handler
            handler.initialize(self.registry)
            self.dispatcher.register(handler)
        return handler

    def remove_device(self, device_id: str) -> None:
        with self._lock:
            handler = self._devices.pop(device_id, None)
            if handler is None:
                raise DeviceNotFoundError(f"Unknown device '{device_id}'")
            self.dispatcher.unregister(device_id)
        handler.dispose()

    def update_device_config(self, device_id: str, config: Mapping[str, Any]) -> DeviceHandler:
        handler = self.device(device_id)
        handler.update_config(config, self.registry)
        return handler

    def link_capability(self, device_id: str, capability_id: str) -> None:
        self.device(device_id).link_capability(capability_id)

    def unlink_capability(self, device_id: str, capability_id: str) -> None:
        self.device(device_id).unlink_capability(capability_id)

    def relink_all(self, device_id: str) -> None:
        self.device(device_id).relink_all()

    def connection_status_changed(self, status: ConnectionStatus) -> None:
        LOGGER.info("eBUS connection status changed to %s", status.value)
        for device in self.devices():
            device.bridge_status_changed(status)

    def route(self, frame: DecodedFrame) -> str | None:
        return self.dispatcher.route(frame)

    def dispatch_telegram(self, raw: bytes) -> tuple[str, ...]:
        """Decode a received telegram and hand it to every accepting device."""
        try:
            frame = self.bridge.decode(raw)
        except UnknownCommandError as exc:
            self.metrics.record_unresolved()
            LOGGER.debug("Unresolved telegram: %s", exc)
            return ()
        except DecodeError as exc:
            self.metrics.record_failed()
            LOGGER.error("Unable to decode telegram %s: %s", hex_dump(raw), exc)
            return ()

        self.metrics.record_resolved()
        return self.dispatcher.dispatch(frame)

    def handle_command(self, device_id: str, capability_id: str, value: Any) -> int | None:
        return self.device(device_id).handle_command(capability_id, value)

    def poll_telegram(self, collection_id: str, command_id: str, slave_address: str) -> bytes | None:
        try:
            address = parse_address(slave_address)
        except ValueError as exc:
            raise EncodeError(f"Invalid slave address '{slave_address}'") from exc
        return self.bridge.build_poll_request(collection_id, command_id, address)

    def send_command(
        self,
        collection_id: str,
        command_id: str,
        destination: str,
        values: Mapping[str, Any] | None = None,
    ) -> int:
        return self.bridge.send_command(collection_id, command_id, destination, values)

    def send_raw_telegram(self, raw_hex: str) -> int | None:
        return self.bridge.send_raw_telegram(raw_hex)

    def close(self) -> None:
        for device in self.devices():
            device.dispose()
        if self._owns_timer and isinstance(self.timer, RepeatingTimer):
            self.timer.shutdown()
