"""Device instance: configuration, status, routing filter and polling owner."""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from ebusbind.core.bridge import Bridge
from ebusbind.core.config import DeviceConfig, parse_device_config
from ebusbind.core.errors import DeviceNotFoundError
from ebusbind.core.model import AddressFilter, CapabilityNode, DecodedFrame, DeviceTypeDescriptor
from ebusbind.core.polling import PollingScheduler
from ebusbind.core.projector import TypeRegistry
from ebusbind.core.state import State, command_value, to_state
from ebusbind.core.timer import Timer
from ebusbind.transports.base import ConnectionStatus

StateCallback = Callable[[str, str, State], None]
LOGGER = logging.getLogger(__name__)


class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class StatusDetail(str, Enum):
    NONE = "none"
    CONFIGURATION_ERROR = "configuration-error"
    BRIDGE_OFFLINE = "bridge-offline"


class DeviceHandler:
    """One configured device on the bus, bound to a single command collection.

    The handler is the frame consumer seen by the dispatcher and the owner
    seen by its polling scheduler. ``on_state`` receives
    ``(device_id, capability_id, state)`` for every value of an accepted frame.
    """

    def __init__(
        self,
        device_id: str,
        collection_id: str,
        bridge: Bridge,
        timer: Timer,
        *,
        config: Mapping[str, Any] | None = None,
        on_state: StateCallback | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.device_id = device_id
        self.collection_id = collection_id
        self._bridge = bridge
        self._on_state = on_state
        self._raw_config: dict[str, Any] = dict(config or {})
        self._config: DeviceConfig | None = None
        self._device_type: DeviceTypeDescriptor | None = None
        self._nodes: dict[str, CapabilityNode] = {}
        self._linked: set[str] = set()
        self._lock = threading.RLock()
        self.status = DeviceStatus.UNKNOWN
        self.status_detail = StatusDetail.NONE
        self.status_message: str | None = None
        self.states: dict[str, State] = {}
        self._scheduler = PollingScheduler(self, bridge, timer, rng=rng)

    @property
    def config(self) -> DeviceConfig | None:
        return self._config

    @property
    def raw_config(self) -> dict[str, Any]:
        return dict(self._raw_config)

    @property
    def address_filter(self) -> AddressFilter | None:
        config = self._config
        return config.address_filter if config is not None else None

    @property
    def device_type(self) -> DeviceTypeDescriptor | None:
        return self._device_type

    @property
    def scheduler(self) -> PollingScheduler:
        return self._scheduler

    def capability(self, capability_id: str) -> CapabilityNode | None:
        return self._nodes.get(capability_id)

    def capability_ids(self) -> list[str]:
        return list(self._nodes)

    def is_linked(self, capability_id: str) -> bool:
        with self._lock:
            return capability_id in self._linked

    def linked_capabilities(self) -> list[str]:
        with self._lock:
            return sorted(self._linked)

    def initialize(self, registry: TypeRegistry) -> None:
        with self._lock:
            self._scheduler.dispose()
            self._apply_type(registry.device_type_for(self.collection_id))

            result = parse_device_config(self._raw_config)
            if not result.ok:
                self._config = None
                self._set_status(DeviceStatus.OFFLINE, StatusDetail.CONFIGURATION_ERROR, "; ".join(result.errors))
                LOGGER.warning("Invalid configuration for device %s: %s", self.device_id, "; ".join(result.errors))
                return

            if self._device_type is None:
                self._config = None
                self._set_status(
                    DeviceStatus.OFFLINE,
                    StatusDetail.CONFIGURATION_ERROR,
                    f"Unknown command collection '{self.collection_id}'",
                )
                LOGGER.warning("No device type for collection %s of device %s", self.collection_id, self.device_id)
                return

            self._config = result.config
            LOGGER.debug("Initialize device %s with %s", self.device_id, self._config)
            self.bridge_status_changed(self._bridge.connection_status())

    def dispose(self) -> None:
        with self._lock:
            self._scheduler.dispose()

    def update_config(self, raw: Mapping[str, Any], registry: TypeRegistry) -> None:
        with self._lock:
            self._raw_config = dict(raw)
            self.initialize(registry)

    def refresh_type(self, registry: TypeRegistry) -> bool:
        """Re-initialize if the collection behind this device changed.

        Returns True when the device was re-initialized.
        """
        with self._lock:
            new_type = registry.device_type_for(self.collection_id)
            old_hash = self._device_type.collection_hash if self._device_type is not None else None
            new_hash = new_type.collection_hash if new_type is not None else None
            if old_hash == new_hash:
                return False

            LOGGER.info("Command collection %s changed, re-initialize device %s", self.collection_id, self.device_id)
            self.initialize(registry)
            return True

    def bridge_status_changed(self, status: ConnectionStatus) -> None:
        with self._lock:
            if self._config is None:
                return
            if status is ConnectionStatus.CONNECTED:
                self._set_status(DeviceStatus.ONLINE, StatusDetail.NONE)
                self._scheduler.relink_all()
            elif status is ConnectionStatus.DISCONNECTED:
                self._set_status(DeviceStatus.OFFLINE, StatusDetail.BRIDGE_OFFLINE)
                self._scheduler.unlink_all()
            else:
                self._set_status(DeviceStatus.UNKNOWN, StatusDetail.NONE)

    def link_capability(self, capability_id: str) -> None:
        with self._lock:
            self._require(capability_id)
            self._linked.add(capability_id)
            self._scheduler.link_capability(capability_id)

    def unlink_capability(self, capability_id: str) -> None:
        with self._lock:
            self._require(capability_id)
            self._linked.discard(capability_id)
            self._scheduler.unlink_capability(capability_id)

    def relink_all(self) -> None:
        with self._lock:
            self._scheduler.relink_all()

    def handle_frame(self, frame: DecodedFrame) -> None:
        for node in self._nodes.values():
            if node.command_id != frame.command_id or node.value_name not in frame.values:
                continue
            state = to_state(node.category, frame.values[node.value_name])
            self.states[node.channel_id] = state
            if self._on_state is not None:
                self._on_state(self.device_id, node.channel_id, state)

    def handle_command(self, capability_id: str, value: Any) -> int | None:
        """Send a SET telegram for ``capability_id``; returns the send id or None."""
        node = self._require(capability_id)
        config = self._config
        if config is None or config.slave_address is None:
            LOGGER.warning("Device %s is not configured, ignore command for %s", self.device_id, capability_id)
            return None
        if node.read_only:
            LOGGER.warning("Capability %s is read-only, ignore command", capability_id)
            return None

        telegram = self._bridge.build_setter_request(
            self.collection_id,
            node.command_id,
            config.slave_address,
            {node.value_name: command_value(value)},
        )
        if telegram is None:
            return None
        return self._bridge.send(telegram)

    def _require(self, capability_id: str) -> CapabilityNode:
        node = self._nodes.get(capability_id)
        if node is None:
            raise DeviceNotFoundError(f"Device '{self.device_id}' has no capability '{capability_id}'")
        return node

    def _apply_type(self, device_type: DeviceTypeDescriptor | None) -> None:
        self._device_type = device_type
        nodes: dict[str, CapabilityNode] = {}
        if device_type is not None:
            for group in device_type.groups:
                for node in group.nodes:
                    nodes[node.channel_id] = node
        self._nodes = nodes
        # capabilities that vanished with the new type cannot stay linked
        self._linked &= set(nodes)

    def _set_status(self, status: DeviceStatus, detail: StatusDetail, message: str | None = None) -> None:
        self.status = status
        self.status_detail = detail
        self.status_message = message
