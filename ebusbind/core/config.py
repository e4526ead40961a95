"""Typed device configuration and its parse/validation step."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ebusbind.core.addressing import format_address, is_master_address, parse_address
from ebusbind.core.model import AddressFilter

SLAVE_ADDRESS = "slaveAddress"
MASTER_ADDRESS = "masterAddress"
POLLING = "polling"
FILTER_ACCEPT_MASTER = "filterAcceptMaster"
FILTER_ACCEPT_SLAVE = "filterAcceptSlave"
FILTER_ACCEPT_BROADCAST = "filterAcceptBroadcasts"
CHANNELS = "channels"


@dataclass(frozen=True)
class DeviceConfig:
    slave_address: int | None = None
    master_address: int | None = None
    filter_accept_master: bool = False
    filter_accept_slave: bool = True
    filter_accept_broadcasts: bool = True
    polling: float = 0
    channel_polling: dict[str, float] = field(default_factory=dict)

    @property
    def address_filter(self) -> AddressFilter:
        return AddressFilter(
            master_address=self.master_address,
            slave_address=self.slave_address,
            accept_master=self.filter_accept_master,
            accept_slave=self.filter_accept_slave,
            accept_broadcasts=self.filter_accept_broadcasts,
        )

    def __str__(self) -> str:
        return (
            f"DeviceConfig [slaveAddress={format_address(self.slave_address)}, "
            f"masterAddress={format_address(self.master_address)}, "
            f"filterAcceptMaster={self.filter_accept_master}, filterAcceptSlave={self.filter_accept_slave}, "
            f"filterAcceptBroadcasts={self.filter_accept_broadcasts}, polling={self.polling}]"
        )


@dataclass(frozen=True)
class ConfigResult:
    config: DeviceConfig | None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.errors


def _to_bool(value: Any, default: bool, *, key: str, errors: list[str]) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    errors.append(f"'{key}' must be boolean true/false")
    return default


def _to_period(value: Any, *, key: str, errors: list[str]) -> float:
    if value is None or value == "":
        return 0
    try:
        period = float(value)
    except (TypeError, ValueError):
        errors.append(f"'{key}' must be a number of seconds")
        return 0
    if period < 0:
        errors.append(f"'{key}' must not be negative")
        return 0
    return period


def _to_address(value: Any, *, key: str, errors: list[str]) -> int | None:
    try:
        return parse_address(value)
    except ValueError as exc:
        errors.append(f"'{key}': {exc}")
        return None


def parse_device_config(raw: Mapping[str, Any]) -> ConfigResult:
    """Bind a raw key/value mapping onto ``DeviceConfig``.

    Never raises; problems are collected in ``ConfigResult.errors``. A missing
    slave address yields no config, which the device reports as a
    configuration error status.
    """
    errors: list[str] = []

    slave_address = _to_address(raw.get(SLAVE_ADDRESS), key=SLAVE_ADDRESS, errors=errors)
    master_address = _to_address(raw.get(MASTER_ADDRESS), key=MASTER_ADDRESS, errors=errors)

    if slave_address is None and not errors:
        errors.append("Slave address is not set!")
    if master_address is not None and not is_master_address(master_address):
        errors.append(f"'{MASTER_ADDRESS}' {format_address(master_address)} is not a valid master address!")

    channel_polling: dict[str, float] = {}
    channels = raw.get(CHANNELS) or {}
    if not isinstance(channels, Mapping):
        errors.append(f"'{CHANNELS}' must be a mapping of capability id to settings")
        channels = {}
    for capability_id, settings in channels.items():
        if not isinstance(settings, Mapping):
            errors.append(f"'{CHANNELS}.{capability_id}' must be a mapping")
            continue
        period = _to_period(settings.get(POLLING), key=f"{CHANNELS}.{capability_id}.{POLLING}", errors=errors)
        if period:
            channel_polling[str(capability_id)] = period

    config = DeviceConfig(
        slave_address=slave_address,
        master_address=master_address,
        filter_accept_master=_to_bool(
            raw.get(FILTER_ACCEPT_MASTER), False, key=FILTER_ACCEPT_MASTER, errors=errors
        ),
        filter_accept_slave=_to_bool(raw.get(FILTER_ACCEPT_SLAVE), True, key=FILTER_ACCEPT_SLAVE, errors=errors),
        filter_accept_broadcasts=_to_bool(
            raw.get(FILTER_ACCEPT_BROADCAST), True, key=FILTER_ACCEPT_BROADCAST, errors=errors
        ),
        polling=_to_period(raw.get(POLLING), key=POLLING, errors=errors),
        channel_polling=channel_polling,
    )

    if errors:
        return ConfigResult(config=None, errors=tuple(errors))
    return ConfigResult(config=config)
