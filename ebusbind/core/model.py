"""Core data models used across loader, projector, router, and scheduler."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any


class Method(str, Enum):
    GET = "get"
    SET = "set"
    BROADCAST = "broadcast"


class TelegramType(str, Enum):
    MASTER_SLAVE = "master-slave"
    MASTER_MASTER = "master-master"


class DataType(str, Enum):
    NUMBER = "number"
    BIT = "bit"
    STRING = "string"
    BYTES = "bytes"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"


class Category(str, Enum):
    """Display category of a capability node; the value is the host item type."""

    NUMBER = "Number"
    TEMPERATURE = "Number:Temperature"
    SWITCH = "Switch"
    STRING = "String"
    DATETIME = "DateTime"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str | None
    data_type: DataType
    label: str | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    format: str | None = None
    mapping: dict[str, str] = field(default_factory=dict)
    children: tuple[FieldDescriptor, ...] = ()

    @property
    def is_composite(self) -> bool:
        return bool(self.children)


@dataclass(frozen=True)
class MethodVariant:
    method: Method
    telegram_type: TelegramType
    command: bytes
    data: bytes = b""
    master: tuple[FieldDescriptor, ...] = ()
    slave: tuple[FieldDescriptor, ...] = ()

    @property
    def fields(self) -> tuple[FieldDescriptor, ...]:
        return self.master + self.slave


@dataclass(frozen=True)
class CommandDefinition:
    id: str
    label: str | None = None
    description: str | None = None
    usage: str | None = None
    methods: dict[Method, MethodVariant] = field(default_factory=dict)

    def method(self, method: Method) -> MethodVariant | None:
        return self.methods.get(method)

    @property
    def has_fields(self) -> bool:
        return any(variant.fields for variant in self.methods.values())


@dataclass(frozen=True)
class CommandCollection:
    id: str
    label: str | None = None
    description: str | None = None
    identification: tuple[str, ...] = ()
    commands: tuple[CommandDefinition, ...] = ()

    def command(self, command_id: str) -> CommandDefinition | None:
        for command in self.commands:
            if command.id == command_id:
                return command
        return None

    @cached_property
    def content_hash(self) -> str:
        """SHA-256 over the canonical JSON form of the collection content."""
        canonical = json.dumps(
            dataclasses.asdict(self),
            sort_keys=True,
            separators=(",", ":"),
            default=_json_default,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Unsupported value {value!r} in collection content")


@dataclass(frozen=True)
class ValueConstraints:
    min: float | None = None
    max: float | None = None
    step: float | None = None
    pattern: str | None = None
    options: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CapabilityNode:
    id: str
    channel_id: str
    collection_id: str
    command_id: str
    value_name: str
    label: str
    category: Category
    read_only: bool
    advanced: bool
    polling: bool
    constraints: ValueConstraints = ValueConstraints()


@dataclass(frozen=True)
class CapabilityGroup:
    id: str
    collection_id: str
    command_id: str
    label: str
    nodes: tuple[CapabilityNode, ...] = ()


@dataclass(frozen=True)
class DeviceTypeDescriptor:
    id: str
    collection_id: str
    label: str
    description: str | None
    groups: tuple[CapabilityGroup, ...] = ()
    properties: dict[str, str] = field(default_factory=dict)

    @property
    def collection_hash(self) -> str | None:
        return self.properties.get("collectionHash")


@dataclass(frozen=True)
class AddressFilter:
    master_address: int | None = None
    slave_address: int | None = None
    accept_master: bool = False
    accept_slave: bool = True
    accept_broadcasts: bool = True


@dataclass(frozen=True)
class DecodedFrame:
    collection_id: str
    command_id: str
    method: Method
    source: int
    destination: int
    values: dict[str, Any] = field(default_factory=dict)
    raw: bytes = b""
