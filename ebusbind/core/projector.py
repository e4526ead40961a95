"""Projection of command collections into capability nodes, groups and device types."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ebusbind.core.errors import ProjectionError
from ebusbind.core.model import (
    CapabilityGroup,
    CapabilityNode,
    Category,
    CommandCollection,
    CommandDefinition,
    DataType,
    DeviceTypeDescriptor,
    FieldDescriptor,
    Method,
    MethodVariant,
    TelegramType,
    ValueConstraints,
)

BINDING_ID = "ebus"
ADVANCED_PREFIX = "_"
CELSIUS_TOKEN = "°C"
UNIT_PLACEHOLDER = "%unit%"
COLLECTION_HASH = "collectionHash"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_MAIN_METHOD_ORDER = (Method.GET, Method.BROADCAST, Method.SET)
_DATETIME_TYPES = frozenset({DataType.DATE, DataType.TIME, DataType.DATETIME})
_STRING_TYPES = frozenset({DataType.STRING, DataType.BYTES})
LOGGER = logging.getLogger(__name__)


def format_id(value: str) -> str:
    """Format an id segment; underscores become dashes, dots become underscores."""
    return value.replace("_", "-").replace(".", "_").replace(" ", "-")


def _segment(value: str | None, *, what: str) -> str:
    formatted = format_id(value or "")
    if not _SEGMENT_RE.match(formatted):
        raise ProjectionError(f"Unable to generate an id from {what} '{value}'")
    return formatted


def group_id(collection_id: str, command_id: str) -> str:
    return f"{_segment(collection_id, what='collection id')}_{_segment(command_id, what='command id')}"


def node_id(collection_id: str, command_id: str, value_name: str) -> str:
    return f"{BINDING_ID}:{group_id(collection_id, command_id)}_{_segment(value_name, what='field name')}"


def channel_id(collection_id: str, command_id: str, value_name: str) -> str:
    """Device-local capability id, ``<group>#<field>``."""
    return f"{group_id(collection_id, command_id)}#{_segment(value_name, what='field name')}"


def device_type_id(collection_id: str) -> str:
    return f"{BINDING_ID}:{_segment(collection_id, what='collection id')}"


@dataclass(frozen=True)
class TypeRegistry:
    """Immutable snapshot of everything a reload produced."""

    collections: Mapping[str, CommandCollection]
    device_types: Mapping[str, DeviceTypeDescriptor]
    groups: Mapping[str, CapabilityGroup]
    nodes: Mapping[str, CapabilityNode]

    @classmethod
    def empty(cls) -> TypeRegistry:
        return cls(
            collections=MappingProxyType({}),
            device_types=MappingProxyType({}),
            groups=MappingProxyType({}),
            nodes=MappingProxyType({}),
        )

    def device_type_for(self, collection_id: str) -> DeviceTypeDescriptor | None:
        return self.device_types.get(device_type_id(collection_id))


def select_main_method(command: CommandDefinition) -> MethodVariant | None:
    for method in _MAIN_METHOD_ORDER:
        variant = command.method(method)
        if variant is not None:
            if method is Method.SET:
                LOGGER.warning("eBUS command %s only contains a setter method!", command.id)
            return variant
    return None


def collect_fields(variant: MethodVariant) -> list[FieldDescriptor]:
    """Master fields, then slave fields, then children of composites depth-first."""
    fields = list(variant.fields)
    nested: list[FieldDescriptor] = []

    def _walk(parent: FieldDescriptor) -> None:
        for child in parent.children:
            nested.append(child)
            _walk(child)

    for value in fields:
        _walk(value)
    return [value for value in fields + nested if not value.is_composite]


def resolve_category(value: FieldDescriptor) -> Category:
    if value.data_type is DataType.BIT:
        return Category.SWITCH
    if value.data_type in _DATETIME_TYPES:
        return Category.DATETIME
    if value.data_type in _STRING_TYPES:
        return Category.STRING
    if value.mapping:
        # options only work for string items
        return Category.STRING
    return Category.NUMBER


def project_node(
    collection_id: str,
    command: CommandDefinition,
    main: MethodVariant,
    value: FieldDescriptor,
) -> CapabilityNode:
    name = value.name or ""
    label = value.label or name
    category = resolve_category(value)

    if category is Category.NUMBER and CELSIUS_TOKEN in label:
        label = label.replace(CELSIUS_TOKEN, UNIT_PLACEHOLDER)
        category = Category.TEMPERATURE

    return CapabilityNode(
        id=node_id(collection_id, command.id, name),
        channel_id=channel_id(collection_id, command.id, name),
        collection_id=collection_id,
        command_id=command.id,
        value_name=name,
        label=label,
        category=category,
        read_only=command.method(Method.SET) is None,
        advanced=name.startswith(ADVANCED_PREFIX),
        polling=main.telegram_type is TelegramType.MASTER_SLAVE,
        constraints=ValueConstraints(
            min=value.min,
            max=value.max,
            step=value.step,
            pattern=value.format,
            options=tuple(value.mapping.items()),
        ),
    )


def project_group(collection_id: str, command: CommandDefinition) -> CapabilityGroup | None:
    label = command.label or "-undefined-"
    main = select_main_method(command)

    if main is None:
        LOGGER.warning("eBUS command %s doesn't contain a known method!", command.id)
        return CapabilityGroup(
            id=group_id(collection_id, command.id),
            collection_id=collection_id,
            command_id=command.id,
            label=label,
        )

    if not command.has_fields:
        LOGGER.debug("eBUS command %s has no fields, skip ...", command.id)
        return None

    nodes: dict[str, CapabilityNode] = {}
    for value in collect_fields(main):
        if not value.name:
            continue
        node = project_node(collection_id, command, main, value)
        if node.id in nodes:
            LOGGER.debug("Value %s already projected for command %s", value.name, command.id)
            continue
        LOGGER.debug("Add capability %s for method %s", node.id, main.method.value)
        nodes[node.id] = node

    return CapabilityGroup(
        id=group_id(collection_id, command.id),
        collection_id=collection_id,
        command_id=command.id,
        label=label,
        nodes=tuple(nodes.values()),
    )


def project(collection: CommandCollection) -> DeviceTypeDescriptor:
    """Project one collection into its device type descriptor.

    Pure function of the collection; ids are derived by string formatting so
    re-projecting unchanged input yields identical ids. Raises
    ``ProjectionError`` when an id cannot be generated.
    """
    groups: list[CapabilityGroup] = []
    for command in collection.commands:
        if not command.id:
            continue
        group = project_group(collection.id, command)
        if group is not None:
            groups.append(group)

    return DeviceTypeDescriptor(
        id=device_type_id(collection.id),
        collection_id=collection.id,
        label=collection.label or collection.id,
        description=collection.description,
        groups=tuple(groups),
        properties={COLLECTION_HASH: collection.content_hash},
    )


class TypeProjector:
    """Owns the type registries and rebuilds them on every reload.

    A reload stages a complete new ``TypeRegistry`` and swaps it in only after
    every collection projected successfully, so readers always observe either
    the previous or the new snapshot.
    """

    def __init__(self) -> None:
        self._registry = TypeRegistry.empty()
        self._write_lock = threading.Lock()

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    def reload(self, collections: Iterable[CommandCollection]) -> TypeRegistry:
        with self._write_lock:
            staged_collections: dict[str, CommandCollection] = {}
            device_types: dict[str, DeviceTypeDescriptor] = {}
            groups: dict[str, CapabilityGroup] = {}
            nodes: dict[str, CapabilityNode] = {}

            for collection in collections:
                if not collection.id:
                    continue
                if not collection.commands:
                    # in most cases template files
                    LOGGER.debug("eBUS command collection %s is empty, ignore ...", collection.id)
                    continue

                descriptor = project(collection)
                staged_collections[collection.id] = collection
                device_types[descriptor.id] = descriptor
                for group in descriptor.groups:
                    groups[group.id] = group
                    for node in group.nodes:
                        nodes[node.id] = node

            registry = TypeRegistry(
                collections=MappingProxyType(staged_collections),
                device_types=MappingProxyType(device_types),
                groups=MappingProxyType(groups),
                nodes=MappingProxyType(nodes),
            )
            self._registry = registry

        LOGGER.debug("Generated all eBUS command collections ...")
        return registry
