"""Command collection loading and validation for YAML-based eBUS catalogs."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from ebusbind.core.errors import CatalogLoadError, CatalogValidationError
from ebusbind.core.model import (
    CommandCollection,
    CommandDefinition,
    DataType,
    FieldDescriptor,
    Method,
    MethodVariant,
    TelegramType,
)

_HEX_RE = re.compile(r"^[0-9a-f]*$")
_MAX_DATA_BYTES = 16
LOGGER = logging.getLogger(__name__)

# eBUS data type names as used in configuration files
_TYPE_ALIASES: dict[str, DataType] = {
    "bit": DataType.BIT,
    "string": DataType.STRING,
    "bytes": DataType.BYTES,
    "date": DataType.DATE,
    "time": DataType.TIME,
    "datetime": DataType.DATETIME,
}
for _numeric in (
    "number",
    "uchar",
    "char",
    "bcd",
    "word",
    "int",
    "uint",
    "data1b",
    "data1c",
    "data2b",
    "data2c",
    "float",
    "mword",
    "kw-crc",
):
    _TYPE_ALIASES[_numeric] = DataType.NUMBER


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise CatalogValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedCollections:
    collections: dict[str, CommandCollection]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("ebusbind.schemas").joinpath("collection.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _collection_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "ebusbind/collections", xdg_data / "ebusbind/collections"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogLoadError(f"Could not read collection file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise CatalogValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CatalogValidationError(f"Collection file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str, allow_empty: bool = False) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    if len(normalized) == 0 and not allow_empty:
        raise CatalogValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise CatalogValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise CatalogValidationError(f"{context} must contain only [0-9a-f]")
    payload = bytes.fromhex(normalized)
    if len(payload) > _MAX_DATA_BYTES:
        raise CatalogValidationError(f"{context} exceeds max data size {_MAX_DATA_BYTES} bytes")
    return payload


def _build_field(doc: dict[str, Any], *, context: str) -> FieldDescriptor:
    type_name = str(doc.get("type", "")).strip().lower()
    data_type = _TYPE_ALIASES.get(type_name)
    children = tuple(
        _build_field(child, context=f"{context}.{child.get('name', '?')}")
        for child in doc.get("children", [])
    )
    if data_type is None:
        if not children:
            raise CatalogValidationError(f"{context} has unknown data type '{type_name}'")
        data_type = DataType.BYTES

    return FieldDescriptor(
        name=doc.get("name") or None,
        data_type=data_type,
        label=doc.get("label"),
        min=doc.get("min"),
        max=doc.get("max"),
        step=doc.get("step"),
        format=doc.get("format"),
        mapping={str(k): str(v) for k, v in doc.get("mapping", {}).items()},
        children=children,
    )


def _build_method(method: Method, doc: dict[str, Any], command_bytes: bytes, *, context: str) -> MethodVariant:
    if "command" in doc:
        command_bytes = _normalize_hex(doc["command"], context=f"{context}.command")
    if len(command_bytes) != 2:
        raise CatalogValidationError(f"{context}.command must be exactly two bytes (primary, secondary)")

    default_type = TelegramType.MASTER_MASTER if method is Method.BROADCAST else TelegramType.MASTER_SLAVE
    telegram_type = TelegramType(doc["type"]) if "type" in doc else default_type

    return MethodVariant(
        method=method,
        telegram_type=telegram_type,
        command=command_bytes,
        data=_normalize_hex(doc.get("data", ""), context=f"{context}.data", allow_empty=True),
        master=tuple(
            _build_field(f, context=f"{context}.master.{f.get('name', '?')}") for f in doc.get("master", [])
        ),
        slave=tuple(
            _build_field(f, context=f"{context}.slave.{f.get('name', '?')}") for f in doc.get("slave", [])
        ),
    )


def build_collection(doc: dict[str, Any], source: Path | Traversable | str) -> CommandCollection:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise CatalogValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    commands: list[CommandDefinition] = []
    seen: set[str] = set()
    for command_doc in doc.get("commands", []):
        command_id = command_doc["id"]
        context = f"{doc['id']}.{command_id}"
        if command_id in seen:
            raise CatalogValidationError(f"Duplicate command id '{command_id}' in {source}")
        seen.add(command_id)

        command_bytes = b""
        if "command" in command_doc:
            command_bytes = _normalize_hex(command_doc["command"], context=f"{context}.command")

        methods: dict[Method, MethodVariant] = {}
        for method in Method:
            if method.value in command_doc:
                methods[method] = _build_method(
                    method,
                    command_doc[method.value],
                    command_bytes,
                    context=f"{context}.{method.value}",
                )

        commands.append(
            CommandDefinition(
                id=command_id,
                label=command_doc.get("label"),
                description=command_doc.get("description"),
                usage=command_doc.get("usage"),
                methods=methods,
            )
        )

    return CommandCollection(
        id=doc["id"],
        label=doc.get("label"),
        description=doc.get("description"),
        identification=tuple(str(i) for i in doc.get("identification", [])),
        commands=tuple(commands),
    )


def load_collection_file(path: Path | Traversable) -> CommandCollection:
    return build_collection(_read_yaml(path), path)


def _iter_packaged_collection_paths() -> list[Traversable]:
    root = resources.files("ebusbind.collections")
    return [item for item in root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_collection_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _collection_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_collections(extra_paths: Iterable[Path] = ()) -> LoadedCollections:
    collections: dict[str, CommandCollection] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_collection_paths(), key=lambda p: p.name):
        collection = load_collection_file(path)
        collections[collection.id] = collection

    for path in [*_iter_user_collection_paths(), *extra_paths]:
        collection = load_collection_file(path)
        if collection.id in collections:
            warning = f"Collection '{collection.id}' from {path} overrides a previously loaded collection"
            LOGGER.warning(warning)
            warnings.append(warning)
        collections[collection.id] = collection

    LOGGER.debug("Loaded %d eBUS command collections", len(collections))
    return LoadedCollections(collections=collections, warnings=tuple(warnings))
