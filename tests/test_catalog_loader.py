from __future__ import annotations

from pathlib import Path

import pytest

from ebusbind.core.catalog_loader import load_collection_file, load_collections
from ebusbind.core.errors import CatalogValidationError
from ebusbind.core.model import DataType, Method, TelegramType


def _write_collection(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def test_load_packaged_collection() -> None:
    loaded = load_collections()
    assert "std" in loaded.collections
    collection = loaded.collections["std"]

    identification = collection.command("id.identification")
    assert identification is not None
    get = identification.method(Method.GET)
    assert get is not None
    assert get.command == bytes.fromhex("0704")
    assert get.telegram_type is TelegramType.MASTER_SLAVE
    assert get.slave[0].mapping["b5"] == "Vaillant"

    date_time = collection.command("service.date_time")
    assert date_time.method(Method.BROADCAST).telegram_type is TelegramType.MASTER_MASTER


def test_struct_children_are_loaded() -> None:
    collection = load_collections().collections["std"]
    broadcast = collection.command("auto_stroker.op_data_block1").method(Method.BROADCAST)
    flags = [f for f in broadcast.master if f.name == "flags"][0]
    assert flags.is_composite
    assert [child.name for child in flags.children] == ["ldw", "gdw", "ww", "flame"]
    assert all(child.data_type is DataType.BIT for child in flags.children)


def test_invalid_hex_in_user_collection_rejected(tmp_path: Path) -> None:
    _write_collection(
        tmp_path / "cfg" / "ebusbind" / "collections" / "bad.yaml",
        """
id: bad
commands:
  - id: status
    command: "05 xx"
    get:
      slave:
        - name: temp
          type: data2c
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collections()


def test_command_must_have_two_bytes(tmp_path: Path) -> None:
    path = tmp_path / "short.yaml"
    _write_collection(
        path,
        """
id: short
commands:
  - id: status
    command: "05"
    get:
      slave:
        - name: temp
          type: data2c
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collection_file(path)


def test_unknown_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "unknown.yaml"
    _write_collection(
        path,
        """
id: unknown
vendor: somebody
commands: []
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collection_file(path)


def test_duplicate_yaml_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "dup.yaml"
    _write_collection(
        path,
        """
id: dup
id: dup2
commands: []
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collection_file(path)


def test_duplicate_command_ids_rejected(tmp_path: Path) -> None:
    path = tmp_path / "dupcmd.yaml"
    _write_collection(
        path,
        """
id: dupcmd
commands:
  - id: status
    command: "05 03"
    broadcast:
      master:
        - name: a
          type: uchar
  - id: status
    command: "05 04"
    broadcast:
      master:
        - name: b
          type: uchar
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collection_file(path)


def test_unknown_data_type_rejected(tmp_path: Path) -> None:
    path = tmp_path / "type.yaml"
    _write_collection(
        path,
        """
id: type
commands:
  - id: status
    command: "05 03"
    broadcast:
      master:
        - name: a
          type: quantum
""",
    )

    with pytest.raises(CatalogValidationError):
        load_collection_file(path)


def test_user_collection_overrides_packaged(tmp_path: Path) -> None:
    _write_collection(
        tmp_path / "data" / "ebusbind" / "collections" / "std.yaml",
        """
id: std
label: Patched standard
commands:
  - id: id.identification
    command: "07 04"
    get:
      slave:
        - name: vendor
          type: uchar
""",
    )

    loaded = load_collections()
    assert loaded.collections["std"].label == "Patched standard"
    assert loaded.warnings
    assert "std" in loaded.warnings[0]


def test_extra_paths_are_loaded(tmp_path: Path) -> None:
    path = tmp_path / "boiler.yaml"
    _write_collection(
        path,
        """
id: boiler
label: Boiler
identification: ["BAI00"]
commands:
  - id: temps
    command: "b5 11"
    get:
      data: "01"
      slave:
        - name: flow
          label: Flow °C
          type: data2c
""",
    )

    loaded = load_collections([path])
    boiler = loaded.collections["boiler"]
    assert boiler.identification == ("BAI00",)
    get = boiler.command("temps").method(Method.GET)
    assert get.data == b"\x01"
    assert get.command == bytes.fromhex("b511")
