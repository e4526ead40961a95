from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from ebusbind import cli
from ebusbind.core.errors import CatalogLoadError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


class FailingService:
    def __init__(self, **kwargs) -> None:
        raise CatalogLoadError("Could not read collection file broken.yaml")


def test_collections_command() -> None:
    result = runner.invoke(cli.app, ["collections"])
    assert result.exit_code == 0
    assert "std: eBUS Standard" in result.stdout
    assert "  id.identification: get" in result.stdout
    assert "  controller.op_data: get, set" in result.stdout


def test_types_command() -> None:
    result = runner.invoke(cli.app, ["types", "--collection", "std"])
    assert result.exit_code == 0
    assert "ebus:std: eBUS Standard" in result.stdout
    assert "std_controller_op-data#flow-temp-setpoint (Number:Temperature, polling)" in result.stdout
    assert "std_controller_op-data#-service-counter (Number, advanced, polling)" in result.stdout
    assert "std_auto-stroker_op-data-block1#flame (Switch, read-only)" in result.stdout


def test_types_command_unknown_collection() -> None:
    result = runner.invoke(cli.app, ["types", "--collection", "nope"])
    assert result.exit_code == 1
    assert "No device types found" in result.stdout


def test_poll_telegram_command() -> None:
    result = runner.invoke(cli.app, ["poll-telegram", "std", "controller.op_data", "15"])
    assert result.exit_code == 0
    assert result.stdout.startswith("FF 15 05 07 00 ")


def test_poll_telegram_for_broadcast_fails() -> None:
    result = runner.invoke(cli.app, ["poll-telegram", "std", "service.date_time", "15"])
    assert result.exit_code == 1
    assert "cannot be polled" in result.output


def test_poll_telegram_invalid_address() -> None:
    result = runner.invoke(cli.app, ["poll-telegram", "std", "controller.op_data", "xyz"])
    assert result.exit_code == 1
    assert "Error: Invalid slave address" in result.output


def test_route_command() -> None:
    result = runner.invoke(
        cli.app,
        ["route", "10 fe 07 00 00", "--device", "boiler:std:15", "--device", "mixer:std:52"],
    )
    assert result.exit_code == 0
    assert "Command: std.service.date_time (broadcast)" in result.stdout
    assert "Accepted by: boiler" in result.stdout
    assert "mixer" not in result.stdout


def test_route_command_without_match() -> None:
    result = runner.invoke(cli.app, ["route", "31 52 07 04 00", "--device", "boiler:std:15"])
    assert result.exit_code == 0
    assert "No device accepted the telegram" in result.stdout


def test_route_command_unknown_telegram() -> None:
    result = runner.invoke(cli.app, ["route", "31 52 ff ff 00"])
    assert result.exit_code == 1
    assert "Error: No command found" in result.output


def test_route_command_bad_device() -> None:
    result = runner.invoke(cli.app, ["route", "10 fe 07 00 00", "--device", "boiler"])
    assert result.exit_code != 0


def test_service_errors_are_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "EBusService", FailingService)
    result = runner.invoke(cli.app, ["collections"])
    assert result.exit_code == 1
    assert "Error: Could not read collection file broken.yaml" in result.output


def test_extra_catalog_option(tmp_path: Path) -> None:
    path = tmp_path / "boiler.yaml"
    path.write_text(
        """
id: boiler
label: Boiler
commands:
  - id: temps
    command: "b5 11"
    get:
      slave:
        - name: flow
          type: data2c
""",
        encoding="utf-8",
    )
    result = runner.invoke(cli.app, ["--catalog", str(path), "collections"])
    assert result.exit_code == 0
    assert "boiler: Boiler" in result.stdout
