from __future__ import annotations

import pytest

from ebusbind.core.bridge import Bridge
from ebusbind.core.errors import DecodeError, EncodeError, TransportSendError, UnknownCommandError
from ebusbind.core.model import (
    CommandCollection,
    CommandDefinition,
    DataType,
    FieldDescriptor,
    Method,
    MethodVariant,
    TelegramType,
)
from ebusbind.core.telegram import crc8
from ebusbind.transports.base import ConnectionStatus
from ebusbind.transports.emulator import EmulatorBusClient


def _collection() -> CommandCollection:
    return CommandCollection(
        id="mixer",
        commands=(
            CommandDefinition(
                id="flow",
                methods={
                    Method.GET: MethodVariant(
                        method=Method.GET,
                        telegram_type=TelegramType.MASTER_SLAVE,
                        command=b"\xb5\x09",
                        data=b"\x0d",
                        slave=(FieldDescriptor(name="temp", data_type=DataType.NUMBER),),
                    ),
                    Method.SET: MethodVariant(
                        method=Method.SET,
                        telegram_type=TelegramType.MASTER_MASTER,
                        command=b"\xb5\x09",
                        data=b"\x0e",
                    ),
                },
            ),
            CommandDefinition(
                id="clock",
                methods={
                    Method.BROADCAST: MethodVariant(
                        method=Method.BROADCAST,
                        telegram_type=TelegramType.MASTER_MASTER,
                        command=b"\x07\x00",
                        master=(FieldDescriptor(name="time", data_type=DataType.TIME),),
                    ),
                },
            ),
        ),
    )


def _bridge() -> tuple[Bridge, EmulatorBusClient]:
    catalog = {"mixer": _collection()}
    client = EmulatorBusClient(lambda: catalog)
    return Bridge(client, lambda: catalog), client


def _with_crc(hex_data: str) -> bytes:
    data = bytes.fromhex(hex_data)
    return data + bytes([crc8(data)])


def test_build_poll_request() -> None:
    bridge, _ = _bridge()
    assert bridge.build_poll_request("mixer", "flow", 0x52) == _with_crc("ff52b509010d")


def test_build_poll_request_not_possible() -> None:
    bridge, _ = _bridge()
    assert bridge.build_poll_request("mixer", "flow", None) is None
    assert bridge.build_poll_request("mixer", "clock", 0x52) is None
    assert bridge.build_poll_request("mixer", "missing", 0x52) is None
    assert bridge.build_poll_request("other", "flow", 0x52) is None


def test_setter_targets_master_for_master_master() -> None:
    bridge, _ = _bridge()
    assert bridge.build_setter_request("mixer", "flow", 0x15, {}) == _with_crc("ff10b509010e")
    assert bridge.build_setter_request("mixer", "clock", 0x15, {}) is None


def test_emulator_refuses_to_encode_values() -> None:
    bridge, _ = _bridge()
    with pytest.raises(EncodeError):
        bridge.send_command("mixer", "clock", "fe", {"time": "12:00"})


def test_send_command_falls_back_to_broadcast() -> None:
    bridge, client = _bridge()
    assert bridge.send_command("mixer", "clock", "fe") == 1
    assert client.sent == [(_with_crc("fffe070000"), None)]


def test_send_command_errors() -> None:
    bridge, _ = _bridge()
    with pytest.raises(EncodeError):
        bridge.send_command("mixer", "missing", "15")
    with pytest.raises(EncodeError):
        bridge.send_command("mixer", "flow", "")
    with pytest.raises(EncodeError):
        bridge.send_command("mixer", "flow", "xyz")


def test_send_raw_telegram_adds_crc() -> None:
    bridge, client = _bridge()
    assert bridge.send_raw_telegram("ff 52 b5 09 01 0d") == 1
    assert client.sent[0][0] == _with_crc("ff52b509010d")
    assert bridge.send_raw_telegram("  ") is None

    with pytest.raises(EncodeError):
        bridge.send_raw_telegram("ff52b5")
    with pytest.raises(EncodeError):
        bridge.send_raw_telegram("not hex")


def test_send_when_disconnected_raises() -> None:
    bridge, client = _bridge()
    client.status = ConnectionStatus.DISCONNECTED
    assert not bridge.is_connected()
    with pytest.raises(TransportSendError):
        bridge.send(b"\x00")


def test_decode_frame() -> None:
    bridge, _ = _bridge()
    frame = bridge.decode(_with_crc("1052b509010d"))
    assert frame.collection_id == "mixer"
    assert frame.command_id == "flow"
    assert frame.method is Method.GET
    assert frame.source == 0x10
    assert frame.destination == 0x52


def test_decode_errors() -> None:
    bridge, _ = _bridge()
    with pytest.raises(DecodeError):
        bridge.decode(b"\x10\x52")
    with pytest.raises(DecodeError):
        bridge.decode(bytes.fromhex("1052b509050d"))
    good = _with_crc("1052b509010d")
    with pytest.raises(DecodeError):
        bridge.decode(good[:-1] + bytes([good[-1] ^ 0xFF]))
    with pytest.raises(UnknownCommandError):
        bridge.decode(_with_crc("1052ff0000"))
