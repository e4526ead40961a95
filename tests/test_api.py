from __future__ import annotations

import random
from decimal import Decimal

from ebusbind.api import Client, ConnectionStatus, DeviceStatus, Quantity
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


class FakeTimer:
    def __init__(self) -> None:
        self.scheduled: list[float] = []

    def schedule(self, fn, initial_delay: float, period: float):
        self.scheduled.append(period)
        return _Handle()


class _Handle:
    cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


def _collections() -> list[CommandCollection]:
    return [
        CommandCollection(
            id="boiler",
            commands=(
                CommandDefinition(
                    id="temps",
                    methods={
                        Method.GET: MethodVariant(
                            method=Method.GET,
                            telegram_type=TelegramType.MASTER_SLAVE,
                            command=b"\xb5\x11",
                            slave=(FieldDescriptor(name="flow", label="Flow °C", data_type=DataType.NUMBER),),
                        )
                    },
                ),
            ),
        )
    ]


def test_public_client_lifecycle() -> None:
    states = []
    timer = FakeTimer()
    client = Client(
        collections=_collections(),
        timer=timer,
        on_state=lambda device, capability, state: states.append((device, capability, state)),
        rng=random.Random(5),
    )

    assert [t.id for t in client.list_device_types()] == ["ebus:boiler"]
    device = client.add_device("boiler-1", "boiler", {"slaveAddress": "15", "polling": "60"})
    assert device.status is DeviceStatus.ONLINE

    client.link_capability("boiler-1", "boiler_temps#flow")
    assert timer.scheduled == [60]

    client.connection_status_changed(ConnectionStatus.CONNECTING)
    assert client.get_device("boiler-1").status is DeviceStatus.UNKNOWN
    client.close()


def test_public_client_dispatch_emits_states(monkeypatch) -> None:
    states = []
    client = Client(
        collections=_collections(),
        timer=FakeTimer(),
        on_state=lambda device, capability, state: states.append((device, capability, state)),
    )
    client.add_device("boiler-1", "boiler", {"slaveAddress": "15"})

    original = client._service.bridge.decode

    def decode_with_values(raw: bytes):
        frame = original(raw)
        frame.values["flow"] = 45
        return frame

    monkeypatch.setattr(client._service.bridge, "decode", decode_with_values)

    data = bytes.fromhex("1015b51100")
    assert client.dispatch_telegram(data + bytes([crc8(data)])) == ("boiler-1",)
    assert states == [("boiler-1", "boiler_temps#flow", Quantity(Decimal("45"), "°C"))]
    assert client.metrics.resolved == 1
