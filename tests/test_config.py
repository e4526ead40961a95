from __future__ import annotations

from ebusbind.core.config import parse_device_config
from ebusbind.core.model import AddressFilter


def test_minimal_config() -> None:
    result = parse_device_config({"slaveAddress": "15"})
    assert result.ok
    config = result.config
    assert config.slave_address == 0x15
    assert config.master_address is None
    assert config.polling == 0
    assert config.address_filter == AddressFilter(slave_address=0x15)


def test_full_config() -> None:
    result = parse_device_config(
        {
            "slaveAddress": "0x15",
            "masterAddress": "10",
            "filterAcceptMaster": "true",
            "filterAcceptSlave": False,
            "filterAcceptBroadcasts": "false",
            "polling": "30",
            "channels": {"boiler_temps#roomTemp": {"polling": 5}, "boiler_temps#other": {}},
        }
    )
    assert result.ok
    config = result.config
    assert config.master_address == 0x10
    assert config.filter_accept_master is True
    assert config.filter_accept_slave is False
    assert config.filter_accept_broadcasts is False
    assert config.polling == 30
    assert config.channel_polling == {"boiler_temps#roomTemp": 5}
    assert "slaveAddress=15" in str(config)


def test_missing_slave_address() -> None:
    result = parse_device_config({})
    assert not result.ok
    assert result.config is None
    assert result.errors == ("Slave address is not set!",)


def test_invalid_values_collected() -> None:
    result = parse_device_config(
        {
            "slaveAddress": "15",
            "masterAddress": "15",
            "filterAcceptMaster": "maybe",
            "polling": -1,
            "channels": {"x": {"polling": "soon"}},
        }
    )
    assert result.config is None
    assert len(result.errors) == 4


def test_malformed_slave_address() -> None:
    result = parse_device_config({"slaveAddress": "xyz"})
    assert not result.ok
    assert "slaveAddress" in result.errors[0]
