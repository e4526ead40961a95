"""Conversion of decoded field values into host states."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ebusbind.core.addressing import hex_dump
from ebusbind.core.model import Category

CELSIUS = "°C"
LOGGER = logging.getLogger(__name__)


class OnOff(str, Enum):
    ON = "ON"
    OFF = "OFF"


class UnDef(str, Enum):
    NULL = "NULL"
    UNDEF = "UNDEF"


@dataclass(frozen=True)
class Quantity:
    value: Decimal
    unit: str

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


State = Decimal | Quantity | OnOff | str | datetime.datetime | datetime.date | datetime.time | UnDef


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    return None


def _to_string(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return hex_dump(bytes(value))
    number = _to_decimal(value)
    if number is not None:
        return str(number)
    return None


def _to_switch(value: Any) -> OnOff | None:
    if isinstance(value, bool):
        return OnOff.ON if value else OnOff.OFF
    return None


def _to_datetime(value: Any) -> State | None:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value
    return None


def to_state(category: Category, value: Any) -> State:
    """Convert a decoded value for a node of ``category``.

    ``None`` yields ``UnDef.NULL``; a value that does not fit the category
    logs a warning and yields ``UnDef.UNDEF``.
    """
    if value is None:
        return UnDef.NULL

    state: State | None
    if category is Category.TEMPERATURE:
        number = _to_decimal(value)
        state = Quantity(number, CELSIUS) if number is not None else None
    elif category is Category.NUMBER:
        state = _to_decimal(value)
    elif category is Category.SWITCH:
        state = _to_switch(value)
    elif category is Category.STRING:
        state = _to_string(value)
    elif category is Category.DATETIME:
        state = _to_datetime(value)
    else:
        state = None

    if state is None:
        LOGGER.warning("Unexpected value type %s for category %s", type(value).__name__, category.value)
        return UnDef.UNDEF
    return state


def command_value(state: Any) -> Any:
    """Unwrap a host command into the plain value handed to the encoder."""
    if isinstance(state, OnOff):
        return state is OnOff.ON
    if isinstance(state, Quantity):
        return state.value
    return state
