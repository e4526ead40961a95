"""Bus client interfaces."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol

from ebusbind.core.model import DecodedFrame, MethodVariant


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


class BusClient(Protocol):
    def decode_frame(self, raw: bytes) -> DecodedFrame:
        """Decode a received telegram; raises DecodeError."""

    def build_request(
        self,
        collection_id: str,
        command_id: str,
        method: MethodVariant,
        target: int,
        values: Mapping[str, Any] | None = None,
    ) -> bytes:
        """Build a complete request telegram; raises EncodeError."""

    def send(self, raw: bytes, priority: int | None = None) -> int:
        """Queue a telegram for sending and return its queue id; raises TransportError."""

    def connection_status(self) -> ConnectionStatus:
        """Current state of the bus connection."""
