"""
Core WebSocket data models for GraphQL subscriptions.

This module contains the connection states and the ``graphql-transport-ws``
protocol frames exchanged with the server.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

GRAPHQL_TRANSPORT_WS_PROTOCOL = "graphql-transport-ws"


class SocketConnectionState(str, Enum):
    """WebSocket connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    DISPOSED = "disposed"


class ProtocolMessageType(str, Enum):
    """``graphql-transport-ws`` message types."""

    CONNECTION_INIT = "connection_init"
    CONNECTION_ACK = "connection_ack"
    PING = "ping"
    PONG = "pong"
    SUBSCRIBE = "subscribe"
    NEXT = "next"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass
class ProtocolMessage:
    """A single protocol frame."""

    type: ProtocolMessageType
    id: Optional[str] = None
    payload: Any = None

    def to_json(self) -> str:
        """Serialize the frame for transmission."""
        frame: Dict[str, Any] = {"type": self.type.value}
        if self.id is not None:
            frame["id"] = self.id
        if self.payload is not None:
            frame["payload"] = self.payload
        return json.dumps(frame)

    @classmethod
    def from_json(cls, raw: str) -> "ProtocolMessage":
        """
        Parse a frame received from the server.

        Raises:
            ValueError: If the frame is not a JSON object with a known type
        """
        frame = json.loads(raw)
        if not isinstance(frame, dict):
            raise ValueError(f"Frame is not an object: {raw[:100]}")

        try:
            message_type = ProtocolMessageType(frame.get("type"))
        except ValueError:
            raise ValueError(f"Unknown frame type: {frame.get('type')!r}") from None

        message_id = frame.get("id")
        return cls(
            type=message_type,
            id=str(message_id) if message_id is not None else None,
            payload=frame.get("payload"),
        )


@dataclass
class SubscriptionSink:
    """
    Callbacks receiving the events of one socket-level subscription.

    ``terminate`` is an internal notification that the socket client was
    disposed under the subscription; it is not a user-facing event.
    """

    next: Callable[[Any], None]
    error: Callable[[Any], None]
    complete: Callable[[], None]
    terminate: Optional[Callable[[], None]] = None
