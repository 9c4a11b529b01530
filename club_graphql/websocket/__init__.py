"""
WebSocket support for GraphQL subscriptions.

This module provides the ``graphql-transport-ws`` socket client and the
protocol frames it exchanges with the server.
"""

from .client import GraphQLSocketClient
from .core_models import (
    GRAPHQL_TRANSPORT_WS_PROTOCOL,
    ProtocolMessage,
    ProtocolMessageType,
    SocketConnectionState,
    SubscriptionSink,
)

__all__ = [
    "GraphQLSocketClient",
    "GRAPHQL_TRANSPORT_WS_PROTOCOL",
    "ProtocolMessage",
    "ProtocolMessageType",
    "SocketConnectionState",
    "SubscriptionSink",
]
