"""
Async GraphQL data-access layer for club-management applications.

This package provides the transport and subscription core used by generated
GraphQL operations: a client registry with a credentialed request client and
a lazily connected subscription socket, a deferred request dispatcher, a
subscription bridge with uniform error handling, and a lifecycle-bound
subscription hook.

Features:
- aiohttp request client sharing one cookie jar with the socket upgrade
- graphql-transport-ws subscriptions multiplexed over one socket
- Deferred fetchers for downstream caches, plus a small query cache
- Pydantic configuration loaded from files and environment variables
"""

from .auth import AuthClient, AuthUser, RefreshResponse, SignInResponse
from .cache import QueryCache
from .config import ClientSettings, ConfigLoader, GlobalConfig, LoggingConfig, TransportConfig
from .exceptions import (
    AuthError,
    ClubGraphQLError,
    ConfigurationError,
    GraphQLResponseError,
    NotInitializedError,
    SocketClosedError,
    SubscriptionError,
    TransportError,
)
from .graphql import Fetcher, GraphQLOperationType, GraphQLRequestClient, graphql_fetcher
from .operations import Operation
from .provider import GraphQLProvider
from .registry import ClientRegistry, default_supports_persistent_connections
from .subscriptions import (
    SubscriptionHandle,
    SubscriptionHook,
    SubscriptionHookState,
    SubscriptionState,
    normalize_subscription_error,
    open_subscription,
    subscribe_iter,
)
from .websocket import GraphQLSocketClient

__all__ = [
    # Configuration
    "TransportConfig",
    "ClientSettings",
    "LoggingConfig",
    "GlobalConfig",
    "ConfigLoader",
    # Core
    "ClientRegistry",
    "default_supports_persistent_connections",
    "GraphQLRequestClient",
    "GraphQLSocketClient",
    "Fetcher",
    "graphql_fetcher",
    "GraphQLOperationType",
    # Subscriptions
    "SubscriptionHandle",
    "SubscriptionState",
    "SubscriptionHook",
    "SubscriptionHookState",
    "open_subscription",
    "subscribe_iter",
    "normalize_subscription_error",
    # Composition
    "GraphQLProvider",
    "Operation",
    "QueryCache",
    # Auth
    "AuthClient",
    "AuthUser",
    "SignInResponse",
    "RefreshResponse",
    # Exceptions
    "ClubGraphQLError",
    "ConfigurationError",
    "NotInitializedError",
    "TransportError",
    "GraphQLResponseError",
    "SubscriptionError",
    "SocketClosedError",
    "AuthError",
]

__version__ = "0.1.0"
