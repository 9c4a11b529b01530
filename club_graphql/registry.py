"""
Client registry for club_graphql.

The registry owns at most one request client and at most one socket client,
both bound to the configuration passed to the most recent ``initialize``.
It is an explicit object owned by the composition root and handed to the
dispatcher and the subscription bridge, so parallel registries can coexist
in tests.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Optional

import aiohttp

from .config.models import ClientSettings, TransportConfig
from .exceptions import ConfigurationError, NotInitializedError
from .graphql.client import GraphQLRequestClient
from .websocket.client import GraphQLSocketClient

logger = logging.getLogger(__name__)

DISABLE_SUBSCRIPTIONS_ENV = "CLUB_GRAPHQL_DISABLE_SUBSCRIPTIONS"

RequestClientFactory = Callable[
    [TransportConfig, aiohttp.CookieJar, ClientSettings], GraphQLRequestClient
]
SocketClientFactory = Callable[
    [TransportConfig, aiohttp.CookieJar, ClientSettings], GraphQLSocketClient
]


def default_supports_persistent_connections() -> bool:
    """
    Default capability check for persistent sockets.

    Returns False when ``CLUB_GRAPHQL_DISABLE_SUBSCRIPTIONS`` is set to a
    truthy value, e.g. for batch jobs that only run queries.
    """
    value = os.environ.get(DISABLE_SUBSCRIPTIONS_ENV, "")
    return value.strip().lower() not in ("1", "true", "yes")


def _default_request_client(
    config: TransportConfig, cookie_jar: aiohttp.CookieJar, settings: ClientSettings
) -> GraphQLRequestClient:
    return GraphQLRequestClient(config.http_endpoint, cookie_jar=cookie_jar, settings=settings)


def _default_socket_client(
    config: TransportConfig, cookie_jar: aiohttp.CookieJar, settings: ClientSettings
) -> GraphQLSocketClient:
    if config.socket_endpoint is None:
        raise ConfigurationError("socket_endpoint is required for the socket client")
    return GraphQLSocketClient(config.socket_endpoint, cookie_jar=cookie_jar, settings=settings)


class ClientRegistry:
    """
    Lifecycle owner of the request client and the socket client.

    ``initialize`` and ``close`` are the only writers and are serialized
    with an ``asyncio.Lock``. Readers (``current_request_client`` and
    ``current_socket_client``) are synchronous and never suspend, so a
    lookup always sees one consistent client pair.

    Examples:
        ```python
        registry = ClientRegistry()
        await registry.initialize(
            TransportConfig(
                http_endpoint="https://api.example.com/graphql",
                socket_endpoint="wss://api.example.com/graphql",
            )
        )
        client = registry.current_request_client()
        ...
        await registry.close()
        ```
    """

    def __init__(
        self,
        supports_persistent_connections: Callable[[], bool] = default_supports_persistent_connections,
        settings: Optional[ClientSettings] = None,
        request_client_factory: Optional[RequestClientFactory] = None,
        socket_client_factory: Optional[SocketClientFactory] = None,
    ):
        """
        Initialize an empty registry.

        Args:
            supports_persistent_connections: Capability check consulted on
                every ``initialize`` before a socket client is built
            settings: Settings handed to both clients
            request_client_factory: Builds the request client
            socket_client_factory: Builds the socket client
        """
        self.settings = settings or ClientSettings()
        self._supports_persistent_connections = supports_persistent_connections
        self._request_client_factory = request_client_factory or _default_request_client
        self._socket_client_factory = socket_client_factory or _default_socket_client

        self._request_client: Optional[GraphQLRequestClient] = None
        self._socket_client: Optional[GraphQLSocketClient] = None
        self._active_config: Optional[TransportConfig] = None
        self._cookie_jar: Optional[aiohttp.CookieJar] = None
        self._lock = asyncio.Lock()

    @property
    def active_config(self) -> Optional[TransportConfig]:
        """Configuration of the current client pair, if initialized."""
        return self._active_config

    @property
    def is_initialized(self) -> bool:
        """Check if the registry currently holds a request client."""
        return self._request_client is not None

    @property
    def cookie_jar(self) -> Optional[aiohttp.CookieJar]:
        """Cookie jar shared by the current client pair."""
        return self._cookie_jar

    async def initialize(self, config: TransportConfig) -> None:
        """
        Build the client pair for ``config``.

        A populated registry is closed first, so the previous socket and
        HTTP session are released before the new clients are installed.

        Args:
            config: Transport configuration
        """
        async with self._lock:
            if self._request_client is not None:
                logger.info("Registry already initialized, closing previous clients")
                await self._close_clients()

            # One jar per initialization; cookies set over HTTP ride the upgrade
            cookie_jar = aiohttp.CookieJar(unsafe=True)
            request_client = self._request_client_factory(config, cookie_jar, self.settings)

            socket_client: Optional[GraphQLSocketClient] = None
            if config.socket_endpoint is None:
                logger.debug("No socket endpoint configured, subscriptions disabled")
            elif not self._supports_persistent_connections():
                logger.info("Persistent connections unsupported, subscriptions disabled")
            else:
                socket_client = self._socket_client_factory(config, cookie_jar, self.settings)

            self._cookie_jar = cookie_jar
            self._request_client = request_client
            self._socket_client = socket_client
            self._active_config = config

            logger.info(
                f"GraphQL clients initialized: http={config.http_endpoint}, "
                f"socket={'enabled' if socket_client else 'disabled'}"
            )

    def current_request_client(self) -> GraphQLRequestClient:
        """
        Get the current request client.

        Raises:
            NotInitializedError: Before ``initialize`` or after ``close``
        """
        if self._request_client is None:
            raise NotInitializedError()
        return self._request_client

    def current_socket_client(self) -> Optional[GraphQLSocketClient]:
        """Get the current socket client, or None if subscriptions are unavailable."""
        return self._socket_client

    async def close(self) -> None:
        """
        Dispose the socket client, close the request client and clear state.

        Safe to call multiple times.
        """
        async with self._lock:
            if self._request_client is None and self._socket_client is None:
                return
            await self._close_clients()
            logger.info("GraphQL clients closed")

    async def _close_clients(self) -> None:
        socket_client = self._socket_client
        request_client = self._request_client

        # Readers see an empty registry before any teardown suspends
        self._socket_client = None
        self._request_client = None
        self._active_config = None
        self._cookie_jar = None

        if socket_client is not None:
            try:
                await socket_client.dispose()
            except Exception as e:
                logger.error(f"Error disposing socket client: {e}")

        if request_client is not None:
            try:
                await request_client.close()
            except Exception as e:
                logger.error(f"Error closing request client: {e}")
