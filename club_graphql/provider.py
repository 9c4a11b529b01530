"""
Composition root for club_graphql.

The provider ties the registry's lifecycle to an application scope and wires
the query cache, so application code only deals with one object.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from .auth.api import AuthClient
from .cache import QueryCache
from .config.loader import ConfigLoader
from .config.models import ClientSettings, GlobalConfig, TransportConfig
from .exceptions import ConfigurationError
from .graphql.dispatcher import Fetcher, graphql_fetcher
from .operations import Operation
from .registry import ClientRegistry, default_supports_persistent_connections
from .subscriptions.bridge import (
    CompleteCallback,
    DataCallback,
    ErrorCallback,
    SubscriptionHandle,
    open_subscription,
)
from .subscriptions.hook import SubscriptionHook

logger = logging.getLogger(__name__)


class GraphQLProvider:
    """
    Owns a client registry and a query cache for one application scope.

    Entering the provider initializes the registry with its transport
    configuration; leaving it clears the cache and closes the registry,
    which terminates any live subscription.

    Examples:
        ```python
        config = TransportConfig(
            http_endpoint="https://api.example.com/graphql",
            socket_endpoint="wss://api.example.com/graphql",
        )
        async with GraphQLProvider(config) as provider:
            member = await provider.execute(GET_MEMBER, {"id": "42"})
            with provider.use_subscription(TEE_SHEET_UPDATED, {"date": "2024-05-01"}) as hook:
                ...
        ```
    """

    def __init__(
        self,
        config: TransportConfig,
        registry: Optional[ClientRegistry] = None,
        cache: Optional[QueryCache] = None,
        settings: Optional[ClientSettings] = None,
        supports_persistent_connections: Callable[[], bool] = default_supports_persistent_connections,
    ):
        """
        Initialize provider.

        Args:
            config: Transport configuration for the registry
            registry: Registry to manage; a new one is created if omitted
            cache: Query cache; a new one is created if omitted
            settings: Client settings for a newly created registry
            supports_persistent_connections: Capability check for a newly
                created registry
        """
        self.config = config
        self.registry = registry or ClientRegistry(
            supports_persistent_connections=supports_persistent_connections,
            settings=settings,
        )
        self.cache = cache if cache is not None else QueryCache()
        self._auth: Optional[AuthClient] = None

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "GraphQLProvider":
        """
        Build a provider from a full configuration.

        Raises:
            ConfigurationError: If no transport endpoints are configured
        """
        if config.transport is None:
            raise ConfigurationError("No GraphQL endpoint configured")
        return cls(config.transport, settings=config.client)

    @classmethod
    def from_config_file(
        cls, config_file: Optional[Union[str, Path]] = None
    ) -> "GraphQLProvider":
        """Build a provider from a config file merged with environment variables."""
        return cls.from_config(ConfigLoader().load_config(config_file))

    async def start(self) -> None:
        """Initialize the registry."""
        await self.registry.initialize(self.config)

    async def stop(self) -> None:
        """Clear the cache and close the registry. Safe to call multiple times."""
        self.cache.clear()
        await self.registry.close()

    async def __aenter__(self) -> "GraphQLProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    def fetcher(
        self,
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Fetcher:
        """Deferred fetcher bound to this provider's registry."""
        return graphql_fetcher(self.registry, document, variables, headers)

    async def execute(
        self,
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Run a query or mutation once, bypassing the cache."""
        return await self.fetcher(document, variables, headers)()

    async def run(
        self,
        operation: Operation,
        variables: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        stale_time: Optional[float] = None,
    ) -> Any:
        """Run an operation descriptor against this provider's cache."""
        return await operation.fetch(
            self.registry, variables, cache=self.cache, headers=headers, stale_time=stale_time
        )

    def subscribe(
        self,
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> SubscriptionHandle:
        """Open a subscription through the bridge."""
        return open_subscription(
            self.registry, document, variables, on_data, on_error, on_complete
        )

    def use_subscription(
        self,
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        enabled: bool = True,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> SubscriptionHook:
        """Create an unmounted subscription hook; mount it or use it as a context manager."""
        return SubscriptionHook(
            self.registry,
            document,
            variables,
            enabled=enabled,
            on_data=on_data,
            on_error=on_error,
            on_complete=on_complete,
        )

    def auth(self, base_url: Optional[str] = None) -> AuthClient:
        """Auth session client sharing this provider's cookies."""
        if self._auth is None or base_url is not None:
            self._auth = AuthClient(self.registry, base_url=base_url)
        return self._auth
