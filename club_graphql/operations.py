"""
Operation descriptors.

An :class:`Operation` pairs a GraphQL document with its name and kind and
offers the helpers generated code hangs off each operation: a cache key, a
deferred fetcher, a cached fetch and a subscription entry point.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

from .cache import QueryCache, QueryKey
from .exceptions import ConfigurationError
from .graphql.dispatcher import Fetcher, graphql_fetcher
from .graphql.models import GraphQLOperationType, parse_operation_header
from .subscriptions.bridge import (
    CompleteCallback,
    DataCallback,
    ErrorCallback,
    SubscriptionHandle,
    open_subscription,
)
from .subscriptions.hook import SubscriptionHook

if TYPE_CHECKING:
    from .registry import ClientRegistry


@dataclass(frozen=True)
class Operation:
    """
    A named GraphQL operation.

    Attributes:
        name: Operation name, used as the first element of cache keys
        document: GraphQL document text
        kind: Query, mutation or subscription
        invalidates: Names of queries whose cached results a successful
            mutation makes stale
    """

    name: str
    document: str
    kind: GraphQLOperationType
    invalidates: Tuple[str, ...] = ()

    @classmethod
    def from_document(
        cls,
        document: str,
        name: Optional[str] = None,
        invalidates: Tuple[str, ...] = (),
    ) -> "Operation":
        """
        Build an operation, reading kind and name from the document.

        Raises:
            ConfigurationError: If no name is given and the document is anonymous
        """
        kind, parsed_name = parse_operation_header(document)
        operation_name = name or parsed_name
        if not operation_name:
            raise ConfigurationError("Anonymous operations need an explicit name")
        return cls(
            name=operation_name, document=document, kind=kind, invalidates=tuple(invalidates)
        )

    def cache_key(self, variables: Optional[Mapping[str, Any]] = None) -> QueryKey:
        """``(name,)`` without variables, ``(name, canonical_json)`` with them."""
        if variables is None:
            return (self.name,)
        return (self.name, json.dumps(variables, sort_keys=True, default=repr))

    def fetcher(
        self,
        registry: "ClientRegistry",
        variables: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Fetcher:
        """Deferred fetcher for a query or mutation."""
        if self.kind == GraphQLOperationType.SUBSCRIPTION:
            raise ConfigurationError(f"{self.name} is a subscription and has no fetcher")
        return graphql_fetcher(registry, self.document, variables, headers)

    async def fetch(
        self,
        registry: "ClientRegistry",
        variables: Optional[Mapping[str, Any]] = None,
        cache: Optional[QueryCache] = None,
        headers: Optional[Mapping[str, str]] = None,
        stale_time: Optional[float] = None,
    ) -> Any:
        """
        Run the operation.

        Queries go through ``cache`` when one is given. Mutations always hit
        the network and, on success, invalidate the cached queries named in
        ``invalidates``.
        """
        fetcher = self.fetcher(registry, variables, headers)

        if self.kind == GraphQLOperationType.QUERY and cache is not None:
            return await cache.fetch_query(self.cache_key(variables), fetcher, stale_time)

        result = await fetcher()

        if cache is not None:
            for name in self.invalidates:
                cache.invalidate(name)
        return result

    def _require_subscription(self) -> None:
        if self.kind != GraphQLOperationType.SUBSCRIPTION:
            raise ConfigurationError(f"{self.name} is a {self.kind.value}, not a subscription")

    def subscribe(
        self,
        registry: "ClientRegistry",
        variables: Optional[Mapping[str, Any]] = None,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> SubscriptionHandle:
        """Open the subscription through the bridge."""
        self._require_subscription()
        return open_subscription(
            registry, self.document, variables, on_data, on_error, on_complete
        )

    def use(
        self,
        registry: "ClientRegistry",
        variables: Optional[Mapping[str, Any]] = None,
        enabled: bool = True,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> SubscriptionHook:
        """Create an unmounted hook bound to this subscription."""
        self._require_subscription()
        return SubscriptionHook(
            registry,
            self.document,
            variables,
            enabled=enabled,
            on_data=on_data,
            on_error=on_error,
            on_complete=on_complete,
        )
