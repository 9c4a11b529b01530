"""
Request dispatch for generated GraphQL operations.

Every generated query or mutation helper calls :func:`graphql_fetcher`. It returns a
deferred, zero-argument coroutine function so a downstream cache decides
exactly when the network call fires.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

if TYPE_CHECKING:
    from ..registry import ClientRegistry

Fetcher = Callable[[], Awaitable[Any]]


def graphql_fetcher(
    registry: "ClientRegistry",
    document: str,
    variables: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> Fetcher:
    """
    Build a deferred fetcher for one query or mutation.

    Nothing happens until the returned callable is awaited. Each invocation
    resolves the registry's current request client at call time and performs
    exactly one round trip. No retry, caching or deduplication happens here.

    Args:
        registry: Client registry owning the request client
        document: GraphQL document
        variables: Operation variables
        headers: Extra headers for the request

    Returns:
        Zero-argument coroutine function resolving to the response data

    Raises (when awaited):
        NotInitializedError: If the registry holds no request client
        TransportError: On transport-level failure
        GraphQLResponseError: If the response carries GraphQL errors
    """
    frozen_variables = dict(variables) if variables is not None else None
    frozen_headers = dict(headers) if headers else None

    async def fetch() -> Any:
        client = registry.current_request_client()
        return await client.request(document, frozen_variables, frozen_headers)

    return fetch
