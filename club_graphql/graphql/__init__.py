"""
GraphQL request path for club_graphql.

This module provides the credentialed request client and the deferred
dispatcher used by every generated query and mutation.
"""

from .client import GraphQLRequestClient
from .dispatcher import Fetcher, graphql_fetcher
from .models import GraphQLOperationType, GraphQLRequest, parse_operation_header

__all__ = [
    "GraphQLRequestClient",
    "GraphQLRequest",
    "GraphQLOperationType",
    "parse_operation_header",
    "Fetcher",
    "graphql_fetcher",
]
