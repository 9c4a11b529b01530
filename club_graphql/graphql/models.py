"""
GraphQL request models.

This module defines the data structures sent to the GraphQL endpoint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

_OPERATION_HEADER = re.compile(
    r"^\s*(?:#[^\n]*\n\s*)*(query|mutation|subscription)\b\s*([_A-Za-z][_0-9A-Za-z]*)?"
)


class GraphQLOperationType(str, Enum):
    """GraphQL operation types."""

    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


def parse_operation_header(document: str) -> Tuple[GraphQLOperationType, Optional[str]]:
    """
    Read the operation type and name from the head of a document.

    Anonymous shorthand documents (``{ ... }``) are queries.

    Args:
        document: GraphQL document text

    Returns:
        Tuple of operation type and operation name (None when anonymous)
    """
    match = _OPERATION_HEADER.match(document)
    if not match:
        return GraphQLOperationType.QUERY, None
    return GraphQLOperationType(match.group(1)), match.group(2)


@dataclass
class GraphQLRequest:
    """A single GraphQL operation request body."""

    query: str
    variables: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {"query": self.query}

        if self.variables is not None:
            result["variables"] = self.variables
        if self.operation_name:
            result["operationName"] = self.operation_name
        if self.extensions:
            result["extensions"] = self.extensions

        return result
