"""
Exception hierarchy for club_graphql.

This module defines the errors raised by the transport, dispatch and
subscription layers. Every error carries a human-readable ``message`` so
callers and UI code can surface it without inspecting the upstream shape.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ClubGraphQLError(Exception):
    """
    Base exception for all club_graphql operations.

    Attributes:
        message: Human-readable error message
        details: Additional error details as keyword arguments
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = kwargs


class ConfigurationError(ClubGraphQLError):
    """Raised when a transport or client configuration is invalid."""

    pass


class NotInitializedError(ClubGraphQLError):
    """
    Raised when a client is requested from an empty registry.

    Occurs when the request client is used before ``initialize`` or after
    ``close``. It is always surfaced to the caller and never retried.
    """

    def __init__(self, message: str = "GraphQL client is not initialized") -> None:
        super().__init__(message)


class TransportError(ClubGraphQLError):
    """
    Raised for network-level failures and non-success HTTP responses.

    Attributes:
        url: Endpoint the request targeted
        status_code: HTTP status code, if a response was received
        response_text: Raw response body, if one was read
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.url = url
        self.status_code = status_code
        self.response_text = response_text


class GraphQLResponseError(TransportError):
    """Raised when a response carries a GraphQL ``errors`` array."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        data: Optional[Any] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, url=url, status_code=status_code)
        self.errors = errors or []
        self.data = data

    @property
    def error_messages(self) -> List[str]:
        """Get list of error messages."""
        messages = []
        for error in self.errors:
            if isinstance(error, dict):
                messages.append(str(error.get("message", "Unknown error")))
            else:
                messages.append(str(error))
        return messages


class SubscriptionError(ClubGraphQLError):
    """
    The single error shape delivered through a subscription's error channel.

    Attributes:
        original_error: The upstream value this error was normalized from
    """

    def __init__(self, message: str, original_error: Optional[Any] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class SocketClosedError(SubscriptionError):
    """Raised into active subscriptions when the socket closes unexpectedly."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.reason = reason


class AuthError(ClubGraphQLError):
    """Raised when an auth session request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
