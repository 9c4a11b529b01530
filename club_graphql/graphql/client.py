"""
GraphQL request client.

This module provides the one-shot HTTP client used for queries and mutations.
Every request rides the same cookie jar, so ambient credentials (session
cookies) are attached uniformly and are never varied per call.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Mapping, Optional

import aiohttp
from aiohttp.abc import AbstractCookieJar

from ..config.models import ClientSettings
from ..exceptions import GraphQLResponseError, TransportError
from .models import GraphQLRequest

logger = logging.getLogger(__name__)


class GraphQLRequestClient:
    """
    Credentialed HTTP client bound to a single GraphQL endpoint.

    The underlying ``aiohttp.ClientSession`` is created lazily on first use,
    inside the running event loop, and shares the cookie jar handed over by
    the client registry.

    Examples:
        ```python
        jar = aiohttp.CookieJar(unsafe=True)
        client = GraphQLRequestClient("https://api.example.com/graphql", jar)
        data = await client.request(
            "query GetMember($id: ID!) { member(id: $id) { id name } }",
            {"id": "42"},
        )
        await client.close()
        ```
    """

    def __init__(
        self,
        endpoint: str,
        cookie_jar: Optional[AbstractCookieJar] = None,
        settings: Optional[ClientSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize request client.

        Args:
            endpoint: Absolute GraphQL HTTP endpoint
            cookie_jar: Cookie jar shared with the socket client
            settings: Client settings
            session: Optional existing aiohttp session to reuse
        """
        self.endpoint = endpoint
        self.settings = settings or ClientSettings()
        self._cookie_jar = cookie_jar
        self._session: Optional[aiohttp.ClientSession] = session
        self._external_session = session is not None
        self._closed = False

        # Statistics
        self._request_count = 0
        self._error_count = 0

    @property
    def cookie_jar(self) -> Optional[AbstractCookieJar]:
        """Cookie jar carrying the ambient credentials."""
        return self._cookie_jar

    @property
    def closed(self) -> bool:
        """Whether ``close`` has been called."""
        return self._closed

    def _base_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.settings.user_agent}
        if self.settings.origin:
            headers["Origin"] = self.settings.origin
        headers.update(self.settings.default_headers)
        return headers

    async def get_session(self) -> aiohttp.ClientSession:
        """
        Get the HTTP session, creating it on first use.

        Raises:
            TransportError: If the client has been closed
        """
        if self._closed:
            raise TransportError("Request client is closed", url=self.endpoint)

        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=None if self.settings.verify_ssl else False)
            self._session = aiohttp.ClientSession(
                connector=connector,
                cookie_jar=self._cookie_jar,
                headers=self._base_headers(),
                # No client-imposed timeout; timeout policy belongs to the caller
                timeout=aiohttp.ClientTimeout(total=None),
                raise_for_status=False,
            )
            self._external_session = False
            logger.debug(f"HTTP session created for {self.endpoint}")

        return self._session

    async def request(
        self,
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Perform exactly one GraphQL round trip.

        Args:
            document: GraphQL query or mutation document
            variables: Operation variables
            headers: Extra headers for this request

        Returns:
            The ``data`` member of the response

        Raises:
            TransportError: On network failure, non-2xx status or invalid JSON
            GraphQLResponseError: If the response carries an ``errors`` array
        """
        session = await self.get_session()

        payload = GraphQLRequest(
            query=document,
            variables=dict(variables) if variables is not None else None,
        ).to_dict()
        request_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        self._request_count += 1
        start_time = time.monotonic()

        try:
            async with session.post(
                self.endpoint, json=payload, headers=request_headers
            ) as response:
                status = response.status
                response_text = await response.text()
        except aiohttp.ClientError as e:
            self._error_count += 1
            logger.warning(f"GraphQL network error for {self.endpoint}: {e}")
            raise TransportError(
                f"GraphQL network error: {e}", url=self.endpoint
            ) from e

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug(f"POST {self.endpoint} -> {status} in {elapsed_ms:.1f}ms")

        try:
            body = json.loads(response_text) if response_text else None
        except ValueError:
            body = None

        if not 200 <= status < 300:
            self._error_count += 1
            message = f"GraphQL request failed with HTTP {status}"
            errors = body.get("errors") if isinstance(body, dict) else None
            if isinstance(errors, list) and errors:
                raise GraphQLResponseError(
                    f"{message}: {_join_error_messages(errors)}",
                    errors=errors,
                    data=body.get("data"),
                    url=self.endpoint,
                    status_code=status,
                )
            raise TransportError(
                message,
                url=self.endpoint,
                status_code=status,
                response_text=response_text,
            )

        if not isinstance(body, dict):
            self._error_count += 1
            raise TransportError(
                f"Invalid JSON response: {response_text[:200]}",
                url=self.endpoint,
                status_code=status,
                response_text=response_text,
            )

        errors = body.get("errors")
        if errors:
            self._error_count += 1
            error_list = errors if isinstance(errors, list) else [errors]
            raise GraphQLResponseError(
                _join_error_messages(error_list),
                errors=error_list,
                data=body.get("data"),
                url=self.endpoint,
                status_code=status,
            )

        return body.get("data")

    async def close(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True

        if self._session and not self._session.closed and not self._external_session:
            await self._session.close()
        self._session = None

        logger.debug(
            f"Request client closed. requests={self._request_count}, "
            f"errors={self._error_count}"
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get request metrics."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
            "session_active": self._session is not None and not self._session.closed,
        }


def _join_error_messages(errors: Any) -> str:
    messages = []
    for error in errors:
        if isinstance(error, dict) and error.get("message"):
            messages.append(str(error["message"]))
        else:
            messages.append(json.dumps(error, default=str))
    return "; ".join(messages) or "Unknown GraphQL error"
