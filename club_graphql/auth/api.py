"""
Auth session API.

Cookie-based session routes living next to the GraphQL endpoint. Requests
go through the request client's HTTP session, so the session cookies set
here are the same ones the GraphQL requests and the socket upgrade carry.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import aiohttp
from pydantic import ValidationError

from ..exceptions import AuthError, NotInitializedError
from .models import AuthUser, LoginCredentials, RefreshResponse, SignInResponse

if TYPE_CHECKING:
    from ..registry import ClientRegistry

logger = logging.getLogger(__name__)


class AuthClient:
    """
    Client for the ``sign-in``, ``sign-out``, ``refresh`` and ``me`` routes.

    Examples:
        ```python
        auth = AuthClient(registry)
        result = await auth.sign_in("member@example.com", "secret")
        user = await auth.get_session()
        await auth.sign_out()
        ```
    """

    def __init__(self, registry: "ClientRegistry", base_url: Optional[str] = None):
        """
        Initialize auth client.

        Args:
            registry: Registry whose request client carries the cookies
            base_url: API origin; defaults to the origin of the GraphQL endpoint
        """
        self.registry = registry
        self._base_url = base_url.rstrip("/") if base_url else None

    @property
    def base_url(self) -> str:
        """Origin the auth routes are resolved against."""
        if self._base_url is not None:
            return self._base_url
        config = self.registry.active_config
        if config is None:
            raise NotInitializedError()
        parsed = urlparse(config.http_endpoint)
        return f"{parsed.scheme}://{parsed.netloc}"

    def _url(self, endpoint: str) -> str:
        auth_path = self.registry.settings.auth_path.rstrip("/")
        return f"{self.base_url}{auth_path}{endpoint}"

    async def _send(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, Any]:
        """Issue one request and return status and parsed body."""
        settings = self.registry.settings
        session = await self.registry.current_request_client().get_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout or settings.auth_timeout)

        try:
            async with session.request(
                method,
                self._url(endpoint),
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=client_timeout,
            ) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError as e:
            logger.error(f"Auth request timeout: {endpoint}")
            raise AuthError("Request timeout") from e
        except aiohttp.ClientError as e:
            logger.error(f"Auth network error: {e}")
            raise AuthError("Network error - unable to reach server") from e

        try:
            body = json.loads(text) if text else None
        except ValueError:
            body = None
        return status, body

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Issue one request, raising on failure and unwrapping envelopes."""
        status, body = await self._send(method, endpoint, payload, timeout)

        if not 200 <= status < 300:
            message = f"HTTP {status}"
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or message
            logger.error(f"Auth error response: {status} {message}")
            raise AuthError(str(message), status_code=status)

        # Wrapped format: {"success": true, "data": {...}}
        if isinstance(body, dict) and "success" in body and "data" in body:
            return body["data"]
        return body

    async def sign_in(self, email: str, password: str) -> SignInResponse:
        """
        Sign in with email and password. The server sets the session cookies.

        Raises:
            AuthError: On rejected credentials, timeout or network failure
        """
        credentials = LoginCredentials(email=email, password=password)
        data = await self._request(
            "POST", "/signin", payload=credentials.model_dump(by_alias=True)
        )
        try:
            result = SignInResponse.model_validate(data)
        except ValidationError as e:
            raise AuthError(f"Invalid sign-in response: {e}") from e
        logger.info(f"Signed in as {result.user.id}")
        return result

    async def sign_out(self) -> None:
        """Sign out. Failures are logged and ignored; cookies are cleared locally."""
        try:
            await self._request("POST", "/signout")
        except AuthError as e:
            logger.warning(f"Sign out request failed: {e.message}")
        jar = self.registry.cookie_jar
        if jar is not None:
            jar.clear()

    async def refresh_session(self) -> RefreshResponse:
        """
        Refresh the session using the refresh cookie.

        Raises:
            AuthError: If the refresh fails
        """
        data = await self._request(
            "POST", "/refresh", timeout=self.registry.settings.refresh_timeout
        )
        try:
            return RefreshResponse.model_validate(data)
        except ValidationError as e:
            raise AuthError(f"Invalid refresh response: {e}") from e

    async def get_session(self) -> Optional[AuthUser]:
        """
        Get the signed-in user, or None.

        A 401 means nobody is signed in and returns None quietly. Other
        failures are logged and also return None.
        """
        try:
            status, body = await self._send("GET", "/me")
        except AuthError as e:
            logger.error(f"get_session failed: {e.message}")
            return None

        if status == 401:
            return None
        if not 200 <= status < 300:
            logger.error(f"get_session error: HTTP {status}")
            return None
        if not isinstance(body, dict):
            return None

        data = body.get("data") or body
        try:
            return AuthUser.model_validate(data)
        except ValidationError:
            logger.warning("get_session returned an unexpected user payload")
            return None

    async def get_me(self) -> Optional[AuthUser]:
        """Alias for :meth:`get_session`."""
        return await self.get_session()

    async def check_session(self) -> Optional[AuthUser]:
        """
        Check for a valid session.

        No refresh is attempted here; refreshing only helps while a user is
        signed in and is left to the caller's refresh schedule.
        """
        return await self.get_session()
