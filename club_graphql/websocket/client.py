"""
GraphQL subscription socket client.

This module provides a ``graphql-transport-ws`` client over aiohttp. The
socket connects lazily when the first subscription starts, multiplexes any
number of subscriptions, and closes again once the last one ends.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Any, Callable, Dict, Optional, Set

import aiohttp
from aiohttp import WSMsgType
from aiohttp.abc import AbstractCookieJar

from ..config.models import ClientSettings
from ..exceptions import SocketClosedError, SubscriptionError
from .core_models import (
    GRAPHQL_TRANSPORT_WS_PROTOCOL,
    ProtocolMessage,
    ProtocolMessageType,
    SocketConnectionState,
    SubscriptionSink,
)

logger = logging.getLogger(__name__)


class GraphQLSocketClient:
    """
    Persistent socket used for GraphQL subscriptions.

    Authentication rides the upgrade request: the client shares the cookie
    jar of the request client, so session cookies are sent with the
    handshake and no token is attached programmatically.

    Examples:
        ```python
        client = GraphQLSocketClient("wss://api.example.com/graphql", jar)

        unsubscribe = client.subscribe(
            {"query": "subscription { teeTimeUpdated { id status } }"},
            SubscriptionSink(
                next=lambda payload: print(payload["data"]),
                error=lambda err: print("error", err),
                complete=lambda: print("done"),
            ),
        )
        ...
        unsubscribe()
        await client.dispose()
        ```
    """

    def __init__(
        self,
        url: str,
        cookie_jar: Optional[AbstractCookieJar] = None,
        settings: Optional[ClientSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        connection_params: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize socket client.

        Args:
            url: Absolute ws:// or wss:// endpoint
            cookie_jar: Cookie jar shared with the request client
            settings: Client settings
            session: Optional existing aiohttp session to reuse
            connection_params: Payload of the ``connection_init`` frame
        """
        self.url = url
        self.settings = settings or ClientSettings()
        self._cookie_jar = cookie_jar
        self._session: Optional[aiohttp.ClientSession] = session
        self._external_session = session is not None
        self._connection_params = connection_params or {}

        self._websocket: Optional[aiohttp.ClientWebSocketResponse] = None
        self._state = SocketConnectionState.DISCONNECTED
        self._closing = False
        self._last_close_code: Optional[int] = None

        # Subscriptions by protocol id; ids whose subscribe frame went out
        self._sinks: Dict[str, SubscriptionSink] = {}
        self._started: Set[str] = set()
        self._ids = itertools.count(1)

        # None in the queue asks the send loop to close an idle socket
        self._send_queue: asyncio.Queue[Optional[ProtocolMessage]] = asyncio.Queue()

        # Tasks
        self._connection_task: Optional[asyncio.Task[None]] = None
        self._send_task: Optional[asyncio.Task[None]] = None
        self._ping_task: Optional[asyncio.Task[None]] = None

        # Statistics
        self._connect_count = 0
        self._messages_sent = 0
        self._messages_received = 0
        self._last_pong_time: Optional[float] = None

    @property
    def state(self) -> SocketConnectionState:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the socket is connected and acknowledged."""
        return self._state == SocketConnectionState.CONNECTED

    @property
    def is_disposed(self) -> bool:
        """Check if ``dispose`` has been called."""
        return self._state == SocketConnectionState.DISPOSED

    @property
    def active_subscriptions(self) -> int:
        """Number of subscriptions with live sinks."""
        return len(self._sinks)

    @property
    def statistics(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return {
            "connection_state": self._state.value,
            "active_subscriptions": len(self._sinks),
            "connect_count": self._connect_count,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "send_queue_size": self._send_queue.qsize(),
            "last_close_code": self._last_close_code,
            "last_pong_time": self._last_pong_time,
        }

    def subscribe(
        self, payload: Dict[str, Any], sink: SubscriptionSink
    ) -> Callable[[], None]:
        """
        Start one subscription over the shared socket.

        Must be called from inside a running event loop. Events for the
        subscription are delivered to ``sink`` in arrival order.

        Args:
            payload: ``subscribe`` payload (``query``, ``variables``, ...)
            sink: Callbacks for next/error/complete events

        Returns:
            Synchronous unsubscribe callable. After it returns the sink
            receives nothing further; the ``complete`` frame for the server
            is queued and sent asynchronously.

        Raises:
            SubscriptionError: If the client has been disposed or the payload
                cannot be encoded as JSON
        """
        if self._state == SocketConnectionState.DISPOSED:
            raise SubscriptionError("Socket client has been disposed")

        subscription_id = str(next(self._ids))
        message = ProtocolMessage(
            ProtocolMessageType.SUBSCRIBE, id=subscription_id, payload=payload
        )
        try:
            message.to_json()
        except (TypeError, ValueError) as e:
            raise SubscriptionError(
                f"Subscription payload is not JSON serializable: {e}", original_error=e
            ) from e

        self._sinks[subscription_id] = sink
        self._send_queue.put_nowait(message)
        self._ensure_connection()

        def unsubscribe() -> None:
            if self._sinks.pop(subscription_id, None) is None:
                return
            if self._state == SocketConnectionState.DISPOSED:
                return
            self._send_queue.put_nowait(
                ProtocolMessage(ProtocolMessageType.COMPLETE, id=subscription_id)
            )
            self._release_if_idle()

        return unsubscribe

    async def dispose(self) -> None:
        """
        Close the socket and terminate every subscription it owns.

        Sinks are detached before the first suspension point, so no
        next/error/complete callback fires once this coroutine has started.
        Each sink's ``terminate`` hook, when set, is told about the teardown.
        Safe to call multiple times.
        """
        if self._state == SocketConnectionState.DISPOSED:
            return

        self._state = SocketConnectionState.DISPOSED
        sinks = list(self._sinks.values())
        self._sinks.clear()
        self._started.clear()
        self._drain_send_queue()

        for sink in sinks:
            if sink.terminate is not None:
                self._invoke(sink.terminate)

        task = self._connection_task
        self._connection_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Error while stopping socket task: {e}")

        await self._teardown_connection()

        if self._session and not self._session.closed and not self._external_session:
            await self._session.close()
        self._session = None

        logger.info(f"Disposed GraphQL socket client for {self.url}")

    def _ensure_connection(self) -> None:
        """Start the connection task unless one is already running."""
        if self._connection_task is not None and not self._connection_task.done():
            return

        self._closing = False
        self._state = SocketConnectionState.CONNECTING
        self._connection_task = asyncio.get_running_loop().create_task(
            self._run(), name=f"graphql-ws-connection-{id(self)}"
        )
        self._connection_task.add_done_callback(self._on_task_done)

    def _release_if_idle(self) -> None:
        """Ask the send loop to close the socket once no subscription is left."""
        if self._sinks:
            return
        if self._connection_task is not None and not self._connection_task.done():
            self._send_queue.put_nowait(None)

    async def _run(self) -> None:
        """Connection lifecycle: handshake, pump frames, clean up."""
        failure: Optional[BaseException] = None
        try:
            await self._open()
            self._state = SocketConnectionState.CONNECTED
            self._connect_count += 1
            logger.info(f"Connected to GraphQL socket: {self.url}")

            self._send_task = asyncio.create_task(
                self._send_loop(), name=f"graphql-ws-send-{id(self)}"
            )
            if self.settings.socket_ping_interval:
                self._ping_task = asyncio.create_task(
                    self._ping_loop(), name=f"graphql-ws-ping-{id(self)}"
                )

            await self._receive_loop()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, SubscriptionError) as e:
            failure = e
            logger.error(f"GraphQL socket error for {self.url}: {e}")
        finally:
            await self._teardown_connection()
            if self._state != SocketConnectionState.DISPOSED:
                self._state = SocketConnectionState.DISCONNECTED

        self._after_disconnect(failure)

    async def _open(self) -> None:
        """Open the socket and complete the ``connection_init`` handshake."""
        self._started = set()

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(
                    ssl=None if self.settings.verify_ssl else False
                ),
                cookie_jar=self._cookie_jar,
                headers={"User-Agent": self.settings.user_agent},
            )
            self._external_session = False

        headers: Dict[str, str] = {}
        if self.settings.origin:
            headers["Origin"] = self.settings.origin

        self._websocket = await asyncio.wait_for(
            self._session.ws_connect(
                self.url,
                protocols=(GRAPHQL_TRANSPORT_WS_PROTOCOL,),
                headers=headers,
                max_msg_size=self.settings.max_message_size,
            ),
            timeout=self.settings.connect_timeout,
        )

        init = ProtocolMessage(
            ProtocolMessageType.CONNECTION_INIT, payload=self._connection_params
        )
        await self._websocket.send_str(init.to_json())

        reply = await asyncio.wait_for(
            self._websocket.receive(), timeout=self.settings.socket_ack_timeout
        )
        if reply.type != WSMsgType.TEXT:
            raise SocketClosedError(
                "GraphQL socket closed before connection_ack",
                code=self._websocket.close_code,
            )

        try:
            ack = ProtocolMessage.from_json(reply.data)
        except ValueError as e:
            raise SubscriptionError(f"Invalid connection_ack frame: {e}") from e

        if ack.type != ProtocolMessageType.CONNECTION_ACK:
            raise SubscriptionError(f"Expected connection_ack, got {ack.type.value}")

    async def _receive_loop(self) -> None:
        """Dispatch inbound frames until the socket closes."""
        websocket = self._websocket
        if websocket is None:
            return

        async for msg in websocket:
            if msg.type == WSMsgType.TEXT:
                self._messages_received += 1
                self._handle_frame(msg.data)
            elif msg.type == WSMsgType.ERROR:
                raise SocketClosedError(
                    f"WebSocket error: {websocket.exception()}",
                    code=websocket.close_code,
                )

    def _handle_frame(self, raw: str) -> None:
        """Route one protocol frame to its subscription sink."""
        try:
            message = ProtocolMessage.from_json(raw)
        except ValueError as e:
            logger.warning(f"Dropping malformed frame from {self.url}: {e}")
            return

        message_type = message.type

        if message_type == ProtocolMessageType.PING:
            self._send_queue.put_nowait(ProtocolMessage(ProtocolMessageType.PONG))
            return
        if message_type == ProtocolMessageType.PONG:
            self._last_pong_time = time.time()
            return

        if message_type not in (
            ProtocolMessageType.NEXT,
            ProtocolMessageType.ERROR,
            ProtocolMessageType.COMPLETE,
        ):
            logger.debug(f"Ignoring unexpected {message_type.value} frame")
            return

        if message.id is None:
            logger.warning(f"Dropping {message_type.value} frame without id")
            return

        if message_type == ProtocolMessageType.NEXT:
            sink = self._sinks.get(message.id)
            if sink is not None:
                self._invoke(sink.next, message.payload)
            return

        sink = self._sinks.pop(message.id, None)
        self._started.discard(message.id)
        if sink is None:
            return

        if message_type == ProtocolMessageType.ERROR:
            self._invoke(sink.error, message.payload)
        else:
            self._invoke(sink.complete)
        self._release_if_idle()

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        """Run a sink callback, isolating its failures from the socket."""
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Error in subscription callback: {e}", exc_info=True)

    async def _send_loop(self) -> None:
        """Background task writing queued frames to the socket."""
        websocket = self._websocket
        if websocket is None:
            return

        while True:
            message = await self._send_queue.get()

            if message is None:
                if not self._sinks:
                    self._closing = True
                    self._state = SocketConnectionState.CLOSING
                    logger.debug(f"No active subscriptions, closing {self.url}")
                    await websocket.close()
                    return
                continue

            if message.type == ProtocolMessageType.SUBSCRIBE:
                if message.id not in self._sinks:
                    continue
            elif message.type == ProtocolMessageType.COMPLETE:
                if message.id not in self._started:
                    continue

            try:
                text = message.to_json()
            except (TypeError, ValueError) as e:
                logger.error(f"Dropping unencodable {message.type.value} frame: {e}")
                self._reject(message, e)
                continue

            if message.type == ProtocolMessageType.SUBSCRIBE:
                self._started.add(str(message.id))
            elif message.type == ProtocolMessageType.COMPLETE:
                self._started.discard(str(message.id))

            try:
                await websocket.send_str(text)
            except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
                logger.error(f"Error sending {message.type.value} frame: {e}")
                await websocket.close(code=aiohttp.WSCloseCode.INTERNAL_ERROR)
                return

            self._messages_sent += 1

    def _reject(self, message: ProtocolMessage, cause: Exception) -> None:
        """Fail the subscription whose frame could not be sent."""
        if message.type != ProtocolMessageType.SUBSCRIBE or message.id is None:
            return
        sink = self._sinks.pop(message.id, None)
        if sink is None:
            return
        error = SubscriptionError(
            f"Subscription payload is not JSON serializable: {cause}", original_error=cause
        )
        self._invoke(sink.error, error)
        self._release_if_idle()

    async def _ping_loop(self) -> None:
        """Background task sending keep-alive pings."""
        interval = self.settings.socket_ping_interval or 0
        while True:
            await asyncio.sleep(interval)
            self._send_queue.put_nowait(ProtocolMessage(ProtocolMessageType.PING))

    async def _teardown_connection(self) -> None:
        """Stop background tasks and close the socket."""
        send_task = self._send_task
        if self._closing and send_task is not None and not send_task.done():
            # The send loop is running the idle close handshake
            await asyncio.wait({send_task}, timeout=self.settings.connect_timeout)

        for task in (self._send_task, self._ping_task):
            if task is None:
                continue
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Task {task.get_name()} failed: {e}")

        self._send_task = None
        self._ping_task = None

        websocket = self._websocket
        self._websocket = None
        if websocket is not None:
            if not websocket.closed:
                await websocket.close()
            self._last_close_code = websocket.close_code

    def _after_disconnect(self, failure: Optional[BaseException]) -> None:
        """Settle subscriptions left over when a connection ends."""
        if self._state == SocketConnectionState.DISPOSED:
            return

        if not self._sinks:
            self._drain_send_queue()
            return

        if self._closing and failure is None:
            # Subscriptions arrived while an idle socket was closing
            self._ensure_connection()
            return

        if isinstance(failure, SubscriptionError):
            error: SubscriptionError = failure
        elif failure is not None:
            error = SocketClosedError(f"GraphQL socket connection failed: {failure}")
            error.__cause__ = failure
        else:
            error = SocketClosedError(
                f"GraphQL socket closed unexpectedly (code {self._last_close_code})",
                code=self._last_close_code,
            )

        sinks = list(self._sinks.values())
        self._sinks.clear()
        self._started.clear()
        self._drain_send_queue()

        logger.warning(f"Terminating {len(sinks)} subscription(s): {error.message}")
        for sink in sinks:
            self._invoke(sink.error, error)

    def _drain_send_queue(self) -> None:
        while not self._send_queue.empty():
            self._send_queue.get_nowait()

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        """Log unexpected failures of the connection task."""
        if task.cancelled():
            logger.debug(f"Task {task.get_name()} was cancelled")
            return
        exception = task.exception()
        if exception is not None:
            logger.error(f"Task {task.get_name()} failed: {exception}")
