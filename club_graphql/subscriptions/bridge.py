"""
Subscription bridge.

Turns the push-based socket protocol into a callback handle with a small
state machine, error normalization and deterministic teardown, plus an
async iterator for pull-style consumers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Tuple

from ..exceptions import SubscriptionError
from ..graphql.models import GraphQLRequest, parse_operation_header
from ..websocket.core_models import SubscriptionSink
from .errors import normalize_subscription_error

if TYPE_CHECKING:
    from ..registry import ClientRegistry

logger = logging.getLogger(__name__)

DataCallback = Callable[[Any], None]
ErrorCallback = Callable[[SubscriptionError], None]
CompleteCallback = Callable[[], None]


class SubscriptionState(str, Enum):
    """Lifecycle states of one bridged subscription."""

    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {SubscriptionState.COMPLETED, SubscriptionState.ERRORED, SubscriptionState.CANCELLED}
)


class SubscriptionHandle:
    """
    Cancellation handle owning exactly one socket-level subscription.

    Calling the handle is the same as calling :meth:`cancel`. Once the
    handle reaches a terminal state no callback fires again.
    """

    def __init__(
        self,
        query: str,
        variables: Optional[Mapping[str, Any]] = None,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ):
        self.query = query
        self.variables = dict(variables) if variables is not None else None
        self._on_data = on_data
        self._on_error = on_error
        self._on_complete = on_complete
        self._state = SubscriptionState.CONNECTING
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._on_terminate: Optional[CompleteCallback] = None
        self._available = True
        self._events = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def closed(self) -> bool:
        """Whether the subscription reached a terminal state."""
        return self._state in TERMINAL_STATES

    @property
    def live(self) -> bool:
        return not self.closed

    @property
    def available(self) -> bool:
        """False when the handle was returned because no socket was registered."""
        return self._available

    @property
    def events_received(self) -> int:
        return self._events

    def __call__(self) -> None:
        self.cancel()

    def cancel(self) -> None:
        """
        Stop delivery and release the socket-level subscription.

        Callbacks stop before this returns even though the server is told
        asynchronously. Calling it again, or after the subscription ended,
        does nothing. Never raises.
        """
        if self.closed:
            return
        self._state = SubscriptionState.CANCELLED
        self._release()

    def _release(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
        except Exception as e:
            logger.warning(f"Error while unsubscribing: {e}")

    def _attach(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        if self.closed:
            self._release()

    def _mark_unavailable(self) -> None:
        self._available = False
        self._state = SubscriptionState.ERRORED

    def sink(self) -> SubscriptionSink:
        """Socket-level callbacks feeding this handle."""
        return SubscriptionSink(
            next=self._handle_next,
            error=self._handle_error,
            complete=self._handle_complete,
            terminate=self._handle_terminate,
        )

    def _handle_next(self, payload: Any) -> None:
        if self.closed:
            return
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if data is None:
            # Frames without data are heartbeats or partial results
            logger.debug("Dropping subscription frame without data")
            return
        self._state = SubscriptionState.STREAMING
        self._events += 1
        if self._on_data is not None:
            self._on_data(data)

    def _handle_error(self, error: Any) -> None:
        if self.closed:
            return
        self._state = SubscriptionState.ERRORED
        self._unsubscribe = None
        normalized = normalize_subscription_error(error)
        if self._on_error is not None:
            self._on_error(normalized)
        else:
            logger.warning(f"Unhandled subscription error: {normalized.message}")

    def _handle_complete(self) -> None:
        if self.closed:
            return
        self._state = SubscriptionState.COMPLETED
        self._unsubscribe = None
        if self._on_complete is not None:
            self._on_complete()

    def _handle_terminate(self) -> None:
        # The socket was disposed; end silently like a cancellation
        if self.closed:
            return
        self._state = SubscriptionState.CANCELLED
        self._unsubscribe = None
        if self._on_terminate is not None:
            self._on_terminate()


def _subscribe_payload(query: str, variables: Optional[Mapping[str, Any]]) -> dict:
    _, operation_name = parse_operation_header(query)
    return GraphQLRequest(
        query=query,
        variables=dict(variables) if variables is not None else None,
        operation_name=operation_name,
    ).to_dict()


def open_subscription(
    registry: "ClientRegistry",
    query: str,
    variables: Optional[Mapping[str, Any]] = None,
    on_data: Optional[DataCallback] = None,
    on_error: Optional[ErrorCallback] = None,
    on_complete: Optional[CompleteCallback] = None,
) -> SubscriptionHandle:
    """
    Open one subscription over the registry's socket client.

    Returns immediately; events are delivered through the callbacks in the
    order the frames arrive. When no socket client is registered a warning
    is logged and an inert handle is returned instead of raising.

    Args:
        registry: Client registry owning the socket client
        query: Subscription document
        variables: Subscription variables
        on_data: Called with the ``data`` member of every payload
        on_error: Called once with a normalized :class:`SubscriptionError`
        on_complete: Called once when the server completes the stream

    Returns:
        Cancellation handle
    """
    handle = SubscriptionHandle(query, variables, on_data, on_error, on_complete)

    socket_client = registry.current_socket_client()
    if socket_client is None:
        logger.warning("Subscriptions unavailable: no socket client is registered")
        handle._mark_unavailable()
        return handle

    try:
        unsubscribe = socket_client.subscribe(_subscribe_payload(query, variables), handle.sink())
    except (SubscriptionError, RuntimeError) as e:
        logger.error(f"Failed to open subscription: {e}")
        handle._handle_error(e)
        return handle

    handle._attach(unsubscribe)
    return handle


async def subscribe_iter(
    registry: "ClientRegistry",
    query: str,
    variables: Optional[Mapping[str, Any]] = None,
) -> AsyncIterator[Any]:
    """
    Iterate over the data payloads of one subscription.

    Raises :class:`SubscriptionError` on an error event and stops on
    completion or when the registry is closed. Leaving the loop early
    cancels the subscription. Ends at once when subscriptions are
    unavailable.

    Examples:
        ```python
        async for data in subscribe_iter(registry, "subscription { ticks }"):
            print(data["ticks"])
        ```
    """
    events: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()

    handle = open_subscription(
        registry,
        query,
        variables,
        on_data=lambda data: events.put_nowait(("data", data)),
        on_error=lambda error: events.put_nowait(("error", error)),
        on_complete=lambda: events.put_nowait(("complete", None)),
    )
    if not handle.available:
        return
    handle._on_terminate = lambda: events.put_nowait(("complete", None))

    try:
        while True:
            kind, value = await events.get()
            if kind == "data":
                yield value
            elif kind == "error":
                raise value
            else:
                return
    finally:
        handle.cancel()
