"""
Shared test fixtures and configuration for the club_graphql test suite.
"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List, Optional

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer
from aioresponses import aioresponses

from club_graphql.config.models import ClientSettings, TransportConfig
from club_graphql.registry import ClientRegistry
from club_graphql.websocket.core_models import SubscriptionSink

HTTP_ENDPOINT = "https://api.example.com/graphql"
SOCKET_ENDPOINT = "wss://api.example.com/graphql"


class FakeSubscription:
    """One subscription held by :class:`FakeSocketClient`."""

    def __init__(self, client: "FakeSocketClient", payload: Dict[str, Any], sink: SubscriptionSink):
        self.client = client
        self.payload = payload
        self.sink = sink
        self.active = True
        self.unsubscribe_calls = 0

    @property
    def variables(self) -> Optional[Dict[str, Any]]:
        return self.payload.get("variables")

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.active = False
        self.client.log.append(("unsubscribe", self.variables))

    def next(self, payload: Any) -> None:
        if self.active:
            self.sink.next(payload)

    def error(self, error: Any) -> None:
        if self.active:
            self.active = False
            self.sink.error(error)

    def complete(self) -> None:
        if self.active:
            self.active = False
            self.sink.complete()


class FakeSocketClient:
    """In-memory stand-in for the socket client with scripted inbound events."""

    def __init__(self, url: str = SOCKET_ENDPOINT):
        self.url = url
        self.subscriptions: List[FakeSubscription] = []
        self.log: List[Any] = []
        self.disposed = False

    def subscribe(self, payload: Dict[str, Any], sink: SubscriptionSink) -> Callable[[], None]:
        subscription = FakeSubscription(self, payload, sink)
        self.subscriptions.append(subscription)
        self.log.append(("subscribe", subscription.variables))
        return subscription.unsubscribe

    @property
    def live_subscriptions(self) -> List[FakeSubscription]:
        return [s for s in self.subscriptions if s.active]

    @property
    def last(self) -> FakeSubscription:
        return self.subscriptions[-1]

    async def dispose(self) -> None:
        self.disposed = True
        for subscription in self.subscriptions:
            if subscription.active and subscription.sink.terminate is not None:
                subscription.sink.terminate()
            subscription.active = False


class GraphQLWSServer:
    """Local aiohttp server speaking graphql-transport-ws on /graphql."""

    def __init__(self) -> None:
        self.app = web.Application()
        self.app.router.add_get("/graphql", self._socket_handler)
        self.app.router.add_post("/graphql", self._http_handler)
        self.server = TestServer(self.app)

        self.send_ack = True
        self.connections: List[web.WebSocketResponse] = []
        self.frames: List[Dict[str, Any]] = []
        self.upgrade_cookies: List[Dict[str, str]] = []
        self.upgrade_protocols: List[Optional[str]] = []
        self.closed_connections = 0

    @property
    def http_url(self) -> str:
        return str(self.server.make_url("/graphql"))

    @property
    def socket_url(self) -> str:
        return self.http_url.replace("http://", "ws://", 1)

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        await self.server.close()

    def frames_of(self, frame_type: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.frames if frame.get("type") == frame_type]

    async def send(self, frame: Dict[str, Any]) -> None:
        await self.connections[-1].send_str(json.dumps(frame))

    async def _http_handler(self, request: web.Request) -> web.Response:
        response = web.json_response({"data": {"ok": True}})
        response.set_cookie("session", "abc123")
        return response

    async def _socket_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(protocols=("graphql-transport-ws",))
        await ws.prepare(request)
        self.upgrade_cookies.append(dict(request.cookies))
        self.upgrade_protocols.append(ws.ws_protocol)
        self.connections.append(ws)

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                frame = json.loads(msg.data)
                self.frames.append(frame)
                if frame["type"] == "connection_init" and self.send_ack:
                    await ws.send_str(json.dumps({"type": "connection_ack"}))
                elif frame["type"] == "ping":
                    await ws.send_str(json.dumps({"type": "pong"}))
        finally:
            self.closed_connections += 1
        return ws


async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate until it holds."""
    return _wait_until


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def http_config() -> TransportConfig:
    """Transport configuration without a socket endpoint."""
    return TransportConfig(http_endpoint=HTTP_ENDPOINT)


@pytest.fixture
def socket_config() -> TransportConfig:
    """Transport configuration with a socket endpoint."""
    return TransportConfig(http_endpoint=HTTP_ENDPOINT, socket_endpoint=SOCKET_ENDPOINT)


@pytest.fixture
def fake_socket() -> FakeSocketClient:
    return FakeSocketClient()


@pytest.fixture
async def http_registry(http_config: TransportConfig) -> AsyncGenerator[ClientRegistry, None]:
    """Registry initialized without subscriptions."""
    registry = ClientRegistry(supports_persistent_connections=lambda: True)
    await registry.initialize(http_config)
    yield registry
    await registry.close()


@pytest.fixture
async def socket_registry(
    socket_config: TransportConfig, fake_socket: FakeSocketClient
) -> AsyncGenerator[ClientRegistry, None]:
    """Registry whose socket client is the in-memory fake."""
    registry = ClientRegistry(
        supports_persistent_connections=lambda: True,
        socket_client_factory=lambda config, jar, settings: fake_socket,
    )
    await registry.initialize(socket_config)
    yield registry
    await registry.close()


@pytest.fixture
def mock_aioresponse() -> Generator[aioresponses, None, None]:
    """Mock aiohttp responses for testing."""
    with aioresponses() as m:
        yield m


@pytest.fixture
async def ws_server() -> AsyncGenerator[GraphQLWSServer, None]:
    """Running local graphql-transport-ws server."""
    server = GraphQLWSServer()
    await server.start()
    yield server
    await server.close()


@pytest.fixture
def fast_settings() -> ClientSettings:
    """Client settings with short socket timeouts."""
    return ClientSettings(connect_timeout=2.0, socket_ack_timeout=1.0)
