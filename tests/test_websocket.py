"""
Tests for the graphql-transport-ws socket client against a local server.
"""

import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from club_graphql.config.models import ClientSettings, TransportConfig
from club_graphql.exceptions import SocketClosedError, SubscriptionError
from club_graphql.graphql.client import GraphQLRequestClient
from club_graphql.registry import ClientRegistry
from club_graphql.subscriptions import SubscriptionHook, SubscriptionState, open_subscription
from club_graphql.websocket import (
    GraphQLSocketClient,
    ProtocolMessage,
    ProtocolMessageType,
    SocketConnectionState,
    SubscriptionSink,
)

SUBSCRIPTION = {"query": "subscription { teeSheetUpdated { id } }"}


def _sink():
    return SubscriptionSink(next=MagicMock(), error=MagicMock(), complete=MagicMock())


class TestProtocolMessage:
    """Test protocol frame encoding."""

    def test_to_json_omits_empty_fields(self):
        assert json.loads(ProtocolMessage(ProtocolMessageType.PING).to_json()) == {"type": "ping"}

    def test_from_json(self):
        message = ProtocolMessage.from_json('{"type": "next", "id": 7, "payload": {"data": {}}}')

        assert message.type == ProtocolMessageType.NEXT
        assert message.id == "7"
        assert message.payload == {"data": {}}

    @pytest.mark.parametrize("raw", ['["next"]', '{"type": "unknown"}', "not json"])
    def test_from_json_rejects_bad_frames(self, raw):
        with pytest.raises(ValueError):
            ProtocolMessage.from_json(raw)


class TestSocketClient:
    """Test connection lifecycle and frame routing."""

    @pytest.fixture
    async def client(self, ws_server, fast_settings):
        client = GraphQLSocketClient(ws_server.socket_url, settings=fast_settings)
        yield client
        await client.dispose()

    async def test_connects_lazily(self, client, ws_server, wait_until):
        """Test that the socket opens on the first subscription only."""
        assert client.state == SocketConnectionState.DISCONNECTED
        assert ws_server.connections == []

        client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        assert client.is_connected is True
        assert ws_server.upgrade_protocols == ["graphql-transport-ws"]
        assert [frame["type"] for frame in ws_server.frames] == ["connection_init", "subscribe"]
        assert ws_server.frames[1] == {"type": "subscribe", "id": "1", "payload": SUBSCRIPTION}

    async def test_connection_params(self, ws_server, fast_settings, wait_until):
        """Test that connection params ride the connection_init frame."""
        client = GraphQLSocketClient(
            ws_server.socket_url, settings=fast_settings, connection_params={"clubId": "c1"}
        )
        client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        assert ws_server.frames_of("connection_init")[0]["payload"] == {"clubId": "c1"}
        await client.dispose()

    async def test_next_and_complete(self, client, ws_server, wait_until):
        """Test routing of next and complete frames, then idle close."""
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        await ws_server.send({"type": "next", "id": "1", "payload": {"data": {"id": "t1"}}})
        await ws_server.send({"type": "complete", "id": "1"})
        await wait_until(lambda: sink.complete.called)

        sink.next.assert_called_once_with({"data": {"id": "t1"}})
        sink.error.assert_not_called()
        await wait_until(lambda: client.state == SocketConnectionState.DISCONNECTED)
        await wait_until(lambda: ws_server.closed_connections == 1)
        assert client.active_subscriptions == 0

    async def test_error_frame(self, client, ws_server, wait_until):
        """Test that an error frame ends one subscription."""
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        await ws_server.send({"type": "error", "id": "1", "payload": [{"message": "Forbidden"}]})
        await wait_until(lambda: sink.error.called)

        sink.error.assert_called_once_with([{"message": "Forbidden"}])
        sink.complete.assert_not_called()

    async def test_unsubscribe_sends_complete_and_closes(self, client, ws_server, wait_until):
        """Test that the last unsubscribe completes and releases the socket."""
        unsubscribe = client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        unsubscribe()
        unsubscribe()

        await wait_until(lambda: ws_server.closed_connections == 1)
        assert ws_server.frames_of("complete") == [{"type": "complete", "id": "1"}]

    async def test_unsubscribe_before_send(self, client, ws_server, wait_until):
        """Test that a subscription cancelled before it was sent is never sent."""
        unsubscribe = client.subscribe(SUBSCRIPTION, _sink())
        unsubscribe()

        await wait_until(lambda: ws_server.closed_connections == 1)
        assert ws_server.frames_of("subscribe") == []
        assert ws_server.frames_of("complete") == []

    async def test_multiplexing(self, client, ws_server, wait_until):
        """Test that subscriptions share one connection and stay separate."""
        first, second = _sink(), _sink()
        client.subscribe(SUBSCRIPTION, first)
        client.subscribe(SUBSCRIPTION, second)
        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)

        await ws_server.send({"type": "next", "id": "2", "payload": {"data": {"n": 2}}})
        await wait_until(lambda: second.next.called)

        assert len(ws_server.connections) == 1
        first.next.assert_not_called()
        assert client.active_subscriptions == 2

    async def test_callback_errors_are_isolated(self, client, ws_server, wait_until):
        """Test that a raising consumer does not stop other subscriptions."""
        broken = SubscriptionSink(
            next=MagicMock(side_effect=RuntimeError("consumer bug")),
            error=MagicMock(),
            complete=MagicMock(),
        )
        healthy = _sink()
        client.subscribe(SUBSCRIPTION, broken)
        client.subscribe(SUBSCRIPTION, healthy)
        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)

        await ws_server.send({"type": "next", "id": "1", "payload": {"data": {"n": 1}}})
        await ws_server.send({"type": "next", "id": "2", "payload": {"data": {"n": 2}}})
        await wait_until(lambda: healthy.next.called)

        assert client.is_connected is True

    async def test_unserializable_payload_is_isolated(self, client, ws_server, wait_until):
        """Test that a payload that cannot be encoded fails alone."""
        first = _sink()
        client.subscribe(SUBSCRIPTION, first)
        rejected = _sink()
        with pytest.raises(SubscriptionError, match="not JSON serializable"):
            client.subscribe(
                {"query": SUBSCRIPTION["query"], "variables": {"when": date(2024, 5, 1)}},
                rejected,
            )
        third = _sink()
        client.subscribe(SUBSCRIPTION, third)

        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)
        await ws_server.send({"type": "ping"})
        await wait_until(lambda: ws_server.frames_of("pong"))
        await ws_server.send({"type": "next", "id": "3", "payload": {"data": {"n": 3}}})
        await wait_until(lambda: third.next.called)

        assert [frame["id"] for frame in ws_server.frames_of("subscribe")] == ["1", "3"]
        assert client.active_subscriptions == 2
        rejected.error.assert_not_called()
        first.error.assert_not_called()

    async def test_unencodable_queued_frame_fails_its_subscription(
        self, client, ws_server, wait_until
    ):
        """Test that the send loop drops a frame it cannot encode and keeps running."""
        healthy = _sink()
        client.subscribe(SUBSCRIPTION, healthy)
        payload = {"query": SUBSCRIPTION["query"], "variables": {}}
        spoiled = _sink()
        client.subscribe(payload, spoiled)
        # Mutated after the subscribe call, before the frame is written
        payload["variables"]["when"] = date(2024, 5, 1)
        await wait_until(lambda: spoiled.error.called)

        error = spoiled.error.call_args.args[0]
        assert isinstance(error, SubscriptionError)
        assert isinstance(error.original_error, TypeError)

        await ws_server.send({"type": "ping"})
        await wait_until(lambda: ws_server.frames_of("pong"))
        assert [frame["id"] for frame in ws_server.frames_of("subscribe")] == ["1"]
        assert client.active_subscriptions == 1
        healthy.error.assert_not_called()

    async def test_server_ping(self, client, ws_server, wait_until):
        """Test that a server ping is answered with pong."""
        client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        await ws_server.send({"type": "ping"})

        await wait_until(lambda: ws_server.frames_of("pong"))

    async def test_malformed_frames_are_dropped(self, client, ws_server, wait_until):
        """Test that junk frames do not break the connection."""
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        await ws_server.connections[-1].send_str("not json")
        await ws_server.send({"type": "next", "payload": {"data": {}}})
        await ws_server.send({"type": "next", "id": "1", "payload": {"data": {"ok": True}}})
        await wait_until(lambda: sink.next.called)

        sink.next.assert_called_once_with({"data": {"ok": True}})

    async def test_server_close_errors_subscriptions(self, client, ws_server, wait_until):
        """Test that an unexpected close reaches every sink as SocketClosedError."""
        first, second = _sink(), _sink()
        client.subscribe(SUBSCRIPTION, first)
        client.subscribe(SUBSCRIPTION, second)
        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)

        await ws_server.connections[-1].close(code=4403, message=b"Forbidden")
        await wait_until(lambda: first.error.called and second.error.called)

        error = first.error.call_args.args[0]
        assert isinstance(error, SocketClosedError)
        assert error.code == 4403
        assert client.active_subscriptions == 0
        first.complete.assert_not_called()

    async def test_missing_ack(self, ws_server, wait_until):
        """Test that a server that never acknowledges fails the subscriptions."""
        ws_server.send_ack = False
        client = GraphQLSocketClient(
            ws_server.socket_url, settings=ClientSettings(connect_timeout=2.0, socket_ack_timeout=1.0)
        )
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)

        await wait_until(lambda: sink.error.called, timeout=5.0)

        assert isinstance(sink.error.call_args.args[0], SubscriptionError)
        assert client.state == SocketConnectionState.DISCONNECTED
        await client.dispose()

    async def test_unreachable_server(self, fast_settings, wait_until):
        """Test that a refused connection errors the subscription."""
        client = GraphQLSocketClient("ws://127.0.0.1:1/graphql", settings=fast_settings)
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)

        await wait_until(lambda: sink.error.called, timeout=5.0)

        error = sink.error.call_args.args[0]
        assert isinstance(error, SocketClosedError)
        assert error.__cause__ is not None
        await client.dispose()

    async def test_dispose_stops_callbacks(self, client, ws_server, wait_until):
        """Test that no callback fires once dispose has returned."""
        sink = _sink()
        client.subscribe(SUBSCRIPTION, sink)
        await wait_until(lambda: ws_server.frames_of("subscribe"))

        await client.dispose()

        assert client.state == SocketConnectionState.DISPOSED
        await wait_until(lambda: ws_server.closed_connections == 1)
        sink.next.assert_not_called()
        sink.error.assert_not_called()
        sink.complete.assert_not_called()

    async def test_subscribe_after_dispose(self, client):
        """Test that a disposed client refuses subscriptions."""
        await client.dispose()

        with pytest.raises(SubscriptionError):
            client.subscribe(SUBSCRIPTION, _sink())

    async def test_reconnects_for_new_subscription(self, client, ws_server, wait_until):
        """Test a fresh connection after the idle close."""
        unsubscribe = client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: ws_server.frames_of("subscribe"))
        unsubscribe()
        await wait_until(lambda: client.state == SocketConnectionState.DISCONNECTED)

        client.subscribe(SUBSCRIPTION, _sink())
        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)

        assert len(ws_server.connections) == 2
        assert ws_server.frames_of("subscribe")[1]["id"] == "2"
        assert client.statistics["connect_count"] == 2


class TestSocketThroughRegistry:
    """End-to-end over the registry with a real socket."""

    async def test_session_cookie_rides_upgrade(self, ws_server, fast_settings, wait_until):
        """Test that a cookie set over HTTP is sent with the socket upgrade."""
        registry = ClientRegistry(supports_persistent_connections=lambda: True, settings=fast_settings)
        await registry.initialize(
            TransportConfig(http_endpoint=ws_server.http_url, socket_endpoint=ws_server.socket_url)
        )

        request_client: GraphQLRequestClient = registry.current_request_client()
        assert await request_client.request("mutation SignIn { signIn }") == {"ok": True}

        open_subscription(registry, "subscription Ticks { ticks }", on_data=MagicMock())
        await wait_until(lambda: ws_server.upgrade_cookies)

        assert ws_server.upgrade_cookies[0] == {"session": "abc123"}
        await registry.close()

    async def test_close_while_streaming(self, ws_server, fast_settings, wait_until):
        """Test that closing the registry mid-stream silences every callback."""
        registry = ClientRegistry(supports_persistent_connections=lambda: True, settings=fast_settings)
        await registry.initialize(
            TransportConfig(http_endpoint=ws_server.http_url, socket_endpoint=ws_server.socket_url)
        )
        on_data, on_error, on_complete = MagicMock(), MagicMock(), MagicMock()
        handle = open_subscription(
            registry, "subscription Ticks { ticks }", {"id": "1"}, on_data, on_error, on_complete
        )
        hook = SubscriptionHook(registry, "subscription Tocks { tocks }")
        hook.mount()
        await wait_until(lambda: len(ws_server.frames_of("subscribe")) == 2)
        await ws_server.send({"type": "next", "id": "1", "payload": {"data": {"foo": 1}}})
        await wait_until(lambda: on_data.called)

        await registry.close()
        for ws in ws_server.connections:
            if not ws.closed:
                await ws.send_str(json.dumps({"type": "next", "id": "1", "payload": {"data": {"foo": 2}}}))

        on_data.assert_called_once_with({"foo": 1})
        on_error.assert_not_called()
        on_complete.assert_not_called()
        assert handle.closed is True
        assert handle.state == SubscriptionState.CANCELLED
        assert hook.is_connected is False

    async def test_unserializable_variables_reach_on_error(
        self, ws_server, fast_settings, wait_until
    ):
        """Test that a bad subscription errors alone while its neighbour streams."""
        registry = ClientRegistry(supports_persistent_connections=lambda: True, settings=fast_settings)
        await registry.initialize(
            TransportConfig(http_endpoint=ws_server.http_url, socket_endpoint=ws_server.socket_url)
        )
        on_data = MagicMock()
        healthy = open_subscription(registry, "subscription Ticks { ticks }", on_data=on_data)
        on_error = MagicMock()
        rejected = open_subscription(
            registry,
            "subscription TeeSheet($when: String!) { teeSheetUpdated(date: $when) { id } }",
            {"when": date(2024, 5, 1)},
            on_error=on_error,
        )

        assert rejected.state == SubscriptionState.ERRORED
        error = on_error.call_args.args[0]
        assert isinstance(error, SubscriptionError)
        assert "not JSON serializable" in error.message

        await wait_until(lambda: ws_server.frames_of("subscribe"))
        await ws_server.send({"type": "next", "id": "1", "payload": {"data": {"ticks": 1}}})
        await wait_until(lambda: on_data.called)

        assert healthy.state == SubscriptionState.STREAMING
        on_error.assert_called_once()
        await registry.close()
