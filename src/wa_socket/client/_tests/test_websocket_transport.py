from __future__ import annotations

import asyncio
import json
import socket

import pytest

pytest.importorskip("websockets")

from websockets.asyncio.server import serve

from wa_socket.client import ChannelState, QueryChannel
from wa_socket.client.transport import WebSocketTransport
from wa_socket.config import ClientConfig
from wa_socket.errors import ChannelError


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_query_over_local_websocket() -> None:
    seen = {}

    async def handler(ws):
        init = json.loads(await ws.recv())
        seen["init"] = init
        seen["origin"] = ws.request.headers.get("Origin")
        seen["user_agent"] = ws.request.headers.get("User-Agent")
        location_id = init["messages"][0]["locationId"]
        await ws.send(json.dumps({"type": "pods", "locationId": location_id, "pods": [{"position": 100, "title": "Input"}]}))
        await ws.send(json.dumps({"type": "queryComplete", "locationId": location_id, "timedOut": []}))
        await ws.wait_closed()

    async def _run():
        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            channel = QueryChannel(
                ClientConfig(api_url=f"ws://127.0.0.1:{port}", user_agent="wa-socket-test"),
            )
            result = await channel.query("pi", timeout=5.0)
            assert channel.state is ChannelState.READY
            handle = channel._handle
            channel.close()
            await asyncio.wait_for(handle.task, 5.0)
            return result

    result = asyncio.run(_run())

    assert result.pods[100]["title"] == "Input"
    assert seen["init"]["type"] == "init"
    assert seen["init"]["messages"][0]["input"] == "pi"
    assert seen["origin"] == "https://www.wolframalpha.com"
    assert seen["user_agent"] == "wa-socket-test"


def test_refused_connection_rejects_query() -> None:
    port = _free_port()

    async def _run():
        channel = QueryChannel(ClientConfig(api_url=f"ws://127.0.0.1:{port}", open_timeout_s=2.0))
        await channel.query("pi", timeout=5.0)

    with pytest.raises(ChannelError):
        asyncio.run(_run())


def test_transport_needs_running_loop() -> None:
    channel = QueryChannel(ClientConfig(api_url="ws://127.0.0.1:1"))

    session = channel.submit("pi")

    assert isinstance(session.completion.exception(), ChannelError)
    assert channel.state is ChannelState.DISCONNECTED


def test_close_while_connecting_releases_socket() -> None:
    received = []
    disconnected = []

    async def handler(ws):
        async for message in ws:
            received.append(message)
        disconnected.append(ws.close_code)

    async def _run():
        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            channel = QueryChannel(ClientConfig(api_url=f"ws://127.0.0.1:{port}"))
            session = channel.submit("pi")
            handle = channel._handle
            channel.close()
            await asyncio.wait_for(handle.task, 5.0)
            for _ in range(50):
                if disconnected:
                    break
                await asyncio.sleep(0.01)
            return channel, session

    channel, session = asyncio.run(_run())

    assert disconnected
    assert received == []
    assert channel.state is ChannelState.DISCONNECTED
    assert not session.completion.settled


class _RecordingListener:
    def __init__(self) -> None:
        self.events = []

    def on_ready(self) -> None:
        self.events.append("ready")

    def on_error(self, error: BaseException) -> None:
        self.events.append(("error", error))

    def on_closed(self, code: int, reason: str) -> None:
        self.events.append(("closed", code))

    def on_message(self, raw) -> None:
        if raw == "boom":
            raise RuntimeError("handler failure")
        self.events.append(("message", raw))


def test_failing_message_handler_keeps_reading() -> None:
    listener = _RecordingListener()

    async def handler(ws):
        await ws.send("boom")
        await ws.send("after")
        await ws.close()

    async def _run():
        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            handle = WebSocketTransport(open_timeout=5.0).open(f"ws://127.0.0.1:{port}", {}, listener)
            await asyncio.wait_for(handle.task, 5.0)

    asyncio.run(_run())

    assert listener.events == ["ready", ("message", "after"), ("closed", 1000)]
