"""Integration tests for the dynamic proxy listener."""

import asyncio

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from websockets.asyncio.client import connect

from pocket_share.common.events import WILDCARD
from pocket_share.common.server import bind_with_retry, serve_app, shutdown_server
from pocket_share.proxy.models import ProxyEvent, Route
from pocket_share.proxy.server import DynamicProxy


def create_upstream_app() -> FastAPI:
    app = FastAPI()

    @app.get("/hello")
    async def hello(request: Request) -> dict[str, str | None]:
        return {
            "path": request.url.path,
            "query": request.url.query,
            "forwardedHost": request.headers.get("x-forwarded-host"),
        }

    @app.websocket("/ws")
    async def echo(websocket: WebSocket) -> None:
        await websocket.accept()
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            await websocket.send_text(f"echo:{text}")

    return app


@pytest_asyncio.fixture
async def upstream():
    sock = bind_with_retry("127.0.0.1", 0)
    port = sock.getsockname()[1]
    server, task = await serve_app(create_upstream_app(), sock)
    yield port
    await shutdown_server(server, task)


@pytest_asyncio.fixture
async def running_proxy():
    proxy = DynamicProxy(port=0, host="127.0.0.1")
    await proxy.start()
    yield proxy
    await proxy.stop()


class TestDynamicProxyLifecycle:
    """Test suite for DynamicProxy start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        proxy = DynamicProxy(port=0, host="127.0.0.1")
        events = []
        proxy.events.subscribe(WILDCARD, events.append)

        await proxy.start()
        assert proxy.is_running
        assert proxy.get_port() > 0
        assert proxy.health_check().healthy is True

        await proxy.stop()
        assert not proxy.is_running
        assert proxy.health_check().healthy is False

        assert [event.name for event in events] == [
            ProxyEvent.STARTED.value,
            ProxyEvent.STOPPED.value,
        ]
        assert events[0].payload == {"port": proxy.get_port()}

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, running_proxy):
        port = running_proxy.get_port()
        await running_proxy.start()
        assert running_proxy.get_port() == port

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self):
        proxy = DynamicProxy(port=0, host="127.0.0.1")
        await proxy.stop()
        assert not proxy.is_running

    @pytest.mark.asyncio
    async def test_moves_to_next_port_when_busy(self, running_proxy):
        busy_port = running_proxy.get_port()
        second = DynamicProxy(port=busy_port, host="127.0.0.1", max_bind_attempts=5)
        try:
            await second.start()
            assert second.get_port() > busy_port
        finally:
            await second.stop()

    @pytest.mark.asyncio
    async def test_health_check_counts_routes(self):
        proxy = DynamicProxy(port=0, host="127.0.0.1")
        proxy.routes.add_route(
            Route(share_id="abc123", subdomain="abc123", target_port=50000, active=True)
        )
        proxy.routes.add_route(Route(share_id="def456", subdomain="def456", target_port=50001))

        health = proxy.health_check()

        assert health.routes == 2
        assert health.active_routes == 1


class TestDynamicProxyForwarding:
    @pytest.mark.asyncio
    async def test_http_round_trip(self, running_proxy, upstream):
        running_proxy.routes.add_route(
            Route(share_id="abc123", subdomain="abc123", target_port=upstream, active=True)
        )

        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"http://127.0.0.1:{running_proxy.get_port()}/hello?name=x",
                headers={"Host": "abc123.example.com"},
            )

        assert response.status_code == 200
        assert response.json() == {
            "path": "/hello",
            "query": "name=x",
            "forwardedHost": "abc123.example.com",
        }

    @pytest.mark.asyncio
    async def test_websocket_relay(self, running_proxy, upstream):
        running_proxy.routes.add_route(
            Route(share_id="abc123", subdomain="abc123", target_port=upstream, active=True)
        )

        async with connect(
            "ws://abc123.example.com/ws",
            host="127.0.0.1",
            port=running_proxy.get_port(),
            open_timeout=5,
        ) as websocket:
            await websocket.send("hi")
            reply = await asyncio.wait_for(websocket.recv(), timeout=5)

        assert reply == "echo:hi"
