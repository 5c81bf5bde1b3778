"""Per-route forwarding handles.

A ``RouteForwarder`` knows how to reach one local target port. HTTP requests
are streamed through a shared ``httpx.AsyncClient`` owned by the proxy;
WebSocket upgrades are relayed with a dedicated ``websockets`` connection.
"""

import asyncio
import contextlib
from collections.abc import Iterable

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.websockets import WebSocket, WebSocketDisconnect
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..common.exceptions import ProxyForwardError
from ..common.logging import get_logger

logger = get_logger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Regenerated by the upstream handshake
WEBSOCKET_HANDSHAKE_HEADERS = frozenset(
    {
        "sec-websocket-key",
        "sec-websocket-version",
        "sec-websocket-extensions",
        "sec-websocket-protocol",
        "sec-websocket-accept",
    }
)

WEBSOCKET_OPEN_TIMEOUT = 10.0
# Close codes that must not be sent on the wire
RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})


def _filter_headers(
    items: Iterable[tuple[str, str]], excluded: frozenset[str]
) -> list[tuple[str, str]]:
    return [(key, value) for key, value in items if key.lower() not in excluded]


class RouteForwarder:
    """Forwarding handle for one ``localhost:<target_port>`` target."""

    def __init__(self, target_port: int, target_host: str = "localhost") -> None:
        self.target_port = target_port
        self.target_host = target_host

    @property
    def base_url(self) -> str:
        return f"http://{self.target_host}:{self.target_port}"

    def target_url(self, path: str, query: str = "", scheme: str = "http") -> str:
        """Build the upstream URL for a request path and raw query string."""
        url = f"{scheme}://{self.target_host}:{self.target_port}{path or '/'}"
        if query:
            url = f"{url}?{query}"
        return url

    def _forwarded_headers(self, request: Request | WebSocket) -> list[tuple[str, str]]:
        headers = [("x-forwarded-host", request.headers.get("host", ""))]
        if request.client is not None:
            headers.append(("x-forwarded-for", request.client.host))
        headers.append(("x-forwarded-proto", request.url.scheme))
        return headers

    async def forward(
        self, request: Request, client: httpx.AsyncClient
    ) -> StreamingResponse:
        """Stream ``request`` to the target and stream the answer back.

        Method, path, query, body and end-to-end headers are preserved; the
        Host header is rewritten to the target.

        Raises:
            ProxyForwardError: If the target cannot be reached
        """
        url = self.target_url(request.url.path, request.url.query)
        headers = _filter_headers(
            request.headers.items(), HOP_BY_HOP_HEADERS | {"host"}
        )
        headers.extend(self._forwarded_headers(request))

        has_body = (
            "content-length" in request.headers
            or "transfer-encoding" in request.headers
        )
        upstream_request = client.build_request(
            request.method,
            url,
            headers=headers,
            content=request.stream() if has_body else None,
        )

        logger.debug("Forwarding request", method=request.method, url=url)
        try:
            upstream = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            logger.error("Forwarding failed", url=url, error=str(e))
            raise ProxyForwardError(
                f"Failed to reach share on port {self.target_port}: {e}"
            ) from e

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = [
            (key.encode("latin-1"), value.encode("latin-1"))
            for key, value in _filter_headers(
                upstream.headers.multi_items(), HOP_BY_HOP_HEADERS
            )
        ]
        return response

    async def relay_websocket(self, websocket: WebSocket) -> None:
        """Relay a WebSocket session between the client and the target.

        Raises:
            ProxyForwardError: If the upstream handshake fails
        """
        url = self.target_url(websocket.url.path, websocket.url.query, scheme="ws")
        headers = _filter_headers(
            websocket.headers.items(),
            HOP_BY_HOP_HEADERS | WEBSOCKET_HANDSHAKE_HEADERS | {"host"},
        )
        headers.extend(self._forwarded_headers(websocket))
        subprotocols = websocket.scope.get("subprotocols") or None

        try:
            upstream = await connect(
                url,
                additional_headers=headers,
                subprotocols=subprotocols,
                open_timeout=WEBSOCKET_OPEN_TIMEOUT,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            logger.error("WebSocket upstream connection failed", url=url, error=str(e))
            raise ProxyForwardError(
                f"Failed to open WebSocket to port {self.target_port}: {e}"
            ) from e

        async with upstream:
            await websocket.accept(subprotocol=upstream.subprotocol)
            tasks = {
                asyncio.create_task(self._pump_from_client(websocket, upstream)),
                asyncio.create_task(self._pump_from_upstream(upstream, websocket)),
            }
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        logger.debug("WebSocket relay closed", url=url)

    @staticmethod
    async def _pump_from_client(
        websocket: WebSocket, upstream: ClientConnection
    ) -> None:
        while True:
            try:
                message = await websocket.receive()
            except WebSocketDisconnect:
                break
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is not None:
                await upstream.send(message["text"])
            elif message.get("bytes") is not None:
                await upstream.send(message["bytes"])
        await upstream.close()

    @staticmethod
    async def _pump_from_upstream(
        upstream: ClientConnection, websocket: WebSocket
    ) -> None:
        try:
            async for message in upstream:
                if isinstance(message, str):
                    await websocket.send_text(message)
                else:
                    await websocket.send_bytes(message)
        except ConnectionClosed:
            pass

        code = upstream.close_code
        if code is None or code in RESERVED_CLOSE_CODES:
            code = 1000
        # The client may already be gone
        with contextlib.suppress(RuntimeError):
            await websocket.close(code=code)

