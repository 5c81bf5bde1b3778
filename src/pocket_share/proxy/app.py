"""ASGI application served by the dynamic proxy listener."""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from ..common.exceptions import ProxyForwardError
from ..common.logging import get_logger
from .identifiers import extract_subdomain

if TYPE_CHECKING:
    from .server import DynamicProxy

logger = get_logger(__name__)

# WebSocket close codes
POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


def _share_not_found(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=404, content={"error": "Share not found", "message": message}
    )


class AnyMethodEndpoint:
    """ASGI endpoint accepted by a route for every HTTP method, WebDAV verbs included."""

    def __init__(self, handler: Callable[[Request], Awaitable[Response]]) -> None:
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await self.handler(Request(scope, receive))
        await response(scope, receive, send)


def create_proxy_app(proxy: "DynamicProxy") -> FastAPI:
    """Build the host-routing proxy application.

    ``/health`` is answered by the proxy itself for every host. Every other
    path is routed by the leftmost Host label to the matching share.
    """
    app = FastAPI(
        title="pocket-share proxy",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.exception_handler(ProxyForwardError)
    async def forward_error_handler(
        request: Request, exc: ProxyForwardError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=500, content={"error": "Proxy error", "message": str(exc)}
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Proxy error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "Proxy error", "message": "Internal proxy error occurred"},
        )

    @app.get("/health")
    async def health() -> dict[str, object]:
        routes = proxy.routes.get_all_routes()
        return {
            "status": "healthy",
            "activeRoutes": sum(1 for route in routes if route.active),
            "routes": [route.to_health_entry() for route in routes],
        }

    async def proxy_request(request: Request) -> Response:
        host = request.headers.get("host", "")
        subdomain = extract_subdomain(host)
        logger.info(
            "Proxy request",
            method=request.method,
            host=host,
            path=request.url.path,
            subdomain=subdomain,
        )

        if subdomain is None:
            return _share_not_found("No subdomain specified")

        route = proxy.routes.get_route(subdomain)
        if route is None or not route.active:
            return _share_not_found(f"Share '{subdomain}' not found or inactive")

        forwarder = proxy.routes.get_forwarder(subdomain)
        if forwarder is None:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Proxy configuration error",
                    "message": "No forwarder found for this route",
                },
            )

        return await forwarder.forward(request, proxy.http_client)

    # Starlette treats a non-function endpoint as an ASGI app and skips method matching
    app.router.routes.append(Route("/{path:path}", endpoint=AnyMethodEndpoint(proxy_request)))

    @app.websocket("/{path:path}")
    async def proxy_websocket(websocket: WebSocket, path: str) -> None:
        subdomain = extract_subdomain(websocket.headers.get("host"))
        route = proxy.routes.get_route(subdomain) if subdomain else None
        forwarder = proxy.routes.get_forwarder(subdomain) if subdomain else None

        if route is None or not route.active or forwarder is None:
            logger.info("Rejected WebSocket for unknown share", subdomain=subdomain)
            await websocket.close(code=POLICY_VIOLATION)
            return

        try:
            await forwarder.relay_websocket(websocket)
        except ProxyForwardError:
            await websocket.close(code=INTERNAL_ERROR)

    return app
