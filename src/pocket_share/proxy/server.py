"""Dynamic subdomain-routing reverse proxy."""

import asyncio

import httpx

from ..common.events import EventBus
from ..common.logging import get_logger
from ..common.server import EmbeddedServer, bind_with_retry, serve_app, shutdown_server
from .app import create_proxy_app
from .models import ProxyEvent, ProxyHealth
from .table import RouteTable

logger = get_logger(__name__)

DEFAULT_PROXY_PORT = 8080
DEFAULT_MAX_BIND_ATTEMPTS = 10
# Downloads and uploads may stream for a long time; only connecting is bounded
DEFAULT_FORWARD_TIMEOUT = httpx.Timeout(None, connect=5.0)


class DynamicProxy:
    """Single public HTTP listener that routes by subdomain to share ports.

    The route table can be changed at any time, independently of whether the
    listener is running.
    """

    def __init__(
        self,
        port: int = DEFAULT_PROXY_PORT,
        host: str = "0.0.0.0",
        max_bind_attempts: int = DEFAULT_MAX_BIND_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: httpx.Timeout = DEFAULT_FORWARD_TIMEOUT,
    ) -> None:
        """Initialize the proxy.

        Args:
            port: Preferred listener port
            host: Interface to listen on
            max_bind_attempts: Ports to try (port, port+1, ...) before giving up
            transport: Optional httpx transport used for forwarding
            timeout: Timeout applied to forwarded requests
        """
        self.port = port
        self.host = host
        self.max_bind_attempts = max_bind_attempts
        self.events = EventBus("proxy")
        self.routes = RouteTable(self.events)
        self.app = create_proxy_app(self)

        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._server: EmbeddedServer | None = None
        self._serve_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.started

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Shared client used by every route forwarder."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                follow_redirects=False,
            )
        return self._client

    async def start(self) -> None:
        """Bind the listener and start serving.

        Raises:
            ProxyPortUnavailableError: If no port could be bound
        """
        if self.is_running:
            logger.debug("Proxy already running", port=self.port)
            return

        sock = bind_with_retry(self.host, self.port, self.max_bind_attempts)
        try:
            self._server, self._serve_task = await serve_app(self.app, sock)
        except OSError:
            sock.close()
            raise

        self.port = sock.getsockname()[1]
        logger.info(
            "Dynamic proxy started",
            host=self.host,
            port=self.port,
            routes=self.routes.get_route_count(),
        )
        self.events.emit(ProxyEvent.STARTED, {"port": self.port})

    async def stop(self) -> None:
        """Close the listener. In-flight requests are not awaited."""
        if self._server is None:
            return

        await shutdown_server(self._server, self._serve_task)
        self._server = None
        self._serve_task = None

        if self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.info("Dynamic proxy stopped", port=self.port)
        self.events.emit(ProxyEvent.STOPPED)

    def health_check(self) -> ProxyHealth:
        """Summarise listener and route state."""
        return ProxyHealth(
            healthy=self.is_running,
            routes=self.routes.get_route_count(),
            active_routes=len(self.routes.get_active_routes()),
            port=self.port,
        )

    def get_port(self) -> int:
        return self.port
