"""Embedded HTTP listener helpers shared by the proxy and the file servers."""

import asyncio
import contextlib
import errno
import socket
from collections.abc import Iterator
from typing import Any

import uvicorn

from .exceptions import ProxyPortUnavailableError
from .logging import get_logger

logger = get_logger(__name__)

ADDRESS_IN_USE_ERRNOS = frozenset(
    code
    for code in (errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", None), 10048)
    if code is not None
)

SERVER_START_TIMEOUT = 10.0


def _is_address_in_use(error: OSError) -> bool:
    return error.errno in ADDRESS_IN_USE_ERRNOS


def bind_with_retry(host: str, port: int, attempts: int = 10) -> socket.socket:
    """Bind a listening TCP socket, moving to the next port while busy.

    Args:
        host: Interface to bind
        port: First port to try (0 lets the OS choose)
        attempts: Maximum number of ports to try

    Returns:
        A bound socket; the caller owns it

    Raises:
        ProxyPortUnavailableError: If every attempted port is in use
        OSError: For bind failures other than address-in-use
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    current = port

    for attempt in range(attempts):
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, current))
        except OSError as e:
            sock.close()
            if not _is_address_in_use(e) or current == 0:
                raise
            if attempt == 0:
                logger.info(
                    "Port in use, trying next", port=current, next_port=current + 1
                )
            current += 1
            continue

        return sock

    raise ProxyPortUnavailableError(
        f"Could not find available port after {attempts} attempts"
    )


class EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host application."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


async def serve_app(
    app: Any, sock: socket.socket, timeout: float = SERVER_START_TIMEOUT
) -> tuple[EmbeddedServer, "asyncio.Task[None]"]:
    """Serve an ASGI app on an already bound socket in a background task.

    Returns:
        The server and the task running it, once the server accepts connections

    Raises:
        OSError: If the server exits or fails before it starts
    """
    config = uvicorn.Config(
        app,
        log_config=None,
        access_log=False,
        lifespan="off",
    )
    server = EmbeddedServer(config)
    task = asyncio.create_task(server.serve(sockets=[sock]))

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not server.started:
        if task.done():
            exc = task.exception()
            raise OSError(f"Listener exited during startup: {exc}") from exc
        if loop.time() > deadline:
            server.should_exit = True
            raise OSError("Listener did not start in time")
        await asyncio.sleep(0.01)

    return server, task


async def shutdown_server(
    server: EmbeddedServer | None, task: "asyncio.Task[None] | None"
) -> None:
    """Ask an embedded server to exit and wait for its task."""
    if server is None or task is None:
        return

    server.should_exit = True
    # Do not wait for in-flight requests or open websockets to drain
    server.force_exit = True
    try:
        await task
    except asyncio.CancelledError:
        pass
