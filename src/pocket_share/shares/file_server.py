"""Per-share file server.

The manager only depends on ``FileServerProtocol``; ``FileServer`` is the
FastAPI implementation started for each active share.
"""

import asyncio
import hmac
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from fastapi import Depends, FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from ..common.exceptions import FileServerError, ProxyPortUnavailableError
from ..common.logging import get_logger
from ..common.server import EmbeddedServer, bind_with_retry, serve_app, shutdown_server
from ..common.utils import validate_port

logger = get_logger(__name__)

DEFAULT_FILE_SERVER_PORT = 3000


class FileServerProtocol(Protocol):
    """What the share manager needs from a file server."""

    port: int

    async def start(self) -> int: ...

    async def stop(self) -> None: ...


FileServerFactory = Callable[[str, str, int], FileServerProtocol]


class FileRequestError(Exception):
    """Request against the shared folder that cannot be served."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AuthRequest(BaseModel):
    passcode: str


def _extract_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer ") :]
    return request.query_params.get("auth")


def create_file_app(shared_root: Path, passcode: str) -> FastAPI:
    """Build the file API for one shared folder."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    def matches(candidate: str | None) -> bool:
        if candidate is None:
            return False
        return hmac.compare_digest(candidate.encode(), passcode.encode())

    def require_auth(request: Request) -> None:
        if not matches(_extract_token(request)):
            raise FileRequestError(401, "Unauthorized")

    def resolve(relative: str) -> Path:
        target = (shared_root / relative.lstrip("/")).resolve()
        if not target.is_relative_to(shared_root):
            raise FileRequestError(403, "Access denied")
        return target

    @app.exception_handler(FileRequestError)
    async def handle_file_request_error(
        request: Request, exc: FileRequestError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.post("/api/auth")
    async def authenticate(body: AuthRequest) -> dict[str, Any]:
        if not matches(body.passcode):
            raise FileRequestError(401, "Invalid passcode")
        return {"success": True, "token": passcode}

    @app.get("/api/files", dependencies=[Depends(require_auth)])
    async def list_files(path: str = "") -> dict[str, Any]:
        target = resolve(path)
        if not target.exists():
            raise FileRequestError(404, "Path not found")
        if not target.is_dir():
            raise FileRequestError(400, "Not a directory")

        files = []
        for child in target.iterdir():
            try:
                stats = child.stat()
            except OSError:
                continue
            is_dir = child.is_dir()
            files.append(
                {
                    "name": child.name,
                    "type": "folder" if is_dir else "file",
                    "size": stats.st_size,
                    "modified": datetime.fromtimestamp(stats.st_mtime).isoformat(),
                    "path": (Path(path) / child.name).as_posix(),
                }
            )

        files.sort(key=lambda item: (item["type"] != "folder", item["name"]))
        return {"path": path, "files": files}

    @app.get("/api/download/{path:path}", dependencies=[Depends(require_auth)])
    async def download(path: str) -> FileResponse:
        target = resolve(path)
        if not target.exists():
            raise FileRequestError(404, "File not found")
        if not target.is_file():
            raise FileRequestError(400, "Not a file")
        return FileResponse(target, filename=target.name)

    return app


class FileServer:
    """Serves one folder behind a passcode on a local port."""

    def __init__(
        self,
        shared_path: str | Path,
        passcode: str,
        port: int = DEFAULT_FILE_SERVER_PORT,
        host: str = "127.0.0.1",
        max_bind_attempts: int = 10,
    ) -> None:
        if port:
            validate_port(port, "File server port")

        self.shared_path = Path(shared_path).resolve()
        self.passcode = passcode
        self.port = port
        self.host = host
        self.max_bind_attempts = max_bind_attempts
        self.app = create_file_app(self.shared_path, passcode)

        self._server: EmbeddedServer | None = None
        self._serve_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.started

    async def start(self) -> int:
        """Start serving and return the port actually bound.

        Raises:
            FileServerError: If no port could be bound or the server fails
        """
        if self.is_running:
            return self.port

        try:
            sock = bind_with_retry(self.host, self.port, self.max_bind_attempts)
        except (ProxyPortUnavailableError, OSError) as e:
            raise FileServerError(f"Failed to bind file server: {e}") from e

        self.port = sock.getsockname()[1]
        try:
            self._server, self._serve_task = await serve_app(self.app, sock)
        except OSError as e:
            sock.close()
            raise FileServerError(f"Failed to start file server: {e}") from e

        logger.info("File server started", port=self.port, path=str(self.shared_path))
        return self.port

    async def stop(self) -> None:
        """Stop serving; safe to call when not running."""
        if self._server is None:
            return

        await shutdown_server(self._server, self._serve_task)
        self._server = None
        self._serve_task = None
        logger.info("File server stopped", port=self.port)
