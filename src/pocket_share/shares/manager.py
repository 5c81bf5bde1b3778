"""Share registry and lifecycle orchestration."""

import asyncio
from datetime import datetime
from pathlib import Path
from types import TracebackType

from ..common.events import Event, EventBus, EventCallback
from ..common.exceptions import (
    NoAvailablePortError,
    PersistenceError,
    ShareNotFoundError,
    TunnelError,
)
from ..common.logging import get_logger
from ..common.utils import sanitize_log_data, validate_non_empty_string
from ..proxy.identifiers import generate_passcode, generate_share_id
from ..proxy.models import Route
from ..proxy.server import DynamicProxy
from ..tunnel.models import PrerequisiteReport, TunnelEvent, TunnelStatus
from ..tunnel.supervisor import TunnelSupervisor
from .config import ShareManagerConfig
from .file_server import FileServer, FileServerFactory, FileServerProtocol
from .models import Share, ShareEvent, ShareStatus
from .store import ShareStore

logger = get_logger(__name__)


class ShareManager:
    """Owns the share registry, the per-share file servers, the proxy and the tunnel.

    Every registry mutation is persisted immediately. A share is ``active``
    exactly when its file server is held and its route is enabled, for as
    long as the manager runs.
    """

    def __init__(
        self,
        config: ShareManagerConfig | None = None,
        file_server_factory: FileServerFactory | None = None,
        proxy: DynamicProxy | None = None,
        tunnel: TunnelSupervisor | None = None,
        store: ShareStore | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Manager configuration (defaults apply when omitted)
            file_server_factory: Builds a file server from (path, passcode, port)
            proxy: Proxy to route through; built from ``config`` when omitted
            tunnel: Tunnel supervisor; built from ``config.tunnel`` when omitted
            store: Registry persistence; ``<data_path>/shares.json`` when omitted
        """
        self.config = config or ShareManagerConfig()
        self.events = EventBus("shares")
        self.proxy = proxy or DynamicProxy(
            port=self.config.proxy_port, host=self.config.proxy_host
        )
        if tunnel is None and self.config.tunnel is not None:
            tunnel_config = self.config.tunnel.model_copy(
                update={"proxy_port": self.config.proxy_port}
            )
            tunnel = TunnelSupervisor(tunnel_config)
        self.tunnel = tunnel
        self.store = store or ShareStore(self.config.data_path)

        self._file_server_factory: FileServerFactory = file_server_factory or FileServer
        self._shares: dict[str, Share] = {}
        self._file_servers: dict[str, FileServerProtocol] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._running = False

        if self.tunnel is not None:
            self._relay_tunnel_events(self.tunnel)

    def _relay_tunnel_events(self, tunnel: TunnelSupervisor) -> None:
        relays = {
            TunnelEvent.STARTED: ShareEvent.TUNNEL_STARTED,
            TunnelEvent.STOPPED: ShareEvent.TUNNEL_STOPPED,
            TunnelEvent.ERROR: ShareEvent.TUNNEL_ERROR,
        }
        for source, target in relays.items():
            tunnel.events.subscribe(source, self._make_relay(target))

    def _make_relay(self, target: ShareEvent) -> EventCallback:
        def relay(event: Event) -> None:
            self.events.emit(target, event.payload)

        return relay

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start proxy and tunnel, then restore persisted shares.

        Raises:
            ProxyPortUnavailableError: If the proxy cannot bind a port
        """
        if self._running:
            logger.debug("Share manager already running")
            return

        logger.info("Starting share manager", data_path=str(self.config.data_path))

        if self.config.fresh_boot:
            await self._clear_all()

        proxy_result, tunnel_result = await asyncio.gather(
            self.proxy.start(), self._start_tunnel(), return_exceptions=True
        )
        if isinstance(tunnel_result, BaseException):
            logger.error("Unexpected tunnel failure", error=str(tunnel_result))
        if isinstance(proxy_result, BaseException):
            logger.error("Failed to start proxy", error=str(proxy_result))
            if self.tunnel is not None and self.tunnel.get_status().is_running:
                await self.tunnel.stop()
            self.events.emit(ShareEvent.ERROR, proxy_result)
            raise proxy_result

        await self._load_shares()

        self._running = True
        logger.info(
            "Share manager started",
            proxy_port=self.proxy.get_port(),
            shares=len(self._shares),
            tunnel=self.get_tunnel_status().is_running,
        )
        self.events.emit(ShareEvent.STARTED)

    async def _start_tunnel(self) -> None:
        if self.tunnel is None:
            logger.info("No tunnel configured, running in local-only mode")
            return

        try:
            await self.tunnel.start()
        except (TunnelError, OSError) as e:
            logger.warning(
                "Tunnel failed to start, running in local-only mode", error=str(e)
            )

    async def stop(self) -> None:
        """Stop every file server, the proxy and the tunnel.

        Share statuses are kept so active shares come back on the next start.
        """
        if not self._running:
            return

        logger.info("Stopping share manager", file_servers=len(self._file_servers))

        for share_id, server in list(self._file_servers.items()):
            try:
                await server.stop()
            except Exception as e:
                logger.error("Failed to stop file server", share_id=share_id, error=str(e))
        self._file_servers.clear()

        try:
            await self.proxy.stop()
        except Exception as e:
            logger.error("Failed to stop proxy", error=str(e))

        if self.tunnel is not None:
            try:
                await self.tunnel.stop()
            except Exception as e:
                logger.error("Failed to stop tunnel", error=str(e))

        self._running = False
        logger.info("Share manager stopped")
        self.events.emit(ShareEvent.STOPPED)

    async def __aenter__(self) -> "ShareManager":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def create_share(
        self, path: str | Path, passcode: str | None = None, name: str | None = None
    ) -> str:
        """Register a folder as a new, inactive share.

        Args:
            path: Existing directory to share
            passcode: Passcode for the file API; generated when omitted
            name: Optional display name

        Returns:
            The new share id

        Raises:
            ValueError: If path is not an existing directory or passcode is blank
            NoAvailablePortError: If the share port range is exhausted
        """
        folder = Path(validate_non_empty_string(str(path), "Share path")).expanduser()
        folder = folder.resolve()
        if not folder.is_dir():
            raise ValueError(f"Share path is not a directory: {folder}")

        if passcode is None:
            passcode = generate_passcode()
        else:
            passcode = validate_non_empty_string(passcode, "Passcode")

        share_id = self._generate_unique_id()
        port = self._find_available_port()

        share = Share(
            id=share_id,
            path=str(folder),
            passcode=passcode,
            port=port,
            status=ShareStatus.INACTIVE,
            name=name,
        )
        self._shares[share_id] = share
        self.proxy.routes.add_route(self._route_for(share))
        self._save_shares()

        logger.info(
            "Share created",
            **sanitize_log_data(
                {"share_id": share_id, "path": share.path, "port": port, "passcode": passcode}
            ),
        )
        self.events.emit(ShareEvent.SHARE_CREATED, share)
        return share_id

    async def start_share(self, share_id: str) -> Share:
        """Start the file server of a share and enable its route.

        Concurrent calls for the same share wait for the first one and
        return the share it activated.

        Raises:
            ShareNotFoundError: If the share does not exist
            FileServerError: If the file server fails to start
        """
        self._require_share(share_id)
        async with self._lock_for(share_id):
            share = self._require_share(share_id)
            if share.is_active:
                return share

            updated = await self._launch(share)
            self._save_shares()

        logger.info("Share started", share_id=share_id, port=updated.port)
        self.events.emit(ShareEvent.SHARE_STARTED, updated)
        return updated

    async def stop_share(self, share_id: str) -> Share:
        """Stop the file server of a share and disable its route.

        Raises:
            ShareNotFoundError: If the share does not exist
        """
        self._require_share(share_id)
        async with self._lock_for(share_id):
            return await self._stop_share(share_id)

    async def _stop_share(self, share_id: str) -> Share:
        share = self._require_share(share_id)
        if not share.is_active:
            return share

        server = self._file_servers.pop(share_id, None)
        if server is not None:
            try:
                await server.stop()
            except Exception as e:
                logger.error("Failed to stop file server", share_id=share_id, error=str(e))

        self.proxy.routes.update_route_status(share_id, False)
        updated = share.with_status(ShareStatus.INACTIVE)
        self._shares[share_id] = updated
        self._save_shares()

        logger.info("Share stopped", share_id=share_id)
        self.events.emit(ShareEvent.SHARE_STOPPED, updated)
        return updated

    async def delete_share(self, share_id: str) -> None:
        """Stop a share if needed and remove it with its route.

        Raises:
            ShareNotFoundError: If the share does not exist
        """
        self._require_share(share_id)
        async with self._lock_for(share_id):
            share = self._require_share(share_id)
            if share.is_active:
                share = await self._stop_share(share_id)

            self.proxy.routes.remove_route(share_id)
            del self._shares[share_id]
            self._locks.pop(share_id, None)
            self._save_shares()

        logger.info("Share deleted", share_id=share_id)
        self.events.emit(ShareEvent.SHARE_DELETED, share)

    async def toggle_share(self, share_id: str) -> Share:
        """Start an inactive share or stop an active one."""
        share = self._require_share(share_id)
        if share.is_active:
            return await self.stop_share(share_id)
        return await self.start_share(share_id)

    def get_shares(self) -> list[Share]:
        return list(self._shares.values())

    def get_share(self, share_id: str) -> Share | None:
        return self._shares.get(share_id)

    def get_tunnel_status(self) -> TunnelStatus:
        if self.tunnel is None:
            return TunnelStatus(error="No tunnel configured")
        return self.tunnel.get_status()

    def share_url(self, share_id: str) -> str:
        """Address at which a share is reachable.

        Raises:
            ShareNotFoundError: If the share does not exist
        """
        self._require_share(share_id)
        domain = self.config.domain
        if domain:
            return f"https://{share_id}.{domain}"
        return f"http://{share_id}.{self.config.local_domain}:{self.proxy.get_port()}"

    async def restart_tunnel(self) -> None:
        """Stop and start the tunnel supervisor.

        Raises:
            TunnelError: If no tunnel is configured or it fails to start
        """
        if self.tunnel is None:
            raise TunnelError("No tunnel configured")

        logger.info("Restarting tunnel")
        await self.tunnel.stop()
        await self.tunnel.start()

    async def check_prerequisites(self) -> PrerequisiteReport:
        if self.tunnel is None:
            return PrerequisiteReport(
                cloudflared_installed=False,
                credentials_found=False,
                errors=["No tunnel configured"],
            )
        return await self.tunnel.check_prerequisites()

    async def _launch(self, share: Share) -> Share:
        """Start the file server for ``share`` and record it as active."""
        server = self._file_server_factory(share.path, share.passcode, share.port)
        actual_port = await server.start()

        updated = share
        if actual_port != share.port:
            logger.info(
                "File server bound a different port",
                share_id=share.id,
                requested=share.port,
                actual=actual_port,
            )
            try:
                self._reconcile_port(share.id, actual_port)
            except NoAvailablePortError:
                await server.stop()
                raise
            updated = share.with_port(actual_port)
            self.proxy.routes.add_route(self._route_for(updated, active=True))
        elif not self.proxy.routes.update_route_status(share.id, True):
            self.proxy.routes.add_route(self._route_for(share, active=True))

        self._file_servers[share.id] = server
        updated = updated.with_status(ShareStatus.ACTIVE, last_accessed=datetime.now())
        self._shares[share.id] = updated
        return updated

    def _reconcile_port(self, share_id: str, port: int) -> None:
        """Move any other share registered on ``port`` to a free port."""
        for other in list(self._shares.values()):
            if other.id == share_id or other.port != port:
                continue

            new_port = self._find_available_port(exclude={port})
            self._shares[other.id] = other.with_port(new_port)
            route = self.proxy.routes.get_route(other.id)
            if route is not None:
                self.proxy.routes.add_route(route.with_target_port(new_port))
            else:
                self.proxy.routes.add_route(self._route_for(other.with_port(new_port)))
            logger.warning(
                "Reassigned share port",
                share_id=other.id,
                old_port=port,
                new_port=new_port,
            )

    @staticmethod
    def _route_for(share: Share, active: bool = False) -> Route:
        # The share id doubles as the subdomain label
        return Route(
            share_id=share.id, subdomain=share.id, target_port=share.port, active=active
        )

    def _find_available_port(self, exclude: set[int] | None = None) -> int:
        used = {share.port for share in self._shares.values()}
        if exclude:
            used |= exclude

        for port in range(self.config.share_port_start, self.config.share_port_end + 1):
            if port not in used:
                return port

        raise NoAvailablePortError(
            f"No available ports in range "
            f"{self.config.share_port_start}-{self.config.share_port_end}"
        )

    def _generate_unique_id(self) -> str:
        share_id = generate_share_id()
        while share_id in self._shares:
            share_id = generate_share_id()
        return share_id

    def _lock_for(self, share_id: str) -> asyncio.Lock:
        lock = self._locks.get(share_id)
        if lock is None:
            lock = self._locks[share_id] = asyncio.Lock()
        return lock

    def _require_share(self, share_id: str) -> Share:
        share = self._shares.get(share_id)
        if share is None:
            raise ShareNotFoundError(share_id)
        return share

    def _save_shares(self) -> None:
        try:
            self.store.save(list(self._shares.values()))
        except PersistenceError as e:
            logger.error("Failed to save shares", error=str(e))

    async def _load_shares(self) -> None:
        """Rebuild the registry and routes from disk and restart active shares."""
        self._shares.clear()
        self.proxy.routes.clear_all_routes()

        try:
            shares = self.store.load()
        except PersistenceError as e:
            logger.error("Failed to load shares, starting empty", error=str(e))
            shares = []

        for share in shares:
            if share.id in self._shares:
                logger.warning("Skipping duplicate share record", share_id=share.id)
                continue
            self._shares[share.id] = share
            self.proxy.routes.add_route(self._route_for(share))

        for share in list(self._shares.values()):
            if not share.is_active:
                continue
            try:
                await self._launch(share)
                logger.info("Restored share", share_id=share.id)
            except Exception as e:
                logger.error("Failed to restore share", share_id=share.id, error=str(e))
                current = self._shares[share.id]
                self._shares[share.id] = current.with_status(ShareStatus.INACTIVE)
                self.proxy.routes.update_route_status(share.id, False)

        logger.info("Loaded shares", count=len(self._shares))
        self._save_shares()

    async def _clear_all(self) -> None:
        """Forget every share, route and file server and delete the registry file."""
        for share_id, server in list(self._file_servers.items()):
            try:
                await server.stop()
            except Exception as e:
                logger.error("Failed to stop file server", share_id=share_id, error=str(e))
        self._file_servers.clear()
        self.proxy.routes.clear_all_routes()
        self._shares.clear()
        self._locks.clear()

        try:
            self.store.clear()
        except PersistenceError as e:
            logger.error("Failed to clear persisted shares", error=str(e))

        logger.info("Cleared all shares for a fresh start")
