"""Supervisor for the cloudflared tunnel client process."""

import asyncio
import contextlib
from datetime import datetime
from typing import Any

from ..common.events import EventBus
from ..common.exceptions import (
    PrerequisiteMissingError,
    TunnelError,
    TunnelProcessExitedError,
    TunnelStartupTimeoutError,
)
from ..common.logging import get_logger
from .config import IngressConfigBuilder, TunnelConfig
from .models import PrerequisiteReport, TunnelEvent, TunnelState, TunnelStatus
from .output import OutputClassifier, OutputKind

logger = get_logger(__name__)

# cloudflared can print long JSON blobs on a single line
OUTPUT_LINE_LIMIT = 1024 * 1024


class TunnelSupervisor:
    """Owns exactly one cloudflared process and reports its state.

    States move ``stopped → starting → running → stopped``; a failed start
    ends in ``error`` and an unexpected exit while running ends in
    ``stopped`` with the exit recorded as the error.
    """

    def __init__(
        self, config: TunnelConfig, classifier: OutputClassifier | None = None
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Tunnel identity, binary and timeouts
            classifier: Output classifier (default cloudflared heuristics)
        """
        self.config = config
        self.events = EventBus("tunnel")
        self._classifier = classifier or OutputClassifier()
        self._status = TunnelStatus(tunnel_id=config.tunnel_id)
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[None] | None = None
        self._cleanup_tasks: set[asyncio.Task[Any]] = set()
        self._last_exit_code: int | None = None
        self._stopping = False

    @property
    def pid(self) -> int | None:
        """Process id of the running tunnel client."""
        return self._process.pid if self._process else None

    def get_status(self) -> TunnelStatus:
        """Return a snapshot copy of the current status."""
        return self._status.model_copy()

    async def check_installed(self) -> bool:
        """Probe ``<binary> --version`` within the probe timeout."""
        try:
            probe = await asyncio.create_subprocess_exec(
                self.config.binary,
                "--version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.debug("Tunnel client probe failed", binary=self.config.binary, error=str(e))
            return False

        try:
            code = await asyncio.wait_for(probe.wait(), timeout=self.config.probe_timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                probe.kill()
            await probe.wait()
            logger.warning("Tunnel client probe timed out", binary=self.config.binary)
            return False

        return code == 0

    def check_credentials(self) -> bool:
        """Check that the credentials file for the tunnel id exists."""
        return self.config.credentials_path.is_file()

    async def check_prerequisites(self) -> PrerequisiteReport:
        """Report whether the tunnel client can be started."""
        installed = await self.check_installed()
        credentials = self.check_credentials()

        errors = []
        if not installed:
            errors.append(f"{self.config.binary} is not installed or not runnable")
        if not credentials:
            errors.append(
                f"Tunnel credentials not found: {self.config.credentials_path}"
            )

        return PrerequisiteReport(
            cloudflared_installed=installed,
            credentials_found=credentials,
            errors=errors,
        )

    async def start(self) -> None:
        """Start the tunnel and wait for its first registered connection.

        Raises:
            PrerequisiteMissingError: If the binary or credentials are missing
            TunnelStartupTimeoutError: If no connection registers in time
            TunnelProcessExitedError: If the process exits before readiness
            TunnelError: If the process cannot be spawned or is already starting
        """
        if self._status.state == TunnelState.RUNNING:
            logger.info("Tunnel already running", tunnel_id=self.config.tunnel_id)
            return
        if self._status.state == TunnelState.STARTING:
            raise TunnelError("Tunnel is already starting")

        logger.info("Starting cloudflare tunnel", tunnel_id=self.config.tunnel_id)
        self._status = self._status.with_state(
            TunnelState.STARTING, error=None, connections=0
        )

        try:
            report = await self.check_prerequisites()
            if not report.cloudflared_installed:
                raise PrerequisiteMissingError(f"{self.config.binary} not installed")
            if not report.credentials_found:
                raise PrerequisiteMissingError(
                    f"Tunnel credentials not found: {self.config.credentials_path}"
                )

            IngressConfigBuilder.for_tunnel(self.config).build(self.config.config_path)
            await self._start_process()
        except Exception as e:
            self._status = self._status.with_state(TunnelState.ERROR, error=str(e))
            logger.error("Failed to start tunnel", error=str(e))
            self.events.emit(TunnelEvent.ERROR, e)
            raise

        self._status = self._status.with_state(
            TunnelState.RUNNING, start_time=datetime.now(), error=None
        )
        logger.info(
            "Cloudflare tunnel started",
            public_access=f"https://{self.config.wildcard_hostname}",
            connections=self._status.connections,
        )
        self.events.emit(TunnelEvent.STARTED, self.get_status())

    async def _start_process(self) -> None:
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[None] = loop.create_future()

        args = [
            "tunnel",
            "--config",
            str(self.config.config_path),
            "run",
            self.config.tunnel_id,
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                self.config.binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=OUTPUT_LINE_LIMIT,
            )
        except OSError as e:
            raise TunnelError(f"Failed to start cloudflared: {e}") from e

        logger.info("cloudflared process spawned", pid=process.pid)
        self._process = process
        self._last_exit_code = None
        self._reader_task = asyncio.create_task(self._pump_output(process, ready))
        self._exit_task = asyncio.create_task(self._watch_exit(process, ready))

        done, _ = await asyncio.wait({ready}, timeout=self.config.startup_timeout)
        if not done:
            ready.cancel()
            logger.error(
                "Tunnel startup timeout - no connections established",
                timeout=self.config.startup_timeout,
            )
            # The exit watcher reaps the process once it is gone
            self._spawn_cleanup(self._terminate(process))
            raise TunnelStartupTimeoutError(
                f"Tunnel startup timeout after {self.config.startup_timeout}s"
            )

        ready.result()

        # Exited right after registering, before start() resumed
        if self._process is None:
            raise TunnelProcessExitedError(self._last_exit_code)

    async def _pump_output(
        self, process: asyncio.subprocess.Process, ready: "asyncio.Future[None]"
    ) -> None:
        if process.stdout is None:
            return

        async for raw in process.stdout:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue

            logger.debug("cloudflared output", line=line)
            kind = self._classifier.classify(line)

            if kind is OutputKind.READY:
                connections = self._status.connections + 1
                self._status = self._status.model_copy(
                    update={"connections": connections}
                )
                logger.info("Tunnel connection established", connection=connections)
                if not ready.done():
                    ready.set_result(None)
            elif kind is OutputKind.FATAL:
                logger.error("cloudflared reported an error", line=line)
                self._status = self._status.model_copy(update={"error": line})

    async def _watch_exit(
        self, process: asyncio.subprocess.Process, ready: "asyncio.Future[None]"
    ) -> None:
        code = await process.wait()
        if self._reader_task is not None:
            # Drain remaining output so a late readiness line is not lost
            with contextlib.suppress(Exception):
                await self._reader_task

        logger.info("cloudflared exited", code=code, pid=process.pid)
        self._last_exit_code = code
        if self._process is process:
            self._process = None

        if not ready.done():
            ready.set_exception(TunnelProcessExitedError(code))
            return

        if self._stopping or self._status.state != TunnelState.RUNNING:
            return

        error = None if code == 0 else f"cloudflared exited with code {code}"
        self._status = self._status.with_state(TunnelState.STOPPED, error=error)
        logger.warning("Tunnel exited unexpectedly", code=code)
        self.events.emit(TunnelEvent.STOPPED, self.get_status())

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Send SIGTERM, then SIGKILL after the grace period."""
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.config.stop_timeout)
        except TimeoutError:
            logger.warning(
                "Tunnel did not terminate gracefully, force killing", pid=process.pid
            )
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    def _spawn_cleanup(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def stop(self) -> None:
        """Stop the tunnel process; no-op unless running."""
        if self._status.state != TunnelState.RUNNING:
            return

        logger.info("Stopping cloudflare tunnel", pid=self.pid)
        self._stopping = True
        try:
            process = self._process
            if process is not None and process.returncode is None:
                await self._terminate(process)
            if self._exit_task is not None:
                await self._exit_task
        finally:
            self._stopping = False
            self._process = None
            self._reader_task = None
            self._exit_task = None
            self._status = self._status.with_state(TunnelState.STOPPED)

        logger.info("Tunnel stopped")
        self.events.emit(TunnelEvent.STOPPED, self.get_status())
