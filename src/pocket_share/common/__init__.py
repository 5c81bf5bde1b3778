"""Common utilities and shared functionality."""

from .events import Event, EventBus
from .exceptions import (
    FileServerError,
    NoAvailablePortError,
    PersistenceError,
    PocketShareError,
    PrerequisiteMissingError,
    ProxyForwardError,
    ProxyPortUnavailableError,
    ShareNotFoundError,
    TunnelError,
    TunnelProcessExitedError,
    TunnelStartupTimeoutError,
)
from .logging import get_logger, setup_logging
from .server import EmbeddedServer, bind_with_retry, serve_app, shutdown_server
from .utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    sanitize_log_data,
    validate_non_empty_string,
    validate_port,
)

__all__ = [
    # Events
    "Event",
    "EventBus",
    # Exceptions
    "PocketShareError",
    "ShareNotFoundError",
    "NoAvailablePortError",
    "ProxyPortUnavailableError",
    "ProxyForwardError",
    "PersistenceError",
    "FileServerError",
    "TunnelError",
    "PrerequisiteMissingError",
    "TunnelStartupTimeoutError",
    "TunnelProcessExitedError",
    # Logging
    "get_logger",
    "setup_logging",
    # Listeners
    "EmbeddedServer",
    "bind_with_retry",
    "serve_app",
    "shutdown_server",
    # Utils
    "validate_port",
    "validate_non_empty_string",
    "mask_sensitive_data",
    "sanitize_log_data",
    "MIN_PORT",
    "MAX_PORT",
]
