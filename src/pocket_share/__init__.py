"""pocket-share - share local folders on per-share subdomains."""

from .common.events import Event, EventBus
from .common.exceptions import (
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
from .common.logging import get_logger, setup_logging
from .common.utils import mask_sensitive_data, sanitize_log_data
from .proxy import DynamicProxy, ProxyHealth, Route, RouteTable
from .shares import (
    FileServer,
    FileServerProtocol,
    Share,
    ShareEvent,
    ShareManager,
    ShareManagerConfig,
    ShareStatus,
    ShareStore,
)
from .tunnel import (
    OutputClassifier,
    PrerequisiteReport,
    TunnelConfig,
    TunnelState,
    TunnelStatus,
    TunnelSupervisor,
)

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # Orchestration
    "ShareManager",
    "ShareManagerConfig",
    "Share",
    "ShareStatus",
    "ShareEvent",
    "ShareStore",
    "FileServer",
    "FileServerProtocol",
    # Proxy
    "DynamicProxy",
    "RouteTable",
    "Route",
    "ProxyHealth",
    # Tunnel
    "TunnelSupervisor",
    "TunnelConfig",
    "TunnelStatus",
    "TunnelState",
    "PrerequisiteReport",
    "OutputClassifier",
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
    # Utilities
    "get_logger",
    "setup_logging",
    "mask_sensitive_data",
    "sanitize_log_data",
]
