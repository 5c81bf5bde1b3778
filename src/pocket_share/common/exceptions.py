"""Custom exceptions for pocket-share."""


class PocketShareError(Exception):
    """Base exception for all pocket-share errors."""

    pass


class ShareNotFoundError(PocketShareError):
    """Raised when an operation targets an unknown share id."""

    def __init__(self, share_id: str):
        super().__init__(f"Share {share_id} not found")
        self.share_id = share_id


class NoAvailablePortError(PocketShareError):
    """Raised when the configured share port range is exhausted."""

    pass


class ProxyPortUnavailableError(PocketShareError):
    """Raised when a listener cannot bind after all retry attempts."""

    pass


class ProxyForwardError(PocketShareError):
    """Raised when forwarding a request to a share target fails."""

    pass


class PersistenceError(PocketShareError):
    """Raised when the share state file cannot be read, parsed or written."""

    pass


class FileServerError(PocketShareError):
    """Raised when a per-share file server fails to start or stop."""

    pass


class TunnelError(PocketShareError):
    """Base exception for tunnel supervisor failures."""

    pass


class PrerequisiteMissingError(TunnelError):
    """Raised when the tunnel client binary or its credentials are missing."""

    pass


class TunnelStartupTimeoutError(TunnelError):
    """Raised when the tunnel does not register a connection in time."""

    pass


class TunnelProcessExitedError(TunnelError):
    """Raised when the tunnel process exits before becoming ready."""

    def __init__(self, exit_code: int | None):
        super().__init__(f"cloudflared exited with code {exit_code}")
        self.exit_code = exit_code
