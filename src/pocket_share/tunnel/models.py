"""Tunnel status models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TunnelState(str, Enum):
    """Tunnel supervisor state machine."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


class TunnelEvent(str, Enum):
    """Events published by the tunnel supervisor."""

    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


class TunnelStatus(BaseModel):
    """Snapshot of the tunnel supervisor (immutable design pattern)."""

    model_config = ConfigDict(frozen=True)

    tunnel_id: str | None = Field(default=None, description="Configured tunnel id")
    state: TunnelState = Field(default=TunnelState.STOPPED)
    error: str | None = Field(default=None, description="Last failure message")
    start_time: datetime | None = Field(default=None, description="When it became ready")
    connections: int = Field(default=0, ge=0, description="Registered connections seen")

    @property
    def is_running(self) -> bool:
        return self.state == TunnelState.RUNNING

    def with_state(self, state: TunnelState, **changes: object) -> "TunnelStatus":
        """Create new status with an updated state and optional field changes."""
        return self.model_copy(update={"state": state, **changes})

    def to_public_dict(self) -> dict[str, object]:
        """Shape reported to the GUI layer."""
        return {
            "isRunning": self.is_running,
            "error": self.error,
            "startTime": self.start_time.isoformat() if self.start_time else None,
        }


class PrerequisiteReport(BaseModel):
    """Result of checking the tunnel client installation."""

    cloudflared_installed: bool
    credentials_found: bool
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
