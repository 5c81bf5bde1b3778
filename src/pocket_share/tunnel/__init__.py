"""cloudflared tunnel supervision."""

from .config import IngressConfigBuilder, TunnelConfig
from .models import PrerequisiteReport, TunnelEvent, TunnelState, TunnelStatus
from .output import OutputClassifier, OutputKind
from .supervisor import TunnelSupervisor

__all__ = [
    "TunnelConfig",
    "IngressConfigBuilder",
    "TunnelSupervisor",
    "TunnelStatus",
    "TunnelState",
    "TunnelEvent",
    "PrerequisiteReport",
    "OutputClassifier",
    "OutputKind",
]
