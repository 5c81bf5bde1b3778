"""Proxy route models.

Routes are immutable; the route table swaps in updated copies.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


class ProxyEvent(str, Enum):
    """Events published by the dynamic proxy."""

    STARTED = "started"
    STOPPED = "stopped"
    ROUTE_ADDED = "route-added"
    ROUTE_REMOVED = "route-removed"
    ROUTE_UPDATED = "route-updated"
    ROUTES_CLEARED = "routes-cleared"


class Route(BaseModel):
    """Forwarding rule from a subdomain to a local share port."""

    model_config = ConfigDict(frozen=True)

    share_id: str = Field(min_length=1, description="Share owning this route")
    subdomain: str = Field(description="Leftmost host label routed to the share")
    target_port: int = Field(ge=1, le=65535, description="Local port to forward to")
    active: bool = Field(default=False, description="Whether traffic is forwarded")

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: str) -> str:
        """Subdomains must be valid lowercase DNS labels."""
        if not SUBDOMAIN_PATTERN.match(v):
            raise ValueError(
                "Subdomain must be a lowercase DNS label (a-z, 0-9, hyphen)"
            )
        return v

    def with_active(self, active: bool) -> "Route":
        """Create a copy with the active flag changed (immutable pattern)."""
        return self.model_copy(update={"active": active})

    def with_target_port(self, target_port: int) -> "Route":
        """Create a copy pointing at another local port."""
        return self.model_copy(update={"target_port": target_port})

    def to_health_entry(self) -> dict[str, Any]:
        """Public identity of the route, as reported by ``/health``."""
        return {
            "shareId": self.share_id,
            "subdomain": self.subdomain,
            "active": self.active,
        }


class ProxyHealth(BaseModel):
    """Health snapshot of the proxy listener."""

    healthy: bool
    routes: int = Field(ge=0)
    active_routes: int = Field(ge=0)
    port: int
