"""Tunnel configuration model and cloudflared ingress config builder."""

import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.logging import get_logger

logger = get_logger(__name__)

DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)
CATCH_ALL_SERVICE = "http_status:404"


class TunnelConfig(BaseModel):
    """Configuration for the cloudflared tunnel supervisor."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    tunnel_id: str = Field(min_length=1, description="Named tunnel identifier")
    domain: str = Field(description="Zone whose wildcard subdomains reach the proxy")
    proxy_port: int = Field(default=8080, ge=1, le=65535, description="Local proxy port")
    binary: str = Field(default="cloudflared", description="Tunnel client executable")
    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".cloudflared",
        description="Directory holding credentials and the generated config",
    )
    startup_timeout: float = Field(
        default=45.0, ge=0.1, le=600.0, description="Seconds to wait for readiness"
    )
    stop_timeout: float = Field(
        default=5.0, ge=0.1, le=60.0, description="Grace period before force kill"
    )
    probe_timeout: float = Field(
        default=3.0, ge=0.1, le=60.0, description="Timeout of the version probe"
    )

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """Validate domain format."""
        v = v.lower().rstrip(".")
        if not DOMAIN_PATTERN.match(v):
            raise ValueError(f"Invalid domain: {v}")
        return v

    @field_validator("tunnel_id")
    @classmethod
    def validate_tunnel_id(cls, v: str) -> str:
        """Tunnel ids end up in file names, so keep them path-safe."""
        if not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError(
                "Tunnel id must contain only alphanumeric characters, hyphens, and underscores"
            )
        return v

    @property
    def credentials_path(self) -> Path:
        return self.config_dir / f"{self.tunnel_id}.json"

    @property
    def config_path(self) -> Path:
        return self.config_dir / "config.yml"

    @property
    def wildcard_hostname(self) -> str:
        return f"*.{self.domain}"

    @property
    def proxy_service(self) -> str:
        return f"http://localhost:{self.proxy_port}"


class IngressConfigBuilder:
    """Builder for cloudflared ingress configuration files."""

    def __init__(self) -> None:
        self._tunnel_id: str | None = None
        self._credentials_file: str | None = None
        self._rules: list[dict[str, str]] = []
        self._catch_all: str = CATCH_ALL_SERVICE

    def add_tunnel(self, tunnel_id: str, credentials_file: Path | str) -> "IngressConfigBuilder":
        """Set the tunnel identity.

        Args:
            tunnel_id: Named tunnel identifier
            credentials_file: Path to the tunnel credentials JSON

        Returns:
            Self for method chaining

        Raises:
            ValueError: If tunnel_id is empty
        """
        if not tunnel_id or not tunnel_id.strip():
            raise ValueError("Tunnel id cannot be empty")

        self._tunnel_id = tunnel_id.strip()
        self._credentials_file = str(credentials_file)
        return self

    def add_ingress(self, hostname: str, service: str) -> "IngressConfigBuilder":
        """Route ``hostname`` (wildcards allowed) to a local service URL."""
        self._rules.append({"hostname": hostname, "service": service})
        logger.debug("Added ingress rule", hostname=hostname, service=service)
        return self

    def set_catch_all(self, service: str) -> "IngressConfigBuilder":
        """Service answering requests that match no hostname rule."""
        self._catch_all = service
        return self

    def to_dict(self) -> dict[str, Any]:
        """Render the configuration as a mapping.

        Raises:
            ValueError: If the tunnel identity is not set
        """
        if not self._tunnel_id:
            raise ValueError("Tunnel not set. Call add_tunnel() first.")

        return {
            "tunnel": self._tunnel_id,
            "credentials-file": self._credentials_file,
            "ingress": [*self._rules, {"service": self._catch_all}],
        }

    def build(self, path: Path) -> Path:
        """Write the configuration to ``path``, replacing any previous file.

        Returns:
            The written path
        """
        content = yaml.safe_dump(self.to_dict(), sort_keys=False)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".config_", suffix=".yml"
        )
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        logger.info("Tunnel config created", path=str(path))
        return path

    @classmethod
    def for_tunnel(cls, config: TunnelConfig) -> "IngressConfigBuilder":
        """Builder pre-filled with the wildcard → proxy rule for ``config``."""
        return (
            cls()
            .add_tunnel(config.tunnel_id, config.credentials_path)
            .add_ingress(config.wildcard_hostname, config.proxy_service)
        )
