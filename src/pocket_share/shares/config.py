"""Share manager configuration."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..tunnel.config import TunnelConfig

ENV_PREFIX = "POCKET_SHARE_"
TRUE_VALUES = {"1", "true", "yes", "on"}


class ShareManagerConfig(BaseModel):
    """Pydantic configuration for the share manager"""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    proxy_port: int = Field(default=8080, ge=1, le=65535, description="Public proxy port")
    proxy_host: str = Field(default="0.0.0.0", min_length=1, description="Proxy interface")
    share_port_start: int = Field(default=50000, ge=1, le=65535, description="First share port")
    share_port_end: int = Field(default=65000, ge=1, le=65535, description="Last share port")
    data_path: Path = Field(
        default_factory=lambda: Path.home() / ".pocket-file-sharing",
        description="Directory holding shares.json",
    )
    tunnel: TunnelConfig | None = Field(default=None, description="Public tunnel settings")
    fresh_boot: bool = Field(default=False, description="Discard persisted shares on start")
    public_domain: str | None = Field(
        default=None, description="Domain used for share URLs when no tunnel is configured"
    )
    local_domain: str = Field(
        default="localhost.localdomain",
        min_length=1,
        description="Domain used for local share URLs when no public domain is set",
    )

    @field_validator("local_domain")
    @classmethod
    def validate_local_domain(cls, v: str) -> str:
        """Local share hosts need three labels to carry a subdomain"""
        labels = v.lower().split(".")
        if len(labels) < 2 or not all(labels):
            raise ValueError("local_domain needs at least two labels")
        return v.lower()

    @model_validator(mode="after")
    def validate_port_range(self) -> "ShareManagerConfig":
        """Ensure the share port range is not empty"""
        if self.share_port_start > self.share_port_end:
            raise ValueError("share_port_start must not exceed share_port_end")
        return self

    @property
    def domain(self) -> str | None:
        """Domain under which shares are publicly reachable."""
        if self.tunnel is not None:
            return self.tunnel.domain
        return self.public_domain

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ShareManagerConfig":
        """Build a configuration from ``POCKET_SHARE_*`` environment variables.

        A tunnel is configured when both ``POCKET_SHARE_TUNNEL_ID`` and
        ``POCKET_SHARE_TUNNEL_DOMAIN`` are set.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        values: dict[str, Any] = {}
        for field, name in (
            ("proxy_port", "PROXY_PORT"),
            ("proxy_host", "PROXY_HOST"),
            ("share_port_start", "PORT_START"),
            ("share_port_end", "PORT_END"),
            ("data_path", "DATA_PATH"),
            ("public_domain", "PUBLIC_DOMAIN"),
            ("local_domain", "LOCAL_DOMAIN"),
        ):
            value = get(name)
            if value is not None:
                values[field] = value

        fresh_boot = get("FRESH_BOOT")
        if fresh_boot is not None:
            values["fresh_boot"] = fresh_boot.lower() in TRUE_VALUES

        if "data_path" in values:
            values["data_path"] = Path(values["data_path"]).expanduser()

        tunnel_id = get("TUNNEL_ID")
        tunnel_domain = get("TUNNEL_DOMAIN")
        if tunnel_id and tunnel_domain:
            tunnel: dict[str, Any] = {"tunnel_id": tunnel_id, "domain": tunnel_domain}
            if "proxy_port" in values:
                tunnel["proxy_port"] = values["proxy_port"]
            binary = get("CLOUDFLARED_BINARY")
            if binary is not None:
                tunnel["binary"] = binary
            config_dir = get("CLOUDFLARED_DIR")
            if config_dir is not None:
                tunnel["config_dir"] = Path(config_dir).expanduser()
            values["tunnel"] = tunnel

        return cls.model_validate(values)
