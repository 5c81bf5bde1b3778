"""Share registry models."""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ShareStatus(str, Enum):
    """Share lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ShareEvent(str, Enum):
    """Events published by the share manager."""

    STARTED = "started"
    STOPPED = "stopped"
    SHARE_CREATED = "share-created"
    SHARE_STARTED = "share-started"
    SHARE_STOPPED = "share-stopped"
    SHARE_DELETED = "share-deleted"
    TUNNEL_STARTED = "tunnel-started"
    TUNNEL_STOPPED = "tunnel-stopped"
    TUNNEL_ERROR = "tunnel-error"
    ERROR = "error"


class Share(BaseModel):
    """A shared folder (immutable design pattern).

    Serialized with camelCase keys, which is the on-disk format of the
    registry file.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(pattern=r"^[a-z0-9]+$", min_length=1, max_length=63)
    path: str = Field(min_length=1, description="Absolute folder path")
    passcode: str = Field(min_length=1, description="Shared secret for the file API")
    port: int = Field(ge=1, le=65535, description="Local port of the file server")
    status: ShareStatus = Field(default=ShareStatus.INACTIVE)
    created_at: datetime = Field(default_factory=datetime.now)
    last_accessed: datetime | None = Field(default=None)
    name: str | None = Field(default=None, description="Optional display name")

    @property
    def is_active(self) -> bool:
        return self.status == ShareStatus.ACTIVE

    @property
    def display_name(self) -> str:
        """Name shown to users; falls back to the folder name."""
        return self.name or Path(self.path).name or self.path

    def with_status(self, status: ShareStatus, **changes: object) -> "Share":
        """Create new share with updated status."""
        return self.model_copy(update={"status": status, **changes})

    def with_port(self, port: int) -> "Share":
        """Create new share bound to a different local port."""
        return self.model_copy(update={"port": port})

    def to_record(self) -> dict[str, object]:
        """Render the persisted JSON record."""
        return self.model_dump(mode="json", by_alias=True)
