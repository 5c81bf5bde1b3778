"""Share registry, persistence and per-share file servers."""

from .config import ShareManagerConfig
from .file_server import FileServer, FileServerFactory, FileServerProtocol, create_file_app
from .manager import ShareManager
from .models import Share, ShareEvent, ShareStatus
from .store import ShareStore

__all__ = [
    "ShareManager",
    "ShareManagerConfig",
    "Share",
    "ShareStatus",
    "ShareEvent",
    "ShareStore",
    "FileServer",
    "FileServerFactory",
    "FileServerProtocol",
    "create_file_app",
]
