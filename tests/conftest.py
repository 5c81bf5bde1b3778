"""Shared pytest fixtures for pocket-share tests."""

import stat
from pathlib import Path

import pytest

from pocket_share.shares.config import ShareManagerConfig
from pocket_share.tunnel.config import TunnelConfig

FAKE_CLOUDFLARED_HEADER = """#!/bin/sh
if [ "$1" = "--version" ]; then
  echo "cloudflared version 2024.1.0 (built 2024-01-01)"
  exit 0
fi
"""


class FakeFileServer:
    """In-memory stand-in for ``FileServer``.

    ``bind_port`` forces the port reported by ``start()`` and ``fail`` makes
    ``start()`` raise, mimicking a file server that cannot come up.
    """

    instances: list["FakeFileServer"] = []
    bind_port: int | None = None
    fail: Exception | None = None

    def __init__(self, shared_path: str, passcode: str, port: int) -> None:
        self.shared_path = shared_path
        self.passcode = passcode
        self.port = port
        self.started = False
        self.stopped = False
        FakeFileServer.instances.append(self)

    async def start(self) -> int:
        if FakeFileServer.fail is not None:
            raise FakeFileServer.fail
        if FakeFileServer.bind_port is not None:
            self.port = FakeFileServer.bind_port
        self.started = True
        return self.port

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def fake_file_server():
    """Reset and return the fake file server class.

    Returns:
        type: ``FakeFileServer`` usable as a file server factory
    """
    FakeFileServer.instances = []
    FakeFileServer.bind_port = None
    FakeFileServer.fail = None
    yield FakeFileServer
    FakeFileServer.instances = []
    FakeFileServer.bind_port = None
    FakeFileServer.fail = None


@pytest.fixture
def make_cloudflared(tmp_path):
    """Factory writing an executable shell script that mimics cloudflared.

    The script answers ``--version`` and runs ``body`` for any other call.

    Returns:
        Callable[[str], Path]: Creates the script and returns its path
    """

    def _make(body: str, name: str = "cloudflared") -> Path:
        script = tmp_path / name
        script.write_text(FAKE_CLOUDFLARED_HEADER + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture
def cloudflared_dir(tmp_path):
    """Config directory holding credentials for the ``test-tunnel`` tunnel."""
    config_dir = tmp_path / ".cloudflared"
    config_dir.mkdir()
    (config_dir / "test-tunnel.json").write_text('{"TunnelSecret": "c2VjcmV0"}')
    return config_dir


@pytest.fixture
def tunnel_config_factory(cloudflared_dir):
    """Factory for tunnel configs pointing at a fake binary."""

    def _make(binary: Path | str, **overrides) -> TunnelConfig:
        values = {
            "tunnel_id": "test-tunnel",
            "domain": "example.com",
            "binary": str(binary),
            "config_dir": cloudflared_dir,
            "startup_timeout": 5.0,
            "stop_timeout": 0.5,
            "probe_timeout": 2.0,
        }
        values.update(overrides)
        return TunnelConfig(**values)

    return _make


@pytest.fixture
def manager_config(tmp_path):
    """Manager config with an isolated data directory and a small port range."""
    return ShareManagerConfig(
        proxy_port=18080,
        proxy_host="127.0.0.1",
        share_port_start=51000,
        share_port_end=51009,
        data_path=tmp_path / "data",
    )


@pytest.fixture
def shared_folder(tmp_path):
    """Folder with a nested directory and a couple of files."""
    folder = tmp_path / "shared"
    folder.mkdir()
    (folder / "notes.txt").write_text("hello from pocket-share")
    (folder / "b.bin").write_bytes(b"\x00\x01\x02")
    (folder / "docs").mkdir()
    (folder / "docs" / "readme.md").write_text("# docs")
    return folder
