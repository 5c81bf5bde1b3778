"""Tests for ShareManagerConfig."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pocket_share.shares.config import ShareManagerConfig


class TestShareManagerConfig:
    def test_defaults(self):
        config = ShareManagerConfig()

        assert config.proxy_port == 8080
        assert config.proxy_host == "0.0.0.0"
        assert config.share_port_start == 50000
        assert config.share_port_end == 65000
        assert config.data_path == Path.home() / ".pocket-file-sharing"
        assert config.tunnel is None
        assert config.fresh_boot is False
        assert config.domain is None
        assert config.local_domain == "localhost.localdomain"

    def test_port_range_must_not_be_empty(self):
        with pytest.raises(ValidationError, match="share_port_start"):
            ShareManagerConfig(share_port_start=60000, share_port_end=50000)

    def test_domain_prefers_tunnel(self):
        config = ShareManagerConfig(
            tunnel={"tunnel_id": "t", "domain": "tunnel.example.com"},
            public_domain="other.example.com",
        )
        assert config.domain == "tunnel.example.com"

    def test_public_domain_without_tunnel(self):
        assert ShareManagerConfig(public_domain="example.com").domain == "example.com"

    @pytest.mark.parametrize("local_domain", ["localhost", "share.", ".test"])
    def test_local_domain_needs_two_labels(self, local_domain):
        with pytest.raises(ValidationError, match="local_domain"):
            ShareManagerConfig(local_domain=local_domain)

    def test_local_domain_is_lower_cased(self):
        assert ShareManagerConfig(local_domain="Share.Test").local_domain == "share.test"


class TestFromEnv:
    def test_empty_environment_gives_defaults(self):
        assert ShareManagerConfig.from_env({}) == ShareManagerConfig()

    def test_reads_prefixed_variables(self, tmp_path):
        config = ShareManagerConfig.from_env(
            {
                "POCKET_SHARE_PROXY_PORT": "9000",
                "POCKET_SHARE_PROXY_HOST": "127.0.0.1",
                "POCKET_SHARE_PORT_START": "51000",
                "POCKET_SHARE_PORT_END": "51100",
                "POCKET_SHARE_DATA_PATH": str(tmp_path),
                "POCKET_SHARE_FRESH_BOOT": "yes",
                "POCKET_SHARE_PUBLIC_DOMAIN": "files.example.com",
                "POCKET_SHARE_LOCAL_DOMAIN": "share.test",
                "UNRELATED": "ignored",
            }
        )

        assert config.proxy_port == 9000
        assert config.proxy_host == "127.0.0.1"
        assert config.share_port_start == 51000
        assert config.share_port_end == 51100
        assert config.data_path == tmp_path
        assert config.fresh_boot is True
        assert config.public_domain == "files.example.com"
        assert config.local_domain == "share.test"
        assert config.tunnel is None

    def test_tunnel_from_environment(self, tmp_path):
        config = ShareManagerConfig.from_env(
            {
                "POCKET_SHARE_PROXY_PORT": "9000",
                "POCKET_SHARE_TUNNEL_ID": "my-tunnel",
                "POCKET_SHARE_TUNNEL_DOMAIN": "example.com",
                "POCKET_SHARE_CLOUDFLARED_BINARY": "/opt/cloudflared",
                "POCKET_SHARE_CLOUDFLARED_DIR": str(tmp_path),
            }
        )

        assert config.tunnel is not None
        assert config.tunnel.tunnel_id == "my-tunnel"
        assert config.tunnel.domain == "example.com"
        assert config.tunnel.proxy_port == 9000
        assert config.tunnel.binary == "/opt/cloudflared"
        assert config.tunnel.config_dir == tmp_path

    def test_tunnel_needs_id_and_domain(self):
        config = ShareManagerConfig.from_env({"POCKET_SHARE_TUNNEL_ID": "my-tunnel"})
        assert config.tunnel is None

    def test_fresh_boot_false_values(self):
        config = ShareManagerConfig.from_env({"POCKET_SHARE_FRESH_BOOT": "0"})
        assert config.fresh_boot is False

    def test_invalid_value(self):
        with pytest.raises(ValidationError):
            ShareManagerConfig.from_env({"POCKET_SHARE_PROXY_PORT": "not-a-port"})
