"""
Unit tests for ServerConfig.
"""

import warnings
from pathlib import Path

import pytest

from downloadserver import config as config_module
from downloadserver.config import ServerConfig


class TestDefaults:

    def test_defaults(self):
        config = ServerConfig()

        assert config.max_bytes_per_second == 1024 * 1024
        assert config.throttle_scope == "response"
        assert config.download_prefix == "/download"
        config.validate()

    def test_module_compiles_without_warnings(self):
        source = Path(config_module.__file__).read_text(encoding="utf-8")

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, config_module.__file__, "exec")


class TestFromEnv:

    def test_reads_download_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOWNLOAD_PORT", "9000")
        monkeypatch.setenv("DOWNLOAD_STORAGE_DIR", str(tmp_path))
        monkeypatch.setenv("DOWNLOAD_RATE", "2048")
        monkeypatch.setenv("DOWNLOAD_THROTTLE_SCOPE", "global")
        monkeypatch.setenv("DOWNLOAD_LOG_FORMAT", "json")

        config = ServerConfig.from_env()

        assert config.port == 9000
        assert config.storage_dir == str(tmp_path)
        assert config.max_bytes_per_second == 2048
        assert config.throttle_scope == "global"
        assert config.log_format == "json"
        config.validate()

    @pytest.mark.parametrize("value", ["0", "off", "none", "unlimited"])
    def test_rate_can_be_disabled(self, monkeypatch, value):
        monkeypatch.setenv("DOWNLOAD_RATE", value)

        assert ServerConfig.from_env().max_bytes_per_second is None

    def test_rate_default(self, monkeypatch):
        monkeypatch.delenv("DOWNLOAD_RATE", raising=False)

        assert ServerConfig.from_env().max_bytes_per_second == 1024 * 1024


class TestValidate:

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"max_bytes_per_second": 0},
        {"throttle_scope": "per-ip"},
        {"stream_chunk_size": 0},
        {"download_prefix": "download"},
        {"log_format": "xml"},
        {"storage_dir": "/definitely/not/here"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_unlimited_rate_allowed(self):
        ServerConfig(max_bytes_per_second=None).validate()
