"""
Unit tests for ServerConfig.
"""

import pytest

from translation_server.config import ServerConfig


class TestDefaults:

    def test_defaults_are_valid(self):
        config = ServerConfig()
        config.validate()

        assert config.host == "127.0.0.1"
        assert config.port == 5308
        assert config.single_read is True
        assert config.admission == "supersede"
        assert config.idle_timeout is None
        assert config.engine == "echo"


class TestValidation:

    @pytest.mark.parametrize("overrides,message", [
        ({"port": -1}, "Invalid port"),
        ({"port": 65536}, "Invalid port"),
        ({"min_workers": 0}, "min_workers"),
        ({"min_workers": 8, "max_workers": 4}, "max_workers"),
        ({"buffer_size": 100}, "buffer_size"),
        ({"idle_timeout": 0}, "idle_timeout"),
        ({"accept_timeout": 0}, "accept_timeout"),
        ({"admission": "fair"}, "admission"),
        ({"max_queued_jobs": -1}, "max_queued_jobs"),
        ({"engine": "babelfish"}, "engine"),
        ({"engine_timeout": 0}, "engine_timeout"),
    ])
    def test_invalid_values(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            ServerConfig(**overrides).validate()

    def test_port_zero_is_valid(self):
        ServerConfig(port=0).validate()


class TestFromEnv:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TRANSLATOR_HOST", "0.0.0.0")
        monkeypatch.setenv("TRANSLATOR_PORT", "0")
        monkeypatch.setenv("TRANSLATOR_SINGLE_READ", "false")
        monkeypatch.setenv("TRANSLATOR_ADMISSION", "queue")
        monkeypatch.setenv("TRANSLATOR_MAX_QUEUED", "2")
        monkeypatch.setenv("TRANSLATOR_IDLE_TIMEOUT", "15")
        monkeypatch.setenv("TRANSLATOR_ENGINE", "libretranslate")
        monkeypatch.setenv("TRANSLATOR_LIBRETRANSLATE_KEY", "secret")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 0
        assert config.single_read is False
        assert config.admission == "queue"
        assert config.max_queued_jobs == 2
        assert config.idle_timeout == 15.0
        assert config.engine == "libretranslate"
        assert config.libretranslate_api_key == "secret"

    def test_missing_variables_use_defaults(self, monkeypatch):
        for name in ("TRANSLATOR_PORT", "TRANSLATOR_IDLE_TIMEOUT", "TRANSLATOR_LIBRETRANSLATE_KEY"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.port == 5308
        assert config.idle_timeout is None
        assert config.libretranslate_api_key is None

    def test_reads_worker_and_engine_timeout_settings(self, monkeypatch):
        monkeypatch.setenv("TRANSLATOR_WORKERS", "6")
        monkeypatch.setenv("TRANSLATOR_MIN_WORKERS", "3")
        monkeypatch.setenv("TRANSLATOR_ENGINE_TIMEOUT", "2.5")

        config = ServerConfig.from_env()

        assert (config.min_workers, config.max_workers) == (3, 6)
        assert config.engine_timeout == 2.5
        config.validate()

    def test_min_workers_follows_small_max(self, monkeypatch):
        monkeypatch.setenv("TRANSLATOR_WORKERS", "2")
        monkeypatch.delenv("TRANSLATOR_MIN_WORKERS", raising=False)

        config = ServerConfig.from_env()

        assert config.min_workers == 2
        config.validate()
