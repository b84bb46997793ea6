"""
Unit tests for publisher settings, URL helpers and logging configuration.
"""

import logging

import pytest

from campush.config import (
    DEFAULT_API_PREFIX,
    DEFAULT_BASE_URL,
    PublisherSettings,
    api_url,
    build_whip_url,
    require_base_url,
)
from campush.exceptions import CamPushError, ConfigError, ProtocolError
from campush.logging_config import CamPushLogger, setup_logging


class TestBaseUrl:
    """Test cases for base URL validation."""

    def test_trims_whitespace_and_trailing_slash(self):
        assert require_base_url("  https://hub.example/ ") == "https://hub.example"

    def test_keeps_path_prefix(self):
        assert require_base_url("http://localhost:8080/hall/") == "http://localhost:8080/hall"

    @pytest.mark.parametrize("raw", ["", "   ", None, "hub.example", "ftp://hub.example", "https://"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ConfigError):
            require_base_url(raw)

    def test_api_url(self):
        assert api_url("https://hub.example/", DEFAULT_API_PREFIX, "register") == \
            "https://hub.example/api/hall/publisher/register"
        assert api_url("https://hub.example", "", "/streams") == "https://hub.example/streams"


class TestWhipUrl:
    """Test cases for publish target construction."""

    def test_builds_target(self):
        assert build_whip_url("https://hub.example/", "live/video-cam1", "tok-1") == \
            "https://hub.example/internal/hall/whip/live/video-cam1/whip?token=tok-1"

    def test_quotes_segments_and_token(self):
        url = build_whip_url("https://hub.example", "//a b/c?d//", "t&k=1")
        assert url == "https://hub.example/internal/hall/whip/a%20b/c%3Fd/whip?token=t%26k%3D1"

    def test_empty_path(self):
        with pytest.raises(ConfigError):
            build_whip_url("https://hub.example", "///", "tok-1")


class TestSettings:
    """Test cases for PublisherSettings defaults."""

    def test_defaults(self):
        settings = PublisherSettings()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.api_prefix == "/api/hall/publisher"
        assert settings.request_timeout == 12.0
        assert settings.reconnect_backoff == 1.0
        assert settings.recovery_threshold == 2
        assert settings.display_name


class TestExceptions:
    """Test cases for the error hierarchy."""

    def test_context_and_cause(self):
        cause = ValueError("bad json")
        error = ProtocolError("invalid JSON", status=502, url="https://hub.example/x", cause=cause)

        assert isinstance(error, CamPushError)
        assert error.status == 502
        assert error.cause is cause
        assert error.context == {"status": 502, "url": "https://hub.example/x"}
        assert str(error) == "invalid JSON"


class TestLogging:
    """Test cases for logging configuration."""

    def setup_method(self):
        CamPushLogger.reset()

    def teardown_method(self):
        CamPushLogger.reset()
        logging.getLogger().handlers.clear()
        logging.getLogger().setLevel(logging.WARNING)

    def test_configure_writes_log_file(self, temp_dir):
        log_file = temp_dir / "logs" / "campush.log"
        setup_logging(log_level="DEBUG", log_file=log_file, console_output=False)

        logging.getLogger("campush.test").warning("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert CamPushLogger.get_log_file_path() == log_file
        assert "hello from the test" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("aiohttp").level == logging.WARNING

    def test_configure_only_once(self, temp_dir):
        setup_logging(log_file=temp_dir / "first.log", console_output=False)
        setup_logging(log_file=temp_dir / "second.log", console_output=False)

        assert CamPushLogger.get_log_file_path() == temp_dir / "first.log"

    def test_set_level(self, temp_dir):
        setup_logging(log_level="INFO", log_file=temp_dir / "campush.log", console_output=False)
        CamPushLogger.set_level("ERROR")

        assert logging.getLogger().level == logging.ERROR
