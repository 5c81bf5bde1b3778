"""Test logging configuration."""

import logging
from pathlib import Path

import structlog
from structlog.testing import LogCapture

from pocket_share.common.logging import NOISY_LOGGERS, get_logger, setup_logging


class TestLogging:
    """Test logging functionality."""

    def setup_method(self) -> None:
        """Reset logging configuration before each test."""
        structlog.reset_defaults()
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    def teardown_method(self) -> None:
        setup_logging(level="INFO")

    def test_setup_logging_default(self) -> None:
        setup_logging()
        logger = get_logger("test")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")

    def test_setup_logging_with_level(self) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_replaces_handlers(self) -> None:
        """Calling setup twice must not duplicate console output."""
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_noisy_loggers_are_quieted(self) -> None:
        setup_logging(level="DEBUG")
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_noisy_loggers_follow_stricter_level(self) -> None:
        setup_logging(level="ERROR")
        assert logging.getLogger("uvicorn.error").level == logging.ERROR

    def test_setup_logging_json_format(self) -> None:
        setup_logging(json_format=True)
        logger = get_logger("test")

        cap = LogCapture()
        structlog.configure(processors=[cap])

        logger.info("share started", share_id="mccabc", port=50000)

        assert len(cap.entries) == 1
        assert cap.entries[0]["event"] == "share started"
        assert cap.entries[0]["share_id"] == "mccabc"
        assert cap.entries[0]["port"] == 50000

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "pocket-share.log"
        setup_logging(log_file=str(log_file))

        python_logger = logging.getLogger("test_file")
        python_logger.info("file handler message")

        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "file handler message" in log_file.read_text()
