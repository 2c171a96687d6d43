"""Unit tests for logging configuration and masking helpers."""

from pathlib import Path

from loguru import logger

from ballot_api.core.logging import mask_code, mask_email, setup_logging


class TestLogging:
    """Tests for Loguru logging setup."""

    def test_setup_logging_does_not_raise(self) -> None:
        """setup_logging with valid log level does not raise."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        setup_logging("WARNING")

    def test_setup_logging_case_insensitive(self) -> None:
        setup_logging("info")
        setup_logging("debug")

    def test_file_sink_created(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        setup_logging("INFO", log_dir=str(log_dir))
        logger.info("file sink check")
        logger.complete()
        assert (log_dir / "ballot-api.log").exists()
        setup_logging("INFO")


class TestMasking:
    """Tests for email and code masking."""

    def test_mask_email(self) -> None:
        assert mask_email("alice@example.com") == "a***@example.com"

    def test_mask_email_without_at(self) -> None:
        assert mask_email("not-an-email") == "***"

    def test_mask_email_empty_local_part(self) -> None:
        assert mask_email("@example.com") == "***@example.com"

    def test_mask_code_keeps_last_two_digits(self) -> None:
        assert mask_code("123456") == "****56"

    def test_mask_short_code(self) -> None:
        assert mask_code("12") == "**"
