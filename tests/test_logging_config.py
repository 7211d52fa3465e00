"""Tests for logging setup."""

import logging

from artifact_cache.logging_config import setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_stderr_handler_level(self, package_logger):
        logger = setup_logging("warning")

        assert logger is package_logger
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING

    def test_repeated_setup_does_not_duplicate_handlers(self, package_logger):
        setup_logging()
        setup_logging()

        assert len(package_logger.handlers) == 1

    def test_log_file_receives_debug(self, package_logger, tmp_path):
        log_file = tmp_path / "logs" / "cache.log"
        setup_logging("ERROR", log_file=log_file)

        logging.getLogger("artifact_cache.transfer.upload").debug("Uploaded chunk bytes 0-1023")
        for handler in package_logger.handlers:
            handler.flush()

        assert "Uploaded chunk bytes 0-1023" in log_file.read_text()

    def test_existing_log_file_is_appended(self, package_logger, tmp_path):
        log_file = tmp_path / "cache.log"
        log_file.write_text("previous run\n")

        setup_logging(log_file=log_file)
        for handler in package_logger.handlers:
            handler.flush()

        content = log_file.read_text()
        assert content.startswith("previous run\n")
        assert f"Log file: {log_file}" in content
