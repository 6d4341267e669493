import logging

from photobook.log import configure_logging


def test_configure_logging_is_idempotent(package_logger, tmp_path):
    log_path = tmp_path / "logs" / "photobook.log"

    first = configure_logging(log_path)
    second = configure_logging(log_path)

    assert first is second is package_logger
    assert len(package_logger.handlers) == 2
    assert log_path.exists()


def test_module_loggers_reach_package_handlers(package_logger, tmp_path):
    log_path = tmp_path / "photobook.log"
    configure_logging(log_path, level=logging.DEBUG)

    logging.getLogger("photobook.storage").warning("disk nearly full")
    for handler in package_logger.handlers:
        handler.flush()

    assert "disk nearly full" in log_path.read_text(encoding="utf-8")
