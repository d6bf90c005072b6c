"""
Tests para la configuración de logging
"""
import logging

import pytest

from firma_sri.log_config import LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def restore_handlers():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_console_handler_only():
    logger = setup_logging("warning")

    assert len(logger.handlers) == 1
    assert logger.handlers[0].level == logging.WARNING


def test_repeated_setup_replaces_handlers():
    setup_logging()
    logger = setup_logging()
    assert len(logger.handlers) == 1


def test_file_handler(tmp_path):
    log_dir = tmp_path / "logs"
    logger = setup_logging("INFO", log_dir)
    logging.getLogger("firma_sri.pkcs12_utils").info("Certificado cargado")

    for handler in logger.handlers:
        handler.flush()

    files = list(log_dir.glob("firma_sri_*.log"))
    assert len(files) == 1
    content = files[0].read_text(encoding="utf-8")
    assert "firma_sri.pkcs12_utils - INFO" in content
    assert "Certificado cargado" in content
