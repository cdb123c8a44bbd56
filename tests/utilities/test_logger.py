"""
Tests for logging setup.
"""

import logging

import pytest
import structlog

from utilities.logger import get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()


def test_json_renderer():
    setup_logging(log_level="INFO", log_format="json")

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    assert not any(isinstance(p, structlog.processors.CallsiteParameterAdder) for p in processors)


def test_console_renderer_with_callsite():
    setup_logging(log_level="DEBUG", log_format="console", debug=True)

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
    assert any(isinstance(p, structlog.processors.CallsiteParameterAdder) for p in processors)


def test_log_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "api.log"

    setup_logging(log_level="WARNING", log_file=log_file)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
    assert len(handlers) == 1
    assert handlers[0].baseFilename == str(log_file)
    assert handlers[0].level == logging.WARNING
    assert log_file.parent.is_dir()


def test_repeated_setup_keeps_one_file_handler(tmp_path):
    log_file = tmp_path / "api.log"

    setup_logging(log_level="WARNING", log_file=log_file)
    setup_logging(log_level="WARNING", log_file=log_file)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
    assert len(handlers) == 1

    logging.getLogger("tests.logfile").warning("single event")
    handlers[0].flush()

    lines = [line for line in log_file.read_text().splitlines() if "single event" in line]
    assert len(lines) == 1


def test_get_logger_binds_context():
    setup_logging(log_level="INFO")

    logger = get_logger("tests").bind(request_id="abc")

    assert logger._context == {"request_id": "abc"}
