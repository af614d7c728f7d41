from __future__ import annotations

import logging
from io import StringIO

from muster_import.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


def test_setup_logging_creates_logger_with_labeled_formatter():
    logger = setup_logging()
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_is_idempotent():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert len(second.handlers) == 1


def test_later_debug_call_lowers_level():
    setup_logging()
    logger = setup_logging(debug=True)
    assert logger.level == logging.DEBUG
    assert all(h.level == logging.DEBUG for h in logger.handlers)


def test_labeled_prefixes(capsys):
    setup_logging()
    logger = get_logger()
    logger.info("reading register")
    logger.warning("row 14: not in master")
    logger.error("config: missing")
    log_summary("rows=3 valid=3")
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "INFO reading register",
        "WARN row 14: not in master",
        "ERROR config: missing",
        "SUMMARY rows=3 valid=3",
    ]


def test_module_loggers_propagate_to_package_logger(capsys):
    setup_logging()
    logging.getLogger("muster_import.services.orchestrator").info("stage 1: resolved=3 failed=0")
    assert "INFO stage 1: resolved=3 failed=0" in capsys.readouterr().out


def test_debug_hidden_by_default(capsys):
    setup_logging()
    get_logger().debug("raw store text")
    assert capsys.readouterr().out == ""


def test_formatter_appends_exception():
    stream = StringIO()
    logger = logging.getLogger("muster_import_formatter_test")
    handler = logging.StreamHandler(stream)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    try:
        raise ValueError("bad cell")
    except ValueError:
        logger.exception("parse failed")
    finally:
        logger.removeHandler(handler)
    text = stream.getvalue()
    assert text.startswith("ERROR parse failed")
    assert "ValueError: bad cell" in text


def test_summary_level_name_registered():
    setup_logging()
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"


def test_reset_logging_removes_handlers():
    logger = setup_logging()
    reset_logging()
    assert logger.handlers == []
