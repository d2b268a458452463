"""Tests for the structured log formatter."""

import logging

from docpipe.logging import StructuredFormatter, get_logger, log_with_context


def _record(**extra):
    record = logging.LogRecord(
        name="docpipe.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Applied %d changes",
        args=(2,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_key_value_pairs():
    line = StructuredFormatter().format(_record())

    assert "level=INFO" in line
    assert "message=Applied 2 changes" in line


def test_includes_context_fields():
    line = StructuredFormatter().format(_record(doc_id="doc-1", extra_data={"requested": 3}))

    assert "doc_id=doc-1" in line
    assert "requested=3" in line


def test_get_logger_configures_once():
    logger = get_logger("docpipe.tests.logging")
    again = get_logger("docpipe.tests.logging")

    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.propagate is False


def test_log_with_context_passes_fields(caplog):
    logger = logging.getLogger("docpipe.tests.context")
    logger.setLevel(logging.INFO)

    with caplog.at_level(logging.INFO, logger="docpipe.tests.context"):
        log_with_context(logger, logging.INFO, "Patched", doc_id="doc-1", applied=1)

    record = caplog.records[-1]
    assert record.doc_id == "doc-1"
    assert record.extra_data == {"applied": 1}
