"""
tests/test_log_buffer.py — System Log Channel Tests
====================================================
"""

from __future__ import annotations

import logging

import pytest

from linkmanager.services import log_buffer
from linkmanager.services.log_buffer import (
    NOTICE,
    BufferedRecord,
    LogBuffer,
    RingBufferHandler,
)


def _record(level: str, logger: str = "linkmanager.x", message: str = "m") -> BufferedRecord:
    return BufferedRecord("2024-01-01T00:00:00+00:00", level, logger, message)


class TestLogBuffer:
    def test_capacity_drops_oldest(self):
        buf = LogBuffer(capacity=3)
        for i in range(5):
            buf.append(_record("INFO", message=str(i)))
        assert buf.size == 3
        assert [e["message"] for e in buf.get_entries()] == ["2", "3", "4"]

    def test_level_filter_includes_notice(self):
        buf = LogBuffer()
        for level in ("DEBUG", "INFO", "NOTICE", "WARNING", "ERROR"):
            buf.append(_record(level))
        assert [e["level"] for e in buf.get_entries(level="notice")] == [
            "NOTICE", "WARNING", "ERROR",
        ]

    def test_logger_prefix_filter_and_tail(self):
        buf = LogBuffer()
        buf.append(_record("INFO", logger="linkmanager.resolver", message="a"))
        buf.append(_record("INFO", logger="linkmanager.services.link_service", message="b"))
        buf.append(_record("INFO", logger="linkmanager.resolver", message="c"))
        assert [e["message"] for e in buf.get_entries(logger_filter="linkmanager.resolver")] == [
            "a", "c",
        ]
        assert [e["message"] for e in buf.get_entries(tail=1)] == ["c"]

    def test_clear(self):
        buf = LogBuffer()
        buf.append(_record("INFO"))
        buf.clear()
        assert buf.size == 0


class TestHandler:
    def test_captures_records(self):
        buf = LogBuffer()
        handler = RingBufferHandler(buf)
        log = logging.getLogger("linkmanager.test_handler")
        log.addHandler(handler)
        log.setLevel(logging.DEBUG)
        try:
            log.log(NOTICE, "No link found for placement identifier: %s", "x")
        finally:
            log.removeHandler(handler)
        [entry] = buf.get_entries()
        assert entry["level"] == "NOTICE"
        assert entry["logger"] == "linkmanager.test_handler"
        assert entry["message"] == "No link found for placement identifier: x"

    def test_install_is_idempotent(self):
        first = log_buffer.install_handler()
        try:
            assert log_buffer.install_handler() is first
        finally:
            logging.getLogger(log_buffer.ROOT_LOGGER).removeHandler(first)

    def test_set_capture_level(self):
        handler = log_buffer.install_handler()
        try:
            assert log_buffer.set_capture_level("notice") == "NOTICE"
            assert log_buffer.get_current_level() == "NOTICE"
            with pytest.raises(ValueError):
                log_buffer.set_capture_level("LOUD")
        finally:
            logging.getLogger(log_buffer.ROOT_LOGGER).removeHandler(handler)
