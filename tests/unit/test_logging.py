"""
Unit tests for logging setup and request-id propagation
"""
import logging

import pytest
import structlog

from kpsearch.core import logging as search_logging
from kpsearch.core.logging import NOISY_LOGGERS, add_request_id, build_file_handlers, build_processors
from kpsearch.middleware.logging_middleware import request_id_var


class TestProcessors:

    @pytest.mark.unit
    def test_json_chain_ends_with_renderer(self):
        processors = build_processors("json")
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert add_request_id in processors

    @pytest.mark.unit
    def test_console_chain(self):
        assert isinstance(build_processors("console")[-1], structlog.dev.ConsoleRenderer)

    @pytest.mark.unit
    def test_request_id_added_inside_request(self):
        token = request_id_var.set("a1b2c3d4")
        try:
            event = add_request_id(None, "info", {"event": "search"})
        finally:
            request_id_var.reset(token)
        assert event["request_id"] == "a1b2c3d4"

    @pytest.mark.unit
    def test_no_request_id_outside_request(self):
        assert add_request_id(None, "info", {"event": "startup"}) == {"event": "startup"}


class TestHandlers:

    @pytest.mark.unit
    def test_file_handlers(self, tmp_path):
        handlers = build_file_handlers(tmp_path / "logs")
        try:
            assert [h.level for h in handlers] == [logging.DEBUG, logging.ERROR]
            assert (tmp_path / "logs" / "search.log").exists()
        finally:
            for handler in handlers:
                handler.close()

    @pytest.mark.unit
    def test_setup_quiets_noisy_loggers(self, monkeypatch):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        monkeypatch.setattr(search_logging.settings, "environment", "test")
        try:
            search_logging.setup_logging()
            for name in NOISY_LOGGERS:
                assert logging.getLogger(name).level == logging.WARNING
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
