"""Tests for logging_utils.setup_logging."""
from __future__ import annotations

import json
import logging

import pytest

from grounded_qa.logging_utils import _coerce_level, _JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCoerceLevel:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("15", 15), (logging.ERROR, logging.ERROR), ("loud", logging.INFO)],
    )
    def test_values(self, raw, expected):
        assert _coerce_level(raw) == expected


class TestSetupLogging:
    def test_single_handler_and_level(self):
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_env_level_used_when_not_given(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging()
        assert logging.getLogger().level == logging.ERROR

    def test_noisy_libraries_quieted(self):
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_formatter_emits_one_object(self):
        setup_logging("INFO", json_logs=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, _JsonFormatter)
        record = logging.LogRecord("grounded_qa.pipeline", logging.INFO, __file__, 1, "Indexed %s", ("policy.md",), None)
        payload = json.loads(_JsonFormatter().format(record))
        assert payload["msg"] == "Indexed policy.md"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "grounded_qa.pipeline"
