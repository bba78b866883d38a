"""
Unit tests for structured logging.
"""

import json
import sys
import logging

from ext_framework.core.logging_config import LoggingManager, StructuredFormatter


def _record(msg: str = "Plugin loaded: core", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="ext_framework.core.plugins.loader",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:

    def test_plugin_fields(self):
        output = json.loads(StructuredFormatter().format(
            _record(plugin_id="core", stage="schema", duration_ms=12.5)
        ))

        assert output["message"] == "Plugin loaded: core"
        assert output["level"] == "INFO"
        assert output["plugin_id"] == "core"
        assert output["stage"] == "schema"
        assert output["duration_ms"] == 12.5
        assert "extra" not in output

    def test_other_extras(self):
        output = json.loads(StructuredFormatter().format(_record(request_id="req_1")))

        assert output["extra"] == {"request_id": "req_1"}
        assert "plugin_id" not in output

    def test_extras_can_be_disabled(self):
        output = json.loads(StructuredFormatter(include_extra=False).format(_record(request_id="req_1")))

        assert "extra" not in output

    def test_exception_info(self):
        try:
            raise ValueError("bad manifest")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        output = json.loads(StructuredFormatter().format(record))

        assert output["extra"]["exception"]["type"] == "ValueError"
        assert output["extra"]["exception"]["message"] == "bad manifest"


class TestLoggingManager:

    def test_setup_is_idempotent(self, tmp_path):
        manager = LoggingManager()
        log_file = tmp_path / "logs" / "framework.log"
        try:
            manager.setup_logging(log_level="INFO", enable_json=True, log_file=str(log_file))
            manager.setup_logging(log_level="DEBUG")

            assert len(manager.handlers) == 2
            assert log_file.parent.exists()
        finally:
            manager.close()

        assert manager.handlers == []
        assert manager.configured is False
