"""
Unit Tests for logging setup
"""
import json
import logging

from logging_config import JSONFormatter, setup_logging


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("roster", logging.WARNING, __file__, 10, "Team %s is full", ("t1",), None)
    record.__dict__.update(extra)
    return record


class TestJSONFormatter:
    """Test JSON log lines"""

    def test_core_fields(self):
        """Test message is rendered with level and logger"""
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["message"] == "Team t1 is full"
        assert data["level"] == "WARNING"
        assert data["logger"] == "roster"
        assert "exception" not in data

    def test_extra_fields_carried(self):
        """Test extra= fields appear in the output"""
        data = json.loads(JSONFormatter().format(make_record(team_id="t1")))
        assert data["team_id"] == "t1"


class TestSetupLogging:
    """Test root logger configuration"""

    def test_json_format(self):
        """Test json format installs a single JSON handler"""
        root = setup_logging("debug", "json")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("pymongo").level == logging.WARNING

    def test_text_format(self):
        """Test default text format"""
        root = setup_logging("info", "text")
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)
