"""Tests for log formatting."""
import json
import logging

from access_review.logging_config import JSONFormatter, configure_logging


def make_record(**extra):
    record = logging.LogRecord("access_review.test", logging.INFO, __file__, 1, "Campaign %s submitted", (7,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_message_and_context_keys(self):
        line = JSONFormatter().format(make_record(tenant_id="tenant-a", campaign_id=7))
        entry = json.loads(line)

        assert entry["message"] == "Campaign 7 submitted"
        assert entry["level"] == "INFO"
        assert entry["tenant_id"] == "tenant-a"
        assert entry["campaign_id"] == 7
        assert "actor_email" not in entry


def test_configure_logging_installs_one_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="DEBUG", fmt="json")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
