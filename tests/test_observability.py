"""Tests for the JSON log formatter."""

import json
import logging

from app.observability import JSONFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.quests.events", logging.INFO, __file__, 1, "analytics.quest.completed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_structured_fields_surface(self):
        line = JSONFormatter().format(
            _record(relationship_id="rel-1", quest_template_id="weekly_shared_entries", time_to_completion_ms=0)
        )
        data = json.loads(line)
        assert data["message"] == "analytics.quest.completed"
        assert data["relationship_id"] == "rel-1"
        assert data["quest_template_id"] == "weekly_shared_entries"
        assert data["time_to_completion_ms"] == 0

    def test_absent_fields_omitted(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert "actor_id" not in data
        assert data["level"] == "INFO"
