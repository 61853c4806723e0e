"""Tests for the JSON data log and caller metadata extraction."""

import json
from types import SimpleNamespace

from planner.core.logging_config import DataLogger, extract_caller_data


class TestExtractCallerData:
    def test_from_request(self):
        request = SimpleNamespace(
            client=SimpleNamespace(host="10.0.0.7"),
            headers={"user-agent": "curl/8.5"},
        )
        assert extract_caller_data("coord-1", request) == {
            "caller_id": "coord-1",
            "ip": "10.0.0.7",
            "user_agent": "curl/8.5",
        }

    def test_without_request(self):
        assert extract_caller_data("scheduler") == {"caller_id": "scheduler"}
        assert extract_caller_data() == {}


class TestDataLogger:
    def test_entries_form_a_json_array(self, tmp_path):
        data_logger = DataLogger(str(tmp_path))
        data_logger.log_data("weekly_reset", {"total": 1}, caller_data={"caller_id": "coord-1"})
        data_logger.log_data("weekly_reset", {"total": 2})

        [json_file] = list(tmp_path.glob("*-data.json"))
        entries = json.loads(json_file.read_text(encoding="utf-8"))
        assert [e["data"]["total"] for e in entries] == [1, 2]
        assert entries[0]["caller_data"] == {"caller_id": "coord-1"}
        assert entries[1]["caller_data"] == {}
