"""
Tests for installer state and answers files.
"""

import json

import pytest
import yaml

from loadstar_installer.errors import ValidationError
from loadstar_installer.events import PlanSummary
from loadstar_installer.state_store import (
    MAX_RUNS,
    ensure_defaults,
    load_answers,
    load_state,
    record_run,
    save_state,
)


class TestLoadSave:
    def test_missing_state_is_empty(self, tmp_path):
        assert load_state(str(tmp_path / "nope.json")) == {}

    def test_json_round_trip(self, tmp_path):
        path = tmp_path / "state" / "state.json"
        save_state(str(path), {"version": 1, "runs": []})
        assert json.loads(path.read_text()) == {"version": 1, "runs": []}
        assert load_state(str(path)) == {"version": 1, "runs": []}

    def test_yaml_by_extension(self, tmp_path):
        path = tmp_path / "state.yaml"
        save_state(str(path), {"last_answers": {"preset": "minimal"}})
        assert yaml.safe_load(path.read_text()) == {"last_answers": {"preset": "minimal"}}
        assert load_state(str(path))["last_answers"]["preset"] == "minimal"

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_state(str(path))

    def test_ensure_defaults_keeps_values(self):
        state = ensure_defaults({"runs": [{"x": 1}]})
        assert state == {"version": 1, "last_answers": {}, "runs": [{"x": 1}]}


class TestAnswers:
    def test_yaml_answers(self, tmp_path):
        path = tmp_path / "answers.yml"
        path.write_text("identity:\n  name: Jane Doe\n  email: jane@x.com\npreset: minimal\n")
        assert load_answers(str(path))["identity"]["name"] == "Jane Doe"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError) as exc:
            load_answers(str(tmp_path / "answers.json"))
        assert exc.value.field == "answers"

    @pytest.mark.parametrize("name, text", [("a.json", "{not json"), ("a.yaml", "a: [1"), ("b.json", '"just a string"')])
    def test_unparseable(self, tmp_path, name, text):
        path = tmp_path / name
        path.write_text(text)
        with pytest.raises(ValidationError):
            load_answers(str(path))


class TestRecordRun:
    def test_appends_summary(self):
        state = ensure_defaults({})
        summary = PlanSummary(succeeded=2, skipped=1, failures=())
        entry = record_run(state, summary, answers={"preset": "full"}, log_path="/tmp/l.log")

        assert state["runs"] == [entry]
        assert entry["summary"]["succeeded"] == 2
        assert entry["log_path"] == "/tmp/l.log"
        assert state["last_answers"] == {"preset": "full"}

    def test_dry_run_keeps_last_answers(self):
        state = ensure_defaults({"last_answers": {"preset": "minimal"}})
        record_run(state, PlanSummary(), answers={"preset": "full"}, dry_run=True)
        assert state["last_answers"] == {"preset": "minimal"}
        assert state["runs"][0]["dry_run"] is True

    def test_history_is_bounded(self):
        state = ensure_defaults({})
        for i in range(MAX_RUNS + 5):
            record_run(state, PlanSummary(succeeded=i))
        assert len(state["runs"]) == MAX_RUNS
        assert state["runs"][0]["summary"]["succeeded"] == 5

    def test_failures_serialized(self):
        state = ensure_defaults({})
        entry = record_run(state, PlanSummary(failed=1, failures=(("pkg:fd", "exited with code 1"),)))
        assert entry["summary"]["failures"] == [{"step": "pkg:fd", "error": "exited with code 1"}]
        json.dumps(state)
