import json

import pytest

from concprobe.persistence import StateManager


@pytest.fixture
def state(tmp_path):
    manager = StateManager(db_path=str(tmp_path / "ledger" / "probe.db"))
    yield manager
    manager.close()


def record_probe(state, run_id, num, concurrency, result, low, high, duration=10.0, error=None):
    probe_id = state.create_probe(run_id, num, concurrency)
    state.update_probe(
        probe_id,
        result=result,
        error_message=error,
        interval_low=low,
        interval_high=high,
        duration=duration,
    )
    return probe_id


class TestStateManager:
    def test_creates_parent_directory(self, tmp_path, state):
        assert (tmp_path / "ledger" / "probe.db").exists()

    def test_run_lifecycle(self, state):
        run_id = state.create_run(32, 192, config={"min_concurrency": 32})
        run = state.get_run(run_id)
        assert run.status == "running"
        assert run.result_concurrency is None

        state.update_run(run_id, status="completed", result_concurrency=100, bogus="ignored")
        run = state.get_run(run_id)
        assert run.status == "completed"
        assert run.result_concurrency == 100

    def test_latest_run(self, state):
        assert state.get_latest_run() is None
        state.create_run(32, 192)
        second = state.create_run(10, 20)
        assert state.get_latest_run().run_id == second

    def test_unknown_run(self, state):
        assert state.get_run(99) is None
        assert state.generate_summary(99) == {}
        assert state.export_report(99, format="text") == ""
        state.update_run(99, status="failed")

    def test_probes_in_order(self, state):
        run_id = state.create_run(32, 192)
        record_probe(state, run_id, 1, 112, "crashed", 32, 112, error="server process died")
        record_probe(state, run_id, 2, 72, "survived", 72, 112)

        probes = state.get_probes(run_id)
        assert [p.probe_num for p in probes] == [1, 2]
        assert probes[0].error_message == "server process died"
        assert probes[1].interval_low == 72
        assert probes[0].start_time is not None

    def test_summary(self, state):
        run_id = state.create_run(32, 192)
        record_probe(state, run_id, 1, 112, "crashed", 32, 112, duration=30.0)
        record_probe(state, run_id, 2, 72, "survived", 72, 112, duration=60.0)
        state.create_probe(run_id, 3, 92)

        summary = state.generate_summary(run_id)
        assert summary["total_probes"] == 3
        assert summary["results"] == {"survived": 1, "crashed": 1, "unknown": 1}
        assert summary["total_duration_seconds"] == 90.0

    def test_json_report(self, state):
        run_id = state.create_run(32, 192)
        record_probe(state, run_id, 1, 112, "survived", 112, 192)
        state.update_run(run_id, status="completed", result_concurrency=191)

        report = json.loads(state.export_report(run_id, format="json"))
        assert report["result_concurrency"] == 191
        assert report["probes"][0]["concurrency"] == 112

    def test_text_report(self, state):
        run_id = state.create_run(32, 192)
        record_probe(state, run_id, 1, 112, "crashed", 32, 112, error="server process died on: n2")
        state.update_run(run_id, status="completed", result_concurrency=100)

        report = state.export_report(run_id, format="text")
        assert "CONCURRENCY PROBE REPORT" in report
        assert "[32, 112)" in report
        assert "server process died on: n2" in report
        assert "MAX SUPPORTED CONCURRENCY: 100" in report
