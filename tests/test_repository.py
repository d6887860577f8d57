"""Tests for the append-only run log."""

import json

import pytest

from conftest import measurement, single
from evifluor.data.models import Factors, Point, Results
from evifluor.data.repository import RunLog
from evifluor.services.verification import ProblemId, Verification


@pytest.fixture
def factors():
    return Factors(
        std_low=Point(concentration=0.0, value=0.0),
        std_high=Point(concentration=10.0, value=2000.0),
    )


class TestAppend:
    def test_minimal_entry(self):
        log = RunLog()
        log.append(measurement(100.0))
        node = log.data["measurements"][0]
        assert set(node) == {"air", "sample", "date_time"}
        assert node["date_time"].endswith("+00:00")

    def test_optional_fields(self, thresholds):
        verification = Verification(thresholds)
        verification.check(single(0.0, 2500.0, 100))

        log = RunLog()
        entry = log.append(measurement(100.0), "std", ["line 1", "line 2"], verification)
        assert entry.comment == "std"
        assert entry.device_log_lines == ["line 1", "line 2"]
        assert entry.verification_findings[0].problem_id == ProblemId.SATURATION
        assert entry.timestamp is not None

    def test_passed_verification_not_stored(self, thresholds):
        log = RunLog()
        log.append(measurement(100.0), "", [], Verification(thresholds))
        node = log.data["measurements"][0]
        assert "errors" not in node
        assert "comment" not in node
        assert "logging" not in node

    def test_append_with_results(self):
        log = RunLog()
        entry = log.append_with_results(measurement(100.0), Results(concentration=1.25))
        assert entry.has_results()
        assert log.data["measurements"][0]["results"] == {"concentration": 1.25}

    def test_append_none(self):
        with pytest.raises(ValueError):
            RunLog().append(None)

    def test_order_is_kept(self):
        log = RunLog()
        for value in (1.0, 2.0, 3.0):
            log.append(measurement(value))
        assert [m.value() for m in log.measurements()] == pytest.approx([1.0, 2.0, 3.0])


class TestAccess:
    def test_index_out_of_range(self):
        log = RunLog()
        log.append(measurement(1.0))
        with pytest.raises(IndexError):
            log[1]
        with pytest.raises(IndexError):
            log[-1]

    def test_results_only_for_filled_entries(self, factors):
        log = RunLog()
        log.append(measurement(1000.0))
        log.append(measurement(500.0))
        log.apply_results(1, factors)
        assert log.results() == [Results(concentration=2.5)]


class TestBackFill:
    def test_apply_results_is_idempotent(self, factors):
        log = RunLog()
        log.append(measurement(1000.0))
        first = log.apply_results(0, factors)
        stored = dict(log.data["measurements"][0]["results"])
        second = log.apply_results(0, factors)
        assert first == second
        assert log.data["measurements"][0]["results"] == stored
        assert log[0].results.concentration == pytest.approx(5.0)

    def test_add_findings_extends(self, thresholds):
        failing = Verification(thresholds)
        failing.check(single(0.0, 2500.0, 100))

        log = RunLog()
        log.append(measurement(1000.0), verification=failing)

        negative = Verification(thresholds)
        negative.check(Results(concentration=-1.0))
        log.add_findings(0, negative)
        log.add_findings(0, Verification(thresholds))

        ids = [f.problem_id for f in log[0].verification_findings]
        assert ids == [ProblemId.SATURATION, ProblemId.NEGATIVE_CONCENTRATION]


class TestPersistence:
    def test_round_trip_keeps_unknown_fields(self, tmp_path, factors):
        log = RunLog()
        log.append(measurement(1000.0), "first", ["boot"])
        log.append(measurement(0.0))
        log.data["operator"] = "jd"
        log.data["measurements"][0]["custom"] = {"nested": [1, 2, 3]}

        path = log.save(tmp_path / "run.json")
        loaded = RunLog.load(path)

        assert len(loaded) == 2
        assert loaded.data == json.loads(path.read_text())
        assert loaded.data["operator"] == "jd"
        assert loaded[0].model_extra["custom"] == {"nested": [1, 2, 3]}
        assert loaded[0].comment == "first"
        assert loaded[0].air == log[0].air
        assert loaded[0].sample == log[0].sample

        loaded.apply_results(1, factors)
        loaded.save(path)
        reloaded = RunLog.load(path)
        assert reloaded.data["measurements"][0]["custom"] == {"nested": [1, 2, 3]}
        assert reloaded.data["operator"] == "jd"
        assert reloaded[1].results == Results(concentration=0.0)

    def test_save_creates_directory_and_leaves_no_temp(self, tmp_path):
        log = RunLog()
        log.append(measurement(1.0))
        path = log.save(tmp_path / "nested" / "run.json")
        assert path.exists()
        assert [p.name for p in path.parent.iterdir()] == ["run.json"]

    def test_save_overwrites(self, tmp_path):
        path = tmp_path / "run.json"
        log = RunLog()
        log.append(measurement(1.0))
        log.save(path)
        log.append(measurement(2.0))
        log.save(path)
        assert len(json.loads(path.read_text())["measurements"]) == 2

    def test_load_rejects_non_object(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            RunLog.load(path)
