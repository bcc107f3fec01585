"""
Smoke tests for the tb3 CLI.

Tests basic functionality:
- App runs without errors
- Data directory initializes
- Maxes are recorded and plates worked out
- A program starts and its schedule is shown
- A live session runs and is logged
"""

import json

import pytest
from typer.testing import CliRunner

from tb3.cli.main import app
from tb3.io.companion import CompanionNotifier
from tb3.io.data_store import DataStore

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    """Data directory with a profile and maxes for the operator lifts."""
    path = tmp_path / "tb3"
    _run(path, "init", "--force")
    for lift, weight in (("squat", "300"), ("bench", "200"), ("deadlift", "400"), ("weighted pull-up", "45")):
        result = _run(path, "add-max", lift, weight, "5", "--date", "2026-01-05")
        assert result.exit_code == 0, result.output
    return path


def _run(path, *args, input=None):
    return runner.invoke(app, [*args, "--data-dir", str(path)], input=input)


def _program(path):
    return _run(path, "start-program", "operator", "--force")


def _quick_transitions(path):
    """Short auto-advance delay, undebounced companion updates and a fast timer loop."""
    (path / "config.yaml").write_text(
        "runtime:\n"
        "  auto_advance_delay_seconds: 2\n"
        "  companion_debounce_seconds: 0\n"
        "  tick_interval_seconds: 0.05\n"
    )
    _run(path, "settings", "--rest", "30")


class TestCLISmoke:
    """Basic smoke tests for CLI commands."""

    def test_app_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "session" in result.output

    def test_init_creates_files(self, tmp_path):
        path = tmp_path / "fresh"
        result = _run(path, "init", "--unit", "kg", "--rounding", "5")
        assert result.exit_code == 0
        assert "Initialized" in result.output
        assert (path / "profile.json").exists()
        profile = DataStore(path).load_profile()
        assert profile.unit == "kg"
        assert profile.rounding_increment == 5.0

    def test_init_rejects_bad_rounding(self, tmp_path):
        result = _run(tmp_path / "fresh", "init", "--rounding", "3")
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_commands_need_init(self, tmp_path):
        result = _run(tmp_path / "empty", "lifts")
        assert result.exit_code == 1
        assert "tb3 init" in result.output


class TestMaxCommands:
    def test_add_max(self, data_dir):
        result = _run(data_dir, "add-max", "Military Press", "135", "5", "--date", "2026-01-06")
        assert result.exit_code == 0
        assert "Recorded Military Press: 135 x 5" in result.output

    def test_add_max_invalid_reps(self, data_dir):
        result = _run(data_dir, "add-max", "Squat", "300", "20")
        assert result.exit_code == 1

    def test_add_max_unknown_lift(self, data_dir):
        result = _run(data_dir, "add-max", "Curl", "50", "5")
        assert result.exit_code == 1

    def test_lifts_json(self, data_dir):
        result = _run(data_dir, "lifts", "--json")
        assert result.exit_code == 0
        lifts = {d["name"]: d for d in json.loads(result.output)}
        assert set(lifts) == {"Squat", "Bench", "Deadlift", "Weighted Pull-up"}
        assert lifts["Squat"]["one_rep_max"] == pytest.approx(350.0)
        assert lifts["Weighted Pull-up"]["is_bodyweight"]

    def test_maxes(self, data_dir):
        result = _run(data_dir, "maxes", "--lift", "Bench")
        assert result.exit_code == 0

    def test_percentages(self, data_dir):
        assert _run(data_dir, "percentages", "squat").exit_code == 0

    def test_percentages_without_max(self, data_dir):
        result = _run(data_dir, "percentages", "Military Press")
        assert result.exit_code == 1
        assert "No max recorded" in result.output

    def test_plates(self, data_dir):
        result = _run(data_dir, "plates", "225")
        assert result.exit_code == 0
        assert "45 x2  per side" in result.output

    def test_plates_unachievable(self, data_dir):
        result = _run(data_dir, "plates", "46.25")
        assert result.exit_code == 0
        assert "Nearest achievable" in result.output

    def test_belt_plates(self, data_dir):
        result = _run(data_dir, "plates", "70", "--belt")
        assert result.exit_code == 0
        assert "45  25  on belt" in result.output


class TestSettingsCommands:
    def test_settings_update(self, data_dir):
        result = _run(data_dir, "settings", "--rest", "0", "--sound", "vibrate", "--voice")
        assert result.exit_code == 0
        profile = DataStore(data_dir).load_profile()
        assert profile.rest_timer_default == 0
        assert profile.sound_mode == "vibrate"
        assert profile.voice_announcements

    def test_settings_invalid(self, data_dir):
        result = _run(data_dir, "settings", "--sound", "loud")
        assert result.exit_code == 1

    def test_inventory_set_and_reset(self, data_dir):
        result = _run(data_dir, "inventory", "--set", "45=6", "--set", "1.25=0")
        assert result.exit_code == 0
        inv = DataStore(data_dir).load_profile().plate_inventory_barbell
        assert inv.plates[45.0] == 6
        assert inv.plates[1.25] == 0

        assert _run(data_dir, "inventory", "--reset").exit_code == 0
        inv = DataStore(data_dir).load_profile().plate_inventory_barbell
        assert inv.plates[45.0] == 4

    def test_inventory_bad_pair(self, data_dir):
        result = _run(data_dir, "inventory", "--set", "45")
        assert result.exit_code == 1


class TestPlanningCommands:
    def test_templates(self, data_dir):
        result = _run(data_dir, "templates")
        assert result.exit_code == 0
        assert "Operator" in result.output

    def test_start_program_and_schedule(self, data_dir):
        result = _program(data_dir)
        assert result.exit_code == 0
        assert "Started Operator (6 weeks)." in result.output

        result = _run(data_dir, "schedule", "--week", "1")
        assert result.exit_code == 0
        assert "week 1 of 6" in result.output

    def test_start_unknown_template(self, data_dir):
        result = _run(data_dir, "start-program", "bogus", "--force")
        assert result.exit_code == 1

    def test_missing_max_warning(self, data_dir):
        result = _run(data_dir, "start-program", "zulu", "--force")
        assert result.exit_code == 0
        assert "No max recorded for: Military Press" in result.output

    def test_schedule_without_program(self, data_dir):
        assert _run(data_dir, "schedule").exit_code == 1

    def test_schedule_recompiles_after_new_max(self, data_dir):
        _program(data_dir)
        # A mismatched hash marks the cached schedule as stale
        store = DataStore(data_dir)
        cached = json.loads(store.schedule_path.read_text())
        cached["source_hash"] = "outdated"
        store.schedule_path.write_text(json.dumps(cached))

        assert _run(data_dir, "session", "start").exit_code == 1
        result = _run(data_dir, "schedule")
        assert "Schedule recompiled." in result.output
        assert _run(data_dir, "session", "start").exit_code == 0


class TestSessionCommands:
    def test_session_flow(self, data_dir):
        _program(data_dir)
        result = _run(data_dir, "session", "start")
        assert result.exit_code == 0
        assert "Squat" in result.output

        result = _run(data_dir, "session", "complete-set")
        assert result.exit_code == 0
        assert "Squat: set 1 done (5 reps)" in result.output

        assert _run(data_dir, "session", "undo").exit_code == 0
        assert DataStore(data_dir).load_active_session().completed_count(0) == 0

        _run(data_dir, "session", "complete-set")
        assert "Rest skipped." in _run(data_dir, "session", "skip-rest").output
        assert _run(data_dir, "session", "goto", "2").exit_code == 0
        assert DataStore(data_dir).load_active_session().current_exercise_index == 1

        result = _run(data_dir, "session", "end", "--yes")
        assert result.exit_code == 0
        assert "partial" in result.output

        state = DataStore(data_dir).load_app_state()
        assert state.active_session is None
        assert state.program.current_session == 2
        assert len(state.session_history) == 1

        assert _run(data_dir, "history").exit_code == 0

    def test_start_twice_shows_existing(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        result = _run(data_dir, "session", "start")
        assert result.exit_code == 0
        assert "already in progress" in result.output

    def test_status_without_session(self, data_dir):
        _program(data_dir)
        result = _run(data_dir, "session", "status")
        assert result.exit_code == 0
        assert "No active session" in result.output

    def test_commands_need_session(self, data_dir):
        _program(data_dir)
        result = _run(data_dir, "session", "complete-set")
        assert result.exit_code == 1
        assert "No active session" in result.output

    def test_override_weight(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        result = _run(data_dir, "session", "override-weight", "200")
        assert result.exit_code == 0
        assert "45  25  5  2.5  per side" in result.output

        result = _run(data_dir, "session", "override-weight", "2000")
        assert result.exit_code == 1

    def test_pause_resume(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        assert "Session paused." in _run(data_dir, "session", "pause").output
        assert DataStore(data_dir).load_active_session().status == "paused"
        assert "Session resumed." in _run(data_dir, "session", "resume").output

    def test_discard_keeps_program_position(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        result = _run(data_dir, "session", "discard", "--yes")
        assert result.exit_code == 0
        assert "skipped" in result.output
        state = DataStore(data_dir).load_app_state()
        assert state.active_session is None
        assert state.program.current_session == 1

    def test_end_asks_before_logging_unfinished(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        result = _run(data_dir, "session", "end", input="n\n")
        assert result.exit_code == 0
        assert DataStore(data_dir).load_active_session() is not None

    def test_companion_snapshot_written(self, data_dir):
        _program(data_dir)
        _run(data_dir, "session", "start")
        _run(data_dir, "session", "complete-set")
        snapshot = json.loads((data_dir / "companion.json").read_text())
        assert snapshot["exerciseName"] == "Squat"
        assert snapshot["completedSets"] == 1

    def test_timer_advances_and_updates_companion(self, data_dir, monkeypatch):
        _quick_transitions(data_dir)
        _program(data_dir)
        _run(data_dir, "session", "start")
        for _ in range(5):
            _run(data_dir, "session", "complete-set")

        delivered = []
        poll = CompanionNotifier.poll

        def recording_poll(notifier):
            sent = poll(notifier)
            if sent:
                delivered.append(json.loads((data_dir / "companion.json").read_text()))
            return sent

        monkeypatch.setattr(CompanionNotifier, "poll", recording_poll)
        result = _run(data_dir, "session", "timer")
        assert result.exit_code == 0, result.output
        assert "Moved on to the next exercise." in result.output
        # The advance reached the companion file while the timer loop ran
        assert delivered
        assert delivered[-1]["currentExerciseIndex"] == 1
        assert delivered[-1]["exerciseName"] == "Bench"
        assert DataStore(data_dir).load_active_session().current_exercise_index == 1

    def test_timer_reports_session_complete(self, data_dir):
        _quick_transitions(data_dir)
        _program(data_dir)
        _run(data_dir, "session", "start")
        for _ in range(2):
            for _ in range(3):
                _run(data_dir, "session", "complete-set")
            assert "Exercise finished." in _run(data_dir, "session", "finish-exercise").output
        for _ in range(5):
            _run(data_dir, "session", "complete-set")

        result = _run(data_dir, "session", "timer")
        assert result.exit_code == 0, result.output
        assert "Session complete and logged." in result.output
        state = DataStore(data_dir).load_app_state()
        assert state.active_session is None
        assert len(state.session_history) == 1
        assert json.loads((data_dir / "companion.json").read_text()) == {"idle": True}
