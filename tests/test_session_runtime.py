"""
Tests for the live workout runtime.

Time is driven by FakeClock so delayed transitions (auto-advance, early
finish completion, undo window, rest cues, staleness) are deterministic.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from tb3.core.config import VOICE_MILESTONES
from tb3.core.config_loader import RuntimeConfig
from tb3.core.errors import DomainValidationError, SessionStateError, StaleScheduleError
from tb3.core.lifts import create_max_test
from tb3.core.models import AppState, UserProfile
from tb3.core.program import start_program
from tb3.core.session import WorkoutRuntime, rest_duration_for

NOW = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_state(template_id: str = "operator", **profile_changes) -> AppState:
    tests = (
        create_max_test("Squat", 300, 5, "2026-01-05", "training", NOW),
        create_max_test("Bench", 200, 5, "2026-01-05", "training", NOW),
        create_max_test("Deadlift", 400, 5, "2026-01-05", "training", NOW),
        create_max_test("Military Press", 135, 5, "2026-01-05", "training", NOW),
        create_max_test("Weighted Pull-up", 45, 5, "2026-01-05", "training", NOW),
    )
    state = AppState(profile=UserProfile(**profile_changes), max_tests=tests)
    return start_program(state, template_id, now=NOW)


def _runtime(template_id: str = "operator", config: RuntimeConfig | None = None, **profile_changes):
    clock = FakeClock()
    runtime = WorkoutRuntime(_make_state(template_id, **profile_changes), clock=clock, config=config)
    return runtime, clock


def _started(template_id: str = "operator", **kwargs):
    runtime, clock = _runtime(template_id, **kwargs)
    runtime.start_session()
    return runtime, clock


def _complete(runtime: WorkoutRuntime, n: int) -> None:
    for _ in range(n):
        assert runtime.complete_set() is not None


# ===========================================================================
# Start
# ===========================================================================


class TestStartSession:
    def test_operator_session_one(self):
        runtime, _ = _started()
        session = runtime.session
        assert [ex.lift_name for ex in session.exercises] == ["Squat", "Bench", "Weighted Pull-up"]
        # Sets range 3-5: the maximum is laid out, 5 reps each
        assert len(session.sets) == 15
        assert all(s.target_reps == 5 for s in session.sets)
        assert session.has_set_range
        assert session.current_exercise_index == 0
        assert session.exercise_start_times == {0: NOW}
        assert session.status == "in_progress"
        assert session.started_at == NOW

    def test_target_weights_copied_from_schedule(self):
        runtime, _ = _started()
        squat = runtime.session.exercises[0]
        assert squat.target_weight == 220.0
        assert runtime.session.exercises[2].is_bodyweight

    def test_per_set_reps_sequence(self):
        runtime, _ = _runtime()
        runtime._state = replace(runtime.state, program=replace(runtime.state.program, current_week=6))
        runtime.start_session()
        assert [s.target_reps for s in runtime.session.sets_for(0)] == [1, 2, 2, 2]

    def test_no_program(self):
        runtime = WorkoutRuntime(AppState(), clock=FakeClock())
        with pytest.raises(SessionStateError):
            runtime.start_session()

    def test_already_active(self):
        runtime, _ = _started()
        with pytest.raises(SessionStateError):
            runtime.start_session()

    def test_stale_schedule_refused(self):
        runtime, _ = _runtime()
        state = runtime.state
        runtime._state = replace(state, schedule=replace(state.schedule, source_hash="outdated"))
        with pytest.raises(StaleScheduleError):
            runtime.start_session()

    def test_missing_schedule_refused(self):
        runtime, _ = _runtime()
        runtime._state = replace(runtime.state, schedule=None)
        with pytest.raises(StaleScheduleError):
            runtime.start_session()

    def test_program_complete(self):
        runtime, _ = _runtime()
        runtime._state = replace(runtime.state, program=replace(runtime.state.program, current_week=7))
        with pytest.raises(SessionStateError):
            runtime.start_session()


class TestEnduranceSession:
    def _endurance(self):
        runtime, clock = _runtime()
        runtime._state = replace(runtime.state, program=replace(runtime.state.program, current_session=2))
        runtime.start_session()
        return runtime, clock

    def test_no_exercises(self):
        runtime, _ = self._endurance()
        assert runtime.session.session_type == "endurance"
        assert runtime.session.exercises == ()
        assert runtime.session.endurance_duration == "30-60"
        assert runtime.complete_set() is None
        assert runtime.plates_for() is None

    def test_end_logs_completed_and_advances(self):
        runtime, clock = self._endurance()
        clock.advance(45 * 60)
        log = runtime.end_session()
        assert log.status == "completed"
        assert log.duration_seconds == 45 * 60
        assert runtime.session is None
        assert runtime.state.program.current_session == 3


# ===========================================================================
# Sets, rest and undo
# ===========================================================================


class TestCompleteSet:
    def test_marks_set_done_with_target_reps(self):
        runtime, _ = _started()
        done = runtime.complete_set()
        assert done.set_number == 1
        assert done.completed and done.actual_reps == 5
        assert done.completed_at == NOW
        assert runtime.session.completed_count(0) == 1

    def test_starts_rest_timer(self):
        runtime, _ = _started()
        runtime.complete_set()
        timer = runtime.session.timer
        assert timer.phase == "rest"
        assert timer.rest_seconds == 120
        assert timer.started_at == NOW

    def test_opens_undo_window(self):
        runtime, _ = _started()
        runtime.complete_set()
        pending = runtime.session.pending_undo
        assert (pending.exercise_index, pending.set_number) == (0, 1)
        assert pending.expires_at == NOW + timedelta(seconds=10)

    def test_every_mutation_bumps_revision(self):
        runtime, _ = _started()
        revisions = [runtime.session.revision]
        runtime.complete_set()
        revisions.append(runtime.session.revision)
        runtime.skip_rest()
        revisions.append(runtime.session.revision)
        runtime.goto(1)
        revisions.append(runtime.session.revision)
        assert revisions == sorted(set(revisions))

    def test_nothing_left_returns_none(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        assert runtime.complete_set() is None

    def test_hidden_rest_timer(self):
        runtime, _ = _started("mass-protocol")
        runtime.complete_set()
        assert runtime.session.timer is None


class TestRestDuration:
    def test_profile_default_wins(self):
        assert rest_duration_for(95, 150) == 150

    @pytest.mark.parametrize(
        "percentage, expected",
        [(95, 180), (90, 180), (85, 120), (70, 120), (65, 90)],
    )
    def test_derived_from_intensity(self, percentage, expected):
        assert rest_duration_for(percentage, 0) == expected

    def test_runtime_uses_intensity_when_default_zero(self):
        runtime, _ = _started(rest_timer_default=0)
        runtime.complete_set()
        # Week 1 is 70%
        assert runtime.session.timer.rest_seconds == 120


class TestUndo:
    def test_within_window(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(9)
        reverted = runtime.undo()
        assert reverted.set_number == 1
        assert not reverted.completed
        assert runtime.session.completed_count(0) == 0
        assert runtime.session.timer is None
        assert runtime.session.pending_undo is None

    def test_window_elapsed(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(10)
        assert runtime.undo() is None
        assert runtime.session.completed_count(0) == 1

    def test_custom_window(self):
        runtime, clock = _started(config=RuntimeConfig(undo_window_seconds=3))
        runtime.complete_set()
        clock.advance(4)
        assert runtime.undo() is None

    def test_nothing_to_undo(self):
        runtime, _ = _started()
        assert runtime.undo() is None

    def test_begin_set_closes_undo(self):
        runtime, _ = _started()
        runtime.complete_set()
        assert runtime.begin_set()
        assert runtime.session.timer.phase == "exercise"
        assert runtime.undo() is None


class TestRestControls:
    def test_skip_rest(self):
        runtime, _ = _started()
        runtime.complete_set()
        assert runtime.skip_rest()
        assert runtime.session.timer is None
        assert not runtime.skip_rest()

    def test_add_rest_default_and_custom(self):
        runtime, _ = _started()
        runtime.complete_set()
        assert runtime.add_rest()
        assert runtime.session.timer.rest_seconds == 150
        assert runtime.add_rest(60)
        assert runtime.session.timer.rest_seconds == 210

    def test_add_rest_without_timer(self):
        runtime, _ = _started()
        assert not runtime.add_rest()

    def test_begin_set_without_rest(self):
        runtime, _ = _started()
        assert not runtime.begin_set()

    def test_timer_view(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(30)
        view = runtime.timer_view()
        assert view.phase == "rest"
        assert view.remaining_seconds == pytest.approx(90)
        assert not view.overtime
        clock.advance(100)
        view = runtime.timer_view()
        assert view.remaining_seconds == 0
        assert view.overtime


class TestTick:
    def test_milestones_fire_once(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(60)
        events = runtime.tick()
        assert [(e.kind, e.label, e.seconds_remaining) for e in events] == [
            ("milestone", VOICE_MILESTONES[60], 60)
        ]
        assert runtime.tick() == []
        clock.advance(30)
        assert [e.label for e in runtime.tick()] == [VOICE_MILESTONES[30]]

    def test_overtime_fires_once(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(121)
        events = runtime.tick()
        assert [e.kind for e in events] == ["overtime"]
        clock.advance(5)
        assert runtime.tick() == []

    def test_new_rest_period_resets_cues(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(60)
        assert runtime.tick()
        runtime.complete_set()
        clock.advance(60)
        assert [e.label for e in runtime.tick()] == [VOICE_MILESTONES[60]]

    def test_no_timer_no_events(self):
        runtime, _ = _started()
        assert runtime.tick() == []


# ===========================================================================
# Scheduled transitions
# ===========================================================================


class TestAutoAdvance:
    def test_advance_after_delay(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        assert runtime.session.scheduled.kind == "advance"
        clock.advance(1.0)
        assert runtime.run_due() == []
        assert runtime.session.current_exercise_index == 0
        clock.advance(0.5)
        assert runtime.run_due() == ["advance"]
        session = runtime.session
        assert session.current_exercise_index == 1
        assert session.exercise_start_times[1] == clock.now
        assert session.timer is None
        assert session.scheduled is None

    def test_undo_cancels_advance(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        runtime.undo()
        clock.advance(2)
        assert runtime.run_due() == []
        assert runtime.session.current_exercise_index == 0

    def test_navigation_cancels_advance(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        runtime.goto(2)
        clock.advance(2)
        assert runtime.run_due() == []
        assert runtime.session.current_exercise_index == 2

    def test_rest_changes_keep_advance(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        runtime.add_rest()
        runtime.skip_rest()
        clock.advance(2)
        assert runtime.run_due() == ["advance"]
        assert runtime.session.current_exercise_index == 1

    def test_tick_runs_due_actions(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        clock.advance(2)
        runtime.tick()
        assert runtime.session.current_exercise_index == 1

    def test_last_set_completes_session(self):
        runtime, clock = _started()
        for _ in range(3):
            _complete(runtime, 5)
            clock.advance(2)
            runtime.run_due()
        assert runtime.session is None
        log = runtime.state.session_history[-1]
        assert log.status == "completed"
        assert [len(ex.sets) for ex in log.exercises] == [5, 5, 5]
        assert runtime.state.program.current_session == 2


class TestFinishExercise:
    def test_needs_minimum_sets(self):
        runtime, _ = _started()
        _complete(runtime, 2)
        assert not runtime.finish_exercise()
        assert runtime.session.current_exercise_index == 0

    def test_drops_remaining_sets_and_moves_on(self):
        runtime, _ = _started()
        _complete(runtime, 3)
        assert runtime.finish_exercise()
        session = runtime.session
        assert len(session.sets_for(0)) == 3
        assert session.current_exercise_index == 1
        assert session.timer is None

    def test_last_exercise_completes_after_short_delay(self):
        runtime, clock = _started()
        for _ in range(3):
            _complete(runtime, 3)
            assert runtime.finish_exercise()
        assert runtime.session.scheduled.kind == "complete"
        clock.advance(0.2)
        assert runtime.run_due() == []
        clock.advance(0.1)
        assert runtime.run_due() == ["complete"]
        log = runtime.state.session_history[-1]
        assert log.status == "completed"
        assert [len(ex.sets) for ex in log.exercises] == [3, 3, 3]

    def test_fixed_set_templates_cannot_finish_early(self):
        runtime, _ = _started("zulu")
        _complete(runtime, 3)
        assert not runtime.finish_exercise()


class TestGoto:
    def test_out_of_range(self):
        runtime, _ = _started()
        assert not runtime.goto(3)
        assert not runtime.goto(-1)
        assert runtime.session.current_exercise_index == 0

    def test_clears_timer_and_records_start(self):
        runtime, clock = _started()
        runtime.complete_set()
        clock.advance(30)
        assert runtime.goto(2)
        assert runtime.session.timer is None
        assert runtime.session.exercise_start_times[2] == clock.now

    def test_returning_keeps_first_start_time(self):
        runtime, clock = _started()
        runtime.goto(1)
        clock.advance(60)
        runtime.goto(0)
        assert runtime.session.exercise_start_times[0] == NOW


# ===========================================================================
# Weight override
# ===========================================================================


class TestOverrideWeight:
    def test_barbell_override(self):
        runtime, _ = _started()
        result = runtime.override_weight(200)
        # (200 − 45) / 2 = 77.5 = 45 + 25 + 5 + 2.5
        assert result.display_text == "45  25  5  2.5  per side"
        assert runtime.session.display_weight(0) == 200
        assert runtime.session.exercises[0].target_weight == 220.0

    def test_belt_override(self):
        runtime, _ = _started()
        runtime.goto(2)
        result = runtime.override_weight(50)
        assert result.mode == "belt"
        assert result.display_text == "45  5  on belt"

    @pytest.mark.parametrize("weight", [-5, 1500.5])
    def test_out_of_range(self, weight):
        runtime, _ = _started()
        with pytest.raises(DomainValidationError):
            runtime.override_weight(weight)

    def test_keeps_pending_advance(self):
        runtime, clock = _started()
        _complete(runtime, 5)
        runtime.override_weight(225)
        clock.advance(2)
        assert runtime.run_due() == ["advance"]

    def test_log_records_actual_weight(self):
        runtime, _ = _started()
        runtime.override_weight(200)
        log = runtime.end_session()
        assert log.exercises[0].target_weight == 220.0
        assert log.exercises[0].actual_weight == 200


# ===========================================================================
# Pause, staleness, ending
# ===========================================================================


class TestPauseAndStale:
    def test_pause_resume(self):
        runtime, _ = _started()
        assert runtime.pause()
        assert runtime.session.status == "paused"
        assert not runtime.pause()
        assert runtime.resume()
        assert runtime.session.status == "in_progress"
        assert not runtime.resume()

    def test_action_resumes_paused_session(self):
        runtime, _ = _started()
        runtime.pause()
        runtime.complete_set()
        assert runtime.session.status == "in_progress"

    def test_stale_after_window(self):
        runtime, clock = _started()
        runtime.pause()
        clock.advance(23 * 3600)
        assert not runtime.is_stale()
        clock.advance(2 * 3600)
        assert runtime.is_stale()
        with pytest.raises(SessionStateError):
            runtime.complete_set()

    def test_resume_stale_session(self):
        runtime, clock = _started()
        runtime.pause()
        clock.advance(48 * 3600)
        assert runtime.resume()
        assert runtime.complete_set() is not None

    def test_no_session(self):
        runtime, _ = _runtime()
        with pytest.raises(SessionStateError):
            runtime.complete_set()
        assert not runtime.pause()
        assert runtime.discard() is None


class TestEndAndDiscard:
    def test_end_early_is_partial(self):
        runtime, clock = _started()
        _complete(runtime, 2)
        clock.advance(300)
        log = runtime.end_session()
        assert log.status == "partial"
        assert log.week == 1 and log.session_number == 1
        assert log.duration_seconds == 300
        assert log.completed_at == clock.now
        assert log.date == "2026-03-02"
        assert runtime.state.program.current_session == 2

    def test_end_without_sets_is_skipped(self):
        runtime, _ = _started()
        assert runtime.end_session().status == "skipped"

    def test_exercise_durations(self):
        runtime, clock = _started()
        clock.advance(600)
        runtime.goto(1)
        clock.advance(300)
        log = runtime.end_session()
        assert log.exercises[0].duration_seconds == 600
        assert log.exercises[1].duration_seconds == 300
        assert log.exercises[2].duration_seconds is None

    def test_durations_follow_visit_order(self):
        runtime, clock = _started()
        clock.advance(60)
        runtime.goto(2)
        clock.advance(60)
        runtime.goto(1)
        clock.advance(60)
        log = runtime.end_session()
        assert [ex.duration_seconds for ex in log.exercises] == [60, 60, 60]

    def test_immediate_jump_charges_no_time(self):
        runtime, clock = _started()
        runtime.goto(1)
        clock.advance(120)
        log = runtime.end_session()
        assert log.exercises[0].duration_seconds == 0
        assert log.exercises[1].duration_seconds == 120

    def test_discard_does_not_advance(self):
        runtime, _ = _started()
        _complete(runtime, 1)
        log = runtime.discard()
        assert log.status == "partial"
        assert runtime.session is None
        assert runtime.state.session_history[-1] is log
        assert runtime.state.program.current_session == 1

    def test_discard_untouched_is_skipped(self):
        runtime, _ = _started()
        assert runtime.discard().status == "skipped"


# ===========================================================================
# Listeners
# ===========================================================================


class TestListeners:
    def test_notified_on_every_change(self):
        runtime, _ = _started()
        seen = []
        runtime.subscribe(seen.append)
        runtime.complete_set()
        runtime.skip_rest()
        assert len(seen) == 2
        assert seen[-1] is runtime.state

    def test_failing_listener_is_isolated(self, caplog):
        runtime, _ = _started()

        def broken(state):
            raise RuntimeError("display offline")

        runtime.subscribe(broken)
        with caplog.at_level(logging.WARNING, logger="tb3"):
            done = runtime.complete_set()
        assert done is not None
        assert runtime.session.completed_count(0) == 1
        assert any("listener" in r.getMessage() for r in caplog.records)
