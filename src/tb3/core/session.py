"""
Live workout runtime.

WorkoutRuntime owns one AppState snapshot and drives the active session
through its states:

    AwaitingStart → InProgress → Completed
                    (paused for longer than the staleness window needs an
                     explicit resume or discard)

Within InProgress the timer alternates between the exercise phase and the
rest phase as sets are completed.  Every mutation replaces the snapshot via
dataclasses.replace and bumps the session revision.

Delayed transitions (auto-advance after an exercise's last set, session
completion after the last set overall) are stored on the session as a
ScheduledAction stamped with the revision they were scheduled at.  Any
later change to set progression or navigation clears them; run_due()
applies an action only if the session is still at that revision and on
the expected exercise.

Time comes from an injected clock so the runtime is deterministic under
test.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Literal

from .config import (
    MAX_TEST_WEIGHT,
    REST_HEAVY_PERCENTAGE,
    REST_HEAVY_SECONDS,
    REST_LIGHT_SECONDS,
    REST_MEDIUM_PERCENTAGE,
    REST_MEDIUM_SECONDS,
    VOICE_MILESTONES,
)
from .config_loader import RuntimeConfig
from .errors import DomainValidationError, SessionStateError, StaleScheduleError
from .models import (
    ActiveSessionState,
    AppState,
    ExerciseLog,
    PendingUndo,
    ScheduledAction,
    SessionExercise,
    SessionLog,
    SessionSet,
    SetLog,
    TimerState,
    reps_for_set,
    utc_now,
)
from .plates import PlateResult, calculate_barbell_plates, calculate_belt_plates
from .planner import is_schedule_stale
from .program import advance_program, current_lifts, is_program_complete
from .templates import get_template

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
StateListener = Callable[[AppState], None]


@dataclass(frozen=True)
class TickEvent:
    """A one-shot cue raised by the rest timer."""

    kind: Literal["milestone", "overtime"]
    label: str
    seconds_remaining: int


@dataclass(frozen=True)
class TimerView:
    """Timer state resolved against the current instant, for display."""

    phase: Literal["rest", "exercise"]
    elapsed_seconds: float
    rest_seconds: int | None
    remaining_seconds: float | None
    overtime: bool


def rest_duration_for(percentage: float, default_seconds: int) -> int:
    """
    Rest after a set.

    The profile default wins when it is positive; otherwise rest is derived
    from session intensity.
    """
    if default_seconds > 0:
        return default_seconds
    if percentage >= REST_HEAVY_PERCENTAGE:
        return REST_HEAVY_SECONDS
    if percentage >= REST_MEDIUM_PERCENTAGE:
        return REST_MEDIUM_SECONDS
    return REST_LIGHT_SECONDS


class WorkoutRuntime:
    """
    Single owner of the application state while a workout runs.

    Benign no-ops (nothing left to complete, undo window elapsed, jump to an
    out-of-range exercise) return None/False.  Misuse raises
    SessionStateError.
    """

    def __init__(
        self,
        state: AppState,
        clock: Clock = utc_now,
        config: RuntimeConfig | None = None,
    ) -> None:
        self._state = state
        self._clock = clock
        self.config = config or RuntimeConfig()
        self._listeners: list[StateListener] = []
        # One-shot tick cues, tracked per rest period
        self._rest_key: datetime | None = None
        self._announced: set[int] = set()
        self._overtime_fired = False

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def session(self) -> ActiveSessionState | None:
        return self._state.active_session

    def now(self) -> datetime:
        return self._clock()

    def subscribe(self, listener: StateListener) -> None:
        """Register a secondary consumer notified after every change."""
        self._listeners.append(listener)

    def _commit(self, state: AppState) -> AppState:
        self._state = state
        for listener in self._listeners:
            try:
                listener(state)
            except Exception:
                logger.warning("State listener %r failed", listener, exc_info=True)
        return state

    def _put_session(self, session: ActiveSessionState | None) -> ActiveSessionState | None:
        self._commit(replace(self._state, active_session=session))
        return session

    def _mutate(
        self,
        session: ActiveSessionState,
        keep_scheduled: bool = False,
        **changes,
    ) -> ActiveSessionState:
        """
        Apply changes as a new revision.

        A pending scheduled action is dropped unless ``keep_scheduled`` marks
        the change as not affecting set progression (timer, weight, pause).
        """
        revision = session.revision + 1
        scheduled = None
        if keep_scheduled and session.scheduled is not None:
            scheduled = replace(session.scheduled, revision=revision)
        return self._put_session(replace(session, revision=revision, scheduled=scheduled, **changes))

    def is_stale(self, session: ActiveSessionState | None = None) -> bool:
        """True if a paused session has outlived the staleness window."""
        session = session or self.session
        if session is None or session.status != "paused":
            return False
        age = self.now() - session.started_at
        return age > timedelta(hours=self.config.stale_session_hours)

    def _require_session(self) -> ActiveSessionState:
        session = self.session
        if session is None:
            raise SessionStateError("No active session")
        if self.is_stale(session):
            raise SessionStateError("Session is stale: resume or discard it first")
        if session.status == "paused":
            session = self._mutate(session, keep_scheduled=True, status="in_progress", paused_at=None)
        return session

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start_session(self) -> ActiveSessionState:
        """
        Materialize the program's current session from the compiled schedule.

        Raises:
            SessionStateError: no program, program finished, or a session is active
            StaleScheduleError: the schedule no longer matches its inputs
        """
        state = self._state
        if state.active_session is not None:
            raise SessionStateError("A session is already active")
        program = state.program
        if program is None:
            raise SessionStateError("No active program")
        template = get_template(program.template_id)
        if is_program_complete(program, template):
            raise SessionStateError(f"The {template.name} program is complete")
        if state.schedule is None or is_schedule_stale(state.schedule, program, current_lifts(state), state.profile):
            raise StaleScheduleError("Schedule is out of date; refresh it before starting a session")

        computed = state.schedule.session(program.current_week, program.current_session)
        if computed is None:
            raise SessionStateError(
                f"Week {program.current_week} session {program.current_session} is not in the schedule"
            )

        now = self.now()
        total_sets = computed.sets_range[1]
        exercises: list[SessionExercise] = []
        sets: list[SessionSet] = []
        for i, ex in enumerate(computed.exercises):
            exercises.append(
                SessionExercise(
                    lift_name=ex.lift_name,
                    target_weight=ex.target_weight,
                    reps_per_set=computed.reps_per_set,
                    is_bodyweight=ex.is_bodyweight,
                    plates=ex.plates,
                )
            )
            for n in range(1, total_sets + 1):
                sets.append(
                    SessionSet(
                        exercise_index=i,
                        set_number=n,
                        target_reps=reps_for_set(computed.reps_per_set, n),
                    )
                )

        lo, hi = computed.sets_range
        session = ActiveSessionState(
            template_id=template.id,
            week=program.current_week,
            session=program.current_session,
            session_type=computed.session_type,
            percentage=computed.percentage,
            sets_range=computed.sets_range,
            has_set_range=template.has_set_range and lo < hi,
            started_at=now,
            exercises=tuple(exercises),
            sets=tuple(sets),
            exercise_start_times={0: now},
            hide_rest_timer=template.hide_rest_timer,
            endurance_duration=computed.endurance_duration,
        )
        self._reset_cues()
        logger.info(
            "Started %s week %d session %d (%d exercises, %d sets)",
            template.id.value, session.week, session.session, len(exercises), len(sets),
        )
        return self._put_session(session)

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    def rest_duration(self, session: ActiveSessionState | None = None) -> int:
        session = session or self.session
        percentage = session.percentage if session is not None else 0.0
        return rest_duration_for(percentage, self._state.profile.rest_timer_default)

    def complete_set(self) -> SessionSet | None:
        """
        Complete the next set of the current exercise at its target reps.

        Starts a rest timer, opens the undo window and, when this finishes the
        exercise or the whole session, schedules the delayed transition.
        """
        session = self._require_session()
        idx = session.current_exercise_index
        target = session.next_incomplete(idx)
        if target is None:
            return None

        now = self.now()
        done = replace(target, actual_reps=target.target_reps, completed=True, completed_at=now)
        sets = tuple(done if s is target else s for s in session.sets)

        timer = None
        if not session.hide_rest_timer:
            rest = self.rest_duration(session)
            if rest > 0:
                timer = TimerState(phase="rest", started_at=now, rest_seconds=rest)

        session = self._mutate(
            session,
            sets=sets,
            timer=timer,
            pending_undo=PendingUndo(
                exercise_index=idx,
                set_number=done.set_number,
                expires_at=now + timedelta(seconds=self.config.undo_window_seconds),
            ),
        )
        self._reset_cues()

        delay = timedelta(seconds=self.config.auto_advance_delay_seconds)
        if session.all_sets_complete:
            self._schedule(session, "complete", now + delay)
        elif session.exercise_complete(idx) and idx + 1 < len(session.exercises):
            self._schedule(session, "advance", now + delay)
        return done

    def _schedule(self, session: ActiveSessionState, kind: str, due_at: datetime) -> None:
        action = ScheduledAction(
            kind=kind,
            due_at=due_at,
            revision=session.revision,
            exercise_index=session.current_exercise_index,
        )
        # Same revision: attaching the action is not itself a mutation
        self._put_session(replace(session, scheduled=action))

    def begin_set(self) -> bool:
        """End the rest period and start timing the next set."""
        session = self._require_session()
        if session.timer is None or session.timer.phase != "rest":
            return False
        self._mutate(
            session,
            timer=TimerState(phase="exercise", started_at=self.now()),
            pending_undo=None,
            keep_scheduled=True,
        )
        self._reset_cues()
        return True

    def undo(self) -> SessionSet | None:
        """
        Revert the most recently completed set if the undo window is open.

        Also clears the rest timer and cancels any pending auto-advance.
        """
        session = self._require_session()
        pending = session.pending_undo
        if pending is None:
            return None
        if self.now() >= pending.expires_at or pending.exercise_index != session.current_exercise_index:
            return None

        reverted = None
        sets = []
        for s in session.sets:
            if s.exercise_index == pending.exercise_index and s.set_number == pending.set_number:
                s = replace(s, actual_reps=None, completed=False, completed_at=None)
                reverted = s
            sets.append(s)
        if reverted is None:
            return None
        self._mutate(session, sets=tuple(sets), timer=None, pending_undo=None)
        self._reset_cues()
        return reverted

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _enter_exercise(self, session: ActiveSessionState, index: int, **changes) -> ActiveSessionState:
        starts = dict(session.exercise_start_times)
        starts.setdefault(index, self.now())
        self._reset_cues()
        return self._mutate(
            session,
            current_exercise_index=index,
            exercise_start_times=starts,
            timer=None,
            pending_undo=None,
            **changes,
        )

    def goto(self, index: int) -> bool:
        """Jump to an exercise; clears any running timer."""
        session = self._require_session()
        if not 0 <= index < len(session.exercises):
            return False
        self._enter_exercise(session, index)
        return True

    def finish_exercise(self) -> bool:
        """
        End the current exercise early, dropping its incomplete sets.

        Allowed only for templates with a sets range once the range's minimum
        has been completed.  Finishing the last exercise schedules session
        completion after a short delay.
        """
        session = self._require_session()
        idx = session.current_exercise_index
        if not session.has_set_range or session.completed_count(idx) < session.sets_range[0]:
            return False

        sets = tuple(s for s in session.sets if s.exercise_index != idx or s.completed)
        if idx >= len(session.exercises) - 1:
            session = self._mutate(session, sets=sets, timer=None, pending_undo=None)
            self._schedule(
                session,
                "complete",
                self.now() + timedelta(seconds=self.config.early_finish_delay_seconds),
            )
        else:
            self._enter_exercise(session, idx + 1, sets=sets)
        return True

    # ------------------------------------------------------------------
    # Rest timer
    # ------------------------------------------------------------------

    def skip_rest(self) -> bool:
        session = self._require_session()
        if session.timer is None or session.timer.phase != "rest":
            return False
        self._mutate(session, timer=None, keep_scheduled=True)
        return True

    def add_rest(self, seconds: int | None = None) -> bool:
        """Extend the running rest period (default +30 s)."""
        session = self._require_session()
        timer = session.timer
        if timer is None or timer.phase != "rest":
            return False
        extra = self.config.rest_extension_seconds if seconds is None else seconds
        self._mutate(
            session,
            timer=replace(timer, rest_seconds=(timer.rest_seconds or 0) + extra),
            keep_scheduled=True,
        )
        return True

    def timer_view(self) -> TimerView | None:
        session = self.session
        if session is None or session.timer is None:
            return None
        timer = session.timer
        elapsed = max(0.0, (self.now() - timer.started_at).total_seconds())
        if timer.phase == "rest" and timer.rest_seconds:
            remaining = timer.rest_seconds - elapsed
            return TimerView("rest", elapsed, timer.rest_seconds, max(0.0, remaining), remaining <= 0)
        return TimerView(timer.phase, elapsed, timer.rest_seconds, None, False)

    def _reset_cues(self) -> None:
        self._rest_key = None
        self._announced = set()
        self._overtime_fired = False

    def tick(self) -> list[TickEvent]:
        """
        Periodic update: fire due scheduled actions, then rest-timer cues.

        Each milestone fires at most once per rest period, and the overtime
        cue exactly once.
        """
        self.run_due()
        session = self.session
        if session is None or session.timer is None or session.timer.phase != "rest":
            return []
        timer = session.timer
        if not timer.rest_seconds:
            return []
        if self._rest_key != timer.started_at:
            self._reset_cues()
            self._rest_key = timer.started_at

        events: list[TickEvent] = []
        elapsed = (self.now() - timer.started_at).total_seconds()
        remaining = timer.rest_seconds - elapsed
        if remaining > 0:
            sec = math.ceil(remaining)
            label = VOICE_MILESTONES.get(sec)
            if label is not None and sec not in self._announced:
                self._announced.add(sec)
                events.append(TickEvent("milestone", label, sec))
        elif not self._overtime_fired:
            self._overtime_fired = True
            events.append(TickEvent("overtime", "Rest complete", 0))
        return events

    # ------------------------------------------------------------------
    # Scheduled actions
    # ------------------------------------------------------------------

    def run_due(self) -> list[str]:
        """Apply a due scheduled action if its precondition still holds."""
        session = self.session
        if session is None or session.scheduled is None:
            return []
        action = session.scheduled
        if self.now() < action.due_at:
            return []
        if action.revision != session.revision or action.exercise_index != session.current_exercise_index:
            logger.debug("Dropping superseded %s action", action.kind)
            self._put_session(replace(session, scheduled=None))
            return []

        if action.kind == "advance":
            if not session.exercise_complete(action.exercise_index):
                self._put_session(replace(session, scheduled=None))
                return []
            self._enter_exercise(session, action.exercise_index + 1)
        else:
            self.complete_session()
        return [action.kind]

    # ------------------------------------------------------------------
    # Weight override
    # ------------------------------------------------------------------

    def plates_for(self, exercise_index: int | None = None) -> PlateResult | None:
        """Plate loadout for an exercise's displayed weight."""
        session = self.session
        if session is None or not session.exercises:
            return None
        idx = session.current_exercise_index if exercise_index is None else exercise_index
        if not 0 <= idx < len(session.exercises):
            return None
        profile = self._state.profile
        weight = session.display_weight(idx)
        if session.exercises[idx].is_bodyweight:
            return calculate_belt_plates(weight, profile.plate_inventory_belt, profile.rounding_increment)
        return calculate_barbell_plates(
            weight, profile.barbell_weight, profile.plate_inventory_barbell, profile.rounding_increment
        )

    def override_weight(self, weight: float) -> PlateResult | None:
        """
        Use a different weight for the current exercise.

        Raises:
            DomainValidationError: weight negative or above the accepted maximum
        """
        if not 0 <= weight <= MAX_TEST_WEIGHT:
            raise DomainValidationError(f"Weight must be between 0 and {MAX_TEST_WEIGHT:g}, got {weight:g}")
        session = self._require_session()
        if session.current_exercise is None:
            return None
        overrides = dict(session.weight_overrides)
        overrides[session.current_exercise_index] = float(weight)
        self._mutate(session, weight_overrides=overrides, keep_scheduled=True)
        return self.plates_for()

    # ------------------------------------------------------------------
    # Pause / stale recovery
    # ------------------------------------------------------------------

    def pause(self) -> bool:
        session = self.session
        if session is None or session.status == "paused":
            return False
        self._mutate(session, status="paused", paused_at=self.now(), keep_scheduled=True)
        return True

    def resume(self) -> bool:
        """Return a paused (possibly stale) session to in-progress."""
        session = self.session
        if session is None or session.status != "paused":
            return False
        self._mutate(session, status="in_progress", paused_at=None, keep_scheduled=True)
        return True

    def discard(self) -> SessionLog | None:
        """
        Abandon the session, logging whatever was completed.

        The program pointers are not advanced.
        """
        session = self.session
        if session is None:
            return None
        now = self.now()
        log = self._build_log(session, now)
        status = "partial" if any(s.completed for s in session.sets) else "skipped"
        log = replace(log, status=status)
        self._reset_cues()
        self._commit(
            replace(
                self._state,
                active_session=None,
                session_history=self._state.session_history + (log,),
            )
        )
        logger.info("Discarded week %d session %d (%s)", session.week, session.session, status)
        return log

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _build_log(self, session: ActiveSessionState, now: datetime) -> SessionLog:
        starts = session.exercise_start_times
        # Each exercise ends when the next one was first entered, in visit order
        visits = sorted(starts, key=lambda idx: starts[idx])
        ends = {idx: starts[nxt] for idx, nxt in zip(visits, visits[1:])}
        exercises: list[ExerciseLog] = []
        for i, ex in enumerate(session.exercises):
            done = [s for s in session.sets_for(i) if s.completed]
            start = starts.get(i)
            duration = None
            if start is not None:
                duration = int((ends.get(i, now) - start).total_seconds())
            exercises.append(
                ExerciseLog(
                    lift_name=ex.lift_name,
                    target_weight=ex.target_weight,
                    actual_weight=session.display_weight(i),
                    sets=tuple(
                        SetLog(target_reps=s.target_reps, actual_reps=s.actual_reps or s.target_reps, completed=True)
                        for s in done
                    ),
                    duration_seconds=duration,
                )
            )

        completed = sum(1 for s in session.sets if s.completed)
        if session.session_type == "endurance" or (session.sets and completed == len(session.sets)):
            status = "completed"
        elif completed > 0:
            status = "partial"
        else:
            status = "skipped"

        return SessionLog(
            id=str(uuid.uuid4()),
            date=session.started_at.date().isoformat(),
            template_id=session.template_id,
            week=session.week,
            session_number=session.session,
            status=status,
            started_at=session.started_at,
            completed_at=now,
            exercises=tuple(exercises),
            duration_seconds=int((now - session.started_at).total_seconds()),
            last_modified=now,
        )

    def complete_session(self) -> SessionLog:
        """
        Log the session, advance the program and clear the active session.

        Also used to end a workout early; the status reflects the completed
        sets (completed, partial or skipped).
        """
        session = self.session
        if session is None:
            raise SessionStateError("No active session")
        now = self.now()
        log = self._build_log(session, now)

        program = self._state.program
        if program is not None and program.template_id == session.template_id:
            program = advance_program(program, get_template(program.template_id), now)

        self._reset_cues()
        self._commit(
            replace(
                self._state,
                program=program,
                active_session=None,
                session_history=self._state.session_history + (log,),
            )
        )
        logger.info("Logged week %d session %d as %s", log.week, log.session_number, log.status)
        return log

    end_session = complete_session
