"""
JSON serialization for tb3 data models.

Handles conversion between dataclasses and JSON-compatible dicts, plus the
consistency check run over a loaded data set.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, TypeVar

from ..core.config import LIFT_NAMES, MAX_TEST_REPS, MAX_TEST_WEIGHT, MIN_TEST_REPS, MIN_TEST_WEIGHT
from ..core.models import (
    ActiveProgram,
    ActiveSessionState,
    ComputedExercise,
    ComputedSchedule,
    ComputedSession,
    ComputedWeek,
    ExerciseLog,
    MaxTest,
    PendingUndo,
    PlateCount,
    PlateInventory,
    RepsPerSet,
    ScheduledAction,
    SessionExercise,
    SessionLog,
    SessionSet,
    SetLog,
    TimerState,
    UserProfile,
)
from ..core.templates import TemplateId

T = TypeVar("T")


class ValidationError(Exception):
    """Raised when data validation fails."""

    pass


def validate_non_negative(value: int | float, name: str) -> int | float:
    """
    Validate that a value is non-negative.

    Raises:
        ValidationError: If value is negative
    """
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")
    return value


def _convert(build: Callable[[dict[str, Any]], T], data: dict[str, Any], what: str) -> T:
    """Run a dict → model builder, reporting any failure as ValidationError."""
    try:
        return build(data)
    except ValidationError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {what}: {e}") from e


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _reps_out(reps: RepsPerSet) -> int | list[int]:
    return reps if isinstance(reps, int) else list(reps)


def _reps_in(raw: Any) -> RepsPerSet:
    return tuple(int(r) for r in raw) if isinstance(raw, list) else int(raw)


def _plates_out(plates: tuple[PlateCount, ...]) -> list[dict[str, Any]]:
    return [{"weight": p.weight, "count": p.count} for p in plates]


def _plates_in(raw: list[dict[str, Any]] | None) -> tuple[PlateCount, ...]:
    return tuple(PlateCount(weight=float(p["weight"]), count=int(p["count"])) for p in raw or ())


# ---------------------------------------------------------------------------
# Profile & inventories
# ---------------------------------------------------------------------------


def plate_inventory_to_dict(inventory: PlateInventory) -> dict[str, int]:
    return {f"{w:g}": c for w, c in inventory.heaviest_first()}


def dict_to_plate_inventory(data: dict[str, Any]) -> PlateInventory:
    return _convert(lambda d: PlateInventory({float(k): int(v) for k, v in d.items()}), data, "plate inventory")


def user_profile_to_dict(profile: UserProfile) -> dict[str, Any]:
    return {
        "max_type": profile.max_type,
        "rounding_increment": profile.rounding_increment,
        "barbell_weight": profile.barbell_weight,
        "plate_inventory_barbell": plate_inventory_to_dict(profile.plate_inventory_barbell),
        "plate_inventory_belt": plate_inventory_to_dict(profile.plate_inventory_belt),
        "rest_timer_default": profile.rest_timer_default,
        "sound_mode": profile.sound_mode,
        "voice_announcements": profile.voice_announcements,
        "unit": profile.unit,
        "last_modified": _dt(profile.last_modified),
    }


def dict_to_user_profile(data: dict[str, Any]) -> UserProfile:
    """
    Convert dict to UserProfile.

    Missing keys fall back to the profile defaults.

    Raises:
        ValidationError: If a present value is invalid
    """

    def build(d: dict[str, Any]) -> UserProfile:
        defaults = UserProfile()
        barbell = d.get("plate_inventory_barbell")
        belt = d.get("plate_inventory_belt")
        return UserProfile(
            max_type=d.get("max_type", defaults.max_type),
            rounding_increment=float(d.get("rounding_increment", defaults.rounding_increment)),
            barbell_weight=float(d.get("barbell_weight", defaults.barbell_weight)),
            plate_inventory_barbell=(
                dict_to_plate_inventory(barbell) if barbell else defaults.plate_inventory_barbell
            ),
            plate_inventory_belt=dict_to_plate_inventory(belt) if belt else defaults.plate_inventory_belt,
            rest_timer_default=int(d.get("rest_timer_default", defaults.rest_timer_default)),
            sound_mode=d.get("sound_mode", defaults.sound_mode),
            voice_announcements=bool(d.get("voice_announcements", defaults.voice_announcements)),
            unit=d.get("unit", defaults.unit),
            last_modified=_parse_dt(d.get("last_modified")),
        )

    return _convert(build, data, "profile")


# ---------------------------------------------------------------------------
# Max tests & program
# ---------------------------------------------------------------------------


def max_test_to_dict(test: MaxTest) -> dict[str, Any]:
    return {
        "id": test.id,
        "date": test.date,
        "lift_name": test.lift_name,
        "weight": test.weight,
        "reps": test.reps,
        "max_type": test.max_type,
        "calculated_max": test.calculated_max,
        "working_max": test.working_max,
        "last_modified": _dt(test.last_modified),
    }


def dict_to_max_test(data: dict[str, Any]) -> MaxTest:
    return _convert(
        lambda d: MaxTest(
            id=str(d["id"]),
            date=d["date"],
            lift_name=str(d["lift_name"]),
            weight=float(d["weight"]),
            reps=int(d["reps"]),
            max_type=d["max_type"],
            calculated_max=float(d["calculated_max"]),
            working_max=float(d["working_max"]),
            last_modified=_parse_dt(d["last_modified"]),
        ),
        data,
        "max test",
    )


def active_program_to_dict(program: ActiveProgram) -> dict[str, Any]:
    return {
        "template_id": program.template_id.value,
        "start_date": program.start_date,
        "current_week": program.current_week,
        "current_session": program.current_session,
        "lift_selections": {k: list(v) for k, v in program.lift_selections.items()},
        "last_modified": _dt(program.last_modified),
    }


def dict_to_active_program(data: dict[str, Any]) -> ActiveProgram:
    return _convert(
        lambda d: ActiveProgram(
            template_id=TemplateId.parse(d["template_id"]),
            start_date=d["start_date"],
            current_week=int(d.get("current_week", 1)),
            current_session=int(d.get("current_session", 1)),
            lift_selections={k: tuple(v) for k, v in (d.get("lift_selections") or {}).items()},
            last_modified=_parse_dt(d.get("last_modified")),
        ),
        data,
        "program",
    )


# ---------------------------------------------------------------------------
# Compiled schedule
# ---------------------------------------------------------------------------


def _exercise_to_dict(ex: ComputedExercise) -> dict[str, Any]:
    return {
        "lift_name": ex.lift_name,
        "target_weight": ex.target_weight,
        "plate_breakdown": ex.plate_breakdown,
        "plates": _plates_out(ex.plates),
        "achievable": ex.achievable,
        "is_bodyweight": ex.is_bodyweight,
        "nearest_achievable": ex.nearest_achievable,
    }


def _dict_to_exercise(d: dict[str, Any]) -> ComputedExercise:
    nearest = d.get("nearest_achievable")
    return ComputedExercise(
        lift_name=d["lift_name"],
        target_weight=float(d["target_weight"]),
        plate_breakdown=d["plate_breakdown"],
        plates=_plates_in(d.get("plates")),
        achievable=bool(d["achievable"]),
        is_bodyweight=bool(d.get("is_bodyweight", False)),
        nearest_achievable=float(nearest) if nearest is not None else None,
    )


def computed_schedule_to_dict(schedule: ComputedSchedule) -> dict[str, Any]:
    return {
        "template_id": schedule.template_id.value,
        "source_hash": schedule.source_hash,
        "computed_at": _dt(schedule.computed_at),
        "weeks": [
            {
                "week_number": w.week_number,
                "percentage": w.percentage,
                "sets_range": list(w.sets_range),
                "reps_per_set": _reps_out(w.reps_per_set),
                "sessions": [
                    {
                        "session_number": s.session_number,
                        "session_type": s.session_type,
                        "percentage": s.percentage,
                        "sets_range": list(s.sets_range),
                        "reps_per_set": _reps_out(s.reps_per_set),
                        "exercises": [_exercise_to_dict(e) for e in s.exercises],
                        "endurance_duration": s.endurance_duration,
                    }
                    for s in w.sessions
                ],
            }
            for w in schedule.weeks
        ],
    }


def dict_to_computed_schedule(data: dict[str, Any]) -> ComputedSchedule:
    def build(d: dict[str, Any]) -> ComputedSchedule:
        weeks = []
        for w in d["weeks"]:
            sessions = tuple(
                ComputedSession(
                    session_number=int(s["session_number"]),
                    session_type=s["session_type"],
                    percentage=float(s["percentage"]),
                    sets_range=tuple(s["sets_range"]),
                    reps_per_set=_reps_in(s["reps_per_set"]),
                    exercises=tuple(_dict_to_exercise(e) for e in s.get("exercises", ())),
                    endurance_duration=s.get("endurance_duration"),
                )
                for s in w["sessions"]
            )
            weeks.append(
                ComputedWeek(
                    week_number=int(w["week_number"]),
                    percentage=float(w["percentage"]),
                    sets_range=tuple(w["sets_range"]),
                    reps_per_set=_reps_in(w["reps_per_set"]),
                    sessions=sessions,
                )
            )
        return ComputedSchedule(
            template_id=TemplateId.parse(d["template_id"]),
            source_hash=d["source_hash"],
            computed_at=_parse_dt(d["computed_at"]),
            weeks=tuple(weeks),
        )

    return _convert(build, data, "schedule")


# ---------------------------------------------------------------------------
# Active session
# ---------------------------------------------------------------------------


def active_session_to_dict(session: ActiveSessionState) -> dict[str, Any]:
    timer = session.timer
    undo = session.pending_undo
    action = session.scheduled
    return {
        "template_id": session.template_id.value,
        "week": session.week,
        "session": session.session,
        "session_type": session.session_type,
        "percentage": session.percentage,
        "sets_range": list(session.sets_range),
        "has_set_range": session.has_set_range,
        "started_at": _dt(session.started_at),
        "exercises": [
            {
                "lift_name": e.lift_name,
                "target_weight": e.target_weight,
                "reps_per_set": _reps_out(e.reps_per_set),
                "is_bodyweight": e.is_bodyweight,
                "plates": _plates_out(e.plates),
            }
            for e in session.exercises
        ],
        "sets": [
            {
                "exercise_index": s.exercise_index,
                "set_number": s.set_number,
                "target_reps": s.target_reps,
                "actual_reps": s.actual_reps,
                "completed": s.completed,
                "completed_at": _dt(s.completed_at),
            }
            for s in session.sets
        ],
        "current_exercise_index": session.current_exercise_index,
        "status": session.status,
        "timer": (
            {"phase": timer.phase, "started_at": _dt(timer.started_at), "rest_seconds": timer.rest_seconds}
            if timer
            else None
        ),
        "exercise_start_times": {str(k): _dt(v) for k, v in session.exercise_start_times.items()},
        "weight_overrides": {str(k): v for k, v in session.weight_overrides.items()},
        "pending_undo": (
            {"exercise_index": undo.exercise_index, "set_number": undo.set_number, "expires_at": _dt(undo.expires_at)}
            if undo
            else None
        ),
        "scheduled": (
            {
                "kind": action.kind,
                "due_at": _dt(action.due_at),
                "revision": action.revision,
                "exercise_index": action.exercise_index,
            }
            if action
            else None
        ),
        "revision": session.revision,
        "hide_rest_timer": session.hide_rest_timer,
        "endurance_duration": session.endurance_duration,
        "paused_at": _dt(session.paused_at),
    }


def dict_to_active_session(data: dict[str, Any]) -> ActiveSessionState:
    def build(d: dict[str, Any]) -> ActiveSessionState:
        t, u, a = d.get("timer"), d.get("pending_undo"), d.get("scheduled")
        for s in d.get("sets", ()):
            validate_non_negative(s["target_reps"], "target_reps")
        return ActiveSessionState(
            template_id=TemplateId.parse(d["template_id"]),
            week=int(d["week"]),
            session=int(d["session"]),
            session_type=d["session_type"],
            percentage=float(d["percentage"]),
            sets_range=tuple(d["sets_range"]),
            has_set_range=bool(d["has_set_range"]),
            started_at=_parse_dt(d["started_at"]),
            exercises=tuple(
                SessionExercise(
                    lift_name=e["lift_name"],
                    target_weight=float(e["target_weight"]),
                    reps_per_set=_reps_in(e["reps_per_set"]),
                    is_bodyweight=bool(e["is_bodyweight"]),
                    plates=_plates_in(e.get("plates")),
                )
                for e in d.get("exercises", ())
            ),
            sets=tuple(
                SessionSet(
                    exercise_index=int(s["exercise_index"]),
                    set_number=int(s["set_number"]),
                    target_reps=int(s["target_reps"]),
                    actual_reps=int(s["actual_reps"]) if s.get("actual_reps") is not None else None,
                    completed=bool(s["completed"]),
                    completed_at=_parse_dt(s.get("completed_at")),
                )
                for s in d.get("sets", ())
            ),
            current_exercise_index=int(d.get("current_exercise_index", 0)),
            status=d.get("status", "in_progress"),
            timer=(
                TimerState(phase=t["phase"], started_at=_parse_dt(t["started_at"]), rest_seconds=t.get("rest_seconds"))
                if t
                else None
            ),
            exercise_start_times={int(k): _parse_dt(v) for k, v in (d.get("exercise_start_times") or {}).items()},
            weight_overrides={int(k): float(v) for k, v in (d.get("weight_overrides") or {}).items()},
            pending_undo=(
                PendingUndo(int(u["exercise_index"]), int(u["set_number"]), _parse_dt(u["expires_at"]))
                if u
                else None
            ),
            scheduled=(
                ScheduledAction(a["kind"], _parse_dt(a["due_at"]), int(a["revision"]), int(a["exercise_index"]))
                if a
                else None
            ),
            revision=int(d.get("revision", 0)),
            hide_rest_timer=bool(d.get("hide_rest_timer", False)),
            endurance_duration=d.get("endurance_duration"),
            paused_at=_parse_dt(d.get("paused_at")),
        )

    return _convert(build, data, "active session")


# ---------------------------------------------------------------------------
# Session logs
# ---------------------------------------------------------------------------


def session_log_to_dict(log: SessionLog) -> dict[str, Any]:
    return {
        "id": log.id,
        "date": log.date,
        "template_id": log.template_id.value,
        "week": log.week,
        "session_number": log.session_number,
        "status": log.status,
        "started_at": _dt(log.started_at),
        "completed_at": _dt(log.completed_at),
        "exercises": [
            {
                "lift_name": e.lift_name,
                "target_weight": e.target_weight,
                "actual_weight": e.actual_weight,
                "sets": [
                    {"target_reps": s.target_reps, "actual_reps": s.actual_reps, "completed": s.completed}
                    for s in e.sets
                ],
                "duration_seconds": e.duration_seconds,
            }
            for e in log.exercises
        ],
        "duration_seconds": log.duration_seconds,
        "notes": log.notes,
        "last_modified": _dt(log.last_modified),
    }


def dict_to_session_log(data: dict[str, Any]) -> SessionLog:
    return _convert(
        lambda d: SessionLog(
            id=str(d["id"]),
            date=d["date"],
            template_id=TemplateId.parse(d["template_id"]),
            week=int(d["week"]),
            session_number=int(d["session_number"]),
            status=d["status"],
            started_at=_parse_dt(d["started_at"]),
            completed_at=_parse_dt(d["completed_at"]),
            exercises=tuple(
                ExerciseLog(
                    lift_name=e["lift_name"],
                    target_weight=float(e["target_weight"]),
                    actual_weight=float(e["actual_weight"]),
                    sets=tuple(
                        SetLog(int(s["target_reps"]), int(s["actual_reps"]), bool(s["completed"]))
                        for s in e.get("sets", ())
                    ),
                    duration_seconds=e.get("duration_seconds"),
                )
                for e in d.get("exercises", ())
            ),
            duration_seconds=d.get("duration_seconds"),
            notes=d.get("notes", ""),
            last_modified=_parse_dt(d.get("last_modified")),
        ),
        data,
        "session log",
    )


# ---------------------------------------------------------------------------
# JSON lines
# ---------------------------------------------------------------------------


def to_json_line(data: dict[str, Any]) -> str:
    """Serialize a record to a single JSON line (no trailing newline)."""
    return json.dumps(data, separators=(",", ":"))


def from_json_line(line: str) -> dict[str, Any]:
    """
    Parse one JSON line.

    Raises:
        ValidationError: If the line is not a JSON object
    """
    try:
        data = json.loads(line.strip())
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")
    return data


# ---------------------------------------------------------------------------
# Data set consistency
# ---------------------------------------------------------------------------


@dataclass
class ValidationReport:
    """
    Outcome of validate_app_data.

    severity: "ok", "warning" (suspect records kept) or "recoverable"
    (references that must be reset, e.g. an unknown template).
    """

    severity: str = "ok"
    errors: list[str] = field(default_factory=list)

    def add(self, severity: str, message: str) -> None:
        self.errors.append(message)
        if severity == "recoverable" or self.severity == "ok":
            self.severity = severity


def validate_app_data(data: dict[str, Any]) -> ValidationReport:
    """
    Check a raw persisted data set for references the core cannot use.

    Args:
        data: {"program": dict|None, "max_tests": [dict], "session_history": [dict]}

    Returns:
        ValidationReport listing every problem found
    """
    report = ValidationReport()

    program = data.get("program")
    if program:
        valid_ids = {t.value for t in TemplateId}
        if program.get("template_id") not in valid_ids:
            report.add("recoverable", f"Unknown template: {program.get('template_id')}")

    test_ids: set[str] = set()
    for test in data.get("max_tests") or ():
        if test.get("lift_name") not in LIFT_NAMES:
            report.add("warning", f"Unknown lift in max tests: {test.get('lift_name')}")
        weight = test.get("weight", 0)
        if not MIN_TEST_WEIGHT <= weight <= MAX_TEST_WEIGHT:
            report.add("warning", f"Weight out of range: {weight}")
        reps = test.get("reps", 0)
        if not MIN_TEST_REPS <= reps <= MAX_TEST_REPS:
            report.add("warning", f"Reps out of range: {reps}")
        if test.get("id") in test_ids:
            report.add("warning", f"Duplicate max test ID: {test.get('id')}")
        test_ids.add(test.get("id"))

    session_ids: set[str] = set()
    for log in data.get("session_history") or ():
        if log.get("id") in session_ids:
            report.add("warning", f"Duplicate session ID: {log.get('id')}")
        session_ids.add(log.get("id"))

    return report
