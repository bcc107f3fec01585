"""
Data models for TB3.

All core dataclasses: max tests, derived lifts, plate inventories, the
user profile, the active program, compiled schedules, the live session
state and the immutable session logs it produces.

Records the runtime hands around (schedule, session state, logs, AppState)
are frozen; every change produces a new snapshot via dataclasses.replace.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from .config import (
    DEFAULT_BARBELL_PLATES,
    DEFAULT_BARBELL_WEIGHT,
    DEFAULT_BELT_PLATES,
    DEFAULT_REST_SECONDS,
    DEFAULT_ROUNDING_INCREMENT,
    MAX_PLATE_COUNT,
    MIN_PLATE_COUNT,
    PLATE_DENOMINATIONS,
    ROUNDING_INCREMENTS,
)
from .templates.base import RepsPerSet, SessionKind, TemplateId

MaxType = Literal["true", "training"]
SessionStatus = Literal["completed", "partial", "skipped"]
TimerPhase = Literal["rest", "exercise"]
WorkoutStatus = Literal["in_progress", "paused"]
ScheduledKind = Literal["advance", "complete"]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def validate_date(date_str: str) -> None:
    """Validate date string is ISO format YYYY-MM-DD."""
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValueError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid date: {date_str}") from e


def reps_for_set(reps_per_set: RepsPerSet, set_number: int) -> int:
    """
    Target reps for a 1-based set number.

    Per-set sequences shorter than the set count repeat their last value.
    """
    if isinstance(reps_per_set, int):
        return reps_per_set
    if set_number <= len(reps_per_set):
        return reps_per_set[set_number - 1]
    return reps_per_set[-1]


# =============================================================================
# MAX TESTS & DERIVED LIFTS
# =============================================================================


@dataclass(frozen=True)
class MaxTest:
    """
    One recorded max attempt.

    Immutable once created; identity is the generated ``id``.
    """

    id: str
    date: str  # ISO format: YYYY-MM-DD
    lift_name: str
    weight: float
    reps: int
    max_type: MaxType
    calculated_max: float
    working_max: float
    last_modified: datetime

    def __post_init__(self) -> None:
        validate_date(self.date)
        if self.weight <= 0:
            raise ValueError("weight must be positive")
        if self.reps < 1:
            raise ValueError("reps must be at least 1")
        if self.max_type not in ("true", "training"):
            raise ValueError(f"Invalid max_type: {self.max_type}")


@dataclass(frozen=True)
class DerivedLift:
    """Current value of one lift, projected from the latest MaxTest."""

    name: str
    weight: float
    reps: int
    one_rep_max: float
    working_max: float
    is_bodyweight: bool
    test_date: str


# =============================================================================
# PLATES
# =============================================================================


@dataclass(frozen=True)
class PlateCount:
    """A number of plates of one denomination."""

    weight: float
    count: int


@dataclass
class PlateInventory:
    """
    Available plates per denomination.

    Always fully populated: every denomination in PLATE_DENOMINATIONS has a
    count in [0, 20].
    """

    plates: dict[float, int]

    def __post_init__(self) -> None:
        normalized = {float(k): int(v) for k, v in self.plates.items()}
        missing = set(PLATE_DENOMINATIONS) - set(normalized)
        extra = set(normalized) - set(PLATE_DENOMINATIONS)
        if missing:
            raise ValueError(f"Plate inventory missing denominations: {sorted(missing)}")
        if extra:
            raise ValueError(f"Unknown plate denominations: {sorted(extra)}")
        for weight, count in normalized.items():
            if not MIN_PLATE_COUNT <= count <= MAX_PLATE_COUNT:
                raise ValueError(
                    f"Plate count for {weight} must be in [{MIN_PLATE_COUNT}, {MAX_PLATE_COUNT}], got {count}"
                )
        self.plates = normalized

    @classmethod
    def default_barbell(cls) -> "PlateInventory":
        return cls(dict(DEFAULT_BARBELL_PLATES))

    @classmethod
    def default_belt(cls) -> "PlateInventory":
        return cls(dict(DEFAULT_BELT_PLATES))

    @classmethod
    def empty(cls) -> "PlateInventory":
        return cls({d: 0 for d in PLATE_DENOMINATIONS})

    def available(self, denomination: float) -> int:
        return self.plates.get(float(denomination), 0)

    def with_count(self, denomination: float, count: int) -> "PlateInventory":
        """Return a copy with one denomination's count replaced."""
        if float(denomination) not in self.plates:
            raise ValueError(f"Unknown plate denomination: {denomination}")
        updated = dict(self.plates)
        updated[float(denomination)] = count
        return PlateInventory(updated)

    def heaviest_first(self) -> list[tuple[float, int]]:
        return sorted(self.plates.items(), key=lambda kv: kv[0], reverse=True)

    @property
    def total_weight(self) -> float:
        return sum(w * c for w, c in self.plates.items())


# =============================================================================
# PROFILE & PROGRAM
# =============================================================================


@dataclass
class UserProfile:
    """
    User settings that affect compiled weights and the runtime.

    ``rest_timer_default`` of 0 means "derive rest from session intensity".
    """

    max_type: MaxType = "training"
    rounding_increment: float = DEFAULT_ROUNDING_INCREMENT
    barbell_weight: float = DEFAULT_BARBELL_WEIGHT
    plate_inventory_barbell: PlateInventory = field(default_factory=PlateInventory.default_barbell)
    plate_inventory_belt: PlateInventory = field(default_factory=PlateInventory.default_belt)
    rest_timer_default: int = DEFAULT_REST_SECONDS
    sound_mode: str = "on"  # "on" | "off" | "vibrate"
    voice_announcements: bool = False
    unit: str = "lb"
    last_modified: datetime | None = None

    def __post_init__(self) -> None:
        if self.max_type not in ("true", "training"):
            raise ValueError(f"Invalid max_type: {self.max_type!r}")
        if self.rounding_increment not in ROUNDING_INCREMENTS:
            raise ValueError(
                f"rounding_increment must be one of {ROUNDING_INCREMENTS}, got {self.rounding_increment}"
            )
        if self.barbell_weight < 0:
            raise ValueError("barbell_weight must be non-negative")
        if self.rest_timer_default < 0:
            raise ValueError("rest_timer_default must be non-negative")
        if self.sound_mode not in ("on", "off", "vibrate"):
            raise ValueError(f"Invalid sound_mode: {self.sound_mode!r}")
        if self.unit not in ("lb", "kg"):
            raise ValueError(f"Invalid unit: {self.unit!r}")


@dataclass(frozen=True)
class ActiveProgram:
    """The user's live enrollment in one template (pointers are 1-based)."""

    template_id: TemplateId
    start_date: str
    current_week: int = 1
    current_session: int = 1
    lift_selections: dict[str, tuple[str, ...]] = field(default_factory=dict)
    last_modified: datetime | None = None

    def __post_init__(self) -> None:
        validate_date(self.start_date)
        if self.current_week < 1:
            raise ValueError("current_week must be >= 1")
        if self.current_session < 1:
            raise ValueError("current_session must be >= 1")


# =============================================================================
# COMPILED SCHEDULE
# =============================================================================


@dataclass(frozen=True)
class ComputedExercise:
    """One lift in a compiled session, with its plate loadout."""

    lift_name: str
    target_weight: float
    plate_breakdown: str
    plates: tuple[PlateCount, ...]
    achievable: bool
    is_bodyweight: bool = False
    nearest_achievable: float | None = None


@dataclass(frozen=True)
class ComputedSession:
    """A compiled session with its effective intensity and volume."""

    session_number: int
    session_type: SessionKind
    percentage: float
    sets_range: tuple[int, int]
    reps_per_set: RepsPerSet
    exercises: tuple[ComputedExercise, ...] = ()
    endurance_duration: str | None = None


@dataclass(frozen=True)
class ComputedWeek:
    week_number: int
    percentage: float
    sets_range: tuple[int, int]
    reps_per_set: RepsPerSet
    sessions: tuple[ComputedSession, ...]


@dataclass(frozen=True)
class ComputedSchedule:
    """
    Full expansion of a template for one program.

    Valid only while ``source_hash`` matches a fresh hash of its inputs.
    """

    template_id: TemplateId
    source_hash: str
    computed_at: datetime
    weeks: tuple[ComputedWeek, ...]

    def week(self, week_number: int) -> ComputedWeek | None:
        for w in self.weeks:
            if w.week_number == week_number:
                return w
        return None

    def session(self, week_number: int, session_number: int) -> ComputedSession | None:
        w = self.week(week_number)
        if w is None:
            return None
        for s in w.sessions:
            if s.session_number == session_number:
                return s
        return None


# =============================================================================
# LIVE SESSION
# =============================================================================


@dataclass(frozen=True)
class SessionExercise:
    lift_name: str
    target_weight: float
    reps_per_set: RepsPerSet
    is_bodyweight: bool
    plates: tuple[PlateCount, ...] = ()


@dataclass(frozen=True)
class SessionSet:
    """
    A single set within a live session.

    actual_reps is None until the set is completed.
    """

    exercise_index: int
    set_number: int
    target_reps: int
    actual_reps: int | None = None
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class TimerState:
    phase: TimerPhase
    started_at: datetime
    rest_seconds: int | None = None  # planned rest; None in exercise phase


@dataclass(frozen=True)
class PendingUndo:
    """The most recently completed set, undoable until expires_at."""

    exercise_index: int
    set_number: int
    expires_at: datetime


@dataclass(frozen=True)
class ScheduledAction:
    """
    A delayed transition (auto-advance or session completion).

    Fires only if the session is still at ``revision``; any later mutation
    supersedes it.
    """

    kind: ScheduledKind
    due_at: datetime
    revision: int
    exercise_index: int


@dataclass(frozen=True)
class ActiveSessionState:
    """The in-progress execution of one compiled session."""

    template_id: TemplateId
    week: int
    session: int
    session_type: SessionKind
    percentage: float
    sets_range: tuple[int, int]
    has_set_range: bool
    started_at: datetime
    exercises: tuple[SessionExercise, ...] = ()
    sets: tuple[SessionSet, ...] = ()
    current_exercise_index: int = 0
    status: WorkoutStatus = "in_progress"
    timer: TimerState | None = None
    exercise_start_times: dict[int, datetime] = field(default_factory=dict)
    weight_overrides: dict[int, float] = field(default_factory=dict)
    pending_undo: PendingUndo | None = None
    scheduled: ScheduledAction | None = None
    revision: int = 0
    hide_rest_timer: bool = False
    endurance_duration: str | None = None
    paused_at: datetime | None = None

    def sets_for(self, exercise_index: int) -> list[SessionSet]:
        return [s for s in self.sets if s.exercise_index == exercise_index]

    def completed_count(self, exercise_index: int) -> int:
        return sum(1 for s in self.sets_for(exercise_index) if s.completed)

    def next_incomplete(self, exercise_index: int) -> SessionSet | None:
        for s in self.sets_for(exercise_index):
            if not s.completed:
                return s
        return None

    def exercise_complete(self, exercise_index: int) -> bool:
        sets = self.sets_for(exercise_index)
        return bool(sets) and all(s.completed for s in sets)

    @property
    def all_sets_complete(self) -> bool:
        return all(s.completed for s in self.sets)

    @property
    def current_exercise(self) -> SessionExercise | None:
        if 0 <= self.current_exercise_index < len(self.exercises):
            return self.exercises[self.current_exercise_index]
        return None

    def display_weight(self, exercise_index: int) -> float:
        """Profile weight or the user's override for an exercise."""
        if exercise_index in self.weight_overrides:
            return self.weight_overrides[exercise_index]
        return self.exercises[exercise_index].target_weight


# =============================================================================
# HISTORY
# =============================================================================


@dataclass(frozen=True)
class SetLog:
    target_reps: int
    actual_reps: int
    completed: bool


@dataclass(frozen=True)
class ExerciseLog:
    lift_name: str
    target_weight: float
    actual_weight: float
    sets: tuple[SetLog, ...]
    duration_seconds: int | None = None


@dataclass(frozen=True)
class SessionLog:
    """Immutable record written once when a session ends."""

    id: str
    date: str  # ISO format: YYYY-MM-DD
    template_id: TemplateId
    week: int
    session_number: int
    status: SessionStatus
    started_at: datetime
    completed_at: datetime
    exercises: tuple[ExerciseLog, ...] = ()
    duration_seconds: int | None = None
    notes: str = ""
    last_modified: datetime | None = None

    def __post_init__(self) -> None:
        validate_date(self.date)
        if self.status not in ("completed", "partial", "skipped"):
            raise ValueError(f"Invalid session status: {self.status}")


# =============================================================================
# APPLICATION STATE
# =============================================================================


@dataclass(frozen=True)
class AppState:
    """
    Everything the planner and runtime own, as one snapshot.

    Owned by a single WorkoutRuntime; replaced wholesale on each mutation.
    """

    profile: UserProfile = field(default_factory=UserProfile)
    program: ActiveProgram | None = None
    schedule: ComputedSchedule | None = None
    active_session: ActiveSessionState | None = None
    session_history: tuple[SessionLog, ...] = ()
    max_tests: tuple[MaxTest, ...] = ()
