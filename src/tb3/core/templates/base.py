"""
Base types for periodization templates.

TemplateDef is a hand-authored program: weeks of intensity and volume,
session definitions naming fixed lifts or a user-configurable lift slot,
and per-template override tables carried as data (session percentage
tracks, session-level set/rep tables, endurance duration labels).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from ..errors import UnknownTemplateError

SessionKind = Literal["strength", "endurance"]

# Either one rep count for every set or an explicit per-set sequence
RepsPerSet = int | tuple[int, ...]


class TemplateId(str, Enum):
    """Closed set of supported templates."""

    OPERATOR = "operator"
    ZULU = "zulu"
    FIGHTER = "fighter"
    GLADIATOR = "gladiator"
    MASS_PROTOCOL = "mass-protocol"
    MASS_STRENGTH = "mass-strength"
    GREY_MAN = "grey-man"

    @classmethod
    def parse(cls, value: "str | TemplateId") -> "TemplateId":
        """
        Convert a raw id to a TemplateId.

        Raises:
            UnknownTemplateError: If value is not a known template id
        """
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise UnknownTemplateError(
                f"Unknown template '{value}'. Valid IDs: {valid}"
            ) from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class WeekDef:
    week_number: int
    percentage: float
    sets_range: tuple[int, int]
    reps_per_set: RepsPerSet


@dataclass(frozen=True)
class SessionDef:
    """
    One session slot within a week.

    Strength sessions name either a fixed lift list or a lift slot; endurance
    sessions carry neither.
    """

    session_number: int
    session_type: SessionKind
    lifts: tuple[str, ...] = ()
    slot: str | None = None


@dataclass(frozen=True)
class LiftSlotDef:
    name: str           # e.g. "cluster", "A", "B"
    label: str          # e.g. "A Day"
    min_lifts: int
    max_lifts: int
    defaults: tuple[str, ...]


@dataclass(frozen=True)
class VolumeOverride:
    """Sets/reps that replace the week's volume for one session."""

    sets: int
    reps: RepsPerSet


@dataclass(frozen=True)
class TemplateDef:
    """
    Full definition of one template.

    Override tables:
        session_percentages: {week: {session: percentage}}
        session_overrides:   {session: {week: VolumeOverride}}
        endurance_durations: {week: {session: label}}
    """

    id: TemplateId
    name: str
    description: str
    duration_weeks: int
    sessions_per_week: int
    weeks: tuple[WeekDef, ...]
    sessions: tuple[SessionDef, ...]
    lift_slots: tuple[LiftSlotDef, ...] = ()
    requires_lift_selection: bool = False
    has_endurance: bool = False
    has_set_range: bool = False
    hide_rest_timer: bool = False
    recommended_days: tuple[int, ...] = ()
    session_percentages: dict[int, dict[int, float]] = field(default_factory=dict)
    session_overrides: dict[int, dict[int, VolumeOverride]] = field(default_factory=dict)
    endurance_durations: dict[int, dict[int, str]] = field(default_factory=dict)

    def week(self, week_number: int) -> WeekDef | None:
        for w in self.weeks:
            if w.week_number == week_number:
                return w
        return None

    def slot(self, name: str) -> LiftSlotDef | None:
        for s in self.lift_slots:
            if s.name == name:
                return s
        return None

    def percentage_for(self, week: WeekDef, session_number: int) -> float:
        """Session-level percentage track, else the week's percentage."""
        return self.session_percentages.get(week.week_number, {}).get(
            session_number, week.percentage
        )

    def volume_for(self, week: WeekDef, session_number: int) -> tuple[tuple[int, int], RepsPerSet]:
        """(sets_range, reps_per_set) after any session-level override."""
        override = self.session_overrides.get(session_number, {}).get(week.week_number)
        if override is None:
            return week.sets_range, week.reps_per_set
        return (override.sets, override.sets), override.reps

    def endurance_duration(self, week_number: int, session_number: int) -> str:
        return self.endurance_durations.get(week_number, {}).get(session_number, "")
