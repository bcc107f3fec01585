"""
Schedule compiler for tb3.

Expands a template against an ActiveProgram, the derived lifts and the
profile settings into a fully resolved ComputedSchedule.  Compilation is
pure and deterministic apart from the ``computed_at`` stamp; the attached
source hash fingerprints every input that can change the output.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Iterable, Mapping

from .config import LIFT_NAMES
from .errors import LiftSelectionError
from .lifts import lift_map
from .models import (
    ActiveProgram,
    ComputedExercise,
    ComputedSchedule,
    ComputedSession,
    ComputedWeek,
    DerivedLift,
    UserProfile,
    utc_now,
)
from .loads import percentage_weight
from .plates import calculate_barbell_plates, calculate_belt_plates
from .templates import TemplateDef, get_template
from .templates.base import SessionDef

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lift selections
# ---------------------------------------------------------------------------


def resolve_lift_selections(
    template: TemplateDef,
    selections: Mapping[str, Iterable[str]] | None = None,
) -> dict[str, tuple[str, ...]]:
    """
    Fill every slot of a template, validating any user choices.

    Slots missing from ``selections`` take their declared defaults.

    Raises:
        LiftSelectionError: Unknown slot or lift, duplicate lift, or a count
            outside the slot's min/max
    """
    selections = dict(selections or {})
    known = {slot.name for slot in template.lift_slots}
    unknown_slots = sorted(set(selections) - known)
    if unknown_slots:
        raise LiftSelectionError(
            f"Template '{template.id}' has no lift slot(s) {unknown_slots}"
        )

    resolved: dict[str, tuple[str, ...]] = {}
    for slot in template.lift_slots:
        chosen = tuple(selections.get(slot.name, slot.defaults))
        bad = [lift for lift in chosen if lift not in LIFT_NAMES]
        if bad:
            raise LiftSelectionError(f"Unknown lift(s) {bad} in slot '{slot.label}'")
        if len(set(chosen)) != len(chosen):
            raise LiftSelectionError(f"Slot '{slot.label}' lists a lift more than once")
        if not slot.min_lifts <= len(chosen) <= slot.max_lifts:
            raise LiftSelectionError(
                f"Slot '{slot.label}' needs {slot.min_lifts}-{slot.max_lifts} lifts, got {len(chosen)}"
            )
        resolved[slot.name] = chosen
    return resolved


def session_lifts(
    session_def: SessionDef,
    template: TemplateDef,
    selections: Mapping[str, tuple[str, ...]],
) -> tuple[str, ...]:
    """Lifts performed in a session: the fixed list or the slot's selection."""
    if session_def.slot is None:
        return session_def.lifts
    if session_def.slot in selections:
        return tuple(selections[session_def.slot])
    slot = template.slot(session_def.slot)
    return slot.defaults if slot is not None else ()


# ---------------------------------------------------------------------------
# Source hash
# ---------------------------------------------------------------------------


def compute_source_hash(
    program: ActiveProgram,
    lifts: Iterable[DerivedLift],
    profile: UserProfile,
) -> str:
    """Stable fingerprint of every value that can affect a compiled schedule."""
    template = get_template(program.template_id)
    selections = resolve_lift_selections(template, program.lift_selections)
    payload = {
        "template_id": template.id.value,
        "lift_selections": {k: list(v) for k, v in selections.items()},
        "lifts": sorted([lift.name, lift.working_max] for lift in lifts),
        "rounding_increment": profile.rounding_increment,
        "barbell_weight": profile.barbell_weight,
        "max_type": profile.max_type,
        "plate_inventory_barbell": {f"{w:g}": c for w, c in profile.plate_inventory_barbell.plates.items()},
        "plate_inventory_belt": {f"{w:g}": c for w, c in profile.plate_inventory_belt.plates.items()},
    }
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _compute_exercise(
    lift_name: str,
    percentage: float,
    lifts: Mapping[str, DerivedLift],
    profile: UserProfile,
) -> ComputedExercise:
    lift = lifts.get(lift_name)
    if lift is None:
        return ComputedExercise(
            lift_name=lift_name,
            target_weight=0.0,
            plate_breakdown=f"Set 1RM for {lift_name}",
            plates=(),
            achievable=False,
        )

    target = percentage_weight(lift.working_max, percentage, profile.rounding_increment)
    if lift.is_bodyweight:
        result = calculate_belt_plates(target, profile.plate_inventory_belt, profile.rounding_increment)
    else:
        result = calculate_barbell_plates(
            target,
            profile.barbell_weight,
            profile.plate_inventory_barbell,
            profile.rounding_increment,
        )
    return ComputedExercise(
        lift_name=lift_name,
        target_weight=target,
        plate_breakdown=result.display_text,
        plates=result.plates,
        achievable=result.achievable,
        is_bodyweight=lift.is_bodyweight,
        nearest_achievable=result.nearest_achievable,
    )


def generate_schedule(
    program: ActiveProgram,
    lifts: Iterable[DerivedLift],
    profile: UserProfile,
    now: datetime | None = None,
) -> ComputedSchedule:
    """
    Compile the full schedule for a program.

    Args:
        program: Active enrollment (template id and lift selections)
        lifts: Derived lifts; missing lifts produce "Set 1RM" placeholders
        profile: Rounding, bar weight, inventories and max type
        now: Timestamp for ``computed_at`` (defaults to the current time)

    Returns:
        ComputedSchedule covering every week of the template

    Raises:
        UnknownTemplateError: template id is not registered
        LiftSelectionError: the program's selections violate a slot
    """
    lifts = list(lifts)
    template = get_template(program.template_id)
    selections = resolve_lift_selections(template, program.lift_selections)
    by_name = lift_map(lifts)

    weeks: list[ComputedWeek] = []
    for week_def in template.weeks:
        sessions: list[ComputedSession] = []
        for session_def in template.sessions:
            n = session_def.session_number
            if session_def.session_type == "endurance":
                sessions.append(
                    ComputedSession(
                        session_number=n,
                        session_type="endurance",
                        percentage=0.0,
                        sets_range=(0, 0),
                        reps_per_set=0,
                        endurance_duration=template.endurance_duration(week_def.week_number, n),
                    )
                )
                continue

            pct = template.percentage_for(week_def, n)
            sets_range, reps = template.volume_for(week_def, n)
            exercises = tuple(
                _compute_exercise(name, pct, by_name, profile)
                for name in session_lifts(session_def, template, selections)
            )
            sessions.append(
                ComputedSession(
                    session_number=n,
                    session_type="strength",
                    percentage=pct,
                    sets_range=sets_range,
                    reps_per_set=reps,
                    exercises=exercises,
                )
            )

        weeks.append(
            ComputedWeek(
                week_number=week_def.week_number,
                percentage=week_def.percentage,
                sets_range=week_def.sets_range,
                reps_per_set=week_def.reps_per_set,
                sessions=tuple(sessions),
            )
        )

    schedule = ComputedSchedule(
        template_id=template.id,
        source_hash=compute_source_hash(program, lifts, profile),
        computed_at=now or utc_now(),
        weeks=tuple(weeks),
    )
    logger.debug("Compiled %s schedule (%d weeks, hash %s)", template.id.value, len(weeks), schedule.source_hash[:12])
    return schedule


def is_schedule_stale(
    schedule: ComputedSchedule | None,
    program: ActiveProgram,
    lifts: Iterable[DerivedLift],
    profile: UserProfile,
) -> bool:
    if schedule is None:
        return True
    return schedule.source_hash != compute_source_hash(program, lifts, profile)


def ensure_fresh_schedule(
    schedule: ComputedSchedule | None,
    program: ActiveProgram,
    lifts: Iterable[DerivedLift],
    profile: UserProfile,
    now: datetime | None = None,
) -> ComputedSchedule:
    """Return ``schedule`` if still valid, else a freshly compiled one."""
    lifts = list(lifts)
    if not is_schedule_stale(schedule, program, lifts, profile):
        return schedule
    logger.info("Schedule inputs changed; recompiling %s", program.template_id.value)
    return generate_schedule(program, lifts, profile, now)
