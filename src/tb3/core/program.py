"""
Program-level operations on the application state.

Each function takes an AppState snapshot and returns a new one; nothing
here mutates its input.  The compiled schedule is kept in step with its
inputs: any change to maxes, profile or program recompiles it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Mapping

from .errors import SessionStateError
from .lifts import create_max_test, derive_lifts
from .models import ActiveProgram, AppState, DerivedLift, utc_now
from .planner import ensure_fresh_schedule, generate_schedule, resolve_lift_selections
from .templates import TemplateDef, TemplateId, get_template

logger = logging.getLogger(__name__)


def current_lifts(state: AppState) -> list[DerivedLift]:
    return derive_lifts(state.max_tests, state.profile.max_type)


def refresh_schedule(state: AppState, now: datetime | None = None) -> AppState:
    """Recompile the schedule if its source hash no longer matches."""
    if state.program is None:
        return state if state.schedule is None else replace(state, schedule=None)
    schedule = ensure_fresh_schedule(state.schedule, state.program, current_lifts(state), state.profile, now)
    if schedule is state.schedule:
        return state
    return replace(state, schedule=schedule)


def start_program(
    state: AppState,
    template_id: str | TemplateId,
    lift_selections: Mapping[str, Iterable[str]] | None = None,
    start_date: str | None = None,
    now: datetime | None = None,
) -> AppState:
    """
    Enroll in a template, replacing any current program.

    Raises:
        UnknownTemplateError: template_id is not registered
        LiftSelectionError: selections violate a slot's definition
        SessionStateError: a session is still active
    """
    if state.active_session is not None:
        raise SessionStateError("Finish or discard the active session before switching programs")
    now = now or utc_now()
    template = get_template(template_id)
    program = ActiveProgram(
        template_id=template.id,
        start_date=start_date or now.date().isoformat(),
        lift_selections=resolve_lift_selections(template, lift_selections),
        last_modified=now,
    )
    logger.info("Started %s program on %s", template.id.value, program.start_date)
    schedule = generate_schedule(program, current_lifts(state), state.profile, now)
    return replace(state, program=program, schedule=schedule)


def record_max_test(
    state: AppState,
    lift_name: str,
    weight: float,
    reps: int,
    date: str | None = None,
    now: datetime | None = None,
) -> AppState:
    """
    Append a validated max test and recompile the schedule.

    Raises:
        DomainValidationError: unknown lift or weight/reps out of range
    """
    now = now or utc_now()
    test = create_max_test(
        lift_name,
        weight,
        reps,
        date or now.date().isoformat(),
        state.profile.max_type,
        now,
    )
    return refresh_schedule(replace(state, max_tests=state.max_tests + (test,)), now)


def update_profile(state: AppState, now: datetime | None = None, **changes: Any) -> AppState:
    """
    Replace profile fields and recompile the schedule.

    Raises:
        ValueError: a changed field fails profile validation
    """
    now = now or utc_now()
    profile = replace(state.profile, last_modified=now, **changes)
    return refresh_schedule(replace(state, profile=profile), now)


def program_template(state: AppState) -> TemplateDef | None:
    if state.program is None:
        return None
    return get_template(state.program.template_id)


def advance_program(program: ActiveProgram, template: TemplateDef, now: datetime | None = None) -> ActiveProgram:
    """Move to the next session, wrapping into the next week."""
    week, session = program.current_week, program.current_session + 1
    if session > template.sessions_per_week:
        week, session = week + 1, 1
    return replace(program, current_week=week, current_session=session, last_modified=now or utc_now())


def is_program_complete(program: ActiveProgram, template: TemplateDef) -> bool:
    return program.current_week > template.duration_weeks
