"""Planning commands: templates, start-program, schedule, history."""

from typing import Annotated, Optional

import typer

from ...core.program import is_program_complete, program_template, refresh_schedule, start_program
from ...core.templates import all_templates, get_template, templates_for_days
from .. import views
from ..app import DataDirOption, app, get_store, handle_errors, load_state
from .profile import resolve_lift_name


def _parse_selections(values: list[str]) -> dict[str, list[str]]:
    """
    Parse '--select SLOT=Lift,Lift' options into a selections mapping.

    Raises:
        ValueError: If an option is not in SLOT=LIFTS form
    """
    selections: dict[str, list[str]] = {}
    for value in values:
        slot, sep, lifts = value.partition("=")
        if not sep or not slot.strip():
            raise ValueError(f"Expected SLOT=Lift[,Lift...], got '{value}'")
        selections[slot.strip()] = [resolve_lift_name(name) for name in lifts.split(",") if name.strip()]
    return selections


@app.command()
def templates(
    days: Annotated[
        Optional[int],
        typer.Option("--days", "-d", help="Show templates recommended for this many training days"),
    ] = None,
) -> None:
    """
    List the available program templates.
    """
    items = templates_for_days(days) if days is not None else all_templates()
    views.console.print(views.format_templates_table(items))

    for template in items:
        for slot in template.lift_slots:
            views.console.print(
                f"[dim]{template.id.value}: slot '{slot.name}' ({slot.label}) takes "
                f"{slot.min_lifts}-{slot.max_lifts} lifts, default {', '.join(slot.defaults)}[/dim]"
            )


@app.command("start-program")
def start_program_cmd(
    template_id: Annotated[str, typer.Argument(help="Template id, e.g. operator")],
    select: Annotated[
        Optional[list[str]],
        typer.Option("--select", "-s", help="Lift slot selection as SLOT=Lift,Lift (repeatable)"),
    ] = None,
    start_date: Annotated[
        Optional[str],
        typer.Option("--start-date", help="Program start date YYYY-MM-DD (default: today)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Replace the current program without prompting"),
    ] = False,
    data_dir: DataDirOption = None,
) -> None:
    """
    Enroll in a program template and compile its schedule.

    Slots not given with --select use the template defaults.
    """
    store = get_store(data_dir)
    state = load_state(store)

    if state.program is not None and not force:
        current = get_template(state.program.template_id)
        if not views.confirm_action(f"Replace the current {current.name} program?"):
            views.print_info("Kept the current program.")
            return

    with handle_errors():
        selections = _parse_selections(select or [])
        state = start_program(state, template_id, selections or None, start_date)

    store.save_app_state(state)
    template = get_template(state.program.template_id)
    views.print_success(f"Started {template.name} ({template.duration_weeks} weeks).")
    for slot_name, chosen in state.program.lift_selections.items():
        views.print_info(f"{slot_name}: {', '.join(chosen)}")

    missing = sorted({
        ex.lift_name
        for week in state.schedule.weeks
        for computed in week.sessions
        for ex in computed.exercises
        if ex.target_weight <= 0
    })
    if missing:
        views.print_warning(f"No max recorded for: {', '.join(missing)}")


@app.command()
def schedule(
    week: Annotated[
        Optional[int],
        typer.Option("--week", "-w", help="Only show this week"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Show the compiled schedule for the current program.
    """
    store = get_store(data_dir)
    state = load_state(store)

    if state.program is None:
        views.print_warning("No active program. Use 'tb3 start-program'.")
        raise typer.Exit(1)

    fresh = refresh_schedule(state)
    if fresh is not state:
        store.save_app_state(fresh)
        views.print_info("Schedule recompiled.")
    state = fresh

    template = program_template(state)
    program = state.program
    if is_program_complete(program, template):
        views.print_success(f"{template.name} program complete.")
    else:
        views.print_info(
            f"{template.name}: week {program.current_week} of {template.duration_weeks}, "
            f"next session {program.current_session}"
        )
    views.print_schedule(
        state.schedule,
        template,
        state.profile.unit,
        current=(program.current_week, program.current_session),
        week=week,
    )


@app.command()
def history(
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-n", help="Only show the most recent N sessions"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Show logged workout sessions.
    """
    state = load_state(get_store(data_dir))
    logs = list(state.session_history)
    if limit is not None:
        logs = logs[-limit:] if limit > 0 else []
    views.print_history(logs)
