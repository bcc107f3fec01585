"""
CLI view formatters using Rich for pretty console output.

Handles table formatting for lifts, schedules, history and the live
session.
"""

from rich.console import Console
from rich.table import Table

from ..core.loads import PercentageRow
from ..core.models import (
    ActiveSessionState,
    ComputedSchedule,
    DerivedLift,
    MaxTest,
    PlateInventory,
    SessionLog,
    UserProfile,
)
from ..core.plates import PlateResult
from ..core.session import TimerView
from ..core.templates import RepsPerSet, TemplateDef

console = Console()


def _fmt_weight(weight: float) -> str:
    return f"{weight:g}"


def _fmt_reps(reps: RepsPerSet) -> str:
    if isinstance(reps, tuple):
        return "/".join(str(r) for r in reps)
    return str(reps)


def _fmt_sets(sets_range: tuple[int, int]) -> str:
    lo, hi = sets_range
    return str(hi) if lo == hi else f"{lo}-{hi}"


def _fmt_duration(seconds: int | None) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


# ---------------------------------------------------------------------------
# Lifts and maxes
# ---------------------------------------------------------------------------


def format_lifts_table(lifts: list[DerivedLift], unit: str) -> Table:
    """
    Create a Rich table of the current derived lifts.

    Args:
        lifts: Derived lifts in canonical order
        unit: Display unit label

    Returns:
        Rich Table object
    """
    table = Table(title="Current Lifts")

    table.add_column("Lift", style="cyan")
    table.add_column(f"Test ({unit})", justify="right")
    table.add_column("1RM", justify="right")
    table.add_column("Working max", justify="right", style="bold")
    table.add_column("Tested", style="dim")

    for lift in lifts:
        name = f"{lift.name} (added)" if lift.is_bodyweight else lift.name
        table.add_row(
            name,
            f"{_fmt_weight(lift.weight)} x {lift.reps}",
            f"{lift.one_rep_max:.1f}",
            f"{lift.working_max:.1f}",
            lift.test_date,
        )

    return table


def format_max_tests_table(tests: list[MaxTest]) -> Table:
    table = Table(title="Max Test History")

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Date", style="cyan")
    table.add_column("Lift", style="magenta")
    table.add_column("Weight", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("1RM", justify="right")
    table.add_column("Working max", justify="right", style="bold")

    for i, test in enumerate(tests, 1):
        table.add_row(
            str(i),
            test.date,
            test.lift_name,
            _fmt_weight(test.weight),
            str(test.reps),
            f"{test.calculated_max:.1f}",
            f"{test.working_max:.1f}",
        )

    return table


def format_percentage_table(lift_name: str, rows: list[PercentageRow], unit: str) -> Table:
    table = Table(title=f"{lift_name} percentages")

    table.add_column("%", justify="right", style="cyan")
    table.add_column(f"Weight ({unit})", justify="right", style="bold")

    for row in rows:
        table.add_row(f"{row.percentage}%", _fmt_weight(row.weight) if row.weight > 0 else "-")

    return table


def format_plate_result(result: PlateResult, unit: str) -> str:
    """
    Format a plate calculation as one or two lines of text.

    Args:
        result: Plate calculation result
        unit: Display unit label

    Returns:
        Formatted string
    """
    lines = [f"{_fmt_weight(result.target)} {unit}: {result.display_text}"]
    if not result.achievable and result.nearest_achievable is not None:
        lines.append(f"Nearest achievable: {_fmt_weight(result.nearest_achievable)} {unit}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def format_settings(profile: UserProfile) -> str:
    lines = [
        "Settings",
        f"- Max type:          {profile.max_type}",
        f"- Rounding:          {_fmt_weight(profile.rounding_increment)} {profile.unit}",
        f"- Barbell weight:    {_fmt_weight(profile.barbell_weight)} {profile.unit}",
        f"- Rest timer:        {profile.rest_timer_default} s"
        + ("  (by intensity)" if profile.rest_timer_default == 0 else ""),
        f"- Sound:             {profile.sound_mode}",
        f"- Voice:             {'on' if profile.voice_announcements else 'off'}",
        f"- Unit:              {profile.unit}",
    ]
    return "\n".join(lines)


def format_inventory_table(barbell: PlateInventory, belt: PlateInventory) -> Table:
    table = Table(title="Plate Inventory")

    table.add_column("Plate", justify="right", style="cyan")
    table.add_column("Barbell (pairs)", justify="right")
    table.add_column("Belt", justify="right")

    for denomination, count in barbell.heaviest_first():
        table.add_row(_fmt_weight(denomination), str(count), str(belt.available(denomination)))

    return table


# ---------------------------------------------------------------------------
# Templates and schedule
# ---------------------------------------------------------------------------


def format_templates_table(templates: list[TemplateDef]) -> Table:
    table = Table(title="Templates")

    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Weeks", justify="right")
    table.add_column("Sessions/wk", justify="right")
    table.add_column("Days", justify="right")
    table.add_column("Description")

    for template in templates:
        table.add_row(
            template.id.value,
            template.name,
            str(template.duration_weeks),
            str(template.sessions_per_week),
            ",".join(str(d) for d in template.recommended_days) or "-",
            template.description,
        )

    return table


def print_schedule(
    schedule: ComputedSchedule,
    template: TemplateDef,
    unit: str,
    current: tuple[int, int] | None = None,
    week: int | None = None,
) -> None:
    """
    Print the compiled schedule, one table per week.

    Args:
        schedule: Compiled schedule
        template: Its template (for the title)
        unit: Display unit label
        current: (week, session) of the program pointer to highlight
        week: Restrict output to a single week
    """
    for computed_week in schedule.weeks:
        if week is not None and computed_week.week_number != week:
            continue
        table = Table(title=f"{template.name}: week {computed_week.week_number}")
        table.add_column("Session", justify="right", style="cyan")
        table.add_column("%", justify="right")
        table.add_column("Sets x reps", justify="right")
        table.add_column("Lift")
        table.add_column(f"Weight ({unit})", justify="right", style="bold")
        table.add_column("Plates", style="dim")

        for computed in computed_week.sessions:
            marker = " >" if current == (computed_week.week_number, computed.session_number) else ""
            label = f"{computed.session_number}{marker}"
            if computed.session_type == "endurance":
                table.add_row(label, "-", "-", "[green]Endurance[/green]", computed.endurance_duration or "-", "")
                continue
            volume = f"{_fmt_sets(computed.sets_range)} x {_fmt_reps(computed.reps_per_set)}"
            for i, ex in enumerate(computed.exercises):
                weight = _fmt_weight(ex.target_weight) if ex.target_weight > 0 else "-"
                plates = ex.plate_breakdown
                if not ex.achievable and ex.nearest_achievable is not None:
                    plates = f"[yellow]{plates} (nearest {_fmt_weight(ex.nearest_achievable)})[/yellow]"
                table.add_row(
                    label if i == 0 else "",
                    f"{computed.percentage:g}" if i == 0 else "",
                    volume if i == 0 else "",
                    ex.lift_name,
                    weight,
                    plates,
                )

        console.print(table)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def format_session_log_table(logs: list[SessionLog]) -> Table:
    """
    Create a Rich table displaying session history.

    Args:
        logs: Session logs to display

    Returns:
        Rich Table object
    """
    table = Table(title="Training History")

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Date", style="cyan")
    table.add_column("Template", style="magenta")
    table.add_column("Wk/Sess", justify="right")
    table.add_column("Status")
    table.add_column("Lifts")
    table.add_column("Sets", justify="right")
    table.add_column("Time", justify="right")

    status_style = {"completed": "green", "partial": "yellow", "skipped": "red"}
    for i, log in enumerate(logs, 1):
        style = status_style.get(log.status, "white")
        table.add_row(
            str(i),
            log.date,
            log.template_id.value,
            f"{log.week}/{log.session_number}",
            f"[{style}]{log.status}[/{style}]",
            ", ".join(ex.lift_name for ex in log.exercises) or "-",
            str(sum(len(ex.sets) for ex in log.exercises)),
            _fmt_duration(log.duration_seconds),
        )

    return table


def print_history(logs: list[SessionLog]) -> None:
    if not logs:
        console.print("[yellow]No sessions recorded yet.[/yellow]")
        return
    console.print(format_session_log_table(logs))


# ---------------------------------------------------------------------------
# Live session
# ---------------------------------------------------------------------------


def _fmt_timer(view: TimerView | None) -> str:
    if view is None:
        return "idle"
    if view.phase == "rest" and view.remaining_seconds is not None:
        if view.overtime:
            over = int(view.elapsed_seconds - (view.rest_seconds or 0))
            return f"[red]rest over by {_fmt_duration(over)}[/red]"
        return f"rest {_fmt_duration(round(view.remaining_seconds))} left"
    return f"{view.phase} {_fmt_duration(int(view.elapsed_seconds))}"


def print_session_status(
    session: ActiveSessionState,
    plates: PlateResult | None,
    timer: TimerView | None,
    unit: str,
) -> None:
    """
    Print the active session: header, exercise table and current loadout.

    Args:
        session: Active session
        plates: Plate loadout for the current exercise (None when no exercise)
        timer: Resolved timer view
        unit: Display unit label
    """
    header = f"[bold cyan]{session.template_id.value}[/bold cyan] week {session.week} session {session.session}"
    if session.status == "paused":
        header += "  [yellow](paused)[/yellow]"
    console.print(header)

    if session.session_type == "endurance":
        console.print(f"Endurance: {session.endurance_duration or 'as prescribed'}")
        console.print("Run 'tb3 session end' when done.")
        return

    table = Table()
    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Lift", style="cyan")
    table.add_column(f"Weight ({unit})", justify="right", style="bold")
    table.add_column("Sets", justify="right")
    table.add_column("Reps", justify="right")

    for i, ex in enumerate(session.exercises):
        weight = session.display_weight(i)
        weight_text = _fmt_weight(weight) if weight > 0 else "-"
        if i in session.weight_overrides:
            weight_text += " *"
        done = session.completed_count(i)
        total = len(session.sets_for(i))
        marker = ">" if i == session.current_exercise_index else ""
        table.add_row(
            f"{marker}{i + 1}",
            ex.lift_name,
            weight_text,
            f"{done}/{total}",
            _fmt_reps(ex.reps_per_set),
        )

    console.print(table)
    if plates is not None:
        console.print(f"Plates: {format_plate_result(plates, unit)}")
    console.print(f"Timer: {_fmt_timer(timer)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning: {message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]{message}[/blue]")


def confirm_action(message: str) -> bool:
    """
    Prompt user for confirmation.

    Args:
        message: Confirmation message

    Returns:
        True if confirmed, False otherwise
    """
    response = console.input(f"{message} [y/N]: ")
    return response.lower() in ("y", "yes")
