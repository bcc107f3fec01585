"""Profile commands: init, add-max, lifts, maxes, percentages, plates, settings, inventory."""

import json
from typing import Annotated, Optional

import typer

from ...core.config import LIFT_NAMES
from ...core.lifts import lift_map
from ...core.loads import percentage_table
from ...core.models import PlateInventory, UserProfile
from ...core.plates import calculate_barbell_plates, calculate_belt_plates
from ...core.program import current_lifts, record_max_test, update_profile
from .. import views
from ..app import DataDirOption, app, get_store, handle_errors, load_state


def resolve_lift_name(name: str) -> str:
    """Match a lift name case-insensitively; unknown names pass through for validation."""
    for canonical in LIFT_NAMES:
        if canonical.lower() == name.strip().lower():
            return canonical
    return name


def _parse_plate_counts(values: list[str]) -> list[tuple[float, int]]:
    """Parse 'WEIGHT=COUNT' pairs, e.g. '45=4'."""
    parsed: list[tuple[float, int]] = []
    for value in values:
        weight, sep, count = value.partition("=")
        try:
            if not sep:
                raise ValueError
            parsed.append((float(weight), int(count)))
        except ValueError:
            raise ValueError(f"Expected WEIGHT=COUNT, got '{value}'")
    return parsed


@app.command()
def init(
    data_dir: DataDirOption = None,
    max_type: Annotated[
        str,
        typer.Option("--max-type", "-m", help="Working max basis: training (90%) or true"),
    ] = "training",
    rounding: Annotated[
        float,
        typer.Option("--rounding", "-r", help="Rounding increment: 2.5 or 5"),
    ] = 2.5,
    barbell_weight: Annotated[
        float,
        typer.Option("--barbell-weight", "-b", help="Bar weight"),
    ] = 45.0,
    unit: Annotated[
        str,
        typer.Option("--unit", "-u", help="Display unit label (lb or kg)"),
    ] = "lb",
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite settings without prompting"),
    ] = False,
) -> None:
    """
    Initialize the data directory and user profile.

    Max tests and session history are kept when re-initializing; only the
    profile settings are replaced.
    """
    store = get_store(data_dir)

    with handle_errors():
        profile = UserProfile(
            max_type=max_type,
            rounding_increment=rounding,
            barbell_weight=barbell_weight,
            unit=unit,
        )

    if store.exists() and not force:
        if not views.confirm_action(f"Profile already exists in {store.base_dir}. Overwrite settings?"):
            views.print_info("Kept existing profile.")
            return

    store.init(profile)
    store.save_profile(profile)
    views.print_success(f"Initialized tb3 data in {store.base_dir}")
    views.print_info("Next: record maxes with 'tb3 add-max', then 'tb3 start-program'.")


@app.command("add-max")
def add_max(
    lift: Annotated[str, typer.Argument(help=f"Lift name: {', '.join(LIFT_NAMES)}")],
    weight: Annotated[float, typer.Argument(help="Weight lifted (added weight for pull-ups)")],
    reps: Annotated[int, typer.Argument(help="Reps completed (1-15)")],
    date: Annotated[
        Optional[str],
        typer.Option("--date", help="Test date YYYY-MM-DD (default: today)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Record a max test.  The schedule is recompiled with the new working max.
    """
    store = get_store(data_dir)
    state = load_state(store)

    lift_name = resolve_lift_name(lift)
    with handle_errors():
        state = record_max_test(state, lift_name, weight, reps, date)

    store.save_app_state(state)
    derived = lift_map(current_lifts(state)).get(lift_name)
    views.print_success(f"Recorded {lift_name}: {weight:g} x {reps}")
    if derived is not None:
        views.print_info(f"1RM {derived.one_rep_max:.1f}, working max {derived.working_max:.1f}")


@app.command()
def lifts(
    data_dir: DataDirOption = None,
    json_out: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON for machine processing"),
    ] = False,
) -> None:
    """
    Show the current value of each lift (latest test wins).
    """
    state = load_state(get_store(data_dir))
    derived = current_lifts(state)

    if json_out:
        print(json.dumps([
            {
                "name": lift.name,
                "weight": lift.weight,
                "reps": lift.reps,
                "one_rep_max": lift.one_rep_max,
                "working_max": lift.working_max,
                "is_bodyweight": lift.is_bodyweight,
                "test_date": lift.test_date,
            }
            for lift in derived
        ], indent=2))
        return

    if not derived:
        views.print_warning("No max tests recorded yet. Use 'tb3 add-max'.")
        return
    views.console.print(views.format_lifts_table(derived, state.profile.unit))


@app.command()
def maxes(
    lift: Annotated[
        Optional[str],
        typer.Option("--lift", "-l", help="Only show tests for this lift"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Show max test history.
    """
    state = load_state(get_store(data_dir))
    tests = list(state.max_tests)
    if lift is not None:
        name = resolve_lift_name(lift)
        tests = [t for t in tests if t.lift_name == name]

    if not tests:
        views.console.print("[yellow]No max tests recorded yet.[/yellow]")
        return
    views.console.print(views.format_max_tests_table(tests))


@app.command()
def percentages(
    lift: Annotated[str, typer.Argument(help="Lift name")],
    data_dir: DataDirOption = None,
) -> None:
    """
    Show the 100%..65% weight ladder for a lift.
    """
    state = load_state(get_store(data_dir))
    lift_name = resolve_lift_name(lift)
    derived = lift_map(current_lifts(state)).get(lift_name)
    if derived is None:
        views.print_error(f"No max recorded for {lift_name}")
        raise typer.Exit(1)

    rows = percentage_table(derived.working_max, state.profile.rounding_increment)
    views.console.print(views.format_percentage_table(lift_name, rows, state.profile.unit))


@app.command()
def plates(
    weight: Annotated[float, typer.Argument(help="Total weight to load")],
    belt: Annotated[
        bool,
        typer.Option("--belt", help="Dip belt (added weight) instead of barbell"),
    ] = False,
    data_dir: DataDirOption = None,
) -> None:
    """
    Work out which plates to load for a weight.
    """
    profile = load_state(get_store(data_dir)).profile
    if belt:
        result = calculate_belt_plates(weight, profile.plate_inventory_belt, profile.rounding_increment)
    else:
        result = calculate_barbell_plates(
            weight, profile.barbell_weight, profile.plate_inventory_barbell, profile.rounding_increment
        )
    views.console.print(views.format_plate_result(result, profile.unit))


@app.command()
def settings(
    max_type: Annotated[
        Optional[str],
        typer.Option("--max-type", "-m", help="training or true"),
    ] = None,
    rounding: Annotated[
        Optional[float],
        typer.Option("--rounding", "-r", help="Rounding increment: 2.5 or 5"),
    ] = None,
    barbell_weight: Annotated[
        Optional[float],
        typer.Option("--barbell-weight", "-b", help="Bar weight"),
    ] = None,
    rest: Annotated[
        Optional[int],
        typer.Option("--rest", help="Rest timer in seconds (0 = by session intensity)"),
    ] = None,
    sound: Annotated[
        Optional[str],
        typer.Option("--sound", help="on, off or vibrate"),
    ] = None,
    voice: Annotated[
        Optional[bool],
        typer.Option("--voice/--no-voice", help="Spoken rest countdown"),
    ] = None,
    unit: Annotated[
        Optional[str],
        typer.Option("--unit", "-u", help="lb or kg"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Show or change profile settings.  Changes recompile the schedule.
    """
    store = get_store(data_dir)
    state = load_state(store)

    changes = {
        key: value
        for key, value in (
            ("max_type", max_type),
            ("rounding_increment", rounding),
            ("barbell_weight", barbell_weight),
            ("rest_timer_default", rest),
            ("sound_mode", sound),
            ("voice_announcements", voice),
            ("unit", unit),
        )
        if value is not None
    }
    if changes:
        with handle_errors():
            state = update_profile(state, **changes)
        store.save_app_state(state)
        views.print_success("Settings updated.")

    views.console.print(views.format_settings(state.profile))


@app.command()
def inventory(
    set_counts: Annotated[
        Optional[list[str]],
        typer.Option("--set", "-s", help="Plate count as WEIGHT=COUNT (repeatable)"),
    ] = None,
    belt: Annotated[
        bool,
        typer.Option("--belt", help="Edit the belt inventory instead of the barbell"),
    ] = False,
    reset: Annotated[
        bool,
        typer.Option("--reset", help="Restore the default inventory"),
    ] = False,
    data_dir: DataDirOption = None,
) -> None:
    """
    Show or edit plate inventories.

    Barbell counts are pairs (plates per side); belt counts are single plates.
    """
    store = get_store(data_dir)
    state = load_state(store)

    if set_counts or reset:
        field_name = "plate_inventory_belt" if belt else "plate_inventory_barbell"
        with handle_errors():
            if reset:
                inv = PlateInventory.default_belt() if belt else PlateInventory.default_barbell()
            else:
                inv = getattr(state.profile, field_name)
            for denomination, count in _parse_plate_counts(set_counts or []):
                inv = inv.with_count(denomination, count)
            state = update_profile(state, **{field_name: inv})
        store.save_app_state(state)
        views.print_success(f"{'Belt' if belt else 'Barbell'} inventory updated.")

    profile = state.profile
    views.console.print(views.format_inventory_table(profile.plate_inventory_barbell, profile.plate_inventory_belt))
