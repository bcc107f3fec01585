"""Shared Typer app objects, shared option types, and store/runtime utilities."""

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer

from ..core.config_loader import get_data_dir, load_runtime_config
from ..core.errors import TB3Error
from ..core.models import AppState
from ..core.session import WorkoutRuntime
from ..io.companion import CompanionNotifier, JsonFileSink
from ..io.data_store import DataStore
from ..io.serializers import ValidationError
from . import views

# Snapshot file a companion display can poll
COMPANION_FILE = "companion.json"

# Shared --data-dir option type used across all commands
DataDirOption = Annotated[
    Optional[Path],
    typer.Option("--data-dir", "-D", help="Data directory (default: $TB3_HOME or ~/.tb3)"),
]

app = typer.Typer(
    name="tb3",
    help="Periodized barbell training: template schedules, plate math and a live workout runner.",
    no_args_is_help=True,
)

session_app = typer.Typer(
    name="session",
    help="Run the current workout session.",
    no_args_is_help=True,
)
app.add_typer(session_app, name="session")


def get_store(data_dir: Path | None) -> DataStore:
    """Get data store from path or default location."""
    return DataStore(data_dir if data_dir is not None else get_data_dir())


@contextmanager
def handle_errors() -> Iterator[None]:
    """Report domain and data errors as a red message and exit with code 1."""
    try:
        yield
    except (TB3Error, ValidationError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)


def load_state(store: DataStore) -> AppState:
    """Load the full application state or exit with an error."""
    if not store.exists():
        views.print_error(f"No data found in {store.base_dir}")
        views.print_info("Run 'tb3 init' first to create a profile.")
        raise typer.Exit(1)

    try:
        return store.load_app_state()
    except (FileNotFoundError, ValidationError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)


def report_due(kinds: list[str]) -> None:
    """Tell the user about scheduled transitions that just fired."""
    for kind in kinds:
        if kind == "advance":
            views.print_info("Moved on to the next exercise.")
        else:
            views.print_success("Session complete and logged.")


@contextmanager
def open_live_runtime(data_dir: Path | None) -> Iterator[tuple[WorkoutRuntime, CompanionNotifier]]:
    """
    Load state into a WorkoutRuntime wired to the companion notifier.

    Due scheduled actions fire before the command runs.  On success the
    resulting state is saved and any pending companion snapshot is written.
    Long-running commands call ``notifier.poll()`` to push debounced updates
    while they run.
    """
    store = get_store(data_dir)
    state = load_state(store)
    config = load_runtime_config(store.base_dir / "config.yaml")
    runtime = WorkoutRuntime(state, config=config)
    notifier = CompanionNotifier(JsonFileSink(store.base_dir / COMPANION_FILE), config.companion_debounce_seconds)
    runtime.subscribe(notifier)

    with handle_errors():
        report_due(runtime.run_due())
        yield runtime, notifier

    store.save_app_state(runtime.state)
    notifier.flush()


@contextmanager
def open_runtime(data_dir: Path | None) -> Iterator[WorkoutRuntime]:
    """Load state into a WorkoutRuntime for one command (see open_live_runtime)."""
    with open_live_runtime(data_dir) as (runtime, _):
        yield runtime
