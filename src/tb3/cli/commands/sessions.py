"""Live session commands registered on the 'session' sub-app."""

import time
from typing import Annotated, Optional

import typer

from ...core.errors import StaleScheduleError
from ...core.session import WorkoutRuntime
from .. import views
from ..app import DataDirOption, open_live_runtime, open_runtime, report_due, session_app

# Yes option shared by the destructive session commands
YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")]


def _show(runtime: WorkoutRuntime) -> None:
    session = runtime.session
    if session is None:
        views.print_info("No active session. Run 'tb3 session start'.")
        return
    views.print_session_status(session, runtime.plates_for(), runtime.timer_view(), runtime.state.profile.unit)


@session_app.command()
def start(data_dir: DataDirOption = None) -> None:
    """
    Start the program's next session.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.session is not None:
            views.print_warning("A session is already in progress.")
            _show(runtime)
            return
        try:
            runtime.start_session()
        except StaleScheduleError as e:
            views.print_error(str(e))
            views.print_info("Run 'tb3 schedule' to recompile it.")
            raise typer.Exit(1)
        _show(runtime)


@session_app.command()
def status(data_dir: DataDirOption = None) -> None:
    """
    Show the active session.
    """
    with open_runtime(data_dir) as runtime:
        session = runtime.session
        if session is not None and runtime.is_stale():
            views.print_warning("This session has been paused for too long. Resume or discard it.")
        _show(runtime)


@session_app.command("complete-set")
def complete_set(data_dir: DataDirOption = None) -> None:
    """
    Complete the next set of the current exercise.
    """
    with open_runtime(data_dir) as runtime:
        done = runtime.complete_set()
        if done is None:
            views.print_warning("No sets left on this exercise.")
            return

        session = runtime.session
        ex = session.exercises[done.exercise_index]
        views.print_success(f"{ex.lift_name}: set {done.set_number} done ({done.actual_reps} reps)")
        if session.scheduled is not None:
            if session.scheduled.kind == "complete":
                views.print_info("All sets done. The session is logged with your next command.")
            else:
                views.print_info("Exercise done. Moving on to the next exercise shortly.")
        view = runtime.timer_view()
        if view is not None and view.rest_seconds:
            views.print_info(f"Rest {view.rest_seconds} s. Undo within {runtime.config.undo_window_seconds:g} s.")


@session_app.command("begin-set")
def begin_set(data_dir: DataDirOption = None) -> None:
    """
    End the rest period and start the next set.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.begin_set():
            views.print_success("Set started.")
        else:
            views.print_warning("No rest period running.")


@session_app.command()
def undo(data_dir: DataDirOption = None) -> None:
    """
    Undo the last completed set (only shortly after completing it).
    """
    with open_runtime(data_dir) as runtime:
        reverted = runtime.undo()
        if reverted is None:
            views.print_warning("Nothing to undo.")
        else:
            views.print_success(f"Set {reverted.set_number} reverted.")


@session_app.command()
def goto(
    exercise: Annotated[int, typer.Argument(help="Exercise number (1-based)")],
    data_dir: DataDirOption = None,
) -> None:
    """
    Jump to another exercise.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.goto(exercise - 1):
            _show(runtime)
        else:
            views.print_warning(f"No exercise {exercise} in this session.")


@session_app.command("finish-exercise")
def finish_exercise(data_dir: DataDirOption = None) -> None:
    """
    Finish the current exercise early once its minimum sets are done.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.finish_exercise():
            views.print_success("Exercise finished.")
            _show(runtime)
        else:
            views.print_warning("Complete the minimum number of sets first.")


@session_app.command("skip-rest")
def skip_rest(data_dir: DataDirOption = None) -> None:
    """
    Stop the rest timer.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.skip_rest():
            views.print_success("Rest skipped.")
        else:
            views.print_warning("No rest period running.")


@session_app.command("add-rest")
def add_rest(
    seconds: Annotated[
        Optional[int],
        typer.Option("--seconds", "-s", help="Seconds to add (default 30)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """
    Extend the current rest period.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.add_rest(seconds):
            view = runtime.timer_view()
            views.print_success(f"Rest extended: {round(view.remaining_seconds)} s left.")
        else:
            views.print_warning("No rest period running.")


@session_app.command("override-weight")
def override_weight(
    weight: Annotated[float, typer.Argument(help="Weight to use for the current exercise")],
    data_dir: DataDirOption = None,
) -> None:
    """
    Use a different weight for the current exercise.
    """
    with open_runtime(data_dir) as runtime:
        result = runtime.override_weight(weight)
        if result is None:
            views.print_warning("No exercise to change.")
            return
        views.print_success(f"Weight set to {weight:g}.")
        views.console.print(views.format_plate_result(result, runtime.state.profile.unit))


@session_app.command()
def end(
    yes: YesOption = False,
    data_dir: DataDirOption = None,
) -> None:
    """
    End the workout now and log it.  The program moves to the next session.
    """
    with open_runtime(data_dir) as runtime:
        session = runtime.session
        if session is None:
            views.print_info("No active session.")
            return
        remaining = sum(1 for s in session.sets if not s.completed)
        if remaining and not yes:
            if not views.confirm_action(f"{remaining} sets not done. End the workout anyway?"):
                return
        log = runtime.end_session()
        views.print_success(f"Session logged as {log.status}.")


@session_app.command()
def pause(data_dir: DataDirOption = None) -> None:
    """
    Pause the active session.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.pause():
            views.print_success("Session paused.")
        else:
            views.print_warning("No running session to pause.")


@session_app.command()
def resume(data_dir: DataDirOption = None) -> None:
    """
    Resume a paused session.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.resume():
            views.print_success("Session resumed.")
            _show(runtime)
        else:
            views.print_warning("No paused session.")


@session_app.command()
def discard(
    yes: YesOption = False,
    data_dir: DataDirOption = None,
) -> None:
    """
    Abandon the session without advancing the program.
    """
    with open_runtime(data_dir) as runtime:
        if runtime.session is None:
            views.print_info("No active session.")
            return
        if not yes and not views.confirm_action("Discard the current session?"):
            return
        log = runtime.discard()
        views.print_success(f"Session discarded (logged as {log.status}).")


@session_app.command()
def timer(data_dir: DataDirOption = None) -> None:
    """
    Follow the rest timer, printing countdown cues until rest is over.

    Scheduled transitions fire while watching and the companion snapshot is
    kept current.  Press Ctrl+C to stop watching.
    """
    with open_live_runtime(data_dir) as (runtime, notifier):
        view = runtime.timer_view()
        if view is None or view.phase != "rest" or not view.rest_seconds:
            views.print_info("No rest period running.")
            return

        views.print_info(f"Resting: {round(view.remaining_seconds)} s left.")
        try:
            while True:
                report_due(runtime.run_due())
                events = runtime.tick()
                notifier.poll()
                for event in events:
                    if event.kind == "overtime":
                        views.print_success(event.label)
                        return
                    views.console.print(f"[cyan]{event.label}[/cyan]")
                session = runtime.session
                if session is None or session.timer is None or session.timer.phase != "rest":
                    return
                time.sleep(runtime.config.tick_interval_seconds)
        except KeyboardInterrupt:
            views.print_info("Stopped watching the timer.")
