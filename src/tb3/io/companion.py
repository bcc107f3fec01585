"""
Companion display support.

build_snapshot() renders the active session as a plain JSON document that
a remote display can show without knowing tb3's internal types.  The keys
are camelCase to match the display receiver:

    {"exerciseName", "weight", "unit", "plates", "isBodyweight",
     "currentSetNumber", "totalSets", "completedSets", "targetReps",
     "restTimer": {"running", "restSeconds", "remainingSeconds", "overtime"},
     "exercises": [{"name", "completedSets", "totalSets"}],
     "currentExerciseIndex", "week", "session", "templateId", "startedAt"}

With no active session the snapshot is {"idle": true}.

CompanionNotifier subscribes to WorkoutRuntime changes and pushes
debounced snapshots to a sink.  Delivery is best effort: sink failures
are logged and never reach the runtime.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from ..core.models import AppState, utc_now
from ..core.plates import calculate_barbell_plates, calculate_belt_plates

logger = logging.getLogger(__name__)

Sink = Callable[[dict[str, Any]], None]

IDLE_SNAPSHOT: dict[str, Any] = {"idle": True}


def build_snapshot(state: AppState, now: datetime | None = None) -> dict[str, Any]:
    """Serialize the active session for a companion display."""
    session = state.active_session
    if session is None:
        return dict(IDLE_SNAPSHOT)
    now = now or utc_now()

    summary = [
        {
            "name": ex.lift_name,
            "completedSets": session.completed_count(i),
            "totalSets": len(session.sets_for(i)),
        }
        for i, ex in enumerate(session.exercises)
    ]

    timer = session.timer
    if timer is not None and timer.phase == "rest" and timer.rest_seconds:
        remaining = timer.rest_seconds - (now - timer.started_at).total_seconds()
        rest_timer = {
            "running": True,
            "restSeconds": timer.rest_seconds,
            "remainingSeconds": max(0, round(remaining)),
            "overtime": remaining <= 0,
        }
    else:
        rest_timer = {"running": False, "restSeconds": None, "remainingSeconds": None, "overtime": False}

    base = {
        "exercises": summary,
        "currentExerciseIndex": session.current_exercise_index,
        "week": session.week,
        "session": session.session,
        "templateId": session.template_id.value,
        "startedAt": session.started_at.isoformat(),
        "restTimer": rest_timer,
        "unit": state.profile.unit,
    }

    idx = session.current_exercise_index
    exercise = session.current_exercise
    if exercise is None:
        # Endurance sessions have no exercises to render
        return {**base, "exerciseName": None, "enduranceDuration": session.endurance_duration}

    weight = session.display_weight(idx)
    profile = state.profile
    if exercise.is_bodyweight:
        plates = calculate_belt_plates(weight, profile.plate_inventory_belt, profile.rounding_increment)
    else:
        plates = calculate_barbell_plates(
            weight, profile.barbell_weight, profile.plate_inventory_barbell, profile.rounding_increment
        )

    sets = session.sets_for(idx)
    completed = session.completed_count(idx)
    upcoming = session.next_incomplete(idx)
    target_reps = upcoming.target_reps if upcoming else (sets[-1].target_reps if sets else 0)

    return {
        **base,
        "exerciseName": exercise.lift_name,
        "weight": weight,
        "plates": [{"weight": p.weight, "count": p.count} for p in plates.plates],
        "plateText": plates.display_text,
        "isBodyweight": exercise.is_bodyweight,
        "currentSetNumber": completed + 1,
        "totalSets": len(sets),
        "completedSets": completed,
        "targetReps": target_reps,
    }


class JsonFileSink:
    """Writes each snapshot to a JSON file a display can poll."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __call__(self, snapshot: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)
        tmp.replace(self.path)


class CompanionNotifier:
    """
    Debounced, fire-and-forget snapshot publisher.

    Register with ``runtime.subscribe(notifier)``; call ``poll()`` from the
    tick loop and ``flush()`` before exiting.  Changes arriving within the
    debounce window are coalesced into a single update.
    """

    def __init__(
        self,
        sink: Sink,
        debounce_seconds: float,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sink = sink
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._pending: AppState | None = None
        self._changed_at: datetime | None = None
        self.sent = 0

    def __call__(self, state: AppState) -> None:
        self._pending = state
        self._changed_at = self._clock()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def poll(self) -> bool:
        """Send the pending snapshot once no change has arrived for the debounce window."""
        if self._pending is None or self._changed_at is None:
            return False
        if (self._clock() - self._changed_at).total_seconds() < self.debounce_seconds:
            return False
        return self.flush()

    def flush(self) -> bool:
        """Send any pending snapshot now.  Returns True if one was delivered."""
        state, self._pending, self._changed_at = self._pending, None, None
        if state is None:
            return False
        try:
            self.sink(build_snapshot(state, self._clock()))
        except Exception:
            logger.warning("Companion update failed", exc_info=True)
            return False
        self.sent += 1
        return True
