"""
YAML → TemplateDef loader.

Loads template definitions from individual YAML files in the bundled
``src/tb3/templates/`` directory.  Each file (e.g. operator.yaml) contains
one template matching the TemplateDef schema.

User overrides: place matching files in ``$TB3_HOME/templates/`` (default
``~/.tb3/templates/``).  A user file is deep-merged over the bundled
definition, so only changed keys need to be listed; lists (weeks, sessions,
lift_slots) are replaced wholesale.  Template identity is closed: a user
file with no bundled counterpart is skipped with a warning.

Usage (internal, called by registry.py):
    from .loader import load_templates_from_yaml
    templates = load_templates_from_yaml()
"""

from __future__ import annotations

import warnings
from pathlib import Path

from ..config import LIFT_NAMES
from ..config_loader import deep_merge, get_data_dir, load_yaml_file
from .base import (
    LiftSlotDef,
    RepsPerSet,
    SessionDef,
    TemplateDef,
    TemplateId,
    VolumeOverride,
    WeekDef,
)

_REQUIRED_TEMPLATE_FIELDS: frozenset[str] = frozenset(
    {
        "template_id",
        "name",
        "description",
        "duration_weeks",
        "sessions_per_week",
        "weeks",
        "sessions",
    }
)


def _reps_from_raw(raw) -> RepsPerSet:
    if isinstance(raw, (list, tuple)):
        reps = tuple(int(r) for r in raw)
        if not reps:
            raise ValueError("reps sequence must not be empty")
    else:
        reps = int(raw)
        if reps < 1:
            raise ValueError("reps must be >= 1")
        return reps
    if any(r < 1 for r in reps):
        raise ValueError("reps must be >= 1")
    return reps


def _week_from_dict(d: dict) -> WeekDef:
    sets = d["sets"]
    lo, hi = int(sets[0]), int(sets[1])
    if not 1 <= lo <= hi:
        raise ValueError(f"Invalid sets range {sets} in week {d.get('week')}")
    return WeekDef(
        week_number=int(d["week"]),
        percentage=float(d["percentage"]),
        sets_range=(lo, hi),
        reps_per_set=_reps_from_raw(d["reps"]),
    )


def _session_from_dict(d: dict) -> SessionDef:
    session_type = str(d.get("type", "strength"))
    if session_type not in ("strength", "endurance"):
        raise ValueError(f"Invalid session type: {session_type}")
    lifts = tuple(str(x) for x in d.get("lifts", ()))
    slot = d.get("slot")
    if session_type == "strength" and not lifts and slot is None:
        raise ValueError(f"Strength session {d.get('session')} names no lifts or slot")
    unknown = [x for x in lifts if x not in LIFT_NAMES]
    if unknown:
        raise ValueError(f"Unknown lifts {unknown} in session {d.get('session')}")
    return SessionDef(
        session_number=int(d["session"]),
        session_type=session_type,
        lifts=lifts,
        slot=str(slot) if slot is not None else None,
    )


def _slot_from_dict(d: dict) -> LiftSlotDef:
    slot = LiftSlotDef(
        name=str(d["name"]),
        label=str(d.get("label", d["name"])),
        min_lifts=int(d["min_lifts"]),
        max_lifts=int(d["max_lifts"]),
        defaults=tuple(str(x) for x in d["defaults"]),
    )
    if not 1 <= slot.min_lifts <= slot.max_lifts:
        raise ValueError(f"Invalid lift bounds for slot '{slot.name}'")
    if not slot.min_lifts <= len(slot.defaults) <= slot.max_lifts:
        raise ValueError(f"Defaults for slot '{slot.name}' violate its bounds")
    return slot


def template_from_dict(d: dict) -> TemplateDef:
    """Convert a raw dict (from YAML) to a TemplateDef.

    Raises ValueError if any required field is absent or inconsistent, and
    UnknownTemplateError if template_id is not a known TemplateId.
    """
    missing = _REQUIRED_TEMPLATE_FIELDS - set(d)
    if missing:
        raise ValueError(f"TemplateDef missing fields: {sorted(missing)}")

    template_id = TemplateId.parse(d["template_id"])
    weeks = tuple(_week_from_dict(w) for w in d["weeks"])
    sessions = tuple(_session_from_dict(s) for s in d["sessions"])
    slots = tuple(_slot_from_dict(s) for s in d.get("lift_slots", ()))

    duration = int(d["duration_weeks"])
    per_week = int(d["sessions_per_week"])
    if [w.week_number for w in weeks] != list(range(1, duration + 1)):
        raise ValueError(f"Weeks of '{template_id}' must be numbered 1..{duration}")
    if [s.session_number for s in sessions] != list(range(1, per_week + 1)):
        raise ValueError(f"Sessions of '{template_id}' must be numbered 1..{per_week}")
    slot_names = {s.name for s in slots}
    for s in sessions:
        if s.slot is not None and s.slot not in slot_names:
            raise ValueError(f"Session {s.session_number} references unknown slot '{s.slot}'")

    session_percentages = {
        int(week): {int(sess): float(pct) for sess, pct in by_session.items()}
        for week, by_session in (d.get("session_percentages") or {}).items()
    }
    session_overrides = {
        int(sess): {
            int(week): VolumeOverride(sets=int(v["sets"]), reps=_reps_from_raw(v["reps"]))
            for week, v in by_week.items()
        }
        for sess, by_week in (d.get("session_overrides") or {}).items()
    }
    endurance_durations = {
        int(week): {int(sess): str(label) for sess, label in by_session.items()}
        for week, by_session in (d.get("endurance_durations") or {}).items()
    }

    return TemplateDef(
        id=template_id,
        name=str(d["name"]),
        description=str(d["description"]),
        duration_weeks=duration,
        sessions_per_week=per_week,
        weeks=weeks,
        sessions=sessions,
        lift_slots=slots,
        requires_lift_selection=bool(d.get("requires_lift_selection", bool(slots))),
        has_endurance=bool(d.get("has_endurance", False)),
        has_set_range=bool(d.get("has_set_range", False)),
        hide_rest_timer=bool(d.get("hide_rest_timer", False)),
        recommended_days=tuple(int(x) for x in d.get("recommended_days", ())),
        session_percentages=session_percentages,
        session_overrides=session_overrides,
        endurance_durations=endurance_durations,
    )


def _get_bundled_templates_dir() -> Path | None:
    """Return path to the bundled templates/ data directory, or None if not found."""
    # loader.py lives at src/tb3/core/templates/loader.py
    # three levels up → src/tb3/
    candidate = Path(__file__).parent.parent.parent / "templates"
    return candidate if candidate.is_dir() else None


def _get_user_templates_dir() -> Path | None:
    """Return $TB3_HOME/templates/ if it exists, else None."""
    p = get_data_dir() / "templates"
    return p if p.is_dir() else None


def load_templates_from_yaml(
    bundled_dir: Path | None = None,
    user_dir: Path | None = None,
) -> dict[TemplateId, TemplateDef]:
    """Return {TemplateId: TemplateDef} loaded from per-template YAML files.

    Loads each ``<template_id>.yaml`` from the bundled templates/ directory.
    If a matching file exists in the user templates directory it is
    deep-merged over the bundled definition.  A merged file that fails
    validation falls back to the bundled definition with a warning.
    """
    bundled_dir = bundled_dir or _get_bundled_templates_dir()
    user_dir = user_dir or _get_user_templates_dir()
    if bundled_dir is None:
        return {}

    result: dict[TemplateId, TemplateDef] = {}
    bundled_stems = set()
    for path in sorted(bundled_dir.glob("*.yaml")):
        bundled_stems.add(path.stem)
        raw = load_yaml_file(path)
        if not raw:
            continue
        merged = raw
        if user_dir is not None:
            user_path = user_dir / f"{path.stem}.yaml"
            if user_path.exists():
                user_raw = load_yaml_file(user_path)
                if user_raw:
                    merged = deep_merge(raw, user_raw)
        tpl = _try_build(merged, path.stem)
        if tpl is None and merged is not raw:
            warnings.warn(f"tb3: ignoring user override for template '{path.stem}'", stacklevel=2)
            tpl = _try_build(raw, path.stem)
        if tpl is not None:
            result[tpl.id] = tpl

    if user_dir is not None:
        for path in sorted(user_dir.glob("*.yaml")):
            if path.stem not in bundled_stems:
                warnings.warn(
                    f"tb3: skipping user template '{path.stem}' (not a known template id)",
                    stacklevel=2,
                )

    return result


def _try_build(raw: dict, stem: str) -> TemplateDef | None:
    try:
        return template_from_dict(raw)
    except (ValueError, KeyError, TypeError, IndexError) as exc:
        warnings.warn(f"tb3: skipping template '{stem}' ({exc})", stacklevel=3)
        return None
