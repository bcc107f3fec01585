"""
Integration tests for the template registry, schedule compiler and program
operations.

Covers:
- every bundled template loads and carries its override tables
- user YAML overrides merge over bundled templates (and bad ones fall back)
- lift selection validation
- schedule compilation: weights, plates, endurance sessions, placeholders
- source hash stability and staleness
- program start/advance and schedule refresh on input changes
"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from tb3.core.errors import LiftSelectionError, SessionStateError, UnknownTemplateError
from tb3.core.lifts import create_max_test, derive_lifts
from tb3.core.models import ActiveProgram, AppState, PlateCount, UserProfile
from tb3.core.planner import (
    compute_source_hash,
    ensure_fresh_schedule,
    generate_schedule,
    is_schedule_stale,
    resolve_lift_selections,
)
from tb3.core.program import (
    advance_program,
    is_program_complete,
    record_max_test,
    start_program,
    update_profile,
)
from tb3.core.session import WorkoutRuntime
from tb3.core.templates import TemplateId, all_templates, get_template, templates_for_days
from tb3.core.templates.loader import load_templates_from_yaml

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _max_tests():
    """Squat TM 315, Bench TM 210, Deadlift TM 420, Pull-up TM 47.25."""
    return (
        create_max_test("Squat", 300, 5, "2026-01-05", "training", NOW),
        create_max_test("Bench", 200, 5, "2026-01-05", "training", NOW),
        create_max_test("Deadlift", 400, 5, "2026-01-05", "training", NOW),
        create_max_test("Weighted Pull-up", 45, 5, "2026-01-05", "training", NOW),
    )


def _make_state(**profile_changes) -> AppState:
    return AppState(profile=UserProfile(**profile_changes), max_tests=_max_tests())


def _program(template_id: str = "operator", **selections) -> ActiveProgram:
    template = get_template(template_id)
    return ActiveProgram(
        template_id=template.id,
        start_date="2026-03-02",
        lift_selections=resolve_lift_selections(template, selections or None),
    )


def _compile(template_id: str = "operator", profile: UserProfile | None = None, tests=None, **selections):
    profile = profile or UserProfile()
    lifts = derive_lifts(tests if tests is not None else _max_tests(), profile.max_type)
    return generate_schedule(_program(template_id, **selections), lifts, profile, NOW)


def _exercise(schedule, week: int, session: int, lift: str):
    for ex in schedule.session(week, session).exercises:
        if ex.lift_name == lift:
            return ex
    raise AssertionError(f"{lift} not in week {week} session {session}")


# ===========================================================================
# Template registry
# ===========================================================================


class TestTemplateRegistry:
    def test_all_seven_templates_registered(self):
        ids = {t.id for t in all_templates()}
        assert ids == set(TemplateId)
        assert len(ids) == 7

    def test_lookup_by_string(self):
        assert get_template("grey-man").duration_weeks == 12

    def test_unknown_template(self):
        with pytest.raises(UnknownTemplateError):
            get_template("bodybuilder")

    def test_unknown_template_is_value_error(self):
        with pytest.raises(ValueError):
            TemplateId.parse("nope")

    @pytest.mark.parametrize("template", all_templates(), ids=lambda t: t.id.value)
    def test_weeks_and_sessions_numbered(self, template):
        assert [w.week_number for w in template.weeks] == list(range(1, template.duration_weeks + 1))
        assert [s.session_number for s in template.sessions] == list(range(1, template.sessions_per_week + 1))

    def test_only_mass_protocol_hides_rest_timer(self):
        hidden = {t.id for t in all_templates() if t.hide_rest_timer}
        assert hidden == {TemplateId.MASS_PROTOCOL}

    def test_set_range_templates(self):
        ranged = {t.id for t in all_templates() if t.has_set_range}
        assert ranged == {TemplateId.OPERATOR, TemplateId.FIGHTER}

    def test_operator_endurance_sessions(self):
        operator = get_template("operator")
        assert operator.has_endurance
        kinds = [s.session_type for s in operator.sessions]
        assert kinds == ["strength", "endurance"] * 3


class TestTemplatesForDays:
    def test_two_days_is_fighter(self):
        assert [t.id for t in templates_for_days(2)] == [TemplateId.FIGHTER]

    def test_four_days_is_zulu(self):
        assert [t.id for t in templates_for_days(4)] == [TemplateId.ZULU]

    def test_three_days(self):
        ids = {t.id for t in templates_for_days(3)}
        assert ids == {TemplateId.OPERATOR, TemplateId.GLADIATOR, TemplateId.MASS_PROTOCOL, TemplateId.GREY_MAN}

    def test_mass_strength_has_no_day_recommendation(self):
        assert get_template(TemplateId.MASS_STRENGTH).recommended_days == ()

    def test_no_match_returns_everything(self):
        assert len(templates_for_days(6)) == 7


class TestTemplateOverrides:
    """User YAML in $TB3_HOME/templates merges over the bundled files."""

    def test_user_field_override(self, tmp_path):
        (tmp_path / "operator.yaml").write_text("name: My Operator\n")
        loaded = load_templates_from_yaml(user_dir=tmp_path)
        assert loaded[TemplateId.OPERATOR].name == "My Operator"
        assert loaded[TemplateId.OPERATOR].duration_weeks == 6
        assert loaded[TemplateId.ZULU].name == "Zulu"

    def test_invalid_override_falls_back(self, tmp_path):
        (tmp_path / "fighter.yaml").write_text("duration_weeks: 9\n")
        with pytest.warns(UserWarning):
            loaded = load_templates_from_yaml(user_dir=tmp_path)
        assert loaded[TemplateId.FIGHTER].duration_weeks == 6

    def test_unknown_user_template_skipped(self, tmp_path):
        (tmp_path / "custom.yaml").write_text("name: Custom\n")
        with pytest.warns(UserWarning, match="custom"):
            loaded = load_templates_from_yaml(user_dir=tmp_path)
        assert set(loaded) == set(TemplateId)


# ===========================================================================
# Lift selections
# ===========================================================================


class TestLiftSelections:
    def test_defaults_fill_missing_slots(self):
        resolved = resolve_lift_selections(get_template("zulu"))
        assert resolved == {
            "A": ("Military Press", "Squat", "Weighted Pull-up"),
            "B": ("Bench", "Deadlift"),
        }

    def test_fixed_template_has_no_slots(self):
        assert resolve_lift_selections(get_template("operator")) == {}

    def test_valid_choice(self):
        resolved = resolve_lift_selections(get_template("fighter"), {"cluster": ["Squat", "Deadlift", "Bench"]})
        assert resolved["cluster"] == ("Squat", "Deadlift", "Bench")

    def test_too_many_lifts(self):
        with pytest.raises(LiftSelectionError):
            resolve_lift_selections(
                get_template("fighter"),
                {"cluster": ["Squat", "Bench", "Deadlift", "Military Press"]},
            )

    def test_too_few_lifts(self):
        with pytest.raises(LiftSelectionError):
            resolve_lift_selections(get_template("fighter"), {"cluster": ["Squat"]})

    def test_unknown_lift(self):
        with pytest.raises(LiftSelectionError):
            resolve_lift_selections(get_template("fighter"), {"cluster": ["Squat", "Curl"]})

    def test_duplicate_lift(self):
        with pytest.raises(LiftSelectionError):
            resolve_lift_selections(get_template("fighter"), {"cluster": ["Squat", "Squat"]})

    def test_unknown_slot(self):
        with pytest.raises(LiftSelectionError):
            resolve_lift_selections(get_template("fighter"), {"C": ["Squat", "Bench"]})


# ===========================================================================
# Schedule compilation
# ===========================================================================


class TestOperatorSchedule:
    def test_shape(self):
        schedule = _compile("operator")
        assert schedule.template_id == TemplateId.OPERATOR
        assert len(schedule.weeks) == 6
        assert all(len(w.sessions) == 6 for w in schedule.weeks)
        assert schedule.computed_at == NOW

    def test_week_one_weights(self):
        # Squat TM 315 × 70% = 220.5 → 220; Bench 210 × 70% = 147 → 147.5
        schedule = _compile("operator")
        session = schedule.session(1, 1)
        assert session.percentage == 70
        assert session.sets_range == (3, 5)
        assert session.reps_per_set == 5
        assert _exercise(schedule, 1, 1, "Squat").target_weight == 220.0
        assert _exercise(schedule, 1, 1, "Bench").target_weight == 147.5

    def test_barbell_breakdown(self):
        # (220 − 45) / 2 = 87.5 = 45 + 35 + 5 + 2.5
        squat = _exercise(_compile("operator"), 1, 1, "Squat")
        assert squat.achievable
        assert squat.plates == (
            PlateCount(45.0, 1),
            PlateCount(35.0, 1),
            PlateCount(5.0, 1),
            PlateCount(2.5, 1),
        )
        assert squat.plate_breakdown == "45  35  5  2.5  per side"

    def test_pull_up_uses_belt(self):
        # 47.25 × 70% = 33.075 → 32.5 = 25 + 5 + 2.5 on the belt
        pull_up = _exercise(_compile("operator"), 1, 1, "Weighted Pull-up")
        assert pull_up.is_bodyweight
        assert pull_up.target_weight == 32.5
        assert pull_up.plate_breakdown == "25  5  2.5  on belt"

    def test_endurance_session(self):
        session = _compile("operator").session(1, 2)
        assert session.session_type == "endurance"
        assert session.exercises == ()
        assert session.endurance_duration == "30-60"
        assert session.sets_range == (0, 0)

    def test_session_five_swaps_in_deadlift(self):
        names = [ex.lift_name for ex in _compile("operator").session(1, 5).exercises]
        assert names == ["Squat", "Bench", "Deadlift"]

    def test_week_six_per_set_reps(self):
        session = _compile("operator").session(6, 1)
        assert session.percentage == 95
        assert session.sets_range == (3, 4)
        assert session.reps_per_set == (1, 2)

    def test_missing_max_placeholder(self):
        tests = [t for t in _max_tests() if t.lift_name != "Bench"]
        bench = _exercise(_compile("operator", tests=tests), 1, 1, "Bench")
        assert bench.target_weight == 0
        assert not bench.achievable
        assert bench.plate_breakdown == "Set 1RM for Bench"

    def test_unachievable_weight_reports_nearest(self):
        empty_ish = UserProfile().plate_inventory_barbell.with_count(45, 0).with_count(35, 0)
        profile = UserProfile(plate_inventory_barbell=empty_ish)
        deadlift = _exercise(_compile("operator", profile=profile), 1, 5, "Deadlift")
        # 420 × 70% = 294 → 295: far beyond what the remaining plates hold
        assert deadlift.target_weight == 295.0
        assert not deadlift.achievable
        assert deadlift.nearest_achievable is None or deadlift.nearest_achievable < 295.0


class TestTemplateTables:
    def test_zulu_cluster_percentages(self):
        schedule = _compile("zulu")
        assert [s.percentage for s in schedule.week(1).sessions] == [70, 70, 75, 75]
        assert [s.percentage for s in schedule.week(3).sessions] == [90, 90, 90, 90]

    def test_zulu_a_b_days(self):
        schedule = _compile("zulu")
        a_day = [ex.lift_name for ex in schedule.session(1, 1).exercises]
        b_day = [ex.lift_name for ex in schedule.session(1, 2).exercises]
        assert a_day == ["Military Press", "Squat", "Weighted Pull-up"]
        assert b_day == ["Bench", "Deadlift"]

    def test_zulu_missing_military_press(self):
        press = _exercise(_compile("zulu"), 1, 1, "Military Press")
        assert press.plate_breakdown == "Set 1RM for Military Press"

    def test_mass_strength_deadlift_day(self):
        schedule = _compile("mass-strength")
        assert schedule.session(1, 1).sets_range == (4, 4)
        assert schedule.session(1, 1).reps_per_set == 8
        assert schedule.session(1, 4).sets_range == (4, 4)
        assert schedule.session(1, 4).reps_per_set == 5
        assert schedule.session(3, 4).sets_range == (1, 1)
        assert schedule.session(3, 4).reps_per_set == 3
        assert [ex.lift_name for ex in schedule.session(3, 4).exercises] == ["Deadlift"]

    def test_gladiator_week_six_sequence(self):
        session = _compile("gladiator").session(6, 1)
        assert session.sets_range == (5, 5)
        assert session.reps_per_set == (3, 2, 1, 3, 2)

    def test_slot_selection_used(self):
        schedule = _compile("fighter", cluster=["Deadlift", "Military Press"])
        assert [ex.lift_name for ex in schedule.session(2, 2).exercises] == ["Deadlift", "Military Press"]


# ===========================================================================
# Source hash
# ===========================================================================


class TestSourceHash:
    def test_stable_for_same_inputs(self):
        assert _compile("operator").source_hash == _compile("operator").source_hash

    def test_lift_order_irrelevant(self):
        lifts = derive_lifts(_max_tests(), "training")
        program = _program("operator")
        assert compute_source_hash(program, lifts, UserProfile()) == compute_source_hash(
            program, list(reversed(lifts)), UserProfile()
        )

    @pytest.mark.parametrize(
        "changes",
        [
            {"rounding_increment": 5.0},
            {"barbell_weight": 35.0},
            {"max_type": "true"},
        ],
    )
    def test_profile_inputs_change_hash(self, changes):
        base = _compile("operator")
        assert _compile("operator", profile=UserProfile(**changes)).source_hash != base.source_hash

    def test_inventory_changes_hash(self):
        inv = UserProfile().plate_inventory_belt.with_count(45, 0)
        base = _compile("operator")
        assert _compile("operator", profile=UserProfile(plate_inventory_belt=inv)).source_hash != base.source_hash

    def test_display_settings_do_not_change_hash(self):
        base = _compile("operator")
        other = _compile("operator", profile=UserProfile(unit="kg", rest_timer_default=90, sound_mode="off"))
        assert other.source_hash == base.source_hash

    def test_new_max_makes_schedule_stale(self):
        schedule = _compile("operator")
        tests = _max_tests() + (create_max_test("Squat", 320, 5, "2026-02-01", "training", NOW),)
        lifts = derive_lifts(tests, "training")
        assert is_schedule_stale(schedule, _program("operator"), lifts, UserProfile())

    def test_ensure_fresh_reuses_valid_schedule(self):
        schedule = _compile("operator")
        lifts = derive_lifts(_max_tests(), "training")
        assert ensure_fresh_schedule(schedule, _program("operator"), lifts, UserProfile()) is schedule

    def test_missing_schedule_is_stale(self):
        assert is_schedule_stale(None, _program("operator"), [], UserProfile())


# ===========================================================================
# Program operations
# ===========================================================================


class TestProgramOperations:
    def test_start_program_compiles_schedule(self):
        state = start_program(_make_state(), "operator", now=NOW)
        assert state.program.template_id == TemplateId.OPERATOR
        assert (state.program.current_week, state.program.current_session) == (1, 1)
        assert state.program.start_date == "2026-03-02"
        assert state.schedule is not None
        assert state.schedule.template_id == TemplateId.OPERATOR

    def test_start_program_with_selection(self):
        state = start_program(_make_state(), "fighter", {"cluster": ["Squat", "Deadlift"]}, now=NOW)
        assert state.program.lift_selections == {"cluster": ("Squat", "Deadlift")}

    def test_start_program_rejects_bad_selection(self):
        with pytest.raises(LiftSelectionError):
            start_program(_make_state(), "fighter", {"cluster": ["Squat"]}, now=NOW)

    def test_start_program_blocked_by_active_session(self):
        state = start_program(_make_state(), "operator", now=NOW)
        runtime = WorkoutRuntime(state, clock=lambda: NOW)
        runtime.start_session()
        with pytest.raises(SessionStateError):
            start_program(runtime.state, "zulu", now=NOW)

    def test_record_max_recompiles(self):
        state = start_program(_make_state(), "operator", now=NOW)
        old_hash = state.schedule.source_hash
        state = record_max_test(state, "Squat", 330, 5, "2026-02-20", now=NOW)
        assert state.schedule.source_hash != old_hash
        # 330 × 7/6 × 0.9 = 346.5; × 70% = 242.55 → 242.5
        assert _exercise(state.schedule, 1, 1, "Squat").target_weight == 242.5

    def test_update_profile_recompiles(self):
        state = start_program(_make_state(), "operator", now=NOW)
        state = update_profile(state, now=NOW, rounding_increment=5.0)
        assert state.profile.rounding_increment == 5.0
        assert state.profile.last_modified == NOW
        # 220.5 → 220 at 5 lb as well; 147 → 145
        assert _exercise(state.schedule, 1, 1, "Bench").target_weight == 145.0

    def test_update_profile_validates(self):
        with pytest.raises(ValueError):
            update_profile(_make_state(), now=NOW, rounding_increment=3.0)

    def test_advance_wraps_week(self):
        operator = get_template("operator")
        program = replace(_program("operator"), current_session=6)
        advanced = advance_program(program, operator, NOW)
        assert (advanced.current_week, advanced.current_session) == (2, 1)
        assert advanced.last_modified == NOW

    def test_program_complete_after_last_week(self):
        operator = get_template("operator")
        program = replace(_program("operator"), current_week=6, current_session=6)
        assert not is_program_complete(program, operator)
        assert is_program_complete(advance_program(program, operator, NOW), operator)
