"""
Lift deriver and max-test entry.

Reduces the MaxTest history to at most one DerivedLift per canonical lift:
the test with the latest date wins, and among tests sharing that date the
one recorded first is kept.  Lifts with no tests have no entry.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable

from .config import (
    BODYWEIGHT_LIFT,
    LIFT_NAMES,
    MAX_TEST_REPS,
    MAX_TEST_WEIGHT,
    MIN_TEST_REPS,
    MIN_TEST_WEIGHT,
)
from .errors import DomainValidationError
from .loads import one_rep_max, training_max
from .models import DerivedLift, MaxTest, MaxType, utc_now, validate_date


def derive_lifts(max_tests: Iterable[MaxTest], max_type: MaxType) -> list[DerivedLift]:
    """
    Current value of each lift, in canonical lift order.

    Args:
        max_tests: Test history in insertion order
        max_type: Profile setting used to recompute each working max

    Returns:
        One DerivedLift per lift that has at least one test
    """
    latest: dict[str, MaxTest] = {}
    for test in max_tests:
        current = latest.get(test.lift_name)
        if current is None or test.date > current.date:
            latest[test.lift_name] = test

    derived: list[DerivedLift] = []
    for name in LIFT_NAMES:
        test = latest.get(name)
        if test is None:
            continue
        estimated = one_rep_max(test.weight, test.reps)
        derived.append(
            DerivedLift(
                name=name,
                weight=test.weight,
                reps=test.reps,
                one_rep_max=estimated,
                working_max=training_max(estimated, max_type),
                is_bodyweight=name == BODYWEIGHT_LIFT,
                test_date=test.date,
            )
        )
    return derived


def lift_map(lifts: Iterable[DerivedLift]) -> dict[str, DerivedLift]:
    return {lift.name: lift for lift in lifts}


def validate_max_entry(lift_name: str, weight: float, reps: int) -> None:
    """
    Reject out-of-range user input before it reaches the calculators.

    Raises:
        DomainValidationError: Unknown lift, weight outside 1-1500 or reps outside 1-15
    """
    if lift_name not in LIFT_NAMES:
        raise DomainValidationError(
            f"Unknown lift '{lift_name}'. Valid lifts: {', '.join(LIFT_NAMES)}"
        )
    if not MIN_TEST_WEIGHT <= weight <= MAX_TEST_WEIGHT:
        raise DomainValidationError(
            f"Weight must be between {MIN_TEST_WEIGHT:g} and {MAX_TEST_WEIGHT:g}, got {weight:g}"
        )
    if not MIN_TEST_REPS <= reps <= MAX_TEST_REPS:
        raise DomainValidationError(
            f"Reps must be between {MIN_TEST_REPS} and {MAX_TEST_REPS}, got {reps}"
        )


def create_max_test(
    lift_name: str,
    weight: float,
    reps: int,
    date: str,
    max_type: MaxType,
    now: datetime | None = None,
) -> MaxTest:
    """Validate user input and build a new MaxTest with a fresh id."""
    validate_max_entry(lift_name, weight, reps)
    try:
        validate_date(date)
    except ValueError as exc:
        raise DomainValidationError(str(exc)) from exc
    estimated = one_rep_max(weight, reps)
    return MaxTest(
        id=str(uuid.uuid4()),
        date=date,
        lift_name=lift_name,
        weight=float(weight),
        reps=int(reps),
        max_type=max_type,
        calculated_max=estimated,
        working_max=training_max(estimated, max_type),
        last_modified=now or utc_now(),
    )
