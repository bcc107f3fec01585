"""
Load calculations: one-rep-max estimation, working max and percentage weights.

Epley estimate
--------------
  1RM = w × (1 + reps / 30)      (reps = 1 returns w unchanged)

Working max
-----------
  "true"     : working max = estimated 1RM
  "training" : working max = 0.90 × estimated 1RM

Percentage weight
-----------------
  target = round_to_increment(working_max × pct / 100)

Rounding is to the nearest multiple of the increment with ties rounding up,
so 211.25 with a 2.5 increment becomes 212.5.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .config import EPLEY_DIVISOR, PERCENTAGE_LADDER, TRAINING_MAX_FACTOR
from .models import MaxType


@dataclass(frozen=True)
class PercentageRow:
    percentage: int
    weight: float


def one_rep_max(weight: float, reps: int) -> float:
    """
    Estimate a one-rep max from a weight lifted for reps (Epley).

    Raises:
        ValueError: If weight <= 0 or reps < 1
    """
    if weight <= 0:
        raise ValueError("weight must be positive")
    if reps < 1:
        raise ValueError("reps must be at least 1")
    if reps == 1:
        return float(weight)
    return weight * (1 + reps / EPLEY_DIVISOR)


def training_max(estimated_max: float, max_type: MaxType = "training") -> float:
    """Apply the training-max factor; identity when max_type is "true"."""
    if max_type == "true":
        return estimated_max
    return estimated_max * TRAINING_MAX_FACTOR


def working_max(weight: float, reps: int, max_type: MaxType) -> float:
    return training_max(one_rep_max(weight, reps), max_type)


def round_to_increment(weight: float, increment: float) -> float:
    """Round to the nearest multiple of increment, ties up."""
    # Collapse float noise such as 41.99999999 before the half-up step
    units = round(weight / increment, 6)
    return math.floor(units + 0.5) * increment


def percentage_weight(
    working_max_value: float | None,
    percentage: float,
    rounding_increment: float,
) -> float:
    """
    Target weight for a percentage of the working max.

    Returns 0 when the working max is unset; never negative.
    """
    if not working_max_value or working_max_value <= 0 or percentage <= 0:
        return 0.0
    return max(0.0, round_to_increment(working_max_value * percentage / 100, rounding_increment))


def percentage_table(working_max_value: float | None, rounding_increment: float) -> list[PercentageRow]:
    """Descending percentage ladder (100..65) with rounded weights."""
    return [
        PercentageRow(pct, percentage_weight(working_max_value, pct, rounding_increment))
        for pct in PERCENTAGE_LADDER
    ]
