"""
Configuration constants for the TB3 planner and workout runtime.

All adjustable parameters are centralized here for easy tuning.
Runtime timings can be overridden per user through config_loader.
"""

from typing import Final

# =============================================================================
# LIFTS
# =============================================================================

LIFT_NAMES: Final[tuple[str, ...]] = (
    "Squat",
    "Bench",
    "Deadlift",
    "Military Press",
    "Weighted Pull-up",
)

# The only lift loaded on a dip belt instead of a barbell
BODYWEIGHT_LIFT: Final[str] = "Weighted Pull-up"

# =============================================================================
# LOAD CALCULATION
# =============================================================================

TRAINING_MAX_FACTOR: Final[float] = 0.90  # Training max as fraction of 1RM
EPLEY_DIVISOR: Final[float] = 30.0  # 1RM = w * (1 + reps / 30)

ROUNDING_INCREMENTS: Final[tuple[float, ...]] = (2.5, 5.0)
DEFAULT_ROUNDING_INCREMENT: Final[float] = 2.5

# Percentage ladder shown next to a lift (descending)
PERCENTAGE_LADDER: Final[tuple[int, ...]] = (100, 95, 90, 85, 80, 75, 70, 65)

# =============================================================================
# INPUT VALIDATION
# =============================================================================

MIN_TEST_WEIGHT: Final[float] = 1.0
MAX_TEST_WEIGHT: Final[float] = 1500.0
MIN_TEST_REPS: Final[int] = 1
MAX_TEST_REPS: Final[int] = 15

# =============================================================================
# PLATES
# =============================================================================

PLATE_DENOMINATIONS: Final[tuple[float, ...]] = (45.0, 35.0, 25.0, 10.0, 5.0, 2.5, 1.25)
MIN_PLATE_COUNT: Final[int] = 0
MAX_PLATE_COUNT: Final[int] = 20

DEFAULT_BARBELL_WEIGHT: Final[float] = 45.0

DEFAULT_BARBELL_PLATES: Final[dict[float, int]] = {
    45.0: 4,
    35.0: 1,
    25.0: 1,
    10.0: 2,
    5.0: 1,
    2.5: 1,
    1.25: 1,
}

DEFAULT_BELT_PLATES: Final[dict[float, int]] = {
    45.0: 2,
    35.0: 1,
    25.0: 1,
    10.0: 2,
    5.0: 1,
    2.5: 1,
    1.25: 1,
}

# Nearest-achievable search: max steps of one rounding unit in each direction
NEAREST_SEARCH_STEPS: Final[int] = 40

# =============================================================================
# REST TIMER
# =============================================================================

DEFAULT_REST_SECONDS: Final[int] = 120  # Profile default (0 = derive from intensity)
REST_EXTENSION_SECONDS: Final[int] = 30

# Intensity fallback used when the profile default is 0
REST_HEAVY_PERCENTAGE: Final[float] = 90.0
REST_HEAVY_SECONDS: Final[int] = 180
REST_MEDIUM_PERCENTAGE: Final[float] = 70.0
REST_MEDIUM_SECONDS: Final[int] = 120
REST_LIGHT_SECONDS: Final[int] = 90

VOICE_MILESTONES: Final[dict[int, str]] = {
    60: "One minute",
    30: "Thirty seconds",
    15: "Fifteen seconds",
    5: "5",
    4: "4",
    3: "3",
    2: "2",
    1: "1",
}

# =============================================================================
# SESSION RUNTIME TIMINGS (seconds)
# =============================================================================

UNDO_WINDOW_SECONDS: Final[float] = 10.0
AUTO_ADVANCE_DELAY_SECONDS: Final[float] = 1.5
EARLY_FINISH_DELAY_SECONDS: Final[float] = 0.3
STALE_SESSION_HOURS: Final[float] = 24.0
TICK_INTERVAL_SECONDS: Final[float] = 0.25
COMPANION_DEBOUNCE_SECONDS: Final[float] = 0.3
