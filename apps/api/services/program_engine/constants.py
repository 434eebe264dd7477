"""
Constants for program generation.

These are DEFAULTS that can be overridden by config or database.
They exist here for type safety and documentation.
"""

from enum import Enum
from typing import Dict, List, Tuple


class ExperienceLevel(str, Enum):
    """Self-reported lifting experience."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Goal(str, Enum):
    """Primary training goal."""
    HYPERTROPHY = "hypertrophy"
    STRENGTH = "strength"
    GENERAL_FITNESS = "general_fitness"


class StrengthConfidence(str, Enum):
    """How trustworthy a strength estimate is."""
    ACTUAL_1RM = "actual_1rm"          # Tested max
    ESTIMATED_1RM = "estimated_1rm"    # Calculated from a rep max
    UNSURE = "unsure"                  # Guess


# Higher rank = more trustworthy
CONFIDENCE_RANK: Dict[StrengthConfidence, int] = {
    StrengthConfidence.UNSURE: 0,
    StrengthConfidence.ESTIMATED_1RM: 1,
    StrengthConfidence.ACTUAL_1RM: 2,
}


class Lift(str, Enum):
    """Major lifts used for ratio analysis."""
    SQUAT = "squat"
    BENCH = "bench"
    DEADLIFT = "deadlift"
    OVERHEAD_PRESS = "overhead_press"


class ExerciseTier(str, Enum):
    """Position of an exercise inside a workout."""
    WARMUP = "warmup"
    MAIN = "main"
    FINISHER = "finisher"


class JobStatus(str, Enum):
    """GenerationJob lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    GENERATION = "generation"
    PROGRESSION = "progression"


class PipelineStrategy(str, Enum):
    """How the model is asked for structure."""
    STRUCTURED = "structured"   # strict JSON-schema response format
    JSON_MODE = "json_mode"     # legacy: schema described in the prompt, JSON object mode


class ReadTarget(str, Enum):
    """Which store a read should go to."""
    PRIMARY = "primary"
    REPLICA = "replica"


class WeakPointSource(str, Enum):
    """Where a weak-point finding came from. Declaration order is output order."""
    INJURY = "injury"
    STRENGTH_RATIO = "strength_ratio"
    BALANCE = "balance"
    SPECIALIZATION = "specialization"


# ---------------------------------------------------------------------------
# Volume landmarks (weekly sets per muscle group, intermediate baseline)
# ---------------------------------------------------------------------------

MUSCLE_GROUP_BASE_VOLUMES: Dict[str, Dict[str, int]] = {
    "chest": {"mev": 8, "mav": 18, "mrv": 26},
    "back": {"mev": 10, "mav": 20, "mrv": 30},
    "shoulders": {"mev": 8, "mav": 16, "mrv": 24},
    "arms": {"mev": 6, "mav": 14, "mrv": 22},
    "quads": {"mev": 8, "mav": 16, "mrv": 24},
    "hamstrings": {"mev": 6, "mav": 12, "mrv": 18},
    "glutes": {"mev": 6, "mav": 12, "mrv": 18},
    "calves": {"mev": 8, "mav": 16, "mrv": 25},
    "abs": {"mev": 0, "mav": 16, "mrv": 25},
}

# Used when the profile does not carry a training age
DEFAULT_TRAINING_MONTHS: Dict[ExperienceLevel, int] = {
    ExperienceLevel.BEGINNER: 3,
    ExperienceLevel.INTERMEDIATE: 24,
    ExperienceLevel.ADVANCED: 60,
}

TRAINING_AGE_CAP_MONTHS = 24
TRAINING_AGE_MAX_BONUS = 0.8          # 1.0 -> 1.8 over the first two years
DEFAULT_RECOVERY_CAPACITY = 5         # 1-10
DEFAULT_STRESS_LEVEL = 4              # 1-10
DEFAULT_VOLUME_TOLERANCE = 1.0

# (upper bound inclusive, multiplier)
RECOVERY_MULTIPLIERS: List[Tuple[int, float]] = [(3, 0.7), (7, 1.0), (10, 1.3)]
STRESS_MULTIPLIERS: List[Tuple[int, float]] = [(2, 1.1), (4, 1.0), (6, 0.9), (8, 0.7), (10, 0.6)]


# ---------------------------------------------------------------------------
# Periodization
# ---------------------------------------------------------------------------

LINEAR_EXPERIENCE_THRESHOLD_MONTHS = 6
LINEAR_BLOCK_WEEKS = 4
UNDULATING_ACCUMULATION_WEEKS = 2
UNDULATING_INTENSIFICATION_WEEKS = 1
UNDULATING_DELOAD_WEEKS = 1


# ---------------------------------------------------------------------------
# Weak point analysis
# ---------------------------------------------------------------------------

# ratio name -> (numerator, denominator, minimum acceptable ratio, category)
STRENGTH_RATIO_STANDARDS: Dict[str, Tuple[Lift, Lift, float, str]] = {
    "deadlift_to_squat": (Lift.DEADLIFT, Lift.SQUAT, 1.1, "Posterior Chain Weakness"),
    "bench_to_squat": (Lift.BENCH, Lift.SQUAT, 0.65, "Horizontal Press Weakness"),
    "overhead_to_bench": (Lift.OVERHEAD_PRESS, Lift.BENCH, 0.6, "Vertical Press Weakness"),
}

# Below minimum * this factor the imbalance is treated as high severity
HIGH_SEVERITY_FACTOR = 0.9

RATIO_CORRECTIVE_EXERCISES: Dict[str, List[str]] = {
    "Posterior Chain Weakness": [
        "Romanian Deadlift",
        "Good Morning",
        "Glute-Ham Raise",
        "Hip Thrust",
    ],
    "Horizontal Press Weakness": [
        "Dumbbell Bench Press",
        "Incline Barbell Press",
        "Weighted Dip",
        "Push-up Variations",
    ],
    "Vertical Press Weakness": [
        "Seated Dumbbell Press",
        "Arnold Press",
        "Lateral Raise",
        "Close-Grip Bench Press",
    ],
}

# category -> (keywords, priority, name, stability exercises)
# Keywords match whole words; a trailing * matches any word starting with the stem.
INJURY_KEYWORD_CATEGORIES: Dict[str, Tuple[List[str], int, str, List[str]]] = {
    "spinal": (
        ["back", "spine", "spinal", "lumbar", "disc", "herniat*", "sciatica", "thoracic"],
        1,
        "Spinal Stability",
        ["Bird Dog", "Dead Bug", "McGill Curl-up", "Side Plank"],
    ),
    "knee": (
        ["knee", "acl", "mcl", "pcl", "menisc*", "patella", "patellar"],
        2,
        "Knee Stability",
        ["Terminal Knee Extension", "Spanish Squat", "Step-down", "Tibialis Raise"],
    ),
    "shoulder": (
        ["shoulder", "rotator", "labrum", "labral", "impingement", "ac joint"],
        2,
        "Shoulder Stability",
        ["Face Pull", "Band External Rotation", "Scapular Push-up", "Prone Y-T-W Raise"],
    ),
}

BALANCE_PRIORITY = 4
BALANCE_CATEGORY = "Push/Pull Balance"
BALANCE_EXERCISES = ["Chest-Supported Row", "Face Pull", "Band Pull-Apart", "Inverted Row"]

SPECIALIZATION_PRIORITY = 6
SPECIALIZATION_BY_GOAL: Dict[Goal, Tuple[str, str, List[str]]] = {
    Goal.HYPERTROPHY: (
        "Hypertrophy Specialization",
        "Extra isolation volume for lagging muscle groups supports the hypertrophy goal.",
        ["Cable Lateral Raise", "Incline Dumbbell Curl", "Leg Extension", "Cable Fly"],
    ),
    Goal.STRENGTH: (
        "Strength Specialization",
        "Competition-lift variations build skill and specific strength for the strength goal.",
        ["Paused Squat", "Spoto Press", "Deficit Deadlift", "Pin Press"],
    ),
}

REASSESSMENT_WEEKS = {"high": 8, "moderate": 12, "none": 16}


# ---------------------------------------------------------------------------
# Spec compilation
# ---------------------------------------------------------------------------

# Equipment preference per tier, most preferred first (stimulus-to-fatigue ranking)
TIER_EQUIPMENT_PRIORITY: Dict[str, List[str]] = {
    "primary": ["free weight", "machine"],
    "secondary": ["machine", "cable", "free weight"],
    "isolation": ["cable", "machine", "dumbbell"],
}

TIER_EQUIPMENT_RATIONALE: Dict[str, str] = {
    "primary": "Compound lifts: free weights first for loading potential and carryover; machines as substitutes.",
    "secondary": "Secondary movements: machines and cables first for stability and lower fatigue cost.",
    "isolation": "Isolation work: cables first for constant tension, then machines, then dumbbells.",
}

RPE_INTENSITY_MAP = """RPE SCALE AND INTENSITY MAPPING:
- RPE 6: ~60% 1RM, 4+ reps in reserve
- RPE 7: ~70% 1RM, 3-4 reps in reserve
- RPE 8: ~80% 1RM, 2-3 reps in reserve
- RPE 9: ~90% 1RM, 1-2 reps in reserve
- RPE 10: ~100% 1RM, no reps in reserve
Use RPE 7-8 for most working sets; reserve RPE 9-10 for top sets in intensification weeks."""


# ---------------------------------------------------------------------------
# Generation output
# ---------------------------------------------------------------------------

CANONICAL_WORKOUTS_FIELD = "workouts"

# Root-level names the model has been seen using for the workouts array
WORKOUTS_FIELD_ALIASES = (
    "weekly_workouts",
    "workout_days",
    "training_days",
    "days",
    "sessions",
    "weekly_schedule",
    "program_workouts",
)


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------

REP_INCREMENT = 1
LINEAR_SET_HEADROOM = 2
DELOAD_RPE_REDUCTION = 2.0
INTENSIFICATION_RPE_INCREASE = 1.0
MAX_RPE = 10.0
MIN_RPE = 5.0

LOW_COMPLETION_RATE = 0.7
HIGH_FATIGUE = 9

LOAD_INCREASE_FRACTION = 0.025
PERCENT_1RM_INCREASE_POINTS = 2.5
PLATE_INCREMENTS = {"kg": 2.5, "lb": 5.0}
