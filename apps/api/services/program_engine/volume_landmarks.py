"""
Volume Landmarks

Individualized weekly set targets per muscle group:
- MEV (Minimum Effective Volume)
- MAV (Maximum Adaptive Volume)
- MRV (Maximum Recoverable Volume)

Base volumes describe a typical intermediate lifter. They are scaled by a
single multiplier built from training age, recovery capacity, life stress
and volume tolerance. Missing inputs fall back to neutral defaults, so a
complete table is always returned.

Usage:
    landmarks = calculate_volume_landmarks(profile)
    landmarks["chest"].mav  # -> 18
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .constants import (
    DEFAULT_RECOVERY_CAPACITY,
    DEFAULT_STRESS_LEVEL,
    DEFAULT_VOLUME_TOLERANCE,
    MUSCLE_GROUP_BASE_VOLUMES,
    RECOVERY_MULTIPLIERS,
    STRESS_MULTIPLIERS,
    TRAINING_AGE_CAP_MONTHS,
    TRAINING_AGE_MAX_BONUS,
)
from .profile import UserProfile


@dataclass(frozen=True)
class VolumeLandmarks:
    """Weekly set landmarks for one muscle group."""
    mev: int
    mav: int
    mrv: int

    def as_dict(self) -> Dict[str, int]:
        return {"mev": self.mev, "mav": self.mav, "mrv": self.mrv}


def training_age_multiplier(months: int) -> float:
    """1.0 with no experience, rising linearly to 1.8 at two years."""
    effective = min(max(months, 0), TRAINING_AGE_CAP_MONTHS)
    return 1.0 + (effective / TRAINING_AGE_CAP_MONTHS) * TRAINING_AGE_MAX_BONUS


def _banded(value: int, bands: List[Tuple[int, float]]) -> float:
    for upper, multiplier in bands:
        if value <= upper:
            return multiplier
    return bands[-1][1]


def recovery_multiplier(recovery_capacity: Optional[int]) -> float:
    return _banded(recovery_capacity or DEFAULT_RECOVERY_CAPACITY, RECOVERY_MULTIPLIERS)


def stress_multiplier(stress_level: Optional[int]) -> float:
    return _banded(stress_level or DEFAULT_STRESS_LEVEL, STRESS_MULTIPLIERS)


def volume_multiplier(profile: UserProfile) -> float:
    """Combined scaling factor applied to every base landmark."""
    tolerance = profile.volume_tolerance or DEFAULT_VOLUME_TOLERANCE
    return (
        training_age_multiplier(profile.experience_months())
        * recovery_multiplier(profile.recovery_capacity)
        * stress_multiplier(profile.stress_level)
        * tolerance
    )


def calculate_volume_landmarks(profile: UserProfile) -> Dict[str, VolumeLandmarks]:
    """
    Calculate landmarks for every tracked muscle group.

    Always returns an entry for each group in MUSCLE_GROUP_BASE_VOLUMES.
    Ordering MEV <= MAV <= MRV is preserved because one multiplier is
    applied to an ordered base.
    """
    multiplier = volume_multiplier(profile)
    landmarks: Dict[str, VolumeLandmarks] = {}
    for group, base in MUSCLE_GROUP_BASE_VOLUMES.items():
        landmarks[group] = VolumeLandmarks(
            mev=round(base["mev"] * multiplier),
            mav=round(base["mav"] * multiplier),
            mrv=round(base["mrv"] * multiplier),
        )
    return landmarks
