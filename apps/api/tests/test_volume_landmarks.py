"""
Tests for individualized volume landmarks (MEV / MAV / MRV).
"""

import pytest

from services.program_engine.constants import MUSCLE_GROUP_BASE_VOLUMES
from services.program_engine.profile import UserProfile
from services.program_engine.volume_landmarks import (
    calculate_volume_landmarks,
    recovery_multiplier,
    stress_multiplier,
    training_age_multiplier,
    volume_multiplier,
)


class TestMultipliers:

    def test_training_age_is_linear_and_capped(self):
        assert training_age_multiplier(0) == 1.0
        assert training_age_multiplier(12) == pytest.approx(1.4)
        assert training_age_multiplier(24) == pytest.approx(1.8)
        assert training_age_multiplier(120) == pytest.approx(1.8)

    def test_negative_training_age_treated_as_zero(self):
        assert training_age_multiplier(-5) == 1.0

    def test_recovery_bands(self):
        assert recovery_multiplier(2) == 0.7
        assert recovery_multiplier(5) == 1.0
        assert recovery_multiplier(9) == 1.3

    def test_stress_bands(self):
        assert stress_multiplier(1) == 1.1
        assert stress_multiplier(4) == 1.0
        assert stress_multiplier(6) == 0.9
        assert stress_multiplier(8) == 0.7
        assert stress_multiplier(10) == 0.6

    def test_missing_inputs_use_neutral_defaults(self):
        profile = UserProfile(training_months=0)
        assert volume_multiplier(profile) == pytest.approx(1.0)


class TestCalculateVolumeLandmarks:

    def test_every_muscle_group_present(self, intermediate_profile):
        landmarks = calculate_volume_landmarks(intermediate_profile)
        assert set(landmarks) == set(MUSCLE_GROUP_BASE_VOLUMES)

    def test_two_years_of_training_scales_by_1_8(self, intermediate_profile):
        chest = calculate_volume_landmarks(intermediate_profile)["chest"]
        assert (chest.mev, chest.mav, chest.mrv) == (14, 32, 47)

    def test_beginner_gets_small_bonus(self, beginner_profile):
        chest = calculate_volume_landmarks(beginner_profile)["chest"]
        assert (chest.mev, chest.mav, chest.mrv) == (9, 20, 29)

    def test_poor_recovery_and_high_stress_lower_volume(self):
        profile = UserProfile(training_months=0, recovery_capacity=2, stress_level=9)
        chest = calculate_volume_landmarks(profile)["chest"]
        assert (chest.mev, chest.mav, chest.mrv) == (3, 8, 11)

    @pytest.mark.parametrize("months,recovery,stress,tolerance", [
        (0, 1, 10, 0.5),
        (3, 5, 4, 1.0),
        (24, 10, 1, 2.0),
        (60, 3, 7, 1.2),
    ])
    def test_ordering_holds_for_every_group(self, months, recovery, stress, tolerance):
        profile = UserProfile(
            training_months=months,
            recovery_capacity=recovery,
            stress_level=stress,
            volume_tolerance=tolerance,
        )
        for group, lm in calculate_volume_landmarks(profile).items():
            assert 0 <= lm.mev <= lm.mav <= lm.mrv, group

    def test_empty_profile_still_returns_full_table(self):
        landmarks = calculate_volume_landmarks(UserProfile())
        assert len(landmarks) == len(MUSCLE_GROUP_BASE_VOLUMES)
        assert landmarks["abs"].mev == 0
