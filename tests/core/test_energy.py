"""Unit tests for energy source resolution."""

from datetime import datetime

import pytest

from fitledger.core.energy import (
    DEFAULT_RESTING_ENERGY,
    estimate_resting_energy,
    exercise_calories,
    resolve_energy,
)
from fitledger.core.models import EnergySource, Sex, UserProfile, WorkoutSample


class TestResolveEnergy:
    """Tests for resolve_energy."""

    def test_zero_measurements_use_estimate(self):
        """0/0 measured with 1800 estimated -> 1800 + 360, estimated."""
        energy = resolve_energy(0, 0, 1800)
        assert energy.resting == 1800
        assert energy.active == pytest.approx(360)
        assert energy.using_measured is False
        assert energy.resting_source == EnergySource.ESTIMATED
        assert energy.active_source == EnergySource.ESTIMATED

    def test_none_measurements_use_estimate(self):
        energy = resolve_energy(None, None, 1600)
        assert energy.total == pytest.approx(1920)
        assert energy.using_measured is False

    def test_both_measured(self):
        energy = resolve_energy(1700, 450, 1800)
        assert energy.resting == 1700
        assert energy.active == 450
        assert energy.using_measured is True
        assert energy.active_source == EnergySource.MEASURED

    def test_missing_active_falls_back_to_synthesized(self):
        """A missing component is never silently zero."""
        energy = resolve_energy(1700, None, 1800)
        assert energy.resting == 1700
        assert energy.active == pytest.approx(360)
        assert energy.using_measured is True
        assert energy.active_source == EnergySource.ESTIMATED

    def test_missing_resting_falls_back_to_estimate(self):
        energy = resolve_energy(0, 500, 1800)
        assert energy.resting == 1800
        assert energy.resting_source == EnergySource.ESTIMATED
        assert energy.active == 500
        assert energy.using_measured is True


class TestEstimateRestingEnergy:
    """Tests for estimate_resting_energy."""

    def test_uses_bmr(self):
        profile = UserProfile(weight_kg=70, height_cm=175, age=30, sex=Sex.MALE)
        assert estimate_resting_energy(profile) == 1648.75

    def test_incomplete_profile_uses_default(self):
        assert estimate_resting_energy(UserProfile(weight_kg=70)) == DEFAULT_RESTING_ENERGY

    def test_no_profile_uses_default(self):
        assert estimate_resting_energy(None) == 1800


class TestExerciseCalories:
    """Tests for exercise_calories."""

    def test_sums_energy_and_ignores_missing(self):
        start = datetime(2024, 3, 13, 7)
        workouts = [
            WorkoutSample(activity_type="run", start=start, end=start.replace(hour=8), energy_burned=420),
            WorkoutSample(activity_type="walk", start=start.replace(hour=18), end=start.replace(hour=19)),
            WorkoutSample(activity_type="yoga", start=start.replace(hour=20), end=start.replace(hour=21), energy_burned=80),
        ]
        assert exercise_calories(workouts) == 500

    def test_empty(self):
        assert exercise_calories([]) == 0
