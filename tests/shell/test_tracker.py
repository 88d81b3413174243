"""Tests for the tracker service against in-memory fakes."""

from datetime import date, datetime, timedelta

import pytest

from fitledger.core.errors import (
    EntryNotFoundError,
    FoodEntryValidationError,
    InvalidTargetDateError,
    PersistenceError,
    ProfileValidationError,
    UnsafeRateError,
    ValidationError,
)
from fitledger.core.meals import MAX_SAVED_MEALS
from fitledger.core.models import (
    BaselineSource,
    EnergySample,
    EnergySource,
    Goal,
    GoalType,
    MealType,
    ProgressStatus,
    SavedMeal,
    WeightSample,
    WorkoutSample,
)
from fitledger.shell.events import BalanceUpdated
from tests.fakes import NOW, TODAY, days_ago, entry_at, make_profile


pytestmark = pytest.mark.anyio


class TestProfile:
    """Tests for profile setup."""

    async def test_save_and_get(self, tracker, store):
        await tracker.save_profile(make_profile())
        assert (await tracker.get_profile()).weight_kg == 80
        assert store.profile.updated_at == NOW

    async def test_invalid_profile_not_saved(self, tracker, store):
        with pytest.raises(ProfileValidationError):
            await tracker.save_profile(make_profile(age=200))
        assert store.profile is None

    async def test_profile_change_recomputes_goal(self, tracker):
        await tracker.save_profile(make_profile())
        before = await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)

        await tracker.save_profile(make_profile(weight_kg=90))
        after = await tracker.get_goal()

        assert after.computed_for_weight_kg == 90
        assert after.daily_calorie_target > before.daily_calorie_target


class TestGoals:
    """Tests for setting and updating goals."""

    async def test_requires_profile(self, tracker):
        with pytest.raises(ValidationError) as exc:
            await tracker.set_goal(GoalType.LOSE)
        assert exc.value.field == "profile"

    async def test_set_goal_computes_targets(self, tracker):
        await tracker.save_profile(make_profile())

        goal = await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)

        # (1780 * 1.55) - 550
        assert goal.daily_calorie_target == pytest.approx(2209)
        assert goal.baseline_source == BaselineSource.FORMULA
        assert goal.computed_for_weight_kg == 80

    async def test_measured_tdee_preferred(self, tracker, source):
        await tracker.save_profile(make_profile())
        source.total[days_ago(1)] = 2600

        goal = await tracker.set_goal(GoalType.MAINTAIN)

        assert goal.baseline_source == BaselineSource.MEASURED
        assert goal.daily_calorie_target == 2600

    async def test_unavailable_source_falls_back_to_formula(self, tracker, source):
        await tracker.save_profile(make_profile())
        source.unavailable = True
        goal = await tracker.set_goal(GoalType.MAINTAIN)
        assert goal.baseline_source == BaselineSource.FORMULA

    async def test_type_inferred_and_default_rate(self, tracker):
        await tracker.save_profile(make_profile())
        goal = await tracker.set_goal(target_weight_kg=75)
        assert goal.goal_type == GoalType.LOSE
        assert goal.weekly_rate_kg == -0.5

    async def test_rate_from_target_date(self, tracker):
        await tracker.save_profile(make_profile())
        goal = await tracker.set_goal(target_weight_kg=75, target_date=TODAY + timedelta(weeks=10))
        assert goal.weekly_rate_kg == pytest.approx(-0.5)

    async def test_unsafe_goal_not_saved(self, tracker, store):
        await tracker.save_profile(make_profile())
        with pytest.raises(UnsafeRateError):
            await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-2.0)
        assert store.goals == {}

    async def test_new_goal_replaces_active(self, tracker, store):
        await tracker.save_profile(make_profile())
        await tracker.set_goal(GoalType.LOSE)
        second = await tracker.set_goal(GoalType.GAIN)

        active = [g for g in store.goals.values() if g.is_active]
        assert [g.id for g in active] == [second.id]

    async def test_update_goal(self, tracker):
        await tracker.save_profile(make_profile())
        await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)

        goal = await tracker.update_goal(weekly_rate_kg=-0.25)

        assert goal.weekly_rate_kg == -0.25
        assert goal.daily_calorie_target == pytest.approx(1780 * 1.55 - 275)

    async def test_update_goal_with_past_target_date(self, tracker, store):
        """A goal whose date has passed can still have other fields edited."""
        await tracker.save_profile(make_profile())
        goal = Goal(goal_type=GoalType.LOSE, weekly_rate_kg=-0.5, target_date=date(2024, 3, 1))
        store.goals[goal.id] = goal

        updated = await tracker.update_goal(water_override_ml=3000)

        assert updated.target_date == date(2024, 3, 1)
        assert updated.daily_water_target == 3000
        assert store.goals[goal.id].water_override_ml == 3000

    async def test_update_goal_rejects_new_past_date(self, tracker):
        await tracker.save_profile(make_profile())
        await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)

        with pytest.raises(InvalidTargetDateError):
            await tracker.update_goal(target_date=date(2024, 3, 1))

    async def test_goal_history_newest_first(self, tracker, store):
        older = Goal(goal_type=GoalType.GAIN, is_active=False, created_at=datetime(2024, 1, 1))
        newer = Goal(goal_type=GoalType.LOSE, weekly_rate_kg=-0.5, created_at=datetime(2024, 3, 1))
        store.goals = {older.id: older, newer.id: newer}

        history = await tracker.list_goals()

        assert [g.id for g in history] == [newer.id, older.id]

    async def test_update_without_goal(self, tracker):
        with pytest.raises(ValidationError) as exc:
            await tracker.update_goal(weekly_rate_kg=-0.25)
        assert exc.value.field == "goal"

    async def test_goal_updates_todays_targets(self, tracker):
        await tracker.save_profile(make_profile())
        await tracker.log_food(500)

        goal = await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)
        day = await tracker.get_day()

        assert day.calorie_target == goal.daily_calorie_target


class TestFoodLogging:
    """Tests for logging, updating and deleting food."""

    async def test_missing_aggregate_rebuilt_from_entries(self, tracker, store):
        kept = entry_at(400, protein=20)
        store.entries[kept.id] = kept

        entry, day = await tracker.log_food(300)

        assert [e.id for e in day.entries] == [kept.id, entry.id]
        assert day.total_calories == 700
        assert store.days[TODAY].total_protein == 20

    async def test_log_food(self, tracker, store):
        entry, day = await tracker.log_food(450, protein=30, meal_type=MealType.LUNCH)

        assert day.total_calories == 450
        assert day.total_protein == 30
        assert store.entries[entry.id] == entry
        assert store.days[TODAY] == day

    async def test_log_recomputes_balance(self, tracker, bus):
        updates = []

        async def on_update(event):
            updates.append(event.balance)

        bus.subscribe(BalanceUpdated, on_update)
        await tracker.log_food(600)

        assert updates[-1].calories_consumed == 600
        assert (await tracker.get_balance()).calories_consumed == 600

    async def test_invalid_entry_nothing_persisted(self, tracker, store):
        with pytest.raises(FoodEntryValidationError) as exc:
            await tracker.log_food(0)
        assert exc.value.field == "calories"
        assert store.entries == {}
        assert store.days == {}

    async def test_past_day(self, tracker, store):
        yesterday = NOW - timedelta(days=1)
        await tracker.log_food(300, timestamp=yesterday)
        assert store.days[yesterday.date()].total_calories == 300

    async def test_update_food(self, tracker):
        entry, _ = await tracker.log_food(450, protein=30)

        updated, day = await tracker.update_food(entry.id, TODAY, calories=500)

        assert updated.calories == 500
        assert updated.protein == 30
        assert day.total_calories == 500

    async def test_update_unknown_entry(self, tracker):
        with pytest.raises(EntryNotFoundError):
            await tracker.update_food("missing", TODAY, calories=500)

    async def test_delete_food(self, tracker, store):
        first, _ = await tracker.log_food(450)
        await tracker.log_food(200)

        day = await tracker.delete_food(first.id, TODAY)

        assert day.total_calories == 200
        assert first.id not in store.entries

    async def test_delete_unknown_entry(self, tracker):
        with pytest.raises(EntryNotFoundError):
            await tracker.delete_food("missing", TODAY)

    async def test_water_and_exercise(self, tracker):
        await tracker.log_water(250)
        day = await tracker.set_exercise_calories(300)
        assert day.water_consumed_ml == 250
        assert day.calories_from_exercise == 300

    async def test_store_failure_propagates(self, tracker, store):
        store.fail = True
        with pytest.raises(PersistenceError):
            await tracker.log_food(450)

    async def test_summary(self, tracker):
        await tracker.log_food(500, protein=20)
        summary = await tracker.get_summary()
        assert summary.entry_count == 1
        assert summary.calories_remaining == 1500


class TestSavedMeals:
    """Tests for saved meals."""

    async def test_named_entry_remembered(self, tracker):
        await tracker.log_food(300, name="Oatmeal")
        await tracker.log_food(320, name="oatmeal", timestamp=NOW + timedelta(hours=1))

        meals = await tracker.search_meals("oat")

        assert len(meals) == 1
        assert meals[0].use_count == 2
        assert meals[0].calories == 320

    async def test_log_saved_meal(self, tracker):
        await tracker.save_meal("Protein Shake", 250, protein=40)

        entry, day = await tracker.log_saved_meal("protein shake", MealType.SNACK)

        assert entry.calories == 250
        assert entry.meal_type == MealType.SNACK
        assert day.total_protein == 40

    async def test_log_unknown_meal(self, tracker):
        with pytest.raises(ValidationError) as exc:
            await tracker.log_saved_meal("Pizza")
        assert exc.value.field == "name"

    async def test_overwrite_with_invalid_nutrition_rejected(self, tracker, store):
        saved = await tracker.save_meal("Oats", 300)

        with pytest.raises(FoodEntryValidationError) as exc:
            await tracker.save_meal("oats", -50, protein=5000)

        assert exc.value.field == "calories"
        assert store.meals[saved.id].calories == 300
        assert store.meals[saved.id].protein is None

    async def test_zero_calorie_meal_rejected(self, tracker, store):
        with pytest.raises(FoodEntryValidationError):
            await tracker.save_meal("Water", 0)
        assert store.meals == {}

    async def test_overwrite_keeps_identity_and_use_count(self, tracker, store):
        await tracker.log_food(300, name="Oats")
        first = next(iter(store.meals.values()))

        updated = await tracker.save_meal("oats", 350, protein=12)

        assert updated.id == first.id
        assert updated.use_count == 1
        assert store.meals[first.id].calories == 350

    async def test_least_recently_used_evicted(self, tracker, store):
        for i in range(MAX_SAVED_MEALS):
            meal = SavedMeal(name=f"Meal {i}", calories=100, last_used=datetime(2024, 1, 1) + timedelta(days=i))
            store.meals[meal.id] = meal
        oldest = next(m for m in store.meals.values() if m.name == "Meal 0")

        await tracker.log_food(200, name="Brand New")

        assert len(store.meals) == MAX_SAVED_MEALS
        assert oldest.id not in store.meals


class TestSamples:
    """Tests for health sample ingestion."""

    async def test_energy_sample_refreshes_balance(self, tracker, store, source):
        assert (await tracker.get_balance()).source == EnergySource.ESTIMATED
        source.resting[TODAY] = 1700
        source.active[TODAY] = 500

        await tracker.ingest_energy_sample(EnergySample(sample_date=TODAY, resting_kcal=1700, active_kcal=500))

        assert store.energy[TODAY].active_kcal == 500
        assert tracker.engine.cache.get(TODAY).source == EnergySource.MEASURED

    async def test_latest_weight_updates_profile_and_goal(self, tracker, store):
        await tracker.save_profile(make_profile())
        await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5)

        profile = await tracker.ingest_weight_sample(WeightSample(weight_kg=78, measured_at=NOW))

        assert profile.weight_kg == 78
        assert store.profile.weight_kg == 78
        assert (await tracker.get_goal()).computed_for_weight_kg == 78

    async def test_older_weight_ignored(self, tracker, store):
        await tracker.save_profile(make_profile())
        await tracker.ingest_weight_sample(WeightSample(weight_kg=78, measured_at=NOW))

        profile = await tracker.ingest_weight_sample(
            WeightSample(weight_kg=85, measured_at=NOW - timedelta(days=3))
        )

        assert profile is None
        assert store.profile.weight_kg == 78

    async def test_workouts_set_exercise_calories(self, tracker):
        start = datetime(2024, 3, 13, 7, 0)
        earlier = start - timedelta(days=1)
        workouts = [
            WorkoutSample(activity_type="run", start=start, end=start + timedelta(minutes=40), energy_burned=400),
            WorkoutSample(activity_type="walk", start=start.replace(hour=18), end=start.replace(hour=19), energy_burned=150),
            WorkoutSample(activity_type="ride", start=earlier, end=earlier + timedelta(minutes=30), energy_burned=250),
        ]

        days = await tracker.ingest_workouts(workouts)

        assert [d.log_date for d in days] == [days_ago(1), TODAY]
        assert [d.calories_from_exercise for d in days] == [250, 550]


class TestReports:
    """Tests for balance, progress and report queries."""

    async def test_progress_without_goal(self, tracker):
        report = await tracker.get_progress()
        assert report.has_goal is False
        assert report.weekly.status == ProgressStatus.NO_GOAL

    async def test_progress_with_goal(self, tracker, source):
        await tracker.save_profile(make_profile())
        await tracker.set_goal(GoalType.LOSE, weekly_rate_kg=-0.5, target_weight_kg=75)
        await tracker.log_food(2000)
        source.resting[TODAY] = 1800
        source.active[TODAY] = 600
        await tracker.engine.refresh(TODAY)

        report = await tracker.get_progress()

        assert report.has_goal is True
        # Monday and Tuesday have no food logged: 0 - (1780 + 356) each
        assert report.weekly.actual_balance == pytest.approx(-400 - 2 * 2136)
        assert report.weekly.status == ProgressStatus.AHEAD
        assert report.days_remaining == 70

    async def test_weekly_report(self, tracker):
        await tracker.log_food(1000, timestamp=NOW - timedelta(days=1))
        await tracker.log_food(1500)

        report = await tracker.get_weekly_report()

        assert report.week_start == days_ago(6)
        assert report.days_logged == 2
        assert report.total_calories == 2500
        # seven estimated days at 2160 burned each
        assert report.total_balance == pytest.approx(2500 - 7 * 2160)

    async def test_future_week_has_no_balances(self, tracker):
        report = await tracker.get_weekly_report(date(2024, 4, 1))
        assert report.total_balance == 0

    async def test_reminder_summary(self, tracker):
        await tracker.log_food(900)
        summary = await tracker.get_reminder_summary()
        assert summary.calories_consumed == 900
        assert summary.target_balance == 0
        assert summary.balance_source == EnergySource.ESTIMATED
