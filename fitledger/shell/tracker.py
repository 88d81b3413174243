"""Fitness Tracker - application service behind the MCP tools and HTTP routes.

Composes the pure core with the store, the health source and the balance
engine. Writes to one date are serialized with a per-date lock; validation
always happens before anything is persisted, and every change that affects
a balance is published on the event bus.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from ..core.energy import exercise_calories
from ..core.errors import SourceUnavailableError, ValidationError
from ..core.goals import (
    DEFAULT_WEEKLY_RATES,
    apply_targets,
    compute_targets,
    infer_goal_type,
    needs_recompute,
    resolve_energy_baseline,
    validate_goal,
    validate_profile,
    weekly_rate_for_target_date,
)
from ..core.ledger import (
    add_entry,
    calculate_daily_summary,
    find_entry,
    log_water,
    new_day,
    rebuild_day,
    remove_entry,
    update_entry_fields,
    update_exercise_calories,
    with_goal_targets,
)
from ..core.meals import (
    entry_from_meal,
    evicted_ids,
    find_meal,
    remember_meal,
    search_meals,
    validate_meal_nutrition,
)
from ..core.models import (
    CalorieBalance,
    DailyNutrition,
    DailyNutritionSummary,
    EnergySample,
    FoodEntry,
    Goal,
    GoalType,
    MealType,
    ProgressReport,
    ReminderSummary,
    SavedMeal,
    UserProfile,
    WeeklyReport,
    WeightSample,
    WorkoutSample,
)
from ..core.progress import days_elapsed_since_start, evaluate, week_start_for
from ..core.reports import generate_weekly_report, reminder_summary
from .engine import CalorieBalanceEngine, DateLocks
from .events import EnergySampleReceived, EventBus, FoodEntryChanged, ProfileChanged, WeightSampleReceived
from .firestore_client import FitnessFirestoreClient
from .health_source import HealthDataSource


logger = logging.getLogger(__name__)


class FitnessTracker:
    """The single user's tracker."""

    def __init__(
        self,
        store: FitnessFirestoreClient,
        engine: CalorieBalanceEngine,
        bus: EventBus,
        source: HealthDataSource,
        source_timeout_seconds: float = 5.0,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.engine = engine
        self.bus = bus
        self.source = source
        self.source_timeout_seconds = source_timeout_seconds
        self.now = now
        self._locks = DateLocks()

    def today(self) -> date:
        return self.now().date()

    # ==================== Profile ====================

    async def get_profile(self) -> Optional[UserProfile]:
        return await asyncio.to_thread(self.store.get_profile)

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        """Validate and store the profile, then recompute the active goal's targets.

        Raises:
            ProfileValidationError: if weight, age or height is out of range
        """
        validate_profile(profile)
        profile = profile.model_copy(update={"updated_at": self.now()})
        await asyncio.to_thread(self.store.save_profile, profile)

        goal = await self.get_goal()
        if goal is not None:
            await self._store_goal(await self._with_targets(goal, profile))

        await self.bus.publish(ProfileChanged(profile.id))
        return profile

    async def _require_profile(self) -> UserProfile:
        profile = await self.get_profile()
        if profile is None:
            raise ValidationError("Set up a profile before setting a goal", field="profile")
        return profile

    # ==================== Goals ====================

    async def get_goal(self) -> Optional[Goal]:
        return await asyncio.to_thread(self.store.get_active_goal)

    async def list_goals(self) -> list[Goal]:
        """Every goal ever set, newest first."""
        return await asyncio.to_thread(self.store.list_goals)

    async def set_goal(
        self,
        goal_type: Optional[GoalType] = None,
        target_weight_kg: Optional[float] = None,
        target_date: Optional[date] = None,
        weekly_rate_kg: Optional[float] = None,
        water_override_ml: Optional[float] = None,
    ) -> Goal:
        """Replace the active goal.

        The goal type is inferred from the target weight when omitted; the
        weekly rate is derived from the target date when omitted.

        Raises:
            ValidationError: if no profile exists
            GoalSafetyError: if the goal is outside safe bounds
        """
        profile = await self._require_profile()
        today = self.today()

        if goal_type is None:
            goal_type = infer_goal_type(profile.weight_kg, target_weight_kg)
        if weekly_rate_kg is None:
            if target_weight_kg is not None and target_date is not None and target_date > today:
                weekly_rate_kg = weekly_rate_for_target_date(
                    profile.weight_kg, target_weight_kg, target_date, today
                )
            else:
                weekly_rate_kg = DEFAULT_WEEKLY_RATES[goal_type]

        now = self.now()
        goal = Goal(
            goal_type=goal_type,
            target_weight_kg=target_weight_kg,
            target_date=target_date,
            weekly_rate_kg=weekly_rate_kg,
            water_override_ml=water_override_ml,
            created_at=now,
            updated_at=now,
        )
        validate_goal(goal, today)

        goal = await self._with_targets(goal, profile)
        await self._store_goal(goal)
        logger.info(
            "Goal set: %s at %.2f kg/week, %.0f kcal/day",
            goal.goal_type.value, goal.weekly_rate_kg, goal.daily_calorie_target,
        )
        return goal

    async def update_goal(self, **changes) -> Goal:
        """Edit the active goal. Only non-None changes are applied.

        Raises:
            ValidationError: if there is no active goal
            GoalSafetyError: if the edited goal is outside safe bounds
        """
        goal = await self.get_goal()
        if goal is None:
            raise ValidationError("No active goal to update", field="goal")
        profile = await self._require_profile()

        updates = {k: v for k, v in changes.items() if v is not None}
        goal = goal.model_copy(update={**updates, "updated_at": self.now()})
        validate_goal(goal, self.today(), check_target_date="target_date" in updates)

        goal = await self._with_targets(goal, profile)
        await self._store_goal(goal)
        return goal

    async def _with_targets(self, goal: Goal, profile: UserProfile) -> Goal:
        baseline = resolve_energy_baseline(profile, await self._measured_tdee())
        targets = compute_targets(profile, goal, baseline)
        return apply_targets(goal, targets, profile.weight_kg)

    async def _measured_tdee(self) -> Optional[float]:
        """Yesterday's measured total energy, the last complete day; None on any failure."""
        yesterday = self.today() - timedelta(days=1)
        try:
            return await asyncio.wait_for(
                self.source.fetch_total_energy(yesterday),
                timeout=self.source_timeout_seconds,
            )
        except SourceUnavailableError as e:
            logger.info("No measured TDEE available: %s", str(e))
        except asyncio.TimeoutError:
            logger.warning("Health source timed out fetching TDEE")
        except Exception as e:
            logger.warning("Health source failed fetching TDEE: %s", str(e))
        return None

    async def _store_goal(self, goal: Goal) -> None:
        await asyncio.to_thread(self.store.save_goal, goal)

        today = self.today()
        async with self._locks(today):
            day = await asyncio.to_thread(self.store.get_day, today)
            if day is not None:
                await asyncio.to_thread(self.store.save_day, with_goal_targets(day, goal))

    # ==================== Food Logging ====================

    async def _load_or_create_day(self, log_date: date) -> DailyNutrition:
        day = await asyncio.to_thread(self.store.get_day, log_date)
        if day is not None:
            return day
        day = new_day(log_date, await self.get_goal())

        # Entries can outlive a failed aggregate write
        entries = await asyncio.to_thread(self.store.get_entries_for_date, log_date)
        if entries:
            logger.warning("Rebuilding %s from %d stored entries", log_date, len(entries))
            day = rebuild_day(day, entries)
        return day

    async def get_day(self, log_date: Optional[date] = None) -> DailyNutrition:
        """The stored day, or an unsaved empty day carrying current targets."""
        return await self._load_or_create_day(log_date or self.today())

    async def get_summary(self, log_date: Optional[date] = None) -> DailyNutritionSummary:
        return calculate_daily_summary(await self.get_day(log_date))

    async def log_food(
        self,
        calories: float,
        protein: Optional[float] = None,
        carbs: Optional[float] = None,
        fats: Optional[float] = None,
        name: Optional[str] = None,
        meal_type: Optional[MealType] = None,
        note: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> tuple[FoodEntry, DailyNutrition]:
        """Log a food entry. Named entries are remembered as saved meals.

        Returns:
            Tuple of (created entry, updated day)

        Raises:
            FoodEntryValidationError: if any field is out of range
        """
        entry = FoodEntry(
            name=name,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            meal_type=meal_type,
            note=note,
            timestamp=timestamp or self.now(),
        )
        day = await self._add_entry(entry)
        if entry.name:
            await self._remember_meal(entry)
        return entry, day

    async def _add_entry(self, entry: FoodEntry) -> DailyNutrition:
        log_date = entry.entry_date
        async with self._locks(log_date):
            day = add_entry(await self._load_or_create_day(log_date), entry)
            await asyncio.to_thread(self.store.save_entry, entry)
            await asyncio.to_thread(self.store.save_day, day)

        logger.info("Logged %.0f kcal on %s", entry.calories, log_date)
        await self.bus.publish(FoodEntryChanged(log_date, entry.id, "added"))
        return day

    async def update_food(self, entry_id: str, log_date: date, **updates) -> tuple[FoodEntry, DailyNutrition]:
        """Update only the given fields of an entry.

        Raises:
            EntryNotFoundError: if the entry does not exist on that day
            FoodEntryValidationError: if the updated entry is invalid
        """
        updates = {k: v for k, v in updates.items() if v is not None}
        async with self._locks(log_date):
            day = await self._load_or_create_day(log_date)
            day = update_entry_fields(day, entry_id, updates)
            entry = find_entry(day, entry_id)
            await asyncio.to_thread(self.store.save_entry, entry)
            await asyncio.to_thread(self.store.save_day, day)

        await self.bus.publish(FoodEntryChanged(log_date, entry_id, "updated"))
        return entry, day

    async def delete_food(self, entry_id: str, log_date: date) -> DailyNutrition:
        """Delete an entry.

        Raises:
            EntryNotFoundError: if the entry does not exist on that day
        """
        async with self._locks(log_date):
            day = remove_entry(await self._load_or_create_day(log_date), entry_id)
            await asyncio.to_thread(self.store.delete_entry, entry_id)
            await asyncio.to_thread(self.store.save_day, day)

        await self.bus.publish(FoodEntryChanged(log_date, entry_id, "deleted"))
        return day

    async def log_water(self, amount_ml: float, log_date: Optional[date] = None) -> DailyNutrition:
        log_date = log_date or self.today()
        async with self._locks(log_date):
            day = log_water(await self._load_or_create_day(log_date), amount_ml)
            await asyncio.to_thread(self.store.save_day, day)
        return day

    async def set_exercise_calories(self, calories: float, log_date: Optional[date] = None) -> DailyNutrition:
        log_date = log_date or self.today()
        async with self._locks(log_date):
            day = update_exercise_calories(await self._load_or_create_day(log_date), calories)
            await asyncio.to_thread(self.store.save_day, day)
        return day

    # ==================== Saved Meals ====================

    async def list_meals(self) -> list[SavedMeal]:
        return await asyncio.to_thread(self.store.list_meals)

    async def search_meals(self, query: str) -> list[SavedMeal]:
        return search_meals(await self.list_meals(), query)

    async def save_meal(
        self,
        name: str,
        calories: float,
        protein: Optional[float] = None,
        carbs: Optional[float] = None,
        fats: Optional[float] = None,
    ) -> SavedMeal:
        """Save (or overwrite by name) a meal without logging it.

        Raises:
            FoodEntryValidationError: if the nutrition could not be logged as an entry
        """
        validate_meal_nutrition(calories, protein, carbs, fats)
        meals = await self.list_meals()
        values = {"calories": calories, "protein": protein, "carbs": carbs, "fats": fats}
        existing = find_meal(meals, name)

        if existing is not None:
            meal = SavedMeal.model_validate({**existing.model_dump(), **values})
            evicted = []
        else:
            meal = SavedMeal.model_validate({"name": name.strip(), "last_used": self.now(), **values})
            evicted = evicted_ids([*meals, meal])

        await asyncio.to_thread(self.store.save_meal, meal)
        for meal_id in evicted:
            await asyncio.to_thread(self.store.delete_meal, meal_id)
        return meal

    async def log_saved_meal(
        self,
        name: str,
        meal_type: Optional[MealType] = None,
        timestamp: Optional[datetime] = None,
    ) -> tuple[FoodEntry, DailyNutrition]:
        """Log a saved meal by name.

        Raises:
            ValidationError: if no saved meal has that name
        """
        meal = find_meal(await self.list_meals(), name)
        if meal is None:
            raise ValidationError(f"No saved meal named '{name}'", field="name")

        entry = entry_from_meal(meal, timestamp or self.now(), meal_type=meal_type)
        day = await self._add_entry(entry)
        await self._remember_meal(entry)
        return entry, day

    async def _remember_meal(self, entry: FoodEntry) -> None:
        meal, evicted = remember_meal(await self.list_meals(), entry, self.now())
        await asyncio.to_thread(self.store.save_meal, meal)
        for meal_id in evicted:
            logger.info("Evicting least recently used meal %s", meal_id[:8])
            await asyncio.to_thread(self.store.delete_meal, meal_id)

    # ==================== Health Samples ====================

    async def ingest_energy_sample(self, sample: EnergySample) -> None:
        await asyncio.to_thread(self.store.save_energy_sample, sample)
        await self.bus.publish(EnergySampleReceived(sample.sample_date))

    async def ingest_weight_sample(self, sample: WeightSample) -> Optional[UserProfile]:
        """Store a weight sample; the newest one becomes the profile weight.

        Returns:
            The updated profile, or None if the sample was older than the latest
            or no profile exists
        """
        await asyncio.to_thread(self.store.save_weight_sample, sample)

        latest = await asyncio.to_thread(self.store.get_latest_weight)
        profile = await self.get_profile()
        updated = None
        if profile is not None and latest is not None and latest.id == sample.id:
            updated = profile.model_copy(update={"weight_kg": sample.weight_kg, "updated_at": self.now()})
            await asyncio.to_thread(self.store.save_profile, updated)

            goal = await self.get_goal()
            if goal is not None and needs_recompute(goal, updated.weight_kg):
                logger.info("Weight changed to %.1f kg; recomputing goal targets", updated.weight_kg)
                await self._store_goal(await self._with_targets(goal, updated))

        await self.bus.publish(WeightSampleReceived(sample.weight_kg, sample.measured_at.date()))
        return updated

    async def ingest_workouts(self, workouts: list[WorkoutSample]) -> list[DailyNutrition]:
        """Store workouts and set each affected day's exercise calories to its workout total."""
        for workout in workouts:
            await asyncio.to_thread(self.store.save_workout, workout)

        days = []
        for log_date in sorted({w.start.date() for w in workouts}):
            day_workouts = await asyncio.to_thread(self.store.get_workouts, log_date, log_date)
            days.append(await self.set_exercise_calories(exercise_calories(day_workouts), log_date))
        return days

    # ==================== Balance & Progress ====================

    async def get_balance(self, log_date: Optional[date] = None) -> CalorieBalance:
        return await self.engine.compute_balance(log_date or self.today())

    async def get_progress(self) -> ProgressReport:
        """Evaluate the active goal over every date the evaluation looks at."""
        goal = await self.get_goal()
        today = self.today()
        if goal is None:
            return evaluate(None, [], today)

        earliest = min(week_start_for(today), today - timedelta(days=6))
        elapsed = days_elapsed_since_start(goal, today)
        if elapsed > 0:
            earliest = min(earliest, today - timedelta(days=elapsed - 1))

        balances = await self.engine.balances_between(earliest, today)
        profile = await self.get_profile()
        current_weight = profile.weight_kg if profile is not None else None
        return evaluate(goal, balances, today, current_weight)

    async def get_weekly_report(self, week_start: Optional[date] = None) -> WeeklyReport:
        today = self.today()
        if week_start is None:
            week_start = today - timedelta(days=6)
        week_end = week_start + timedelta(days=6)

        days = await asyncio.to_thread(self.store.get_days_range, week_start, week_end)
        balances = []
        if week_start <= today:
            balances = await self.engine.balances_between(week_start, min(week_end, today))
        return generate_weekly_report(days, balances, week_start)

    async def get_reminder_summary(self, log_date: Optional[date] = None) -> ReminderSummary:
        log_date = log_date or self.today()
        day = await self.get_day(log_date)
        balance = await self.engine.compute_balance(log_date)
        return reminder_summary(day, balance, await self.get_goal())
