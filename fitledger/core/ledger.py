"""Nutrition Ledger - Pure functions over one day's food log.

Every mutation returns a new DailyNutrition whose totals are recomputed as a
fold over its current entries, so totals can never drift from the entries.
"""

from datetime import date
from typing import Optional

from .errors import EntryNotFoundError, FoodEntryValidationError, ValidationError
from .goals import DEFAULT_MAINTENANCE_CALORIES, DEFAULT_PROTEIN_TARGET, DEFAULT_WATER_TARGET_ML
from .models import DailyNutrition, DailyNutritionSummary, FoodEntry, Goal, NutritionProgress


MAX_ENTRY_CALORIES = 10000.0
MAX_MACRO_GRAMS = 1000.0
MAX_NOTE_LENGTH = 500
MAX_WATER_PER_LOG_ML = 5000.0

UNTAGGED = "untagged"

# Targets for days logged before any goal exists
DEFAULT_CARBS_TARGET = DEFAULT_MAINTENANCE_CALORIES * 0.5 / 4
DEFAULT_FATS_TARGET = DEFAULT_MAINTENANCE_CALORIES * 0.3 / 9


def validate_food_entry(entry: FoodEntry) -> None:
    """Check a food entry before it reaches any aggregate.

    Raises:
        FoodEntryValidationError: naming the offending field
    """
    if not 0 < entry.calories <= MAX_ENTRY_CALORIES:
        raise FoodEntryValidationError(
            "Calories must be greater than 0 and at most 10,000", field="calories"
        )

    for field in ("protein", "carbs", "fats"):
        value = getattr(entry, field)
        if value is not None and not 0 <= value <= MAX_MACRO_GRAMS:
            raise FoodEntryValidationError(
                f"{field.capitalize()} must be between 0 and 1,000 grams", field=field
            )

    if entry.note is not None and len(entry.note) > MAX_NOTE_LENGTH:
        raise FoodEntryValidationError("Notes cannot exceed 500 characters", field="note")


def calculate_daily_totals(entries: list[FoodEntry]) -> tuple[float, float, float, float]:
    """Calculate total calories and macros from a list of food entries.

    Missing macro values count as zero.

    Args:
        entries: List of food entries for a day

    Returns:
        Tuple of (calories, protein, carbs, fats)
    """
    total_calories = sum(e.calories for e in entries)
    total_protein = sum(e.protein or 0 for e in entries)
    total_carbs = sum(e.carbs or 0 for e in entries)
    total_fats = sum(e.fats or 0 for e in entries)

    return total_calories, total_protein, total_carbs, total_fats


def entries_for_date(entries: list[FoodEntry], log_date: date) -> list[FoodEntry]:
    """Entries whose timestamp falls on ``log_date``."""
    return [e for e in entries if e.entry_date == log_date]


# ==================== Construction ====================


def recalculate(day: DailyNutrition) -> DailyNutrition:
    """Return ``day`` with entries ordered by time and all totals refolded."""
    entries = sorted(day.entries, key=lambda e: e.timestamp)
    calories, protein, carbs, fats = calculate_daily_totals(entries)

    return day.model_copy(
        update={
            "entries": entries,
            "total_calories": calories,
            "total_protein": protein,
            "total_carbs": carbs,
            "total_fats": fats,
            "net_calories": calories - day.calories_from_exercise,
        }
    )


def new_day(log_date: date, goal: Optional[Goal] = None) -> DailyNutrition:
    """Create an empty day with targets copied from ``goal`` (defaults if None)."""
    if goal is None:
        return DailyNutrition(
            log_date=log_date,
            calorie_target=DEFAULT_MAINTENANCE_CALORIES,
            protein_target=DEFAULT_PROTEIN_TARGET,
            carbs_target=DEFAULT_CARBS_TARGET,
            fats_target=DEFAULT_FATS_TARGET,
            water_target_ml=DEFAULT_WATER_TARGET_ML,
        )

    return DailyNutrition(
        log_date=log_date,
        calorie_target=goal.daily_calorie_target,
        protein_target=goal.daily_protein_target,
        carbs_target=goal.daily_carbs_target,
        fats_target=goal.daily_fats_target,
        water_target_ml=goal.daily_water_target,
    )


def with_goal_targets(day: DailyNutrition, goal: Goal) -> DailyNutrition:
    """Replace a day's targets with the goal's current targets."""
    return day.model_copy(
        update={
            "calorie_target": goal.daily_calorie_target,
            "protein_target": goal.daily_protein_target,
            "carbs_target": goal.daily_carbs_target,
            "fats_target": goal.daily_fats_target,
            "water_target_ml": goal.daily_water_target,
        }
    )


def rebuild_day(day: DailyNutrition, entries: list[FoodEntry]) -> DailyNutrition:
    """Recompute a day from raw entries, keeping its stored targets and exercise."""
    return recalculate(day.model_copy(update={"entries": entries_for_date(entries, day.log_date)}))


# ==================== Mutations ====================


def add_entry(day: DailyNutrition, entry: FoodEntry) -> DailyNutrition:
    """Add a validated entry to the day.

    Raises:
        FoodEntryValidationError: if the entry is invalid, belongs to another
            day, or reuses an existing id
    """
    validate_food_entry(entry)
    _check_same_day(day, entry)

    if any(e.id == entry.id for e in day.entries):
        raise FoodEntryValidationError(f"Entry already logged: {entry.id}", field="id")

    return recalculate(day.model_copy(update={"entries": [*day.entries, entry]}))


def update_entry(day: DailyNutrition, entry: FoodEntry) -> DailyNutrition:
    """Replace the entry with the same id.

    Raises:
        EntryNotFoundError: if no entry has that id
        FoodEntryValidationError: if the replacement is invalid
    """
    validate_food_entry(entry)
    _check_same_day(day, entry)

    if not any(e.id == entry.id for e in day.entries):
        raise EntryNotFoundError(entry.id)

    entries = [entry if e.id == entry.id else e for e in day.entries]
    return recalculate(day.model_copy(update={"entries": entries}))


def update_entry_fields(day: DailyNutrition, entry_id: str, updates: dict) -> DailyNutrition:
    """Apply a partial update (only the given fields) to one entry."""
    existing = find_entry(day, entry_id)
    entry_data = existing.model_dump()
    entry_data.update(updates)
    return update_entry(day, FoodEntry(**entry_data))


def remove_entry(day: DailyNutrition, entry_id: str) -> DailyNutrition:
    """Remove an entry by id.

    Raises:
        EntryNotFoundError: if no entry has that id
    """
    entries = [e for e in day.entries if e.id != entry_id]
    if len(entries) == len(day.entries):
        raise EntryNotFoundError(entry_id)
    return recalculate(day.model_copy(update={"entries": entries}))


def update_exercise_calories(day: DailyNutrition, calories: float) -> DailyNutrition:
    """Set (not add) exercise calories. Negative input is clamped to zero."""
    return recalculate(day.model_copy(update={"calories_from_exercise": max(0.0, calories)}))


def log_water(day: DailyNutrition, amount_ml: float) -> DailyNutrition:
    """Add a glass of water to the day.

    Raises:
        ValidationError: if the amount is not in (0, 5000] mL
    """
    if not 0 < amount_ml <= MAX_WATER_PER_LOG_ML:
        raise ValidationError("Water amount must be between 1 and 5,000 mL", field="water_ml")
    return day.model_copy(update={"water_consumed_ml": day.water_consumed_ml + amount_ml})


def find_entry(day: DailyNutrition, entry_id: str) -> FoodEntry:
    for entry in day.entries:
        if entry.id == entry_id:
            return entry
    raise EntryNotFoundError(entry_id)


def _check_same_day(day: DailyNutrition, entry: FoodEntry) -> None:
    if entry.entry_date != day.log_date:
        raise FoodEntryValidationError(
            f"Entry timestamp {entry.timestamp.isoformat()} is not on {day.log_date.isoformat()}",
            field="timestamp",
        )


# ==================== Derived Views ====================


def remaining_calories(day: DailyNutrition) -> float:
    """Calories left to reach the target. Negative means over target."""
    return day.calorie_target - day.total_calories


def remaining_protein(day: DailyNutrition) -> float:
    return day.protein_target - day.total_protein


def _ratio(consumed: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return consumed / target


def calculate_progress(day: DailyNutrition) -> NutritionProgress:
    """Raw consumed/target ratios, not clamped at 1.0."""
    return NutritionProgress(
        calories=_ratio(day.total_calories, day.calorie_target),
        protein=_ratio(day.total_protein, day.protein_target),
        carbs=_ratio(day.total_carbs, day.carbs_target),
        fats=_ratio(day.total_fats, day.fats_target),
        water=_ratio(day.water_consumed_ml, day.water_target_ml),
    )


def group_by_meal(day: DailyNutrition) -> dict[str, list[FoodEntry]]:
    """Entries keyed by meal type value; untagged entries go under ``UNTAGGED``."""
    groups: dict[str, list[FoodEntry]] = {}
    for entry in day.entries:
        key = entry.meal_type.value if entry.meal_type is not None else UNTAGGED
        groups.setdefault(key, []).append(entry)
    return groups


def calories_by_meal(day: DailyNutrition) -> dict[str, float]:
    return {meal: sum(e.calories for e in entries) for meal, entries in group_by_meal(day).items()}


def protein_by_meal(day: DailyNutrition) -> dict[str, float]:
    return {
        meal: sum(e.protein or 0 for e in entries)
        for meal, entries in group_by_meal(day).items()
    }


def calculate_daily_summary(day: DailyNutrition) -> DailyNutritionSummary:
    """Calculate a day's summary with totals, remaining amounts and progress.

    Args:
        day: The day to summarize

    Returns:
        DailyNutritionSummary with values rounded for display
    """
    return DailyNutritionSummary(
        log_date=day.log_date,
        total_calories=round(day.total_calories, 1),
        total_protein=round(day.total_protein, 1),
        total_carbs=round(day.total_carbs, 1),
        total_fats=round(day.total_fats, 1),
        water_consumed_ml=round(day.water_consumed_ml, 1),
        calories_remaining=round(remaining_calories(day), 1),
        protein_remaining=round(remaining_protein(day), 1),
        calories_from_exercise=round(day.calories_from_exercise, 1),
        net_calories=round(day.net_calories, 1),
        entry_count=len(day.entries),
        progress=calculate_progress(day),
    )
