"""Saved Meals - frequently used foods kept for quick re-logging.

Names match case-insensitively. At most ``MAX_SAVED_MEALS`` are kept; the
least recently used meal is evicted first.
"""

from datetime import datetime
from typing import Optional

from .ledger import validate_food_entry
from .models import FoodEntry, SavedMeal


MAX_SAVED_MEALS = 50


def find_meal(meals: list[SavedMeal], name: str) -> Optional[SavedMeal]:
    """Exact, case-insensitive name lookup."""
    key = name.strip().lower()
    for meal in meals:
        if meal.name.lower() == key:
            return meal
    return None


def validate_meal_nutrition(
    calories: float,
    protein: Optional[float] = None,
    carbs: Optional[float] = None,
    fats: Optional[float] = None,
) -> None:
    """Apply the food entry range checks, so every saved meal can be logged.

    Raises:
        FoodEntryValidationError: naming the offending field
    """
    validate_food_entry(FoodEntry(calories=calories, protein=protein, carbs=carbs, fats=fats))


def search_meals(meals: list[SavedMeal], query: str) -> list[SavedMeal]:
    """Substring match on name, most used first."""
    query_lower = query.strip().lower()
    matches = [m for m in meals if query_lower in m.name.lower()]
    return sorted(matches, key=lambda m: (-m.use_count, m.name.lower()))


def remember_meal(
    meals: list[SavedMeal],
    entry: FoodEntry,
    now: datetime,
) -> tuple[SavedMeal, list[str]]:
    """Record that ``entry`` was logged.

    An existing meal with the same name has its nutrition refreshed and its
    use count bumped; otherwise a new meal is created.

    Args:
        meals: All currently saved meals
        entry: The logged entry (must have a name)
        now: Time of use

    Returns:
        Tuple of (meal to save, ids of meals to evict)
    """
    if not entry.name:
        raise ValueError("Only named entries can be saved as meals")

    existing = find_meal(meals, entry.name)
    values = {
        "calories": entry.calories,
        "protein": entry.protein,
        "carbs": entry.carbs,
        "fats": entry.fats,
        "last_used": now,
    }

    if existing is not None:
        meal = existing.model_copy(update={**values, "use_count": existing.use_count + 1})
        return meal, []

    meal = SavedMeal(name=entry.name.strip(), use_count=1, created_at=now, **values)
    return meal, evicted_ids([*meals, meal])


def evicted_ids(meals: list[SavedMeal]) -> list[str]:
    """Ids beyond the newest MAX_SAVED_MEALS by last use."""
    if len(meals) <= MAX_SAVED_MEALS:
        return []
    by_recency = sorted(meals, key=lambda m: m.last_used, reverse=True)
    return [m.id for m in by_recency[MAX_SAVED_MEALS:]]


def entry_from_meal(meal: SavedMeal, timestamp: datetime, **overrides) -> FoodEntry:
    """A new food entry carrying a saved meal's nutrition."""
    data = {
        "name": meal.name,
        "calories": meal.calories,
        "protein": meal.protein,
        "carbs": meal.carbs,
        "fats": meal.fats,
        "timestamp": timestamp,
    }
    data.update(overrides)
    return FoodEntry(**data)
