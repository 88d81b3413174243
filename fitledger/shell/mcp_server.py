"""MCP Server - Tool definitions for assistant integration.

Defines all MCP tools an assistant can invoke to log food and water, manage
the goal and read balance and progress. Tools return plain dicts; user
errors come back as {"error": ...} rather than raising.
"""

import logging
import os
from datetime import date

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from ..core.errors import FitLedgerError, GoalSafetyError, PersistenceError
from ..core.goals import kg_to_pounds, to_metric
from ..core.ledger import calculate_daily_summary, calories_by_meal, protein_by_meal
from ..core.models import ActivityLevel, GoalType, MealType, Sex, UnitSystem, UserProfile
from .engine import CalorieBalanceEngine, EngineConfig
from .events import EventBus
from .firestore_client import FirestoreConfig, FitnessFirestoreClient
from .health_source import HealthSourceConfig, StoredHealthSource
from .tracker import FitnessTracker


logger = logging.getLogger(__name__)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

# Initialize FastMCP server with stateless HTTP for cloud deployments
mcp = FastMCP(
    "fitledger",
    instructions="""FitLedger - Personal nutrition and energy balance tracker.

Use these tools to log food and water, set a weight goal, and report how the
day's calorie balance and the goal's progress are going.

On first use, call setup_profile, then set_goal.
When logging a food the user has eaten before, use search_meals first.
After logging, always show the updated daily summary.""",
    stateless_http=True,
    transport_security=transport_security,
)

_tracker: FitnessTracker | None = None


def build_tracker(store: FitnessFirestoreClient | None = None) -> FitnessTracker:
    """Wire store, health source, event bus, engine and tracker from the environment."""
    if store is None:
        store = FitnessFirestoreClient(
            FirestoreConfig(
                database=os.environ.get("FIRESTORE_DATABASE", "fitledger"),
                profile_id=os.environ.get("FITLEDGER_PROFILE_ID", "default"),
                max_retries=int(os.environ.get("PERSISTENCE_MAX_RETRIES", "3")),
            )
        )
    source_config = HealthSourceConfig.from_env()
    source = StoredHealthSource(store, source_config)
    bus = EventBus()
    engine = CalorieBalanceEngine(store, source, bus, EngineConfig.from_env(source_config.timeout_seconds))
    return FitnessTracker(store, engine, bus, source, source_config.timeout_seconds)


def get_tracker() -> FitnessTracker:
    """Get or create the tracker."""
    global _tracker
    if _tracker is None:
        _tracker = build_tracker()
    return _tracker


def error_response(e: Exception) -> dict:
    """Turn a user-facing failure into an {"error": ...} payload."""
    if isinstance(e, PersistenceError):
        return {"error": "Data unavailable, try again."}
    response = {"error": str(e)}
    field = getattr(e, "field", None)
    if field:
        response["field"] = field
    if isinstance(e, GoalSafetyError) and e.suggested_rate is not None:
        response["suggested_rate"] = e.suggested_rate
    return response


def _parse_date(date_str: str | None) -> date | None:
    if date_str is None:
        return None
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        raise ValueError("Invalid date format. Use YYYY-MM-DD.") from None


def _day_payload(day) -> dict:
    return {
        "date": day.log_date.isoformat(),
        "entries": [e.model_dump(mode="json") for e in day.entries],
        "targets": {
            "calories": day.calorie_target,
            "protein": day.protein_target,
            "carbs": day.carbs_target,
            "fats": day.fats_target,
            "water_ml": day.water_target_ml,
        },
        "calories_by_meal": calories_by_meal(day),
        "protein_by_meal": protein_by_meal(day),
        "summary": calculate_daily_summary(day).model_dump(mode="json"),
    }


# ==================== Profile & Goal Tools ====================


@mcp.tool()
async def setup_profile(
    weight: float,
    height: float | None = None,
    age: int | None = None,
    sex: str = "other",
    activity_level: str = "sedentary",
    preferred_units: str = "metric",
) -> dict:
    """Create or update the user's profile.

    Args:
        weight: Current body weight in kilograms, or pounds when imperial (e.g., 72.5)
        height: Height in centimeters, or inches when imperial (optional, enables the BMR formula)
        age: Age in years (optional, enables the BMR formula)
        sex: "male", "female" or "other"
        activity_level: sedentary, lightly_active, moderately_active, very_active or extremely_active
        preferred_units: "metric" or "imperial"

    Returns:
        The stored profile (always metric), plus weight_lb for imperial users
    """
    tracker = get_tracker()
    try:
        units = UnitSystem(preferred_units)
        weight_kg, height_cm = to_metric(weight, height, units)
        existing = await tracker.get_profile()
        fields = {
            "weight_kg": weight_kg,
            "height_cm": height_cm,
            "age": age,
            "sex": Sex(sex),
            "activity_level": ActivityLevel(activity_level),
            "preferred_units": units,
        }
        profile = existing.model_copy(update=fields) if existing else UserProfile(**fields)
        profile = await tracker.save_profile(profile)
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    result = {"profile": profile.model_dump(mode="json")}
    if profile.preferred_units == UnitSystem.IMPERIAL:
        result["weight_lb"] = round(kg_to_pounds(profile.weight_kg), 1)
    return result


@mcp.tool()
async def set_goal(
    goal_type: str | None = None,
    target_weight_kg: float | None = None,
    target_date: str | None = None,
    weekly_rate_kg: float | None = None,
    water_override_ml: float | None = None,
) -> dict:
    """Set a new weight goal, replacing the active one.

    Args:
        goal_type: "lose", "maintain" or "gain" (inferred from target weight if omitted)
        target_weight_kg: Target body weight in kilograms
        target_date: Date to reach the target (YYYY-MM-DD)
        weekly_rate_kg: Signed kg/week (e.g., -0.5); derived from the target date if omitted
        water_override_ml: Custom daily water target

    Returns:
        The goal with its computed daily targets, or an error with a suggested safe rate
    """
    tracker = get_tracker()
    try:
        goal = await tracker.set_goal(
            goal_type=GoalType(goal_type) if goal_type else None,
            target_weight_kg=target_weight_kg,
            target_date=_parse_date(target_date),
            weekly_rate_kg=weekly_rate_kg,
            water_override_ml=water_override_ml,
        )
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"goal": goal.model_dump(mode="json")}


@mcp.tool()
async def get_goal() -> dict:
    """Retrieve the active goal and its daily targets."""
    try:
        goal = await get_tracker().get_goal()
    except FitLedgerError as e:
        return error_response(e)
    if goal is None:
        return {"error": "No active goal. Use set_goal first."}
    return {"goal": goal.model_dump(mode="json")}


@mcp.tool()
async def update_goal(
    goal_type: str | None = None,
    target_weight_kg: float | None = None,
    target_date: str | None = None,
    weekly_rate_kg: float | None = None,
    water_override_ml: float | None = None,
) -> dict:
    """Edit the active goal. Only provided fields are changed; targets are recomputed.

    Args:
        goal_type: "lose", "maintain" or "gain"
        target_weight_kg: New target body weight in kilograms
        target_date: New target date (YYYY-MM-DD)
        weekly_rate_kg: New signed kg/week (e.g., -0.25)
        water_override_ml: Custom daily water target

    Returns:
        The edited goal with its recomputed daily targets
    """
    tracker = get_tracker()
    try:
        goal = await tracker.update_goal(
            goal_type=GoalType(goal_type) if goal_type else None,
            target_weight_kg=target_weight_kg,
            target_date=_parse_date(target_date),
            weekly_rate_kg=weekly_rate_kg,
            water_override_ml=water_override_ml,
        )
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"goal": goal.model_dump(mode="json")}


@mcp.tool()
async def get_goal_history() -> dict:
    """List every goal the user has set, newest first, including replaced ones."""
    try:
        goals = await get_tracker().list_goals()
    except FitLedgerError as e:
        return error_response(e)
    return {"goals": [g.model_dump(mode="json") for g in goals]}


# ==================== Logging Tools ====================


@mcp.tool()
async def log_food(
    calories: float,
    protein: float | None = None,
    carbs: float | None = None,
    fats: float | None = None,
    name: str | None = None,
    meal_type: str | None = None,
    note: str | None = None,
) -> dict:
    """Add a food entry to today's log.

    Args:
        calories: Total calories for this serving
        protein: Protein in grams
        carbs: Carbohydrates in grams
        fats: Fat in grams
        name: Name of the food (named foods are saved for quick re-logging)
        meal_type: breakfast, lunch, dinner or snack
        note: Optional details about quantity/preparation

    Returns:
        The created entry and updated daily summary
    """
    tracker = get_tracker()
    try:
        entry, day = await tracker.log_food(
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            name=name,
            meal_type=MealType(meal_type) if meal_type else None,
            note=note,
        )
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    return {
        "entry": entry.model_dump(mode="json"),
        "daily_summary": calculate_daily_summary(day).model_dump(mode="json"),
    }


@mcp.tool()
async def update_food(
    entry_id: str,
    date_str: str | None = None,
    name: str | None = None,
    calories: float | None = None,
    protein: float | None = None,
    carbs: float | None = None,
    fats: float | None = None,
    meal_type: str | None = None,
    note: str | None = None,
) -> dict:
    """Update an existing food entry. Only provided fields are updated.

    Args:
        entry_id: The ID of the entry to update
        date_str: Day of the entry in YYYY-MM-DD format (defaults to today)
        name: New name (optional)
        calories: New calorie count (optional)
        protein: New protein value (optional)
        carbs: New carbs value (optional)
        fats: New fat value (optional)
        meal_type: New meal type (optional)
        note: New note (optional)

    Returns:
        Updated entry and new daily summary
    """
    tracker = get_tracker()
    try:
        log_date = _parse_date(date_str) or tracker.today()
        entry, day = await tracker.update_food(
            entry_id,
            log_date,
            name=name,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            meal_type=MealType(meal_type) if meal_type else None,
            note=note,
        )
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    return {
        "entry": entry.model_dump(mode="json"),
        "daily_summary": calculate_daily_summary(day).model_dump(mode="json"),
    }


@mcp.tool()
async def delete_food(entry_id: str, date_str: str | None = None) -> dict:
    """Delete a food entry.

    Args:
        entry_id: The ID of the entry to delete
        date_str: Day of the entry in YYYY-MM-DD format (defaults to today)

    Returns:
        Confirmation and updated daily summary
    """
    tracker = get_tracker()
    try:
        day = await tracker.delete_food(entry_id, _parse_date(date_str) or tracker.today())
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    return {
        "success": True,
        "entries_remaining": len(day.entries),
        "daily_summary": calculate_daily_summary(day).model_dump(mode="json"),
    }


@mcp.tool()
async def log_water(amount_ml: float) -> dict:
    """Log water drunk today.

    Args:
        amount_ml: Amount in milliliters (e.g., 250)

    Returns:
        Water consumed and target for today
    """
    try:
        day = await get_tracker().log_water(amount_ml)
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {
        "water_consumed_ml": day.water_consumed_ml,
        "water_target_ml": day.water_target_ml,
    }


@mcp.tool()
async def set_exercise_calories(calories: float, date_str: str | None = None) -> dict:
    """Set (not add) the calories burned by exercise for a day.

    Args:
        calories: Exercise calories; negative values are treated as zero
        date_str: Day in YYYY-MM-DD format (defaults to today)
    """
    tracker = get_tracker()
    try:
        day = await tracker.set_exercise_calories(calories, _parse_date(date_str))
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"daily_summary": calculate_daily_summary(day).model_dump(mode="json")}


# ==================== Query Tools ====================


@mcp.tool()
async def get_today() -> dict:
    """Get today's complete food log with targets and summary."""
    try:
        day = await get_tracker().get_day()
    except FitLedgerError as e:
        return error_response(e)
    return _day_payload(day)


@mcp.tool()
async def get_day(date_str: str) -> dict:
    """Get a specific day's food log.

    Args:
        date_str: Date in YYYY-MM-DD format
    """
    try:
        day = await get_tracker().get_day(_parse_date(date_str))
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return _day_payload(day)


@mcp.tool()
async def get_balance(date_str: str | None = None) -> dict:
    """Get the calorie balance (consumed minus burned) for a day.

    Negative balance is a deficit. ``source`` says whether burned energy was
    measured by the health source or estimated from the profile.

    Args:
        date_str: Date in YYYY-MM-DD format (defaults to today)
    """
    tracker = get_tracker()
    try:
        balance = await tracker.get_balance(_parse_date(date_str))
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"balance": balance.model_dump(mode="json")}


@mcp.tool()
async def refresh_balance(date_str: str | None = None) -> dict:
    """Recompute a day's balance now instead of waiting for the periodic refresh."""
    tracker = get_tracker()
    try:
        balance = await tracker.engine.refresh(_parse_date(date_str))
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"balance": balance.model_dump(mode="json")}


@mcp.tool()
async def get_progress() -> dict:
    """Weekly and overall progress of the active goal, with insights."""
    try:
        report = await get_tracker().get_progress()
    except FitLedgerError as e:
        return error_response(e)
    return report.model_dump(mode="json")


@mcp.tool()
async def get_weekly_report(week_start: str | None = None) -> dict:
    """Generate a weekly report with daily rows and the week's calorie balance.

    ``total_balance`` is the sum of daily balances; ``estimated_weight_change_kg``
    is that balance divided by 7700 kcal/kg. Negative values indicate a deficit.

    Args:
        week_start: First day of the week in YYYY-MM-DD (defaults to 6 days ago)
    """
    try:
        report = await get_tracker().get_weekly_report(_parse_date(week_start))
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    result = report.model_dump(mode="json")
    result["interpretation"] = (
        f"Calorie {'surplus' if report.total_balance > 0 else 'deficit'} "
        f"of {abs(report.total_balance):.0f} calories over {report.days_logged} logged days"
    )
    return result


@mcp.tool()
async def get_reminder_summary() -> dict:
    """Today's balance, water and protein against their targets."""
    try:
        summary = await get_tracker().get_reminder_summary()
    except FitLedgerError as e:
        return error_response(e)
    return summary.model_dump(mode="json")


# ==================== Saved Meal Tools ====================


@mcp.tool()
async def search_meals(query: str) -> list[dict] | dict:
    """Search the user's saved meals.

    Args:
        query: Search term to match against meal names

    Returns:
        Matching meals, most used first
    """
    try:
        meals = await get_tracker().search_meals(query)
    except FitLedgerError as e:
        return error_response(e)
    return [m.model_dump(mode="json") for m in meals]


@mcp.tool()
async def save_meal(
    name: str,
    calories: float,
    protein: float | None = None,
    carbs: float | None = None,
    fats: float | None = None,
) -> dict:
    """Save a food for quick future logging without logging it now.

    Args:
        name: Name of the food (used for searching)
        calories: Calories per serving
        protein: Protein in grams
        carbs: Carbs in grams
        fats: Fat in grams
    """
    try:
        meal = await get_tracker().save_meal(name, calories, protein, carbs, fats)
    except (FitLedgerError, ValueError) as e:
        return error_response(e)
    return {"meal": meal.model_dump(mode="json")}


@mcp.tool()
async def log_saved_meal(name: str, meal_type: str | None = None) -> dict:
    """Log a saved meal by name to today's log.

    Args:
        name: Saved meal name (case-insensitive)
        meal_type: breakfast, lunch, dinner or snack
    """
    try:
        entry, day = await get_tracker().log_saved_meal(
            name, meal_type=MealType(meal_type) if meal_type else None
        )
    except (FitLedgerError, ValueError) as e:
        return error_response(e)

    return {
        "entry": entry.model_dump(mode="json"),
        "daily_summary": calculate_daily_summary(day).model_dump(mode="json"),
    }
