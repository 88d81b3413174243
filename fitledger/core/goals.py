"""Goal Calculations - Pure functions turning a profile and goal into daily targets.

Energy baseline selection, in order of preference:
    1. Measured total energy expenditure from the health source (when > 0)
    2. Mifflin-St Jeor BMR x activity multiplier (needs weight, height, age)
    3. DEFAULT_MAINTENANCE_CALORIES

All functions are pure: same input always produces same output, no side effects.
The only time-dependent check, ``validate_goal``, takes ``today`` explicitly.
"""

import logging
from datetime import date, datetime
from typing import Optional

from .errors import (
    InvalidTargetDateError,
    InvalidTargetWeightError,
    ProfileValidationError,
    UnsafeRateError,
)
from .models import (
    ActivityLevel,
    BaselineSource,
    EnergyBaseline,
    Goal,
    GoalType,
    NutritionTargets,
    Sex,
    UnitSystem,
    UserProfile,
)


logger = logging.getLogger(__name__)

# 1 kg of body weight ~ 7700 kcal
KCAL_PER_KG = 7700.0

KCAL_PER_GRAM_PROTEIN = 4.0
KCAL_PER_GRAM_CARBS = 4.0
KCAL_PER_GRAM_FAT = 9.0

DEFAULT_MAINTENANCE_CALORIES = 2000.0
DEFAULT_PROTEIN_TARGET = 50.0
DEFAULT_WATER_TARGET_ML = 2000.0

MAX_BODY_WEIGHT = 1000.0
MAX_AGE = 150
MAX_HEIGHT_CM = 300.0

# Goal type is "maintain" when target and current weight are this close
MAINTAIN_THRESHOLD_KG = 0.5

# Activity level multipliers (Harris-Benedict activity factors)
ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHTLY_ACTIVE: 1.375,
    ActivityLevel.MODERATELY_ACTIVE: 1.55,
    ActivityLevel.VERY_ACTIVE: 1.725,
    ActivityLevel.EXTREMELY_ACTIVE: 1.9,
}

# Protein in grams per kg body weight
PROTEIN_MULTIPLIERS = {
    GoalType.LOSE: 1.6,       # Protects lean mass during a deficit
    GoalType.MAINTAIN: 1.2,
    GoalType.GAIN: 1.4,
}

# Share of non-protein calories as (carbs, fat)
MACRO_SPLITS = {
    GoalType.LOSE: (0.40, 0.60),
    GoalType.MAINTAIN: (0.50, 0.50),
    GoalType.GAIN: (0.65, 0.35),
}

# Saturated fat: at most 10% of calories and at most a third of total fat
SATURATED_FAT_CALORIE_SHARE = 0.10
SATURATED_FAT_FAT_SHARE = 1.0 / 3.0

# Hard safety bounds on weekly rate (kg/week), inclusive
RATE_BOUNDS = {
    GoalType.LOSE: (-1.0, 0.0),
    GoalType.MAINTAIN: (-0.1, 0.1),
    GoalType.GAIN: (0.0, 0.5),
}

# Advisory ranges shown when picking a rate
RECOMMENDED_RATE_RANGES = {
    GoalType.LOSE: (-1.0, -0.25),
    GoalType.MAINTAIN: (-0.1, 0.1),
    GoalType.GAIN: (0.25, 0.5),
}

# Rate used when a goal is set without a rate or target date
DEFAULT_WEEKLY_RATES = {
    GoalType.LOSE: -0.5,
    GoalType.MAINTAIN: 0.0,
    GoalType.GAIN: 0.25,
}

_RATE_MESSAGES = {
    GoalType.LOSE: "Weight loss goal exceeds safe limit of 1kg per week",
    GoalType.MAINTAIN: "Maintenance goal should have minimal weight change",
    GoalType.GAIN: "Weight gain goal exceeds safe limit of 0.5kg per week",
}


# ==================== Profile ====================


def validate_profile(profile: UserProfile) -> None:
    """Check a profile's physiological fields are in a sane range.

    Raises:
        ProfileValidationError: naming the first offending field
    """
    if not 0 < profile.weight_kg < MAX_BODY_WEIGHT:
        raise ProfileValidationError("Weight must be between 1 and 999 kg", field="weight_kg")
    if profile.age is not None and not 0 < profile.age < MAX_AGE:
        raise ProfileValidationError("Age must be between 1 and 149 years", field="age")
    if profile.height_cm is not None and not 0 < profile.height_cm < MAX_HEIGHT_CM:
        raise ProfileValidationError("Height must be between 1 and 299 cm", field="height_cm")


def calculate_bmr(weight_kg: float, height_cm: float, age: int, sex: Sex) -> float:
    """Calculate Basal Metabolic Rate using the Mifflin-St Jeor equation.

    Args:
        weight_kg: Weight in kilograms
        height_cm: Height in centimeters
        age: Age in years
        sex: MALE adds 5, FEMALE subtracts 161, OTHER uses the mean of both

    Returns:
        BMR in kcal per day
    """
    base = (10 * weight_kg) + (6.25 * height_cm) - (5 * age)

    if sex == Sex.MALE:
        return base + 5
    if sex == Sex.FEMALE:
        return base - 161
    return ((base + 5) + (base - 161)) / 2


def calculate_maintenance_calories(bmr: float, activity_level: ActivityLevel) -> float:
    """Total daily energy expenditure estimate: BMR x activity multiplier."""
    return bmr * ACTIVITY_MULTIPLIERS[activity_level]


def estimate_bmr(profile: Optional[UserProfile]) -> Optional[float]:
    """BMR for a profile, or None when weight, height or age is unknown."""
    if profile is None or profile.height_cm is None or profile.age is None:
        return None
    return calculate_bmr(profile.weight_kg, profile.height_cm, profile.age, profile.sex)


def resolve_energy_baseline(
    profile: Optional[UserProfile],
    measured_tdee: Optional[float] = None,
) -> EnergyBaseline:
    """Pick the maintenance-calorie baseline a goal is computed against.

    Args:
        profile: The user's profile, if one exists
        measured_tdee: Measured total energy expenditure for a day, if any

    Returns:
        EnergyBaseline tagged with where the figure came from
    """
    if measured_tdee is not None and measured_tdee > 0:
        return EnergyBaseline(calories=measured_tdee, source=BaselineSource.MEASURED)

    bmr = estimate_bmr(profile)
    if bmr is not None:
        maintenance = calculate_maintenance_calories(bmr, profile.activity_level)
        return EnergyBaseline(calories=maintenance, source=BaselineSource.FORMULA)

    logger.info("No measured TDEE or complete profile; using default baseline")
    return EnergyBaseline(calories=DEFAULT_MAINTENANCE_CALORIES, source=BaselineSource.DEFAULT)


# ==================== Targets ====================


def daily_calorie_adjustment(weekly_rate_kg: float) -> float:
    """Daily calorie surplus (positive) or deficit (negative) for a weekly rate."""
    return (weekly_rate_kg * KCAL_PER_KG) / 7


def calculate_protein_target(weight_kg: Optional[float], goal_type: GoalType) -> float:
    """Daily protein target in grams, scaled by body weight and goal type."""
    if weight_kg is None:
        return DEFAULT_PROTEIN_TARGET
    return weight_kg * PROTEIN_MULTIPLIERS[goal_type]


def calculate_macro_split(
    calories: float, protein_g: float, goal_type: GoalType
) -> tuple[float, float]:
    """Split the calories left after protein into carbs and fat.

    Args:
        calories: Daily calorie target
        protein_g: Daily protein target in grams
        goal_type: Selects the carb/fat ratio

    Returns:
        Tuple of (carbs_g, fats_g)
    """
    remaining = max(0.0, calories - protein_g * KCAL_PER_GRAM_PROTEIN)
    carb_share, fat_share = MACRO_SPLITS[goal_type]
    carbs = remaining * carb_share / KCAL_PER_GRAM_CARBS
    fats = remaining * fat_share / KCAL_PER_GRAM_FAT
    return carbs, fats


def calculate_saturated_fat_target(calories: float, fats_g: float) -> float:
    """Saturated fat cap: the lesser of 10% of calories and a third of total fat."""
    by_calories = calories * SATURATED_FAT_CALORIE_SHARE / KCAL_PER_GRAM_FAT
    by_fat = fats_g * SATURATED_FAT_FAT_SHARE
    return min(by_calories, by_fat)


def compute_targets(
    profile: Optional[UserProfile],
    goal: Goal,
    baseline: EnergyBaseline,
) -> NutritionTargets:
    """Compute daily calorie and macro targets for a goal.

    Args:
        profile: The user's profile (None falls back to default protein)
        goal: The goal whose type and weekly rate drive the adjustment
        baseline: Maintenance calories from ``resolve_energy_baseline``

    Returns:
        NutritionTargets for the goal
    """
    adjustment = daily_calorie_adjustment(goal.weekly_rate_kg)
    calories = baseline.calories + adjustment

    weight = profile.weight_kg if profile is not None else None
    protein = calculate_protein_target(weight, goal.goal_type)
    carbs, fats = calculate_macro_split(calories, protein, goal.goal_type)
    saturated_fat = calculate_saturated_fat_target(calories, fats)

    water = goal.water_override_ml if goal.water_override_ml is not None else DEFAULT_WATER_TARGET_ML

    return NutritionTargets(
        calories=calories,
        protein=protein,
        carbs=carbs,
        fats=fats,
        saturated_fat=saturated_fat,
        water_ml=water,
        daily_adjustment=adjustment,
        baseline=baseline,
    )


def apply_targets(goal: Goal, targets: NutritionTargets, weight_kg: Optional[float]) -> Goal:
    """Return a copy of ``goal`` carrying ``targets``, stamped with the weight used."""
    return goal.model_copy(
        update={
            "daily_calorie_target": targets.calories,
            "daily_protein_target": targets.protein,
            "daily_carbs_target": targets.carbs,
            "daily_fats_target": targets.fats,
            "daily_saturated_fat_target": targets.saturated_fat,
            "daily_water_target": targets.water_ml,
            "baseline_calories": targets.baseline.calories,
            "baseline_source": targets.baseline.source,
            "computed_for_weight_kg": weight_kg,
            "updated_at": datetime.now(),
        }
    )


def needs_recompute(goal: Goal, weight_kg: Optional[float]) -> bool:
    """True when the goal's targets were computed against a different weight."""
    return goal.computed_for_weight_kg != weight_kg


# ==================== Validation ====================


def validate_goal(goal: Goal, today: Optional[date] = None, check_target_date: bool = True) -> None:
    """Reject goals outside health-safe bounds.

    Args:
        goal: The goal to check
        today: Reference day for the target-date check (defaults to today)
        check_target_date: False when editing a goal without touching its date,
            so a goal whose date has passed can still be edited

    Raises:
        UnsafeRateError: weekly rate outside the bounds for the goal type
        InvalidTargetWeightError: target weight <= 0 or >= 1000
        InvalidTargetDateError: target date not strictly in the future
    """
    low, high = RATE_BOUNDS[goal.goal_type]
    if not low <= goal.weekly_rate_kg <= high:
        raise UnsafeRateError(
            unsafe_rate_message(goal.goal_type),
            suggested_rate=suggest_safe_rate(goal.goal_type, goal.weekly_rate_kg),
        )

    if goal.target_weight_kg is not None:
        if not 0 < goal.target_weight_kg < MAX_BODY_WEIGHT:
            raise InvalidTargetWeightError("Target weight must be between 1 and 999 kg")

    if check_target_date and goal.target_date is not None:
        if today is None:
            today = date.today()
        if goal.target_date <= today:
            raise InvalidTargetDateError("Target date must be in the future")


def unsafe_rate_message(goal_type: GoalType) -> str:
    """Why a rate was rejected, with the recommended range for the goal type."""
    low, high = RECOMMENDED_RATE_RANGES[goal_type]
    return f"{_RATE_MESSAGES[goal_type]}. Recommended range: {low:+.2f} to {high:+.2f} kg per week"


def suggest_safe_rate(goal_type: GoalType, weekly_rate_kg: float) -> float:
    """Closest weekly rate inside the safety bounds. Advisory only."""
    low, high = RATE_BOUNDS[goal_type]
    return min(max(weekly_rate_kg, low), high)


# ==================== Projections ====================


def estimated_time_to_goal(goal: Goal, current_weight_kg: float) -> Optional[float]:
    """Weeks needed to reach the target weight at the goal's rate.

    Returns:
        Weeks as a float, or None when indeterminate (no target or zero rate)
    """
    if goal.target_weight_kg is None or goal.weekly_rate_kg == 0:
        return None
    return abs(goal.target_weight_kg - current_weight_kg) / abs(goal.weekly_rate_kg)


def infer_goal_type(current_weight_kg: float, target_weight_kg: Optional[float]) -> GoalType:
    """Goal type implied by current and target weight."""
    if target_weight_kg is None:
        return GoalType.MAINTAIN
    difference = target_weight_kg - current_weight_kg
    if abs(difference) <= MAINTAIN_THRESHOLD_KG:
        return GoalType.MAINTAIN
    return GoalType.LOSE if difference < 0 else GoalType.GAIN


def weekly_rate_for_target_date(
    current_weight_kg: float,
    target_weight_kg: float,
    target_date: date,
    today: date,
) -> float:
    """Weekly rate needed to reach a target weight by a date (0 if the date has passed)."""
    if infer_goal_type(current_weight_kg, target_weight_kg) == GoalType.MAINTAIN:
        return 0.0
    weeks = (target_date - today).days / 7
    if weeks <= 0:
        return 0.0
    return (target_weight_kg - current_weight_kg) / weeks


# ==================== Unit Conversions ====================


def pounds_to_kg(pounds: float) -> float:
    return pounds * 0.453592


def kg_to_pounds(kg: float) -> float:
    return kg / 0.453592


def inches_to_cm(inches: float) -> float:
    return inches * 2.54


def to_metric(
    weight: float,
    height: Optional[float],
    units: UnitSystem,
) -> tuple[float, Optional[float]]:
    """Weight (kg) and height (cm) from values given in ``units``.

    Imperial values are pounds and inches.
    """
    if units == UnitSystem.IMPERIAL:
        return pounds_to_kg(weight), inches_to_cm(height) if height is not None else None
    return weight, height
