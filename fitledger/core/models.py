"""Core Data Models - Pydantic models for type safety.

Models are value objects with no behavior beyond structural validation and a
few read-only derived properties. Range checks that produce user-facing
errors live next to the logic that enforces them (goals.py, ledger.py).
"""

from datetime import datetime
from datetime import date as DateType
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator
import uuid


# ==================== Enumerations ====================


class Sex(str, Enum):
    """Sex used by the BMR formula. OTHER averages the male/female offsets."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ActivityLevel(str, Enum):
    SEDENTARY = "sedentary"                    # Little or no exercise
    LIGHTLY_ACTIVE = "lightly_active"          # Light exercise 1-3 days/week
    MODERATELY_ACTIVE = "moderately_active"    # Moderate exercise 3-5 days/week
    VERY_ACTIVE = "very_active"                # Hard exercise 6-7 days/week
    EXTREMELY_ACTIVE = "extremely_active"      # Very hard exercise, physical job


class UnitSystem(str, Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class GoalType(str, Enum):
    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class EnergySource(str, Enum):
    """Where an energy-expenditure figure came from."""

    MEASURED = "measured"
    ESTIMATED = "estimated"


class BaselineSource(str, Enum):
    """Where a goal's maintenance-calorie baseline came from."""

    MEASURED = "measured"
    FORMULA = "formula"
    DEFAULT = "default"


class ConsumedSource(str, Enum):
    """Which path produced the consumed-calorie figure of a balance."""

    AGGREGATE = "aggregate"
    ENTRIES = "entries"


class ProgressStatus(str, Enum):
    ON_TRACK = "on_track"
    BEHIND = "behind"
    AHEAD = "ahead"
    NO_GOAL = "no_goal"


# ==================== Profile & Goal ====================


class UserProfile(BaseModel):
    """The single user's physiological profile and preferences."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    weight_kg: float = Field(description="Current body weight in kilograms")
    height_cm: Optional[float] = Field(default=None, description="Height in centimeters")
    age: Optional[int] = Field(default=None, description="Age in years")
    sex: Sex = Sex.OTHER
    activity_level: ActivityLevel = ActivityLevel.SEDENTARY
    preferred_units: UnitSystem = UnitSystem.METRIC
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class EnergyBaseline(BaseModel):
    """Maintenance calories a goal is computed against, tagged with its origin."""

    calories: float
    source: BaselineSource


class NutritionTargets(BaseModel):
    """Daily targets derived from a profile, a goal and an energy baseline."""

    calories: float
    protein: float
    carbs: float
    fats: float
    saturated_fat: float
    water_ml: float
    daily_adjustment: float = Field(description="Calories added to (or removed from) the baseline")
    baseline: EnergyBaseline


class Goal(BaseModel):
    """A weight goal. Exactly one goal is active at a time."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    goal_type: GoalType
    target_weight_kg: Optional[float] = None
    target_date: Optional[DateType] = None
    weekly_rate_kg: float = Field(default=0.0, description="Signed weight change per week in kg")
    daily_calorie_target: float = 0.0
    daily_protein_target: float = 0.0
    daily_carbs_target: float = 0.0
    daily_fats_target: float = 0.0
    daily_saturated_fat_target: float = 0.0
    daily_water_target: float = 2000.0
    water_override_ml: Optional[float] = Field(default=None, description="User-set water target")
    computed_for_weight_kg: Optional[float] = Field(
        default=None, description="Body weight the derived targets were computed against"
    )
    baseline_calories: Optional[float] = None
    baseline_source: Optional[BaselineSource] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def start_date(self) -> DateType:
        return self.created_at.date()


# ==================== Food & Daily Nutrition ====================


class FoodEntry(BaseModel):
    """A single food item logged by the user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: Optional[str] = Field(default=None, description="Optional label, e.g. 'Oatmeal'")
    calories: float = Field(description="Total calories")
    protein: Optional[float] = Field(default=None, description="Protein in grams")
    carbs: Optional[float] = Field(default=None, description="Carbohydrates in grams")
    fats: Optional[float] = Field(default=None, description="Fat in grams")
    timestamp: datetime = Field(default_factory=datetime.now)
    meal_type: Optional[MealType] = None
    note: Optional[str] = None

    @property
    def entry_date(self) -> DateType:
        """The calendar day this entry belongs to."""
        return self.timestamp.date()


class DailyNutrition(BaseModel):
    """One calendar day of logged food, water and exercise."""

    log_date: DateType
    entries: list[FoodEntry] = Field(default_factory=list)
    total_calories: float = 0.0
    total_protein: float = 0.0
    total_carbs: float = 0.0
    total_fats: float = 0.0
    water_consumed_ml: float = 0.0
    calorie_target: float
    protein_target: float
    carbs_target: float
    fats_target: float
    water_target_ml: float
    calories_from_exercise: float = 0.0
    net_calories: float = Field(default=0.0, description="Consumed minus exercise calories")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class NutritionProgress(BaseModel):
    """Raw consumed/target ratios. Values above 1.0 mean over target."""

    calories: float
    protein: float
    carbs: float
    fats: float
    water: float


class DailyNutritionSummary(BaseModel):
    """Summary of a day's intake calculated from its entries."""

    log_date: DateType
    total_calories: float
    total_protein: float
    total_carbs: float
    total_fats: float
    water_consumed_ml: float
    calories_remaining: float = Field(description="Negative if over target")
    protein_remaining: float = Field(description="Negative if over target")
    calories_from_exercise: float
    net_calories: float
    entry_count: int
    progress: NutritionProgress


class SavedMeal(BaseModel):
    """A frequently used food saved for quick re-logging."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, description="Name of the food (used for searching)")
    calories: float = Field(ge=0, description="Calories per serving")
    protein: Optional[float] = Field(default=None, ge=0)
    carbs: Optional[float] = Field(default=None, ge=0)
    fats: Optional[float] = Field(default=None, ge=0)
    use_count: int = Field(default=0, ge=0, description="Times this food has been logged")
    created_at: datetime = Field(default_factory=datetime.now)
    last_used: datetime = Field(default_factory=datetime.now)


# ==================== Health Samples ====================


class WorkoutSample(BaseModel):
    """A workout read from the external health source. Never mutated here."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    activity_type: str
    start: datetime
    end: datetime
    duration_seconds: Optional[float] = None
    energy_burned: Optional[float] = Field(default=None, description="Kilocalories")
    distance_m: Optional[float] = None
    source: str = "Manual Entry"

    @model_validator(mode="after")
    def _fill_duration(self) -> "WorkoutSample":
        if self.end < self.start:
            raise ValueError("workout end precedes its start")
        if self.duration_seconds is None:
            self.duration_seconds = (self.end - self.start).total_seconds()
        return self


class EnergySample(BaseModel):
    """Measured resting/active energy for one day, as pushed by the source."""

    sample_date: DateType
    resting_kcal: Optional[float] = Field(default=None, ge=0)
    active_kcal: Optional[float] = Field(default=None, ge=0)
    source: str = "Health Export"
    recorded_at: datetime = Field(default_factory=datetime.now)


class WeightSample(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    weight_kg: float = Field(gt=0, lt=1000)
    measured_at: datetime = Field(default_factory=datetime.now)
    source: str = "Health Export"


# ==================== Energy & Balance ====================


class ResolvedEnergy(BaseModel):
    """Outcome of choosing between measured and estimated energy figures."""

    resting: float
    active: float
    resting_source: EnergySource
    active_source: EnergySource
    using_measured: bool

    @property
    def total(self) -> float:
        return self.resting + self.active


class CalorieBalance(BaseModel):
    """Consumed minus burned calories for one day. Fully derived."""

    log_date: DateType
    calories_consumed: float
    resting_energy_burned: float
    active_energy_burned: float
    total_energy_burned: float
    estimated_resting_energy: float
    balance: float = Field(description="Negative = deficit, positive = surplus")
    source: EnergySource
    consumed_source: ConsumedSource
    computed_at: datetime = Field(default_factory=datetime.now)

    @property
    def using_measured(self) -> bool:
        return self.source == EnergySource.MEASURED


# ==================== Progress ====================


class PeriodProgress(BaseModel):
    """Actual vs target cumulative balance for a period (week or goal to date)."""

    status: ProgressStatus
    actual_balance: float = 0.0
    target_balance: float = 0.0
    tolerance: float = 0.0
    headline: str = ""
    details: str = ""

    @property
    def difference(self) -> float:
        return self.actual_balance - self.target_balance

    @property
    def is_on_track(self) -> bool:
        return self.status == ProgressStatus.ON_TRACK


class DailyProgressPoint(BaseModel):
    log_date: DateType
    daily_balance: float
    cumulative_balance: float
    target_cumulative_balance: float


class ProgressReport(BaseModel):
    """Weekly and overall progress of the active goal plus advisory insights."""

    has_goal: bool
    weekly: PeriodProgress
    overall: PeriodProgress
    insights: list[str] = Field(default_factory=list)
    days_remaining: Optional[int] = None
    current_week_number: int = 1
    overall_progress: float = Field(default=0.0, description="0.0 - 1.0 share of target balance reached")
    daily_series: list[DailyProgressPoint] = Field(default_factory=list)


# ==================== Reports ====================


class DayHistory(BaseModel):
    """Summary for a single day in a weekly report."""

    log_date: DateType
    total_calories: float
    total_protein: float
    calories_from_exercise: float
    balance: Optional[float] = None
    entry_count: int


class WeeklyReport(BaseModel):
    """Weekly report with daily summaries and aggregate balance metrics."""

    week_start: DateType
    week_end: DateType
    daily_summaries: list[DayHistory]
    total_calories: float
    avg_daily_calories: float
    total_protein: float
    total_balance: float = Field(description="Sum of daily balances. Negative = deficit.")
    estimated_weight_change_kg: float
    days_logged: int


class ReminderSummary(BaseModel):
    """Read-only values a reminder scheduler polls to compose its text."""

    log_date: DateType
    calories_consumed: float
    calorie_target: float
    calories_remaining: float
    balance: float
    target_balance: float
    balance_source: EnergySource
    water_consumed_ml: float
    water_target_ml: float
    water_remaining_ml: float
    protein_consumed: float
    protein_target: float
