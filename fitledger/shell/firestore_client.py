"""Firestore Client - Persistence for the profile, goals, food logs and samples.

This module handles all database I/O. All I/O is contained here; business
logic is in the core module. Calls are synchronous; async callers wrap them
in ``asyncio.to_thread``.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, TypeVar

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from ..core.errors import PersistenceError
from ..core.models import (
    DailyNutrition,
    EnergySample,
    FoodEntry,
    Goal,
    SavedMeal,
    UserProfile,
    WeightSample,
    WorkoutSample,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.TooManyRequests,
    gcp_exceptions.Aborted,
)


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
        profile_id: Document id of the single user's profile tree
        max_retries: Extra attempts after a transient failure
        retry_delay_seconds: Base delay, multiplied by the attempt number
    """

    project_id: str | None = None
    database: str | None = None
    profile_id: str = "default"
    max_retries: int = 3
    retry_delay_seconds: float = 0.2


class FitnessFirestoreClient:
    """Client for persisting the tracker's state to Firestore.

    Document structure for the profile:
        profiles/{profile_id}: { weight_kg, height_cm, age, ... }
            goals/{goal_id}: { goal_type, weekly_rate_kg, is_active, ... }
            days/{YYYY-MM-DD}: { log_date, entries: [...], totals, targets }
            entries/{entry_id}: { calories, ..., entry_date }
            meals/{meal_id}: { name, calories, use_count, last_used }
            energy/{YYYY-MM-DD}: { resting_kcal, active_kcal, ... }
            weights/{sample_id}: { weight_kg, measured_at }
            workouts/{sample_id}: { activity_type, start, end, ... }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _profile_ref(self) -> firestore.DocumentReference:
        """Get reference to the profile document."""
        return self.client.collection("profiles").document(self.config.profile_id)

    def _collection(self, name: str) -> firestore.CollectionReference:
        return self._profile_ref().collection(name)

    def _day_ref(self, log_date: date) -> firestore.DocumentReference:
        """Get reference to a daily nutrition document."""
        return self._collection("days").document(log_date.isoformat())

    def _run(self, action: str, operation: Callable[[], T]) -> T:
        """Run a Firestore operation, retrying transient failures.

        Raises:
            PersistenceError: on a non-transient failure or when retries run out
        """
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except TRANSIENT_ERRORS as e:
                if attempt == attempts:
                    logger.error("Failed to %s after %d attempts: %s", action, attempts, str(e))
                    raise PersistenceError(f"Failed to {action}") from e
                logger.warning(
                    "Transient error during %s (attempt %d/%d): %s", action, attempt, attempts, str(e)
                )
                time.sleep(self.config.retry_delay_seconds * attempt)
            except Exception as e:
                logger.error("Failed to %s: %s", action, str(e))
                raise PersistenceError(f"Failed to {action}") from e
        raise PersistenceError(f"Failed to {action}")

    @staticmethod
    def _stamped(data: dict) -> dict:
        data["updated_at"] = datetime.now().isoformat()
        return data

    # ==================== Profile Operations ====================

    def get_profile(self) -> UserProfile | None:
        """Fetch the user profile.

        Returns:
            UserProfile if found, None otherwise
        """
        logger.debug("Fetching profile %s", self.config.profile_id)

        def op() -> UserProfile | None:
            doc = self._profile_ref().get()
            if not doc.exists:
                return None
            return UserProfile(**doc.to_dict())

        return self._run("fetch profile", op)

    def save_profile(self, profile: UserProfile) -> None:
        logger.info("Saving profile %s", self.config.profile_id)
        data = self._stamped(profile.model_dump(mode="json"))
        self._run("save profile", lambda: self._profile_ref().set(data))

    # ==================== Goal Operations ====================

    def get_active_goal(self) -> Goal | None:
        """Fetch the active goal.

        Returns:
            Goal if one is active, None otherwise
        """

        def op() -> Goal | None:
            query = self._collection("goals").where("is_active", "==", True).limit(1)
            for doc in query.stream():
                return Goal(**doc.to_dict())
            return None

        return self._run("fetch active goal", op)

    def save_goal(self, goal: Goal) -> None:
        """Save a goal. Saving an active goal deactivates every other goal."""
        logger.info("Saving goal %s (%s)", goal.id[:8], goal.goal_type.value)
        data = self._stamped(goal.model_dump(mode="json"))

        def op() -> None:
            goals = self._collection("goals")
            if goal.is_active:
                for doc in goals.where("is_active", "==", True).stream():
                    if doc.id != goal.id:
                        doc.reference.update({"is_active": False})
            goals.document(goal.id).set(data)

        self._run("save goal", op)

    def list_goals(self) -> list[Goal]:
        """All goals, newest first."""

        def op() -> list[Goal]:
            query = self._collection("goals").order_by("created_at", direction=firestore.Query.DESCENDING)
            return [Goal(**doc.to_dict()) for doc in query.stream()]

        return self._run("list goals", op)

    # ==================== Daily Nutrition Operations ====================

    def get_day(self, log_date: date) -> DailyNutrition | None:
        """Fetch a day's nutrition aggregate.

        Args:
            log_date: Date of the day

        Returns:
            DailyNutrition if found, None otherwise
        """
        logger.debug("Fetching day %s", log_date)

        def op() -> DailyNutrition | None:
            doc = self._day_ref(log_date).get()
            if not doc.exists:
                return None
            return DailyNutrition(**doc.to_dict())

        return self._run("fetch day", op)

    def save_day(self, day: DailyNutrition) -> None:
        logger.info("Saving day %s (%d entries)", day.log_date, len(day.entries))
        data = self._stamped(day.model_dump(mode="json"))
        self._run("save day", lambda: self._day_ref(day.log_date).set(data))

    def get_days_range(self, start_date: date, end_date: date) -> list[DailyNutrition]:
        """Fetch days for a date range.

        Args:
            start_date: Start of range (inclusive)
            end_date: End of range (inclusive)

        Returns:
            List of days found (may be empty), oldest first
        """
        logger.debug("Fetching days from %s to %s", start_date, end_date)

        def op() -> list[DailyNutrition]:
            query = (
                self._collection("days")
                .where("log_date", ">=", start_date.isoformat())
                .where("log_date", "<=", end_date.isoformat())
                .order_by("log_date")
            )
            return [DailyNutrition(**doc.to_dict()) for doc in query.stream()]

        days = self._run("fetch days range", op)
        logger.debug("Found %d days in range", len(days))
        return days

    # ==================== Food Entry Operations ====================

    def save_entry(self, entry: FoodEntry) -> None:
        """Save a raw food entry, tagged with the day it belongs to."""
        data = entry.model_dump(mode="json")
        data["entry_date"] = entry.entry_date.isoformat()
        self._run("save entry", lambda: self._collection("entries").document(entry.id).set(data))

    def delete_entry(self, entry_id: str) -> None:
        self._run("delete entry", lambda: self._collection("entries").document(entry_id).delete())

    def get_entries_for_date(self, log_date: date) -> list[FoodEntry]:
        """Raw entries for a date, independent of the day aggregate."""

        def op() -> list[FoodEntry]:
            query = self._collection("entries").where("entry_date", "==", log_date.isoformat())
            entries = []
            for doc in query.stream():
                data = doc.to_dict()
                data.pop("entry_date", None)
                entries.append(FoodEntry(**data))
            return entries

        return self._run("fetch entries", op)

    # ==================== Saved Meal Operations ====================

    def list_meals(self) -> list[SavedMeal]:
        """All saved meals, most used first."""

        def op() -> list[SavedMeal]:
            query = self._collection("meals").order_by("use_count", direction=firestore.Query.DESCENDING)
            return [SavedMeal(**doc.to_dict()) for doc in query.stream()]

        return self._run("list saved meals", op)

    def save_meal(self, meal: SavedMeal) -> None:
        logger.info("Saving meal: %s", meal.name)
        data = meal.model_dump(mode="json")
        self._run("save meal", lambda: self._collection("meals").document(meal.id).set(data))

    def delete_meal(self, meal_id: str) -> None:
        self._run("delete meal", lambda: self._collection("meals").document(meal_id).delete())

    # ==================== Health Sample Operations ====================

    def save_energy_sample(self, sample: EnergySample) -> None:
        data = sample.model_dump(mode="json")
        ref = self._collection("energy").document(sample.sample_date.isoformat())
        self._run("save energy sample", lambda: ref.set(data))

    def get_energy_sample(self, sample_date: date) -> EnergySample | None:
        def op() -> EnergySample | None:
            doc = self._collection("energy").document(sample_date.isoformat()).get()
            if not doc.exists:
                return None
            return EnergySample(**doc.to_dict())

        return self._run("fetch energy sample", op)

    def save_weight_sample(self, sample: WeightSample) -> None:
        data = sample.model_dump(mode="json")
        self._run("save weight sample", lambda: self._collection("weights").document(sample.id).set(data))

    def get_latest_weight(self) -> WeightSample | None:
        def op() -> WeightSample | None:
            query = (
                self._collection("weights")
                .order_by("measured_at", direction=firestore.Query.DESCENDING)
                .limit(1)
            )
            for doc in query.stream():
                return WeightSample(**doc.to_dict())
            return None

        return self._run("fetch latest weight", op)

    def save_workout(self, workout: WorkoutSample) -> None:
        data = workout.model_dump(mode="json")
        self._run("save workout", lambda: self._collection("workouts").document(workout.id).set(data))

    def get_workouts(self, start_date: date, end_date: date) -> list[WorkoutSample]:
        """Workouts starting within [start_date, end_date]."""

        def op() -> list[WorkoutSample]:
            query = (
                self._collection("workouts")
                .where("start", ">=", start_date.isoformat())
                .where("start", "<", (end_date + timedelta(days=1)).isoformat())
                .order_by("start")
            )
            return [WorkoutSample(**doc.to_dict()) for doc in query.stream()]

        return self._run("fetch workouts", op)
