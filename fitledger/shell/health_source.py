"""Health Data Source - the external provider of weight, energy and workouts.

``HealthDataSource`` is the contract the engine and tracker depend on. The
shipped implementation serves samples an export app pushes to the HTTP
routes in ``main.py``. Every call may fail; callers treat
``SourceUnavailableError`` as "use estimates".
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from ..core.errors import PersistenceError, SourceUnavailableError
from ..core.models import WorkoutSample
from .firestore_client import FitnessFirestoreClient


logger = logging.getLogger(__name__)


class HealthDataSource(Protocol):
    async def fetch_weight(self) -> Optional[float]: ...

    async def fetch_resting_energy(self, day: date) -> Optional[float]: ...

    async def fetch_active_energy(self, day: date) -> Optional[float]: ...

    async def fetch_total_energy(self, day: date) -> Optional[float]: ...

    async def fetch_workouts(self, start: date, end: date) -> list[WorkoutSample]: ...


@dataclass
class HealthSourceConfig:
    """Configuration for the health data source.

    Attributes:
        enabled: When False every fetch raises SourceUnavailableError
        timeout_seconds: Upper bound the engine and tracker wait on a fetch
    """

    enabled: bool = True
    timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "HealthSourceConfig":
        return cls(
            enabled=os.environ.get("HEALTH_SOURCE_ENABLED", "true").lower() in ("1", "true", "yes"),
            timeout_seconds=float(os.environ.get("HEALTH_SOURCE_TIMEOUT", "5.0")),
        )


class StoredHealthSource:
    """Health source backed by samples previously pushed and persisted."""

    def __init__(self, store: FitnessFirestoreClient, config: HealthSourceConfig | None = None) -> None:
        self.store = store
        self.config = config or HealthSourceConfig()

    async def _read(self, description: str, operation, *args):
        if not self.config.enabled:
            raise SourceUnavailableError("Health source is disabled")
        try:
            return await asyncio.to_thread(operation, *args)
        except PersistenceError as e:
            logger.warning("Health source read failed (%s): %s", description, str(e))
            raise SourceUnavailableError(f"Could not read {description}") from e

    async def fetch_weight(self) -> Optional[float]:
        sample = await self._read("weight", self.store.get_latest_weight)
        return sample.weight_kg if sample is not None else None

    async def fetch_resting_energy(self, day: date) -> Optional[float]:
        sample = await self._read("resting energy", self.store.get_energy_sample, day)
        return sample.resting_kcal if sample is not None else None

    async def fetch_active_energy(self, day: date) -> Optional[float]:
        sample = await self._read("active energy", self.store.get_energy_sample, day)
        return sample.active_kcal if sample is not None else None

    async def fetch_total_energy(self, day: date) -> Optional[float]:
        """Resting + active for the day, None when neither was recorded."""
        sample = await self._read("total energy", self.store.get_energy_sample, day)
        if sample is None or (sample.resting_kcal is None and sample.active_kcal is None):
            return None
        return (sample.resting_kcal or 0) + (sample.active_kcal or 0)

    async def fetch_workouts(self, start: date, end: date) -> list[WorkoutSample]:
        return await self._read("workouts", self.store.get_workouts, start, end)
