"""Calorie Balance Engine - keeps each day's balance current.

Subscribes to the events that change a day's balance, recomputes through the
pure functions in ``core.balance`` and pushes fresh results to observers.
The health source is consulted under a timeout; any failure there falls
back to the estimated path instead of reaching the caller.
"""

import asyncio
import logging
import os
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import AsyncIterator, Callable, Optional

from ..core.balance import BalanceCache, build_balance, estimated_balance, select_consumed_calories
from ..core.energy import estimate_resting_energy, resolve_energy
from ..core.errors import SourceUnavailableError
from ..core.models import CalorieBalance
from .events import (
    BalanceUpdated,
    EnergySampleReceived,
    EventBus,
    FoodEntryChanged,
    ProfileChanged,
    RefreshRequested,
    WeightSampleReceived,
)
from .firestore_client import FitnessFirestoreClient
from .health_source import HealthDataSource


logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for the balance engine.

    Attributes:
        refresh_interval_seconds: Period of the background refresh while started
        source_timeout_seconds: Upper bound on a health source fetch, taken from
            HealthSourceConfig.timeout_seconds when built by build_tracker
    """

    refresh_interval_seconds: float = 300.0
    source_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls, source_timeout_seconds: float = 5.0) -> "EngineConfig":
        return cls(
            refresh_interval_seconds=float(os.environ.get("BALANCE_REFRESH_SECONDS", "300")),
            source_timeout_seconds=source_timeout_seconds,
        )


class DateLocks:
    """One asyncio.Lock per calendar date."""

    def __init__(self) -> None:
        self._locks: dict[date, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __call__(self, log_date: date) -> asyncio.Lock:
        return self._locks[log_date]


class CalorieBalanceEngine:
    """Computes, caches and publishes per-date CalorieBalance values."""

    def __init__(
        self,
        store: FitnessFirestoreClient,
        source: HealthDataSource,
        bus: EventBus,
        config: EngineConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.source = source
        self.bus = bus
        self.config = config or EngineConfig()
        self.today = today
        self.cache = BalanceCache()
        self._locks = DateLocks()
        self._refresh_task: Optional[asyncio.Task] = None

        bus.subscribe(FoodEntryChanged, self._on_date_changed)
        bus.subscribe(EnergySampleReceived, self._on_date_changed)
        bus.subscribe(WeightSampleReceived, self._on_estimates_changed)
        bus.subscribe(ProfileChanged, self._on_estimates_changed)
        bus.subscribe(RefreshRequested, self._on_refresh_requested)

    # ==================== Computation ====================

    async def compute_balance(self, log_date: date) -> CalorieBalance:
        """Return the balance for a date, computing it if the cache is cold.

        A result computed while the date was invalidated is still returned
        but is neither cached nor published.

        Raises:
            PersistenceError: if the store cannot be read
        """
        cached = self.cache.get(log_date)
        if cached is not None:
            return cached

        async with self._locks(log_date):
            cached = self.cache.get(log_date)
            if cached is not None:
                return cached

            version = self.cache.version(log_date)
            balance = await self._compute(log_date)

            if self.cache.put(log_date, version, balance):
                await self.bus.publish(BalanceUpdated(balance))
            else:
                logger.info("Discarding stale balance for %s", log_date)
            return balance

    async def _compute(self, log_date: date) -> CalorieBalance:
        profile = await asyncio.to_thread(self.store.get_profile)
        estimated_resting = estimate_resting_energy(profile)

        day = await asyncio.to_thread(self.store.get_day, log_date)
        entries = [] if day is not None else await asyncio.to_thread(self.store.get_entries_for_date, log_date)
        consumed, consumed_source = select_consumed_calories(day, entries, log_date)

        try:
            resting, active = await asyncio.wait_for(
                self._fetch_energy(log_date),
                timeout=self.config.source_timeout_seconds,
            )
        except SourceUnavailableError as e:
            logger.info("Health source unavailable for %s, using estimates: %s", log_date, str(e))
            return estimated_balance(log_date, consumed, consumed_source, estimated_resting)
        except asyncio.TimeoutError:
            logger.warning("Health source timed out for %s, using estimates", log_date)
            return estimated_balance(log_date, consumed, consumed_source, estimated_resting)
        except Exception as e:
            logger.warning("Health source failed for %s, using estimates: %s", log_date, str(e))
            return estimated_balance(log_date, consumed, consumed_source, estimated_resting)

        energy = resolve_energy(resting, active, estimated_resting)
        if not energy.using_measured:
            logger.info("No measured energy for %s, using estimates", log_date)
        return build_balance(log_date, consumed, consumed_source, energy, estimated_resting)

    async def _fetch_energy(self, log_date: date) -> tuple[Optional[float], Optional[float]]:
        resting, active = await asyncio.gather(
            self.source.fetch_resting_energy(log_date),
            self.source.fetch_active_energy(log_date),
        )
        return resting, active

    async def refresh(self, log_date: Optional[date] = None) -> CalorieBalance:
        """Invalidate and recompute a date (today by default)."""
        log_date = log_date or self.today()
        self.cache.invalidate(log_date)
        return await self.compute_balance(log_date)

    async def balances_between(self, start: date, end: date) -> list[CalorieBalance]:
        """Balances for every date in [start, end], oldest first."""
        balances = []
        for offset in range((end - start).days + 1):
            balances.append(await self.compute_balance(start + timedelta(days=offset)))
        return balances

    # ==================== Observation ====================

    async def observe_changes(self) -> AsyncIterator[CalorieBalance]:
        """Yield every freshly cached balance until the consumer stops."""
        queue: asyncio.Queue[CalorieBalance] = asyncio.Queue()

        async def enqueue(event: BalanceUpdated) -> None:
            queue.put_nowait(event.balance)

        unsubscribe = self.bus.subscribe(BalanceUpdated, enqueue)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    async def _on_date_changed(self, event) -> None:
        log_date = event.log_date if isinstance(event, FoodEntryChanged) else event.sample_date
        self.cache.invalidate(log_date)
        await self.compute_balance(log_date)

    async def _on_estimates_changed(self, event) -> None:
        # Estimated resting energy depends on the profile, so every date is dirty
        self.cache.invalidate_all()
        await self.compute_balance(self.today())

    async def _on_refresh_requested(self, event: RefreshRequested) -> None:
        await self.refresh(event.log_date)

    # ==================== Lifecycle ====================

    @property
    def running(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def start(self) -> None:
        """Start the periodic refresh. Calling it twice is a no-op."""
        if self.running:
            return
        logger.info("Starting balance refresh every %.0fs", self.config.refresh_interval_seconds)
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None
        logger.info("Stopped balance refresh")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.refresh_interval_seconds)
            await self.bus.publish(RefreshRequested())
