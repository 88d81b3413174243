"""Calorie Balance - consumed minus burned, and the per-date balance cache.

The async engine in ``shell.engine`` gathers inputs; everything here is
deterministic given those inputs.
"""

from datetime import date
from typing import Optional

from .energy import resolve_energy
from .ledger import calculate_daily_totals, entries_for_date
from .models import CalorieBalance, ConsumedSource, DailyNutrition, EnergySource, FoodEntry, ResolvedEnergy


def select_consumed_calories(
    day: Optional[DailyNutrition],
    entries: list[FoodEntry],
    log_date: date,
) -> tuple[float, ConsumedSource]:
    """Consumed calories for a date.

    Prefers the stored daily aggregate; falls back to summing raw entries
    when no aggregate exists yet. Both paths yield the same total for the
    same entries.

    Returns:
        Tuple of (calories, which path produced them)
    """
    if day is not None:
        return day.total_calories, ConsumedSource.AGGREGATE

    calories, _, _, _ = calculate_daily_totals(entries_for_date(entries, log_date))
    return calories, ConsumedSource.ENTRIES


def build_balance(
    log_date: date,
    calories_consumed: float,
    consumed_source: ConsumedSource,
    energy: ResolvedEnergy,
    estimated_resting: float,
) -> CalorieBalance:
    """Assemble a CalorieBalance from consumed calories and resolved energy."""
    total = energy.resting + energy.active
    return CalorieBalance(
        log_date=log_date,
        calories_consumed=calories_consumed,
        resting_energy_burned=energy.resting,
        active_energy_burned=energy.active,
        total_energy_burned=total,
        estimated_resting_energy=estimated_resting,
        balance=calories_consumed - total,
        source=EnergySource.MEASURED if energy.using_measured else EnergySource.ESTIMATED,
        consumed_source=consumed_source,
    )


def estimated_balance(
    log_date: date,
    calories_consumed: float,
    consumed_source: ConsumedSource,
    estimated_resting: float,
) -> CalorieBalance:
    """Balance computed purely from estimates, used when the source fails."""
    energy = resolve_energy(None, None, estimated_resting)
    return build_balance(log_date, calories_consumed, consumed_source, energy, estimated_resting)


class BalanceCache:
    """Date-keyed CalorieBalance cache with explicit per-date versions.

    Any upstream mutation for a date calls ``invalidate`` which bumps that
    date's counter and drops its entry. ``invalidate_all`` bumps a global
    epoch instead, so dates never seen before (including ones whose first
    computation is still in flight) are superseded too. A date's version is
    epoch plus counter; both only grow, so any invalidation changes it. A
    balance computed against an older version is refused by ``put``.
    """

    def __init__(self) -> None:
        self._epoch = 0
        self._versions: dict[date, int] = {}
        self._balances: dict[date, tuple[int, CalorieBalance]] = {}

    def version(self, log_date: date) -> int:
        return self._epoch + self._versions.get(log_date, 0)

    def invalidate(self, log_date: date) -> int:
        """Mark a date dirty. Returns its new version."""
        self._versions[log_date] = self._versions.get(log_date, 0) + 1
        self._balances.pop(log_date, None)
        return self.version(log_date)

    def invalidate_all(self) -> None:
        """Mark every date dirty, including dates not cached yet."""
        self._epoch += 1
        self._balances.clear()

    def get(self, log_date: date) -> Optional[CalorieBalance]:
        cached = self._balances.get(log_date)
        if cached is None:
            return None
        version, balance = cached
        if version != self.version(log_date):
            return None
        return balance

    def put(self, log_date: date, version: int, balance: CalorieBalance) -> bool:
        """Store a balance computed at ``version``. Returns False if it is stale."""
        if version != self.version(log_date):
            return False
        self._balances[log_date] = (version, balance)
        return True

    def __len__(self) -> int:
        return len(self._balances)
