"""Energy Source Resolution - choose between measured and estimated expenditure.

Measured figures from the health source are authoritative whenever any of
them is present and positive. A missing component falls back on its own:
resting to the estimated resting energy, active to a fixed fraction of it.
With no measurement at all, both come from the estimate and the result is
flagged as estimated so callers can label it.

Resolution is stateless and must be evaluated per date, because measured data
can arrive after an estimate was already shown.
"""

from typing import Iterable, Optional

from .goals import estimate_bmr
from .models import EnergySource, ResolvedEnergy, UserProfile, WorkoutSample


# Active energy synthesized from resting energy when nothing was measured
ACTIVE_ENERGY_ESTIMATE_FRACTION = 0.2

# Resting energy used when neither a measurement nor a BMR is available
DEFAULT_RESTING_ENERGY = 1800.0


def _present(value: Optional[float]) -> bool:
    return value is not None and value > 0


def estimated_active_energy(estimated_resting: float) -> float:
    return estimated_resting * ACTIVE_ENERGY_ESTIMATE_FRACTION


def resolve_energy(
    measured_resting: Optional[float],
    measured_active: Optional[float],
    estimated_resting: float,
) -> ResolvedEnergy:
    """Decide which energy figures to trust for one day.

    Args:
        measured_resting: Resting energy from the health source (None if unknown)
        measured_active: Active energy from the health source (None if unknown)
        estimated_resting: Resting energy estimate from the profile

    Returns:
        ResolvedEnergy with per-component sources and ``using_measured``
    """
    if not (_present(measured_resting) or _present(measured_active)):
        return ResolvedEnergy(
            resting=estimated_resting,
            active=estimated_active_energy(estimated_resting),
            resting_source=EnergySource.ESTIMATED,
            active_source=EnergySource.ESTIMATED,
            using_measured=False,
        )

    if _present(measured_resting):
        resting, resting_source = measured_resting, EnergySource.MEASURED
    else:
        resting, resting_source = estimated_resting, EnergySource.ESTIMATED

    if _present(measured_active):
        active, active_source = measured_active, EnergySource.MEASURED
    else:
        active, active_source = estimated_active_energy(estimated_resting), EnergySource.ESTIMATED

    return ResolvedEnergy(
        resting=resting,
        active=active,
        resting_source=resting_source,
        active_source=active_source,
        using_measured=True,
    )


def estimate_resting_energy(profile: Optional[UserProfile]) -> float:
    """Goal-independent resting energy estimate: BMR when computable, else a default."""
    bmr = estimate_bmr(profile)
    if bmr is None or bmr <= 0:
        return DEFAULT_RESTING_ENERGY
    return bmr


def exercise_calories(workouts: Iterable[WorkoutSample]) -> float:
    """Total energy burned across workouts. Workouts without a figure count as zero."""
    return sum(w.energy_burned or 0 for w in workouts)
