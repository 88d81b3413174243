"""Error taxonomy for fitledger.

Validation and goal-safety errors are raised where data enters the system and
are always user-correctable. Source errors are absorbed by the balance engine.
Persistence errors are the only class surfaced to the user as a failure.
"""

from typing import Optional


class FitLedgerError(Exception):
    """Base class for all fitledger errors."""


class ValidationError(FitLedgerError, ValueError):
    """Bad user input. ``field`` names the offending attribute when known."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ProfileValidationError(ValidationError):
    """Weight, age or height outside its sane range."""


class FoodEntryValidationError(ValidationError):
    """A food entry field outside its allowed range."""


class EntryNotFoundError(ValidationError):
    """No entry with the given id exists on that day."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Food entry not found: {entry_id}", field="id")
        self.entry_id = entry_id


class GoalSafetyError(FitLedgerError, ValueError):
    """Goal parameters outside health-safe bounds.

    ``suggested_rate`` carries a safe weekly rate when one can be offered.
    """

    def __init__(self, message: str, suggested_rate: Optional[float] = None) -> None:
        super().__init__(message)
        self.suggested_rate = suggested_rate


class UnsafeRateError(GoalSafetyError):
    pass


class InvalidTargetWeightError(GoalSafetyError):
    pass


class InvalidTargetDateError(GoalSafetyError):
    pass


class SourceUnavailableError(FitLedgerError):
    """The external health source is disabled, denied or failing."""


class PersistenceError(FitLedgerError):
    """The store could not be read or written."""
