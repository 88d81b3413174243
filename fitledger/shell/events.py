"""Event Bus - typed events that trigger balance recomputation.

Producers (the tracker, sample ingestion routes, the refresh timer) publish
events; the balance engine subscribes to the ones that affect a day's
balance and publishes ``BalanceUpdated`` when a fresh balance is cached.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from ..core.models import CalorieBalance


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FoodEntryChanged:
    """A food entry was added, updated or deleted."""

    log_date: date
    entry_id: str
    action: str


@dataclass(frozen=True)
class EnergySampleReceived:
    sample_date: date


@dataclass(frozen=True)
class WeightSampleReceived:
    weight_kg: float
    measured_on: date


@dataclass(frozen=True)
class ProfileChanged:
    profile_id: str


@dataclass(frozen=True)
class RefreshRequested:
    """Manual or periodic refresh. ``log_date`` None means today."""

    log_date: Optional[date] = None


@dataclass(frozen=True)
class BalanceUpdated:
    balance: CalorieBalance


Handler = Callable[[Any], Awaitable[None]]


class EventBus:
    """In-process publish/subscribe keyed by event type.

    Handlers run in subscription order and are awaited by ``publish``. A
    failing handler is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a function that unsubscribes it."""
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    async def publish(self, event: Any) -> None:
        for handler in list(self._handlers.get(type(event), [])):
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler failed for %s", type(event).__name__)

    def subscriber_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, []))
