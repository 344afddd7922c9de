"""Badge counter signals emitted by the request lifecycle.

The lifecycle never reads counters back; subscribers keep whatever
projection they like (Redis, in-memory) and may be rebuilt at any time.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

Counter = Literal["pending", "correction"]


@dataclass(frozen=True)
class BadgeSignal:
    """A +1/-1 change to one of a user's badge counters."""

    user_id: str
    counter: Counter
    delta: int


Subscriber = Callable[[BadgeSignal], Awaitable[None]]


class SignalBus:
    """Fan-out of badge signals to async subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def emit(self, *signals: BadgeSignal) -> None:
        """Deliver signals to every subscriber. Subscriber errors are logged only."""
        for signal in signals:
            for subscriber in list(self._subscribers):
                try:
                    await subscriber(signal)
                except Exception:
                    logger.warning(
                        "Badge subscriber failed for %s/%s",
                        signal.user_id, signal.counter, exc_info=True,
                    )


# Signals per transition
def signals_for_submit(advisor_id: str) -> tuple[BadgeSignal, ...]:
    return (BadgeSignal(advisor_id, "pending", 1),)


def signals_for_resubmit(advisor_id: str, staff_id: str) -> tuple[BadgeSignal, ...]:
    return (
        BadgeSignal(advisor_id, "pending", 1),
        BadgeSignal(staff_id, "correction", -1),
    )


def signals_for_decision(advisor_id: str) -> tuple[BadgeSignal, ...]:
    """Approve or reject: the item leaves the advisor's queue."""
    return (BadgeSignal(advisor_id, "pending", -1),)


def signals_for_correction(advisor_id: str, staff_id: str) -> tuple[BadgeSignal, ...]:
    return (
        BadgeSignal(advisor_id, "pending", -1),
        BadgeSignal(staff_id, "correction", 1),
    )
