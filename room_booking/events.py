"""Process-wide publish/subscribe channel for reservation changes.

Publishing is fire-and-forget: events are not stored, and an event published
while nobody listens is simply dropped. Views are expected to re-query on
mount and again whenever they receive an event.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from .app_logger import get_logger
from .models import ReservationStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationChanged:
    reservation_id: str
    status: ReservationStatus
    action: str = "updated"
    occurred_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, str]:
        return {
            "reservation_id": self.reservation_id,
            "status": str(self.status),
            "action": self.action,
            "occurred_at": self.occurred_at.isoformat(timespec="seconds"),
        }


ChangeHandler = Callable[[ReservationChanged], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class ChangeBus:
    def __init__(self) -> None:
        self._handlers: dict[int, ChangeHandler] = {}
        self._next_token = 0
        self._pending: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: ChangeHandler) -> Unsubscribe:
        token = self._next_token
        self._next_token += 1
        self._handlers[token] = handler

        def unsubscribe() -> None:
            self._handlers.pop(token, None)

        return unsubscribe

    def publish(self, event: ReservationChanged) -> int:
        """Hand ``event`` to every current subscriber and return how many there were."""
        handlers = list(self._handlers.values())
        if not handlers:
            logger.debug("No subscribers for %s on %s", event.action, event.reservation_id)
            return 0

        for handler in handlers:
            try:
                outcome = handler(event)
            except Exception:
                logger.exception("Change handler %r failed for reservation %s", handler, event.reservation_id)
                continue
            if inspect.isawaitable(outcome):
                self._schedule(outcome, event)
        return len(handlers)

    async def drain(self) -> None:
        """Wait for coroutine handlers that are still running.

        A handler that itself triggers a drain does not wait on its own task.
        """
        current = asyncio.current_task()
        while True:
            running = [task for task in self._pending if task is not current]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)
            self._pending.difference_update(running)

    def _schedule(self, outcome: Awaitable[None], event: ReservationChanged) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            try:
                asyncio.run(_await(outcome))
            except Exception:
                logger.exception("Async change handler failed for reservation %s", event.reservation_id)
            return

        task = loop.create_task(_await(outcome))
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finish(done, event))

    def _finish(self, task: asyncio.Task[Any], event: ReservationChanged) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Async change handler for reservation %s was cancelled before it finished", event.reservation_id)
            return
        error = task.exception()
        if error is not None:
            logger.error("Async change handler failed for reservation %s: %s", event.reservation_id, error)


async def _await(outcome: Awaitable[None]) -> None:
    await outcome


default_bus = ChangeBus()


def subscribe_to_changes(handler: ChangeHandler, bus: ChangeBus | None = None) -> Unsubscribe:
    return (bus if bus is not None else default_bus).subscribe(handler)
