"""Fan-out of webhook events to the conversation state machine."""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from hairbot.bot.models import WebhookEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[WebhookEvent], Awaitable[None]]


class EventDispatcher:
    """Runs each event in its own background task.

    Failures are logged per event and never reach sibling events or the
    webhook response. Events from the same user in one batch are serialized by
    the per-user lock, but their order is not guaranteed.
    """

    def __init__(self, handler: EventHandler):
        self.handler = handler
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, events: Iterable[WebhookEvent]) -> list[asyncio.Task[None]]:
        """Schedule events and return without waiting for them."""
        scheduled = []
        for event in events:
            task = asyncio.create_task(self._run(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            scheduled.append(task)
        if scheduled:
            logger.info(f"Dispatched {len(scheduled)} event(s)")
        return scheduled

    async def _run(self, event: WebhookEvent) -> None:
        try:
            await self.handler(event)
        except Exception as e:
            logger.error(
                f"[USER {event.user_id}] [EVENT {event.webhook_event_id}] Error handling {event.type} event: "
                f"{type(e).__name__}: {e}",
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait until every dispatched event has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
