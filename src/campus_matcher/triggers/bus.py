"""
Async event bus for document-creation triggers.

Creating a request or a found item publishes a `DocumentCreated` event;
a background worker consumes events and dispatches them to the handlers
subscribed for that collection.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List

from ..matching.models import ItemKind

logger = logging.getLogger("matcher.triggers")


@dataclass(frozen=True)
class DocumentCreated:
    """A new document appeared in a collection."""
    collection: ItemKind
    document_id: str


EventHandler = Callable[[DocumentCreated], Awaitable[None]]


class TriggerBus:
    """Queue of creation events plus the handlers subscribed to them."""
    def __init__(self):
        self._queue: asyncio.Queue[DocumentCreated] = asyncio.Queue()
        self._handlers: Dict[ItemKind, List[EventHandler]] = defaultdict(list)

    def subscribe(self, collection: ItemKind, handler: EventHandler) -> None:
        self._handlers[collection].append(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: DocumentCreated) -> int:
        """Add an event to the queue. Returns current queue size."""
        await self._queue.put(event)
        qsize = self._queue.qsize()
        logger.info(
            "Event enqueued: %s/%s (Queue size: %d)",
            event.collection.value,
            event.document_id,
            qsize,
        )
        return qsize

    async def dispatch(self, event: DocumentCreated) -> None:
        """Run every handler subscribed to the event's collection, in order."""
        handlers = self._handlers.get(event.collection, [])
        if not handlers:
            logger.debug("No handlers for %s events", event.collection.value)
        for handler in handlers:
            await handler(event)

    async def get_next_event(self) -> DocumentCreated:
        return await self._queue.get()

    def task_done(self):
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()


# Global singleton
trigger_bus = TriggerBus()


async def run_trigger_worker(bus: TriggerBus = trigger_bus):
    """
    Background worker that consumes creation events and runs their handlers.
    """
    logger.info("Trigger worker started.")

    while True:
        try:
            event = await bus.get_next_event()
        except asyncio.CancelledError:
            logger.info("Trigger worker cancelled.")
            break

        try:
            logger.info("Processing %s/%s", event.collection.value, event.document_id)
            await bus.dispatch(event)
        except asyncio.CancelledError:
            logger.info("Trigger worker cancelled.")
            bus.task_done()
            break
        except Exception:
            logger.exception("Unexpected error in trigger worker")
        bus.task_done()


def start_trigger_workers(bus: TriggerBus = trigger_bus, count: int = 1) -> List[asyncio.Task]:
    """
    Start `count` workers on the same queue.

    A long fan-out occupies one worker; queued events are taken by the others.
    """
    return [
        asyncio.create_task(run_trigger_worker(bus), name=f"trigger-worker-{i}")
        for i in range(max(1, count))
    ]
