"""Async event bus for inter-module communication."""

import asyncio
import inspect
import weakref
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


@dataclass
class Event:
    """Base event class."""
    type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None


class EventBus:
    """
    Async pub/sub event bus for in-process communication.

    Event types follow pattern: category.action
    Examples: note.changed, index.retry, index.failed, batch.completed

    Handlers run on the event loop; sync handlers are called inline.
    """

    def __init__(self, maxsize: int = 1000):
        self._subscribers: Dict[str, List[weakref.ref]] = defaultdict(list)
        self._event_queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._running = False
        self._processor_task: Optional[asyncio.Task] = None
        self._stats = defaultdict(int)

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, event_pattern: str, handler: Callable[[Event], Any]) -> None:
        """
        Subscribe to events matching pattern.
        Pattern can use wildcards: 'note.*' matches all note events.
        """
        # Bound methods need WeakMethod or the reference dies immediately
        if inspect.ismethod(handler):
            handler_ref = weakref.WeakMethod(handler)
        else:
            handler_ref = weakref.ref(handler)
        self._subscribers[event_pattern].append(handler_ref)
        logger.debug(f"Subscribed handler to pattern: {event_pattern}")

    def unsubscribe(self, event_pattern: str, handler: Callable[[Event], Any]) -> None:
        """Unsubscribe handler from event pattern."""
        self._subscribers[event_pattern] = [
            ref for ref in self._subscribers[event_pattern]
            if ref() is not None and ref() != handler
        ]

    async def emit(self, event: Event) -> None:
        """Emit an event to the bus."""
        if self._event_queue.full():
            logger.warning(f"Event queue full, dropping event: {event.type}")
            self._stats['dropped'] += 1
            return

        await self._event_queue.put(event)
        self._stats['emitted'] += 1
        logger.debug(f"Emitted event: {event.type}")

    def expect(
        self,
        event_type: str,
        predicate: Optional[Callable[[Event], bool]] = None
    ) -> asyncio.Future:
        """
        Subscribe now and return a future resolved by the first matching event.

        Call this before triggering the action whose event you want to see.
        Cancelling the future drops the subscription.
        """
        arrived = asyncio.get_running_loop().create_future()

        def handler(event: Event) -> None:
            if arrived.done():
                return
            if predicate is None or predicate(event):
                arrived.set_result(event)

        # The done callback also keeps the handler alive for the weak reference
        arrived.add_done_callback(lambda _: self.unsubscribe(event_type, handler))
        self.subscribe(event_type, handler)
        return arrived

    @staticmethod
    async def race(arrived: asyncio.Future, timeout: float) -> bool:
        """True if ``arrived`` resolved within ``timeout`` seconds, else False."""
        try:
            await asyncio.wait_for(arrived, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_for(
        self,
        event_type: str,
        predicate: Optional[Callable[[Event], bool]] = None,
        timeout: float = 2.0
    ) -> bool:
        """Race a matching event against a timeout."""
        return await self.race(self.expect(event_type, predicate), timeout)

    async def start(self) -> None:
        """Start the event processor."""
        if self._running:
            logger.warning("Event bus already running")
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_events())
        logger.debug("Event bus started")

    async def stop(self) -> None:
        """Stop the event processor."""
        self._running = False
        if self._processor_task:
            await self._processor_task
            self._processor_task = None
        logger.debug("Event bus stopped")

    async def _process_events(self) -> None:
        """Process events from the queue."""
        while self._running:
            try:
                # Wait for event with timeout to allow checking _running flag
                event = await asyncio.wait_for(
                    self._event_queue.get(),
                    timeout=0.1
                )
            except asyncio.TimeoutError:
                continue

            await self.dispatch(event)

    async def dispatch(self, event: Event) -> None:
        """Deliver one event to every matching live handler."""
        handlers = []
        for pattern, refs in list(self._subscribers.items()):
            if self._matches_pattern(event.type, pattern):
                # Clean up dead weak references
                valid_refs = []
                for ref in refs:
                    handler = ref()
                    if handler is not None:
                        handlers.append(handler)
                        valid_refs.append(ref)
                self._subscribers[pattern] = valid_refs

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler error for event {event.type}: {e}")
                self._stats['handler_errors'] += 1

        self._stats['processed'] += 1

    def _matches_pattern(self, event_type: str, pattern: str) -> bool:
        """Check if event type matches subscription pattern."""
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return event_type.startswith(prefix + ".")
        return event_type == pattern

    def get_stats(self) -> Dict[str, int]:
        """Get event bus statistics."""
        return dict(self._stats)
