"""Event bus for publishing and subscribing to domain events."""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Set, Type

from ..config.logging import get_logger
from .events import DomainEvent

logger = get_logger(__name__)


class EventBus:
    """In-process publish/subscribe channel for domain events.

    One instance is created per application and handed to the services that
    publish; there is no module-level singleton.
    """

    def __init__(self, name: str = "default", max_history_size: int = 1000):
        self.name = name
        self.logger = logger.bind(event_bus=name)

        # event_type -> handlers
        self._handlers: Dict[Type[DomainEvent], List[Callable]] = defaultdict(list)

        self._event_history: List[Dict[str, Any]] = []
        self._max_history_size = max_history_size

        # Strong references to fire-and-forget handler tasks
        self._pending_tasks: Set[asyncio.Task] = set()

        self._stats = {
            "events_published": 0,
            "handlers_executed": 0,
            "errors_count": 0,
            "last_event_time": None,
        }

    def subscribe(self, event_type: Type[DomainEvent], handler: Callable) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: Type of event to subscribe to
            handler: Handler function (sync or async)
        """
        self._handlers[event_type].append(handler)

        self.logger.debug(
            "Event handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
            total_handlers=len(self._handlers[event_type]),
        )

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if handler was found and removed
        """
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)
            return True
        return False

    async def publish(
        self, event: DomainEvent, wait_for_handlers: bool = True
    ) -> Dict[str, Any]:
        """
        Publish an event to all subscribed handlers.

        Handler failures are logged and counted, never raised to the
        publisher.

        Args:
            event: Domain event to publish
            wait_for_handlers: Whether to wait for all handlers to complete

        Returns:
            Dictionary with publication results
        """
        event_type = type(event)
        self._stats["events_published"] += 1
        self._stats["last_event_time"] = datetime.now(timezone.utc)
        self._add_to_history(event)

        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return {
                "event_id": event.event_id,
                "handlers_executed": 0,
                "successful_handlers": 0,
                "failed_handlers": 0,
            }

        tasks = []
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(event)))
            else:
                tasks.append(asyncio.create_task(asyncio.to_thread(handler, event)))

        self._stats["handlers_executed"] += len(handlers)

        if not wait_for_handlers:
            for task in tasks:
                self._pending_tasks.add(task)
                task.add_done_callback(self._on_background_done)
            return {
                "event_id": event.event_id,
                "handlers_executed": len(handlers),
                "successful_handlers": len(tasks),
                "failed_handlers": 0,
            }

        results = await asyncio.gather(*tasks, return_exceptions=True)
        failed = 0
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                failed += 1
                self._stats["errors_count"] += 1
                self.logger.error(
                    "Handler execution failed",
                    event_type=event_type.__name__,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(result),
                )

        return {
            "event_id": event.event_id,
            "handlers_executed": len(handlers),
            "successful_handlers": len(handlers) - failed,
            "failed_handlers": failed,
        }

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._pending_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._stats["errors_count"] += 1
            self.logger.error(
                "Background handler failed", error=str(task.exception())
            )

    def _add_to_history(self, event: DomainEvent) -> None:
        self._event_history.append(
            {
                "event_type": type(event).__name__,
                "event_id": event.event_id,
                "timestamp": event.timestamp.isoformat(),
            }
        )

        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size :]

    def get_statistics(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        return {
            **self._stats,
            "registered_event_types": len(self._handlers),
            "total_handlers": sum(len(h) for h in self._handlers.values()),
            "history_size": len(self._event_history),
        }

    def get_event_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent event history."""
        return self._event_history[-limit:] if self._event_history else []
