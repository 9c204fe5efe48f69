"""In-process event sink.

The engine and the ``core.emit`` action publish lifecycle notifications
here. Emission is fire-and-forget: a failing subscriber is logged and
recorded, never surfaced to the emitter.
"""

import inspect
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import structlog

logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict], Union[Awaitable[None], None]]


class EventSink(Protocol):
    """Anything the engine can publish notifications to."""

    async def emit(self, event: str, payload: Optional[dict] = None) -> None:
        ...


class EventBus:
    """Subscribe/publish bus with a bounded emission log."""

    def __init__(self, max_log_entries: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._log: deque = deque(maxlen=max_log_entries)

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe ``handler`` to ``event``. Returns an unsubscribe callable."""
        self._handlers.setdefault(event, []).append(handler)
        return lambda: self.off(event, handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event, None)

    async def emit(self, event: str, payload: Optional[dict] = None) -> None:
        payload = payload or {}
        handlers = list(self._handlers.get(event, []))
        errors: list[str] = []

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                errors.append(str(e))
                logger.error("Event handler failed", event_name=event, error=str(e), exc_info=True)

        self._log.append({
            "event": event,
            "payload": payload,
            "handlers": len(handlers),
            "errors": errors,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    def get_log(self, limit: Optional[int] = None, event: Optional[str] = None) -> list[dict[str, Any]]:
        """Most recent emissions, oldest first."""
        entries = [e for e in self._log if event is None or e["event"] == event]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear_log(self) -> None:
        self._log.clear()

    @property
    def subscribed_events(self) -> list[str]:
        return sorted(self._handlers)
