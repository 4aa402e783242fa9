"""Typed event bus: synchronous publish/subscribe with pattern matching."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Event bus with pattern matching (e.g. 'queue:*').

    Emission may happen from the queue worker or tool threads, so the handler
    tables are copied under a lock before dispatch.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._wildcard: list[Handler] = []
        self._lock = threading.Lock()

    def on(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def on_pattern(self, pattern: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[pattern].append(handler)

    def on_all(self, handler: Handler) -> None:
        with self._lock:
            self._wildcard.append(handler)

    def off(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: Any) -> None:
        event_type = getattr(event, "type", "")
        with self._lock:
            exact = list(self._handlers.get(event_type, [])) + list(self._wildcard)
            patterns = [(p, list(h)) for p, h in self._handlers.items() if p.endswith(":*")]
        for h in exact:
            try:
                h(event)
            except Exception:
                logger.exception("Event handler error for %s", event_type)
        # Pattern match: 'queue:*' matches 'queue:request_started', etc.
        for pat, handlers in patterns:
            prefix = pat[:-1]
            if event_type.startswith(prefix):
                for h in handlers:
                    try:
                        h(event)
                    except Exception:
                        logger.exception("Pattern handler error for %s", pat)


def emit_to(emitter: Any | None, event: Any) -> None:
    """Emit ``event`` if an emitter is attached; no-op otherwise."""
    if emitter is not None:
        emitter.emit(event)
