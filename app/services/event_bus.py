from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List


Handler = Callable[[dict[str, Any]], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: dict[str, Any]) -> bool:
        """Chama todos os handlers; retorna False se algum falhar."""
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return True
        ok = True
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                ok = False
                self._logger.exception("EventBus handler failed for %s", event_name, extra={"event": event_name})
        return ok

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def has_handlers(self, event_name: str) -> bool:
        return bool(self._handlers.get(event_name))


event_bus = EventBus()
