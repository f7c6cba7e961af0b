from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class Broadcaster(ABC):
    """Transporte de broadcast (WebSocket/pusher); fora do núcleo."""

    @abstractmethod
    def publish(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingBroadcaster(Broadcaster):
    def publish(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        logger.info("broadcast channel=%s event=%s", channel, event_name, extra={"event": event_name})


class InMemoryBroadcaster(Broadcaster):
    def __init__(self) -> None:
        self.published: list[tuple[str, str, dict[str, Any]]] = []

    def publish(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        self.published.append((channel, event_name, payload))

    def channels_for(self, event_name: str) -> list[str]:
        return [channel for channel, name, _ in self.published if name == event_name]


_broadcaster: Broadcaster = LoggingBroadcaster()


def get_broadcaster() -> Broadcaster:
    return _broadcaster


def set_broadcaster(broadcaster: Broadcaster) -> Broadcaster:
    global _broadcaster
    previous = _broadcaster
    _broadcaster = broadcaster
    return previous
