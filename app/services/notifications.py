from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

STATUS_TEMPLATES = {
    "preparing": "order_preparing",
    "ready": "order_ready",
    "out_for_delivery": "order_out_for_delivery",
    "delivered": "order_delivered",
    "completed": "order_completed",
    "cancelled": "order_cancelled",
}


def template_for_status(status: str | None) -> str | None:
    return STATUS_TEMPLATES.get((status or "").strip().lower())


class CustomerNotifier(ABC):
    """Push / e-mail para o cliente; o transporte real fica fora do núcleo."""

    @abstractmethod
    def send(self, customer_id: int, template: str, variables: dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(CustomerNotifier):
    def send(self, customer_id: int, template: str, variables: dict[str, Any]) -> None:
        logger.info(
            "notify customer template=%s order_id=%s",
            template,
            variables.get("order_id"),
            extra={"customer_id": customer_id},
        )


class InMemoryNotifier(CustomerNotifier):
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, dict[str, Any]]] = []

    def send(self, customer_id: int, template: str, variables: dict[str, Any]) -> None:
        self.sent.append((customer_id, template, variables))


_notifier: CustomerNotifier = LoggingNotifier()


def get_notifier() -> CustomerNotifier:
    return _notifier


def set_notifier(notifier: CustomerNotifier) -> CustomerNotifier:
    global _notifier
    previous = _notifier
    _notifier = notifier
    return previous
