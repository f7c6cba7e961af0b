from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Iterator

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import OUTBOX_BACKOFF_SECONDS, OUTBOX_MAX_ATTEMPTS
from app.core.database import SessionLocal
from app.models.outbox_event import OutboxEvent
from app.services.event_bus import EventBus, event_bus

logger = logging.getLogger(__name__)

_DISPATCH_SESSION: ContextVar[Session | None] = ContextVar("outbox_dispatch_session", default=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def bound_session(db: Session) -> Iterator[Session]:
    token = _DISPATCH_SESSION.set(db)
    try:
        yield db
    finally:
        _DISPATCH_SESSION.reset(token)


def get_bound_session() -> Session | None:
    return _DISPATCH_SESSION.get()


def enqueue(db: Session, kind: str, payload: dict[str, Any]) -> OutboxEvent:
    """Registra o efeito colateral na mesma transação da mudança de estado."""
    event = OutboxEvent(
        kind=kind,
        payload=payload,
        status=OutboxEvent.STATUS_PENDING,
        attempts=0,
        available_at=utcnow(),
    )
    db.add(event)
    return event


def _backoff(attempts: int) -> timedelta:
    return timedelta(seconds=OUTBOX_BACKOFF_SECONDS * (2 ** max(attempts - 1, 0)))


def dispatch_event(db: Session, event: OutboxEvent, bus: EventBus | None = None, now: datetime | None = None) -> bool:
    bus = bus or event_bus
    now = now or utcnow()
    event_id = event.id
    kind = event.kind
    payload = dict(event.payload or {})

    with bound_session(db):
        ok = bus.emit(kind, payload)

    if not ok:
        # descarta o que um handler possa ter deixado pela metade
        db.rollback()
        event = db.get(OutboxEvent, event_id)

    event.attempts = int(event.attempts or 0) + 1
    if ok:
        event.status = OutboxEvent.STATUS_SENT
        event.sent_at = now
        event.last_error = None
    elif event.attempts >= OUTBOX_MAX_ATTEMPTS:
        event.status = OutboxEvent.STATUS_FAILED
        event.last_error = f"{kind} failed after {event.attempts} attempts"
        logger.error("outbox event %s (%s) gave up after %s attempts", event_id, kind, event.attempts)
    else:
        event.last_error = f"{kind} handler failed"
        event.available_at = now + _backoff(event.attempts)
        logger.warning("outbox event %s (%s) will be retried attempt=%s", event_id, kind, event.attempts)
    db.commit()
    return ok


def dispatch_events(db: Session, event_ids: Iterable[int], bus: EventBus | None = None) -> int:
    ids = [event_id for event_id in event_ids if event_id is not None]
    if not ids:
        return 0
    events = (
        db.query(OutboxEvent)
        .filter(OutboxEvent.id.in_(ids), OutboxEvent.status == OutboxEvent.STATUS_PENDING)
        .order_by(OutboxEvent.id.asc())
        .all()
    )
    sent = 0
    for event in events:
        if dispatch_event(db, event, bus=bus):
            sent += 1
    return sent


def dispatch_pending(
    db: Session,
    limit: int = 100,
    bus: EventBus | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    now = now or utcnow()
    events = (
        db.query(OutboxEvent)
        .filter(
            OutboxEvent.status == OutboxEvent.STATUS_PENDING,
            or_(OutboxEvent.available_at.is_(None), OutboxEvent.available_at <= now),
        )
        .order_by(OutboxEvent.id.asc())
        .limit(limit)
        .all()
    )
    summary = {"processed": 0, "sent": 0, "retrying": 0}
    for event in events:
        summary["processed"] += 1
        if dispatch_event(db, event, bus=bus, now=now):
            summary["sent"] += 1
        else:
            summary["retrying"] += 1
    if summary["processed"]:
        logger.info("outbox dispatch summary=%s", summary)
    return summary


def dispatch_in_new_session(event_ids: list[int]) -> None:
    """Usado em BackgroundTasks depois do commit da requisição."""
    db = SessionLocal()
    try:
        dispatch_events(db, event_ids)
    except Exception:
        logger.exception("outbox background dispatch failed ids=%s", event_ids)
    finally:
        db.close()
