# Overview: Domain events and the in-process notifier boundary they are published to.

"""
Event Notifier

Core operations hand plain event dataclasses to the notifier after their
unit of work has committed. Delivery (websockets, push, webhooks) lives
behind subscribers; the core never depends on it.

Delivery is best-effort: a failing subscriber is logged and skipped, it
never fails the operation that published the event.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from flask import current_app

logger = logging.getLogger(__name__)

NOTIFIER_EXTENSION_KEY = "restopos.notifier"


@dataclass(frozen=True)
class DomainEvent:
    name: str = field(init=False, default="event")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class NewOrderEvent(DomainEvent):
    name: str = field(init=False, default="new_order")
    order_id: int
    order_number: str
    order_source: str
    branch_id: int
    items_count: int
    total: int
    status: str
    created_at: str | None
    table_number: str | None = None
    table_name: str | None = None
    guest_name: str | None = None


@dataclass(frozen=True)
class OrderStatusUpdateEvent(DomainEvent):
    name: str = field(init=False, default="order_status_update")
    order_id: int
    order_number: str
    branch_id: int
    status: str
    previous_status: str
    updated_at: str | None


@dataclass(frozen=True)
class KitchenUpdateEvent(DomainEvent):
    name: str = field(init=False, default="kitchen_update")
    order_id: int
    order_number: str
    branch_id: int
    status: str
    table_number: str | None = None


class EventNotifier:
    """Subscribe by event type, publish invokes handlers synchronously."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], Any]]] = {}

    def subscribe(self, event_type: type, handler: Callable[[Any], Any]) -> None:
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Callable[[Any], Any]) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler %r failed for %s", handler, event.name)


def log_event(event: DomainEvent) -> None:
    logger.info("event %s %s", event.name, event.to_dict())


def create_notifier() -> EventNotifier:
    notifier = EventNotifier()
    notifier.subscribe(DomainEvent, log_event)
    return notifier


def get_notifier() -> EventNotifier:
    return current_app.extensions[NOTIFIER_EXTENSION_KEY]


def publish(event: DomainEvent) -> None:
    get_notifier().publish(event)
