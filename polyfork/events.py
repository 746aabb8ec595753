"""Event bus for fork lifecycle notifications.

Event hierarchy (all frozen dataclasses):

    ForkEvent (base)
    ├── ForkAdded       : emitted when the store accepted a new fork node
    ├── ForkRemoved     : emitted when the store removed a fork node
    └── ReplicasMerged  : emitted after a local/remote sync wrote its result

Usage::

    bus = EventBus()
    bus.subscribe(ForkAdded, refresh_indicators)
    bus.emit(ForkAdded(conversation_id="c1", turn_id="u-0", fork_group_id="fork-1"))

Handlers are called synchronously in subscription order.  Exceptions in
a handler are logged but do not prevent subsequent handlers from running.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from polyfork.lib.log import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound="ForkEvent")


@dataclass(frozen=True)
class ForkEvent:
    """Base class for all fork events."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


@dataclass(frozen=True)
class ForkAdded(ForkEvent):
    conversation_id: str = ""
    turn_id: str = ""
    fork_group_id: str = ""


@dataclass(frozen=True)
class ForkRemoved(ForkEvent):
    conversation_id: str = ""
    turn_id: str = ""
    fork_group_id: str = ""


@dataclass(frozen=True)
class ReplicasMerged(ForkEvent):
    local_nodes: int = 0
    remote_nodes: int = 0
    merged_nodes: int = 0
    groups: int = 0


EventHandler = Callable[[Any], None]


class EventBus:
    """Central event dispatcher.

    Handlers receive only events of the exact type they subscribed to;
    subscribe to ``ForkEvent`` to receive every event.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Remove a previously registered handler. No-op if it was never registered."""
        handlers = self._handlers.get(event_type)
        if handlers:
            with suppress(ValueError):
                handlers.remove(handler)

    def emit(self, event: ForkEvent) -> None:
        event_type = type(event)
        targets = list(self._handlers.get(event_type, ()))
        if event_type is not ForkEvent:
            targets.extend(self._handlers.get(ForkEvent, ()))
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "event_handler_failed",
                    handler=getattr(handler, "__name__", repr(handler)),
                    event=event_type.__name__,
                )

    @property
    def handler_count(self) -> int:
        return sum(len(h) for h in self._handlers.values())


__all__ = [
    "EventBus",
    "ForkAdded",
    "ForkEvent",
    "ForkRemoved",
    "ReplicasMerged",
]
