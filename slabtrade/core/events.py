"""
Lifecycle events emitted by the inventory core.

Events are plain pydantic records handed to in-process subscribers after the
owning transaction commits. Delivery is fire-and-forget: a failing subscriber
is logged and never affects the operation that produced the event.
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from slabtrade.core.dates import utc_now

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_APPROVED = "reservation.approved"
    RESERVATION_REJECTED = "reservation.rejected"
    RESERVATION_CANCELLED = "reservation.cancelled"
    RESERVATION_EXPIRED = "reservation.expired"
    SALE_CONFIRMED = "sale.confirmed"


class LifecycleEvent(BaseModel):
    event_type: EventType
    batch_id: str
    industry_id: str
    actor_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ReservationEvent(LifecycleEvent):
    reservation_id: str
    quantity_slabs: int
    status: str
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None


class SaleConfirmedEvent(LifecycleEvent):
    event_type: EventType = EventType.SALE_CONFIRMED
    sale_id: str
    reservation_id: str
    quantity_slabs_sold: int
    sale_price: Decimal
    broker_commission: Decimal
    net_industry_value: Decimal


Subscriber = Callable[[LifecycleEvent], None]


class EventPublisher:
    """Synchronous fan-out to subscribers keyed by event type ("*" for all)."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type, handler: Subscriber) -> None:
        key = event_type.value if isinstance(event_type, EventType) else str(event_type)
        with self._lock:
            self._subscribers.setdefault(key, []).append(handler)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def publish(self, event: LifecycleEvent) -> bool:
        with self._lock:
            handlers = list(self._subscribers.get(event.event_type.value, []))
            handlers.extend(self._subscribers.get("*", []))

        delivered = True
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                delivered = False
                logger.exception(
                    "Event subscriber failed for %s",
                    event.event_type.value,
                    extra={"batch_id": event.batch_id},
                )
        logger.debug("Published %s to %d subscriber(s)", event.event_type.value, len(handlers))
        return delivered


_publisher = EventPublisher()


def get_publisher() -> EventPublisher:
    return _publisher


def publish(event: LifecycleEvent) -> bool:
    return _publisher.publish(event)


__all__ = [
    "EventPublisher",
    "EventType",
    "LifecycleEvent",
    "ReservationEvent",
    "SaleConfirmedEvent",
    "get_publisher",
    "publish",
]
