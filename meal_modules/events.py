"""
Domain events published by the module services.

The engine computes amounts but never moves money or sends notifications.
Services publish a ``BenefitEvent`` after each successful commit and the
budget-ledger and notification collaborators subscribe through an
``EventSink``.

Event types:
    subscription.created      payload: subscription_id, employee_id, total_price, day_count
    subscription.cancelled    payload: subscription_id, employee_id, refund_amount
    subscription.renewed      payload: subscription_id, renewed_from_id
    order.frozen              payload: order_id, subscription_id, end_date
    order.unfrozen            payload: order_id, subscription_id, end_date
    orders.settled            payload: company_id, employee_id, order_count, amount
    compensation.created      payload: compensation_id, employee_id, total_budget
    compensation.cancelled    payload: compensation_id, refund_amount
    compensation.transaction  payload: compensation_id, company_pays, employee_pays
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID, uuid4

from meal_kernel.logging_config import get_logger

logger = get_logger("modules.events")


@dataclass(frozen=True)
class BenefitEvent:
    """Immutable record of something that happened to a benefit."""

    event_type: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)


@runtime_checkable
class EventSink(Protocol):
    """Receiver of domain events."""

    def publish(self, event: BenefitEvent) -> None: ...


class NullEventSink:
    """Default sink: events are logged at DEBUG and dropped."""

    def publish(self, event: BenefitEvent) -> None:
        logger.debug(
            "event_dropped",
            extra={"event_type": event.event_type, "event_id": str(event.event_id)},
        )


class RecordingEventSink:
    """Keeps every published event in memory, in publication order."""

    def __init__(self) -> None:
        self.events: list[BenefitEvent] = []

    def publish(self, event: BenefitEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[BenefitEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)
