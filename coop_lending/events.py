"""
Event System Module

Publish/subscribe dispatcher for loan lifecycle changes. The state machine
publishes after each committed write; presentation layers subscribe instead
of polling or listening to storage.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
from threading import RLock

from .logging_config import get_logger


class DomainEvent(Enum):
    """Domain events raised by the lending core"""

    # Loan events
    LOAN_CREATED = "loan.created"
    LOAN_UPDATED = "loan.updated"
    LOAN_VERIFIED = "loan.verified"
    LOAN_APPROVED = "loan.approved"
    LOAN_DENIED = "loan.denied"
    LOAN_RELEASED = "loan.released"
    LOAN_FULLY_PAID = "loan.fully_paid"

    # Payment events
    PAYMENT_PAID = "payment.paid"
    PENALTY_WAIVED = "payment.penalty_waived"
    PENALTY_DEFERRED = "payment.penalty_deferred"
    SCHEDULE_REANCHORED = "payment.schedule_reanchored"

    # Settings events
    PENALTY_SETTINGS_UPDATED = "settings.penalty_updated"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


class EventDispatcher:
    """Central event dispatcher (publish/subscribe)"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._lock = RLock()
        self.logger = get_logger("coop_lending.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed {getattr(handler, '__name__', repr(handler))} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to every event"""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
            else:
                self.logger.warning(
                    f"Handler {getattr(handler, '__name__', repr(handler))} was not subscribed to {event_type.value}"
                )

    def publish(self, event: EventPayload) -> None:
        """Deliver an event to its subscribers, then to the global handlers"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        self.logger.debug(f"Publishing {event.event_type.value} for {event.entity_type}:{event.entity_id}")
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # A failing subscriber must not undo an already committed write
                self.logger.exception(
                    f"Error in event handler {getattr(handler, '__name__', repr(handler))} "
                    f"for {event.event_type.value}"
                )

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)


class EventPublisherMixin:
    """Mixin to add event publishing to domain services"""

    _event_dispatcher: Optional[EventDispatcher] = None

    def set_event_dispatcher(self, event_dispatcher: EventDispatcher) -> None:
        self._event_dispatcher = event_dispatcher

    def publish_event(self, event_type: DomainEvent, entity_type: str, entity_id: str,
                      data: Dict[str, Any]) -> None:
        """Publish a domain event if a dispatcher is attached"""
        if self._event_dispatcher is None:
            return
        self._event_dispatcher.publish(EventPayload(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            data=data
        ))


def loan_event_data(loan, **extra: Any) -> Dict[str, Any]:
    """Standard event data for a loan"""
    data = {
        "loan_number": loan.loan_number,
        "applicant_name": loan.applicant_name,
        "amount": str(loan.amount),
        "payment_term": loan.payment_term,
        "status": loan.status.value,
        "version": loan.version,
    }
    data.update(extra)
    return data
