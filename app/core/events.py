# app/core/events.py

import inspect
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, DefaultDict, List, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# --- Event names ---

ORDER_PAID = "order:paid"
ORDER_CANCELLED = "order:cancelled"
POINTS_EARNED = "points:earned"
POINTS_REFUNDED = "points:refunded"
POINTS_EXPIRING_SOON = "points:expiring-soon"

POINTS_EVENTS = (POINTS_EARNED, POINTS_REFUNDED, POINTS_EXPIRING_SOON)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Payloads (camelCase on the wire) ---

class EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderPaidEvent(EventPayload):
    order_id: str
    user_id: str


class OrderCancelledEvent(EventPayload):
    order_id: str


class PointsEarnedEvent(EventPayload):
    user_id: str
    order_id: str
    amount: int
    new_balance: int
    timestamp: datetime = Field(default_factory=_utcnow)


class PointsRefundedEvent(EventPayload):
    user_id: str
    order_id: str
    amount: int
    new_balance: int
    timestamp: datetime = Field(default_factory=_utcnow)


class PointsExpiringSoonEvent(EventPayload):
    user_id: str
    expiring_amount: int
    expires_at: datetime
    timestamp: datetime = Field(default_factory=_utcnow)


# --- Bus ---

Handler = Callable[[str, Any], Union[None, Awaitable[None]]]


class EventBus:
    """
    In-process publish/subscribe. Handlers receive (event_name, payload) and may
    be plain functions or coroutines. A failing handler is logged and skipped,
    the emitter never sees its exception.
    """

    def __init__(self):
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        if handler in self._handlers[event_name]:
            self._handlers[event_name].remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def handlers(self, event_name: str) -> List[Handler]:
        return list(self._handlers.get(event_name, []))

    async def emit(self, event_name: str, payload: Any) -> None:
        for handler in self.handlers(event_name):
            try:
                result = handler(event_name, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(f"Handler {getattr(handler, '__name__', handler)!r} failed for event '{event_name}'", exc_info=True)


class RedisEventPublisher:
    """Forwards points events to Redis pub/sub, one channel per event name."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def __call__(self, event_name: str, payload: EventPayload) -> None:
        message = payload.model_dump_json(by_alias=True)
        await self.redis.publish(event_name, message)
        logger.debug(f"Published '{event_name}': {message}")

    def register(self, bus: "EventBus") -> None:
        for event_name in POINTS_EVENTS:
            bus.subscribe(event_name, self)


event_bus = EventBus()
