# app/services/points_events.py

import calendar
import logging
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy.exc import IntegrityError

from app.clients.commerce import commerce_client
from app.core import events
from app.core.events import (
    OrderCancelledEvent,
    OrderPaidEvent,
    PointsEarnedEvent,
    PointsRefundedEvent,
    event_bus,
)
from app.core.exceptions import DuplicateEarningError
from app.core.redis import redis_client
from app.crud import points as crud_points
from app.db.session import SessionLocal
from app.models.points import PointTransactionType
from app.services import points as points_service
from app.services import points_config as points_config_service

logger = logging.getLogger(__name__)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the end of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def calculate_earned_points(order_total, earning_rate) -> int:
    """floor(order_total * earning_rate / 100), computed in Decimal to avoid float drift."""
    earned = Decimal(str(order_total)) * Decimal(str(earning_rate)) / Decimal(100)
    return int(earned.to_integral_value(rounding=ROUND_FLOOR))


def _guard_duplicate_earning(db, order_id: str) -> None:
    if crud_points.get_order_transaction(db, order_id, PointTransactionType.EARNED_ORDER):
        raise DuplicateEarningError(order_id)


async def handle_order_paid(payload: OrderPaidEvent, session_factory=None, redis=None, order_client=None) -> None:
    """
    Credits points for a paid order. Safe to call more than once for the same
    order: the second call finds the existing EARNED_ORDER row and does nothing.
    Never raises.
    """
    session_factory = session_factory or SessionLocal
    redis = redis or redis_client
    order_client = order_client or commerce_client

    try:
        with session_factory() as db:
            config = await points_config_service.get_points_config(db, redis)
        if not config.points_enabled:
            return

        # No session is held while the order service answers
        order = await order_client.get_order(payload.order_id)
        if order is None:
            logger.warning(f"Order {payload.order_id} not found for points earning")
            return

        earned_points = calculate_earned_points(order.total, config.point_earning_rate)
        if earned_points <= 0:
            logger.info(f"Order {payload.order_id}: total {order.total} earns no points.")
            return

        with session_factory() as db:
            try:
                _guard_duplicate_earning(db, payload.order_id)
            except DuplicateEarningError as e:
                logger.warning(e.message)
                return

            expires_at = None
            if config.point_expiration_enabled:
                expires_at = add_months(datetime.now(timezone.utc), config.point_expiration_months)

            try:
                result = points_service.add_points(
                    db,
                    user_id=payload.user_id,
                    amount=earned_points,
                    transaction_type=PointTransactionType.EARNED_ORDER,
                    order_id=payload.order_id,
                    expires_at=expires_at,
                )
            except IntegrityError:
                # A concurrent delivery of the same event won the unique index
                logger.warning(f"Points already earned for order {payload.order_id}")
                return

        logger.info(f"Earned {earned_points} points for order {payload.order_id}, user {payload.user_id}")

        await event_bus.emit(
            events.POINTS_EARNED,
            PointsEarnedEvent(
                user_id=payload.user_id,
                order_id=payload.order_id,
                amount=earned_points,
                new_balance=result.new_balance,
            ),
        )
    except Exception:
        logger.error(f"Failed to process points earning for order {payload.order_id}", exc_info=True)


async def handle_order_cancelled(payload: OrderCancelledEvent, session_factory=None, order_client=None) -> None:
    """Gives back the points that were redeemed on a cancelled order. Never raises."""
    session_factory = session_factory or SessionLocal
    order_client = order_client or commerce_client

    try:
        order = await order_client.get_order(payload.order_id)
        if order is None or order.points_used <= 0:
            return

        with session_factory() as db:
            if crud_points.get_order_transaction(db, payload.order_id, PointTransactionType.REFUND_CANCELLED):
                logger.warning(f"Points already refunded for cancelled order {payload.order_id}")
                return

            result = points_service.add_points(
                db,
                user_id=order.user_id,
                amount=order.points_used,
                transaction_type=PointTransactionType.REFUND_CANCELLED,
                order_id=payload.order_id,
                reason=f"Refund for cancelled order {payload.order_id}",
            )

        logger.info(f"Refunded {order.points_used} points for cancelled order {payload.order_id}")

        await event_bus.emit(
            events.POINTS_REFUNDED,
            PointsRefundedEvent(
                user_id=order.user_id,
                order_id=payload.order_id,
                amount=order.points_used,
                new_balance=result.new_balance,
            ),
        )
    except Exception:
        logger.error(f"Failed to refund points for cancelled order {payload.order_id}", exc_info=True)


# --- Bus adapters ---

async def _on_order_paid(event_name: str, payload) -> None:
    if not isinstance(payload, OrderPaidEvent):
        payload = OrderPaidEvent.model_validate(payload)
    await handle_order_paid(payload)


async def _on_order_cancelled(event_name: str, payload) -> None:
    if not isinstance(payload, OrderCancelledEvent):
        payload = OrderCancelledEvent.model_validate(payload)
    await handle_order_cancelled(payload)


def register_points_event_handlers(bus=None) -> None:
    """Subscribes the order lifecycle handlers to the event bus."""
    bus = bus or event_bus
    bus.subscribe(events.ORDER_PAID, _on_order_paid)
    bus.subscribe(events.ORDER_CANCELLED, _on_order_cancelled)
