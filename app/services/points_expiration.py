# app/services/points_expiration.py

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from app.core import events
from app.core.config import settings
from app.core.events import PointsExpiringSoonEvent, event_bus
from app.core.redis import redis_client
from app.crud import points as crud_points
from app.db.session import SessionLocal
from app.models.points import PointTransactionType
from app.schemas.points import ExpirationReport
from app.services import points as points_service
from app.services import points_config as points_config_service

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Points expired"


async def process_expirations(session_factory=None, redis=None, now: datetime | None = None) -> ExpirationReport:
    """
    Daily job: expires matured EARNED_ORDER credits, then warns about credits
    expiring within the warning horizon.

    Every user is handled in its own session and DB transaction. An error for
    one user is logged and rolled back, the loop moves on to the next user.

    Matured credits of a user whose balance is already zero are still marked
    processed. They are never retried, even if the user earns points later.
    """
    session_factory = session_factory or SessionLocal
    redis = redis or redis_client
    now = now or datetime.now(timezone.utc)
    report = ExpirationReport()

    logger.info("--- Starting scheduled job: Expire Points ---")

    with session_factory() as db:
        config = await points_config_service.get_points_config(db, redis)

    if not config.points_enabled or not config.point_expiration_enabled:
        report.skipped_reason = "points disabled" if not config.points_enabled else "expiration disabled"
        logger.info(f"Points expiration skipped: {report.skipped_reason}.")
        return report

    # 1. Matured credits, grouped by owner
    with session_factory() as db:
        matured = crud_points.get_matured_earnings(db, now)
        expiring_by_user: Dict[str, int] = defaultdict(int)
        transaction_ids_by_user: Dict[str, List[int]] = defaultdict(list)
        for transaction in matured:
            user_id = transaction.balance.user_id
            expiring_by_user[user_id] += transaction.amount
            transaction_ids_by_user[user_id].append(transaction.id)

    if expiring_by_user:
        logger.info(f"Found {len(expiring_by_user)} users with matured points to process.")
    else:
        logger.info("No matured points found to process.")

    # 2. One user at a time
    for user_id, total_expiring in expiring_by_user.items():
        with session_factory() as db:
            try:
                # Locked, so a purchase cannot lower the balance between the cap and the deduction
                balance = crud_points.get_balance_for_update(db, user_id)
                current_balance = balance.current_balance if balance else 0
                amount_to_expire = min(total_expiring, current_balance)

                if amount_to_expire > 0:
                    if amount_to_expire < total_expiring:
                        logger.info(
                            f"User {user_id}: {total_expiring} points matured but balance is only "
                            f"{current_balance}. Expiring {amount_to_expire}."
                        )
                    points_service.deduct_points(
                        db,
                        user_id=user_id,
                        amount=amount_to_expire,
                        transaction_type=PointTransactionType.EXPIRED,
                        reason=EXPIRED_REASON,
                        commit=False,
                    )
                else:
                    logger.info(f"User {user_id}: no balance left to expire.")
                    report.users_skipped += 1

                # The matured rows are accounted for even when the deduction was capped or skipped
                crud_points.mark_transactions_as_processed(db, transaction_ids_by_user[user_id])
                db.commit()

                if amount_to_expire > 0:
                    report.users_processed += 1
                    report.points_expired += amount_to_expire
                    logger.info(f"Expired {amount_to_expire} points for user {user_id}")
            except Exception:
                logger.error(f"Failed to expire points for user {user_id}", exc_info=True)
                db.rollback()
                report.users_failed += 1

    # 3. Warnings about points expiring soon
    try:
        report.warnings_emitted = await send_expiration_warnings(session_factory, now)
    except Exception:
        logger.error("Failed to send points expiration warnings", exc_info=True)

    logger.info(
        f"--- Finished scheduled job: Expire Points --- processed={report.users_processed} "
        f"skipped={report.users_skipped} failed={report.users_failed} "
        f"expired={report.points_expired} warnings={report.warnings_emitted}"
    )
    return report


async def send_expiration_warnings(session_factory=None, now: datetime | None = None) -> int:
    """
    Emits one `points:expiring-soon` event per user with credits expiring in
    (now, now + POINTS_EXPIRY_WARNING_DAYS]. The amount is the sum of those
    credits and the date is the earliest of them. Returns the number of events.
    """
    session_factory = session_factory or SessionLocal
    now = now or datetime.now(timezone.utc)
    warning_date = now + timedelta(days=settings.POINTS_EXPIRY_WARNING_DAYS)

    with session_factory() as db:
        rows = crud_points.get_earnings_expiring_between(db, now, warning_date)

    warnings: Dict[str, dict] = {}
    for user_id, amount, expires_at in rows:
        existing = warnings.get(user_id)
        if existing is None:
            warnings[user_id] = {"amount": amount, "expires_at": expires_at}
        else:
            existing["amount"] += amount
            if expires_at < existing["expires_at"]:
                existing["expires_at"] = expires_at

    for user_id, warning in warnings.items():
        await event_bus.emit(
            events.POINTS_EXPIRING_SOON,
            PointsExpiringSoonEvent(
                user_id=user_id,
                expiring_amount=warning["amount"],
                expires_at=warning["expires_at"],
            ),
        )

    if warnings:
        logger.info(f"Sent expiring-soon warnings to {len(warnings)} users.")
    return len(warnings)


async def notify_expiring_points_task(session_factory=None, redis=None) -> int:
    """Standalone run of the warning pass, honouring the same config switches as the full job."""
    session_factory = session_factory or SessionLocal
    redis = redis or redis_client

    with session_factory() as db:
        config = await points_config_service.get_points_config(db, redis)
    if not config.points_enabled or not config.point_expiration_enabled:
        logger.info("Expiring-points warnings skipped: points or expiration disabled.")
        return 0
    return await send_expiration_warnings(session_factory)
