# app/services/points_config.py

import logging
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from app.core.config import settings as app_settings
from app.crud import points as crud_points
from app.models.points_config import PointsConfig
from app.schemas.points import PointsConfigSchema, PointsConfigUpdate

logger = logging.getLogger(__name__)

CACHE_KEY = "points_config"


def get_or_create_default(db: Session) -> PointsConfig:
    """Returns the single config row, creating it with default values if the table is empty."""
    config = crud_points.get_first_config(db)
    if config is None:
        logger.info("No points configuration found. Creating one with defaults.")
        config = crud_points.create_default_config(db)
    return config


async def get_points_config(db: Session, redis: Redis) -> PointsConfigSchema:
    """
    Returns the points program configuration.
    Served from Redis when possible, so the value may be stale for up to
    POINTS_CONFIG_CACHE_TTL_SECONDS after an update made by another process.
    """
    try:
        cached_config = await redis.get(CACHE_KEY)
    except RedisError:
        logger.warning("Redis unavailable while reading points config. Falling back to the database.", exc_info=True)
        cached_config = None

    if cached_config:
        try:
            return PointsConfigSchema.model_validate_json(cached_config)
        except ValueError as e:
            logger.warning(f"Failed to validate cached points config: {e}. Reading fresh config.")

    config = PointsConfigSchema.model_validate(get_or_create_default(db))

    try:
        await redis.set(CACHE_KEY, config.model_dump_json(), ex=app_settings.POINTS_CONFIG_CACHE_TTL_SECONDS)
    except RedisError:
        logger.warning("Failed to cache points config in Redis.", exc_info=True)

    return config


async def update_points_config(db: Session, redis: Redis, update: PointsConfigUpdate) -> PointsConfigSchema:
    """Applies only the fields that were supplied and drops the cached copy."""
    config = get_or_create_default(db)

    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(config, field, value)
    db.commit()
    db.refresh(config)

    try:
        await redis.delete(CACHE_KEY)
    except RedisError:
        logger.warning("Failed to invalidate cached points config.", exc_info=True)

    logger.info(f"Points configuration updated: {changes}")
    return PointsConfigSchema.model_validate(config)
