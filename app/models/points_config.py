# app/models/points_config.py

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, func

from app.db.session import Base


class PointsConfig(Base):
    """Single-row table with the tunable parameters of the points program."""

    __tablename__ = "points_config"

    id = Column(Integer, primary_key=True, index=True)

    points_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    # Percent of the order total, fractional rates allowed
    point_earning_rate = Column(Numeric(5, 2), nullable=False, default=5, server_default="5")
    point_min_redemption = Column(Integer, nullable=False, default=1000, server_default="1000")
    point_max_redemption_pct = Column(Integer, nullable=False, default=50, server_default="50")
    point_expiration_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    point_expiration_months = Column(Integer, nullable=False, default=12, server_default="12")

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
