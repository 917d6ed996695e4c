# app/schemas/points.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.points import PointTransactionType


class PointBalanceRead(BaseModel):
    current_balance: int = 0
    lifetime_earned: int = 0
    lifetime_used: int = 0
    lifetime_expired: int = 0

    class Config:
        from_attributes = True


class PointTransactionRead(BaseModel):
    id: int
    transaction_type: PointTransactionType
    amount: int
    balance_after: int
    order_id: str | None = None
    reason: str | None = None
    expires_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class PointsMutationResult(BaseModel):
    new_balance: int


class PointHistoryQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    transaction_type: Optional[PointTransactionType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class AdjustPointsRequest(BaseModel):
    """Manual adjustment made by an administrator."""
    type: Literal["add", "subtract"]
    amount: int = Field(..., ge=1)
    reason: str = Field(..., min_length=10)


class RedemptionValidationRequest(BaseModel):
    points_to_use: int = Field(..., ge=1)
    order_total: float = Field(..., ge=0)


class PointsConfigSchema(BaseModel):
    points_enabled: bool
    point_earning_rate: float
    point_min_redemption: int
    point_max_redemption_pct: int
    point_expiration_enabled: bool
    point_expiration_months: int

    class Config:
        from_attributes = True


class PointsConfigUpdate(BaseModel):
    """
    Partial update of the points configuration.
    Only the fields that were actually sent are applied.
    """
    points_enabled: Optional[bool] = None
    point_earning_rate: Optional[float] = Field(None, ge=0, le=100)
    point_min_redemption: Optional[int] = Field(None, ge=0)
    point_max_redemption_pct: Optional[int] = Field(None, ge=1, le=100)
    point_expiration_enabled: Optional[bool] = None
    point_expiration_months: Optional[int] = Field(None, ge=1, le=120)


class ExpirationReport(BaseModel):
    skipped_reason: str | None = None
    users_processed: int = 0
    users_skipped: int = 0
    users_failed: int = 0
    points_expired: int = 0
    warnings_emitted: int = 0
