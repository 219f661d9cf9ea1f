# src/modules/earnings/schemas.py
"""Earnings module Pydantic schemas."""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from enum import Enum

from pydantic import BaseModel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class EarningResponse(BaseModel):
    id: UUID
    ride_id: UUID
    amount: Decimal
    commission: Decimal
    net_amount: Decimal
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EarningsListResponse(BaseModel):
    """A rider's earnings with the sum of their net amounts."""
    earnings: List[EarningResponse]
    total_net: Decimal
    total_rides: int
