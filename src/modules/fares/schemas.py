# src/modules/fares/schemas.py
"""Fare module Pydantic schemas."""

from decimal import Decimal
from pydantic import BaseModel


class FareBreakdown(BaseModel):
    """Fare components for one round trip, in rupees."""
    base_fare: Decimal
    distance_fare: Decimal
    time_fare: Decimal
    assistance_fee: Decimal
    total: Decimal


class FareQuoteResponse(BaseModel):
    """Fare preview for an appointment's round trip."""
    distance_km: Decimal
    duration_minutes: int
    enhanced_support: bool
    fare: FareBreakdown
