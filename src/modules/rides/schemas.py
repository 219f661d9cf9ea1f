# src/modules/rides/schemas.py
"""Rides module Pydantic schemas."""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from enum import Enum

from pydantic import BaseModel, Field

from src.modules.appointments.schemas import AppointmentResponse
from src.modules.ride_status.schemas import RideStatusEnum


class AdvanceableStage(str, Enum):
    PICKUP = "pickup"
    EN_ROUTE = "en_route"
    AT_HOSPITAL = "at_hospital"
    IN_APPOINTMENT = "in_appointment"
    RETURNING = "returning"


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class AcceptRideRequest(BaseModel):
    """Rider accepts a pending appointment."""
    assistance_enhanced: bool = False


class AdvanceStageRequest(BaseModel):
    """Move the ride to its next stage."""
    status: AdvanceableStage
    notes: Optional[str] = Field(default=None, max_length=1000)
    # Only used when heading out for pickup
    eta_minutes: Optional[int] = Field(default=None, ge=0, le=600)


class CompleteRideRequest(BaseModel):
    """One party confirms the trip has concluded."""
    waiting_minutes: int = Field(default=0, ge=0, le=1440)
    notes: Optional[str] = Field(default=None, max_length=1000)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class RideResponse(BaseModel):
    """Full ride details."""
    id: UUID
    appointment_id: UUID
    patient_id: UUID
    rider_id: UUID
    status: RideStatusEnum
    distance_km: Optional[Decimal] = None
    duration_minutes: Optional[int] = None
    assistance_enhanced: bool
    base_fare: Decimal
    distance_fare: Decimal
    time_fare: Decimal
    assistance_fee: Decimal
    total_fare: Optional[Decimal] = None
    waiting_minutes: Optional[int] = None
    rider_completed: bool
    patient_completed: bool
    patient_notes: Optional[str] = None
    rider_notes: Optional[str] = None
    pickup_time: Optional[datetime] = None
    dropoff_time: Optional[datetime] = None
    return_pickup_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RideActionResponse(BaseModel):
    """Generic response for ride actions."""
    success: bool
    message: str
    ride: Optional[RideResponse] = None


class CompletionResponse(BaseModel):
    success: bool
    message: str
    finalized: bool
    ride: RideResponse


class PartyInfo(BaseModel):
    id: UUID
    full_name: str
    phone: Optional[str] = None


class InvoiceResponse(BaseModel):
    """Everything the invoice view renders for one appointment."""
    appointment: AppointmentResponse
    ride: Optional[RideResponse] = None
    patient: Optional[PartyInfo] = None
    rider: Optional[PartyInfo] = None
