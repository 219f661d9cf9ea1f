# src/modules/appointments/schemas.py
"""Appointments module Pydantic schemas."""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from uuid import UUID
from enum import Enum

from src.modules.fares.schemas import FareQuoteResponse


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class AppointmentCreateRequest(BaseModel):
    """Request to book a ride to a hospital appointment."""
    hospital_name: str = Field(min_length=1, max_length=255)
    hospital_address: str = Field(min_length=1)
    appointment_date: datetime
    pickup_location: str = Field(min_length=1)
    estimated_duration: Optional[str] = Field(default=None, max_length=50)
    special_instructions: Optional[str] = None


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class AppointmentResponse(BaseModel):
    """Full appointment details."""
    id: UUID
    patient_id: UUID
    rider_id: Optional[UUID] = None
    hospital_name: str
    hospital_address: str
    appointment_date: datetime
    estimated_duration: Optional[str] = None
    pickup_location: str
    special_instructions: Optional[str] = None
    status: AppointmentStatus
    total_cost: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentListResponse(BaseModel):
    """Paginated list of appointments."""
    appointments: List[AppointmentResponse]
    total: int
    page: int = 1
    per_page: int = 20


class AppointmentActionResponse(BaseModel):
    """Generic response for appointment actions."""
    success: bool
    message: str
    appointment: Optional[AppointmentResponse] = None


class AppointmentQuoteResponse(BaseModel):
    """Fare preview for a pending booking."""
    appointment_id: UUID
    quote: FareQuoteResponse
