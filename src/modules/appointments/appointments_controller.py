# src/modules/appointments/appointments_controller.py
"""Appointments controller with API routes."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.database.database import get_db_session
from src.common.routing import RoutingService, get_routing_service
from src.auth.dependencies import get_current_admin, get_current_patient, get_current_rider, get_current_user
from src.models.models import Profile

from . import appointments_service as service
from .schemas import (
    AppointmentResponse, AppointmentListResponse, AppointmentActionResponse,
    AppointmentCreateRequest, AppointmentQuoteResponse,
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


# ============================================================================
# COLLECTION ENDPOINTS (must come before /{appointment_id} routes)
# ============================================================================

@router.post("", response_model=AppointmentActionResponse, status_code=201)
async def create_appointment(
    request: AppointmentCreateRequest,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_patient)
):
    """Book a ride to a hospital appointment."""
    return await service.create_appointment(db, current_user, request)


@router.get("", response_model=AppointmentListResponse)
async def get_appointments(
    status: Optional[str] = Query(None, description="Filter by status: all, pending, accepted, in_progress, completed, cancelled"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Get the caller's appointments with optional status filter."""
    return await service.get_user_appointments(db, current_user, status, page, per_page)


@router.get("/available", response_model=AppointmentListResponse)
async def get_available_appointments(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_rider)
):
    """Pending bookings waiting for a rider."""
    return await service.get_available_appointments(db, page, per_page)


# ============================================================================
# SINGLE APPOINTMENT ENDPOINTS
# ============================================================================

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Get a single appointment by ID."""
    return await service.get_appointment_by_id(db, current_user, appointment_id)


@router.get("/{appointment_id}/quote", response_model=AppointmentQuoteResponse)
async def get_quote(
    appointment_id: UUID,
    enhanced_support: bool = False,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user),
    routing: RoutingService = Depends(get_routing_service)
):
    """Round-trip fare preview. 503 when the route cannot be estimated."""
    return await service.get_quote(db, current_user, appointment_id, routing, enhanced_support)


@router.post("/{appointment_id}/cancel", response_model=AppointmentActionResponse)
async def cancel_appointment(
    appointment_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Cancel an appointment and its ride."""
    return await service.cancel_appointment(db, current_user, appointment_id)


@router.delete("/{appointment_id}", response_model=AppointmentActionResponse)
async def delete_appointment(
    appointment_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_admin)
):
    """Delete an appointment and its ride history."""
    return await service.delete_appointment(db, appointment_id)
