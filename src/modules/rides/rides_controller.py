# src/modules/rides/rides_controller.py
"""Rides controller: acceptance, stage updates, completion, cancellation and the event stream."""

import asyncio
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.database.database import get_db_session
from src.common.events import event_bus
from src.common.routing import RoutingService, get_routing_service
from src.common.utils.exceptions import (
    ConcurrencyConflictError, PreconditionFailedError, QuoteUnavailableError, RideNotFoundError,
)
from src.common.utils.global_messages import GlobalMessages
from src.auth.dependencies import get_current_rider, get_current_user, get_current_user_id
from src.models.models import AppointmentStatus, Profile, RideStatus
from src.modules.appointments.appointments_service import build_appointment_response

from . import rides_service as service
from .schemas import (
    AcceptRideRequest, AdvanceStageRequest, CompleteRideRequest,
    CompletionResponse, InvoiceResponse, PartyInfo, RideActionResponse, RideResponse,
)

router = APIRouter(prefix="/rides", tags=["Rides"])

KEEPALIVE_SECONDS = 15


def _party_info(profile: Optional[Profile]) -> Optional[PartyInfo]:
    if profile is None:
        return None
    return PartyInfo(id=profile.id, full_name=profile.full_name, phone=profile.phone)


# ============================================================================
# COLLECTION ENDPOINTS (must come before /{ride_id} routes)
# ============================================================================

@router.post("/accept/{appointment_id}", response_model=RideActionResponse, status_code=201)
async def accept_ride(
    appointment_id: UUID,
    request: Optional[AcceptRideRequest] = None,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_rider),
    routing: RoutingService = Depends(get_routing_service)
):
    """Quote the round trip and claim the appointment for the calling rider."""
    appointment = await service.get_appointment(db, appointment_id)
    if appointment.status in service.CLOSED_APPOINTMENT_STATUSES:
        raise PreconditionFailedError(
            GlobalMessages.APPOINTMENT_CLOSED.format(status=appointment.status.value)
        )
    if appointment.status != AppointmentStatus.PENDING:
        raise ConcurrencyConflictError(GlobalMessages.APPOINTMENT_ALREADY_ACCEPTED)

    estimate = await routing.estimate_round_trip(appointment.pickup_location, appointment.hospital_address)
    if estimate is None:
        raise QuoteUnavailableError()
    trip = estimate.round_trip()

    enhanced = request.assistance_enhanced if request else False
    ride = await service.accept_ride(
        db, appointment_id, current_user.id, trip.distance_km, trip.duration_minutes,
        assistance_enhanced=enhanced,
    )
    ride = await service.get_ride(db, ride.id)
    return RideActionResponse(
        success=True,
        message=GlobalMessages.RIDE_ACCEPTED,
        ride=service.build_ride_response(ride)
    )


@router.get("/events")
async def stream_events(
    request: Request,
    user_id: UUID = Depends(get_current_user_id)
):
    """
    Server-sent stream of ride and notification events for the caller.

    Events older than the staleness window when they reach the stream are
    skipped, so a reconnecting client is not flooded with old updates.
    """
    async def event_stream():
        async with event_bus.subscribe(user_id=user_id) as subscription:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(subscription.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if event.is_stale():
                    continue
                yield f"event: {event.type.value}\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/appointment/{appointment_id}", response_model=RideResponse)
async def get_ride_for_appointment(
    appointment_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Get the ride opened for an appointment."""
    ride = await service.get_ride_for_appointment(db, appointment_id)
    if ride is None:
        raise RideNotFoundError()
    service.ensure_ride_party(ride, current_user)
    return service.build_ride_response(ride)


@router.get("/invoice/{appointment_id}", response_model=InvoiceResponse)
async def get_invoice(
    appointment_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Appointment, ride and both parties, for the invoice view."""
    appointment, ride, patient, rider = await service.get_invoice(db, appointment_id, current_user)
    return InvoiceResponse(
        appointment=build_appointment_response(appointment),
        ride=service.build_ride_response(ride) if ride else None,
        patient=_party_info(patient),
        rider=_party_info(rider),
    )


# ============================================================================
# SINGLE RIDE ENDPOINTS
# ============================================================================

@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(
    ride_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Get a single ride by ID."""
    ride = await service.get_ride(db, ride_id)
    service.ensure_ride_party(ride, current_user)
    return service.build_ride_response(ride)


@router.post("/{ride_id}/stages", response_model=RideActionResponse)
async def advance_stage(
    ride_id: UUID,
    request: AdvanceStageRequest,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_rider)
):
    """Move the ride to its next stage."""
    ride = await service.advance_stage(
        db, ride_id, current_user.id, RideStatus(request.status.value),
        notes=request.notes, eta_minutes=request.eta_minutes,
    )
    return RideActionResponse(
        success=True,
        message=f"Ride is now {ride.status.value}.",
        ride=service.build_ride_response(ride)
    )


@router.post("/{ride_id}/complete", response_model=CompletionResponse)
async def complete_ride(
    ride_id: UUID,
    request: Optional[CompleteRideRequest] = None,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Confirm the trip has concluded. The second party's confirmation finalizes the ride."""
    request = request or CompleteRideRequest()
    outcome = await service.mark_completed(
        db, ride_id, current_user,
        waiting_minutes=request.waiting_minutes, notes=request.notes,
    )

    if outcome.finalized:
        message = GlobalMessages.COMPLETION_FINALIZED
    elif outcome.ride.finalized_at is not None:
        message = GlobalMessages.COMPLETION_ALREADY_FINALIZED
    else:
        message = GlobalMessages.COMPLETION_RECORDED

    return CompletionResponse(
        success=True,
        message=message,
        finalized=outcome.ride.finalized_at is not None,
        ride=service.build_ride_response(outcome.ride)
    )


@router.post("/{ride_id}/cancel", response_model=RideActionResponse)
async def cancel_ride(
    ride_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Cancel the ride and its appointment. No fare is charged."""
    await service.cancel(db, current_user, ride_id=ride_id)
    ride = await service.get_ride(db, ride_id)
    return RideActionResponse(
        success=True,
        message=GlobalMessages.RIDE_CANCELLED,
        ride=service.build_ride_response(ride)
    )
