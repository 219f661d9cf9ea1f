# src/modules/appointments/appointments_service.py
"""Appointments service for business logic."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func, delete, desc
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.routing import RoutingService
from src.common.utils.exceptions import ForbiddenActionError, QuoteUnavailableError
from src.common.utils.global_messages import GlobalMessages
from src.models.models import (
    Appointment, AppointmentStatus as DBAppointmentStatus, Earning, Profile,
    Ride, RideCompletion, RideStatusUpdate, UserRole,
)
from src.modules.fares.fare_service import compute_fare, round2
from src.modules.fares.schemas import FareQuoteResponse
from src.modules.rides import rides_service
from .schemas import (
    AppointmentResponse, AppointmentListResponse, AppointmentActionResponse,
    AppointmentCreateRequest, AppointmentQuoteResponse, AppointmentStatus,
)

logger = logging.getLogger(__name__)


def _convert_status(db_status: DBAppointmentStatus) -> AppointmentStatus:
    """Convert database status to schema status."""
    mapping = {
        DBAppointmentStatus.PENDING: AppointmentStatus.PENDING,
        DBAppointmentStatus.ACCEPTED: AppointmentStatus.ACCEPTED,
        DBAppointmentStatus.IN_PROGRESS: AppointmentStatus.IN_PROGRESS,
        DBAppointmentStatus.COMPLETED: AppointmentStatus.COMPLETED,
        DBAppointmentStatus.CANCELLED: AppointmentStatus.CANCELLED,
    }
    return mapping[db_status]


def build_appointment_response(appointment: Appointment) -> AppointmentResponse:
    """Build appointment response."""
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        rider_id=appointment.rider_id,
        hospital_name=appointment.hospital_name,
        hospital_address=appointment.hospital_address,
        appointment_date=appointment.appointment_date,
        estimated_duration=appointment.estimated_duration,
        pickup_location=appointment.pickup_location,
        special_instructions=appointment.special_instructions,
        status=_convert_status(appointment.status),
        total_cost=appointment.total_cost,
        created_at=appointment.created_at,
    )


def _ensure_can_view(appointment: Appointment, user: Profile) -> None:
    # Any rider may look at an open booking before accepting it
    if user.role == UserRole.ADMIN:
        return
    if user.id in (appointment.patient_id, appointment.rider_id):
        return
    if user.role == UserRole.RIDER and appointment.status == DBAppointmentStatus.PENDING:
        return
    raise ForbiddenActionError(GlobalMessages.RIDE_NOT_YOURS)


async def _paginate(session: AsyncSession, query, page: int, per_page: int) -> AppointmentListResponse:
    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total = total_result.scalar() or 0

    query = query.offset((page - 1) * per_page).limit(per_page)
    result = await session.execute(query)
    appointments = result.scalars().all()

    return AppointmentListResponse(
        appointments=[build_appointment_response(apt) for apt in appointments],
        total=total,
        page=page,
        per_page=per_page
    )


async def create_appointment(
    session: AsyncSession,
    user: Profile,
    request: AppointmentCreateRequest
) -> AppointmentActionResponse:
    """Book a ride. The booking starts pending, with no rider and no cost."""
    appointment = Appointment(
        patient_id=user.id,
        hospital_name=request.hospital_name,
        hospital_address=request.hospital_address,
        appointment_date=request.appointment_date,
        estimated_duration=request.estimated_duration,
        pickup_location=request.pickup_location,
        special_instructions=request.special_instructions,
        status=DBAppointmentStatus.PENDING,
    )
    session.add(appointment)
    await session.commit()
    await session.refresh(appointment)

    logger.info("Patient %s booked appointment %s", user.id, appointment.id)
    return AppointmentActionResponse(
        success=True,
        message=GlobalMessages.APPOINTMENT_BOOKED,
        appointment=build_appointment_response(appointment)
    )


async def get_user_appointments(
    session: AsyncSession,
    user: Profile,
    status: Optional[str] = None,
    page: int = 1,
    per_page: int = 20
) -> AppointmentListResponse:
    """Patients see their bookings, riders the ones assigned to them, admins everything."""
    query = select(Appointment)
    if user.role == UserRole.PATIENT:
        query = query.where(Appointment.patient_id == user.id)
    elif user.role == UserRole.RIDER:
        query = query.where(Appointment.rider_id == user.id)

    # Apply status filter
    status_map = {s.value: s for s in DBAppointmentStatus}
    if status and status in status_map:
        query = query.where(Appointment.status == status_map[status])

    query = query.order_by(desc(Appointment.appointment_date))
    return await _paginate(session, query, page, per_page)


async def get_available_appointments(
    session: AsyncSession,
    page: int = 1,
    per_page: int = 20
) -> AppointmentListResponse:
    """Open bookings a rider can accept, soonest first."""
    query = (
        select(Appointment)
        .where(
            Appointment.status == DBAppointmentStatus.PENDING,
            Appointment.rider_id.is_(None),
        )
        .order_by(Appointment.appointment_date)
    )
    return await _paginate(session, query, page, per_page)


async def get_appointment_by_id(
    session: AsyncSession,
    user: Profile,
    appointment_id: UUID
) -> AppointmentResponse:
    """Get a single appointment by ID."""
    appointment = await rides_service.get_appointment(session, appointment_id)
    _ensure_can_view(appointment, user)
    return build_appointment_response(appointment)


async def get_quote(
    session: AsyncSession,
    user: Profile,
    appointment_id: UUID,
    routing: RoutingService,
    enhanced_support: bool = False
) -> AppointmentQuoteResponse:
    """
    Preview the round-trip fare for a booking.

    Raises ``QuoteUnavailableError`` when the route cannot be estimated; no
    fare is ever shown without one.
    """
    appointment = await rides_service.get_appointment(session, appointment_id)
    _ensure_can_view(appointment, user)

    estimate = await routing.estimate_round_trip(appointment.pickup_location, appointment.hospital_address)
    if estimate is None:
        raise QuoteUnavailableError()
    trip = estimate.round_trip()

    return AppointmentQuoteResponse(
        appointment_id=appointment.id,
        quote=FareQuoteResponse(
            distance_km=round2(trip.distance_km),
            duration_minutes=trip.duration_minutes,
            enhanced_support=enhanced_support,
            fare=compute_fare(trip.distance_km, trip.duration_minutes, enhanced_support=enhanced_support),
        ),
    )


async def cancel_appointment(
    session: AsyncSession,
    user: Profile,
    appointment_id: UUID
) -> AppointmentActionResponse:
    """Cancel a booking and, if one was accepted, its ride."""
    appointment = await rides_service.cancel(session, user, appointment_id=appointment_id)
    return AppointmentActionResponse(
        success=True,
        message=GlobalMessages.APPOINTMENT_CANCELLED,
        appointment=build_appointment_response(appointment)
    )


async def delete_appointment(
    session: AsyncSession,
    appointment_id: UUID
) -> AppointmentActionResponse:
    """Remove a booking with its ride history. Admin only."""
    appointment = await rides_service.get_appointment(session, appointment_id)

    ride_ids = select(Ride.id).where(Ride.appointment_id == appointment.id).scalar_subquery()
    await session.execute(delete(Earning).where(Earning.ride_id.in_(ride_ids)))
    await session.execute(delete(RideCompletion).where(RideCompletion.ride_id.in_(ride_ids)))
    await session.execute(delete(RideStatusUpdate).where(RideStatusUpdate.ride_id.in_(ride_ids)))
    await session.execute(delete(Ride).where(Ride.appointment_id == appointment.id))
    await session.execute(delete(Appointment).where(Appointment.id == appointment.id))
    await session.commit()

    logger.info("Appointment %s deleted", appointment_id)
    return AppointmentActionResponse(success=True, message=GlobalMessages.APPOINTMENT_DELETED)
