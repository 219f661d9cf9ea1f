# src/modules/rides/rides_service.py
"""
Ride lifecycle: acceptance, stage changes, two-party completion, cancellation.

Every write that depends on state read earlier is issued as a conditional
``UPDATE ... WHERE <expected state>``. When the condition no longer holds the
transaction is rolled back and a ``ConcurrencyConflictError`` is raised, so a
caller never observes a half-applied operation. Domain events are published
only after the transaction that produced them has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.config import settings
from src.common.events import DomainEvent, EventType, event_bus
from src.common.utils.exceptions import (
    AppointmentNotFoundError,
    ConcurrencyConflictError,
    ForbiddenActionError,
    InvalidTransitionError,
    PreconditionFailedError,
    RideNotFoundError,
)
from src.common.utils.global_messages import GlobalMessages
from src.models.models import (
    Appointment, AppointmentStatus, CompletionRole, Earning, Notification,
    NotificationType, PaymentStatus, Profile, Ride, RideCompletion, RideStatus, UserRole,
)
from src.modules.fares.fare_service import compute_fare, normalize_trip, round2, to_decimal, waiting_time_charge
from src.modules.notifications.notifications_service import invoice_message, notification_event, notify
from src.modules.ride_status.ride_status_service import (
    ADVANCEABLE_STAGES, append_status_update, current_stage, next_stage,
)
from src.modules.ride_status.schemas import RideStatusEnum

from .schemas import RideResponse

logger = logging.getLogger(__name__)

REQUIRED_COMPLETION_ROLES = (CompletionRole.RIDER, CompletionRole.PATIENT)
CLOSED_APPOINTMENT_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

# Stage -> ride column stamped when the ride enters it
STAGE_TIMESTAMPS = {
    RideStatus.PICKUP: "pickup_time",
    RideStatus.AT_HOSPITAL: "dropoff_time",
    RideStatus.RETURNING: "return_pickup_time",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _RideKeys:
    """Identifiers of a ride, safe to use after a rollback expires the ORM object."""
    id: UUID
    appointment_id: UUID
    patient_id: UUID
    rider_id: UUID

    @classmethod
    def of(cls, ride: Ride) -> "_RideKeys":
        return cls(ride.id, ride.appointment_id, ride.patient_id, ride.rider_id)


@dataclass
class CompletionOutcome:
    ride: Ride
    role: CompletionRole
    recorded: bool
    finalized: bool
    notifications: List[Notification] = field(default_factory=list)


def _ride_event(event_type: EventType, keys: _RideKeys, **data) -> DomainEvent:
    return DomainEvent(
        type=event_type,
        ride_id=keys.id,
        appointment_id=keys.appointment_id,
        user_ids=[keys.patient_id, keys.rider_id],
        data=data,
    )


# ============================================================================
# READS
# ============================================================================

async def get_appointment(session: AsyncSession, appointment_id: UUID) -> Appointment:
    result = await session.execute(
        select(Appointment)
        .where(Appointment.id == appointment_id)
        .execution_options(populate_existing=True)
    )
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    return appointment


async def get_ride(session: AsyncSession, ride_id: UUID) -> Ride:
    """Load a ride with fresh column values and completion flags."""
    result = await session.execute(
        select(Ride)
        .where(Ride.id == ride_id)
        .execution_options(populate_existing=True)
    )
    ride = result.scalar_one_or_none()
    if ride is None:
        raise RideNotFoundError(ride_id)
    return ride


async def get_ride_for_appointment(session: AsyncSession, appointment_id: UUID) -> Optional[Ride]:
    result = await session.execute(
        select(Ride)
        .where(Ride.appointment_id == appointment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def ensure_ride_party(ride: Ride, user: Profile) -> None:
    """Only the ride's patient, its rider, or an admin may read it."""
    if user.role == UserRole.ADMIN:
        return
    if user.id not in (ride.patient_id, ride.rider_id):
        raise ForbiddenActionError(GlobalMessages.RIDE_NOT_YOURS)


async def get_invoice(session: AsyncSession, appointment_id: UUID, user: Profile):
    """
    Everything an invoice view needs for one appointment.

    Returns ``(appointment, ride, patient, rider)``; ``ride`` and ``rider`` are
    None until a rider has accepted the booking.
    """
    appointment = await get_appointment(session, appointment_id)
    ride = await get_ride_for_appointment(session, appointment_id)

    if user.role != UserRole.ADMIN:
        parties = {appointment.patient_id, appointment.rider_id}
        if ride is not None:
            parties.add(ride.rider_id)
        if user.id not in parties:
            raise ForbiddenActionError(GlobalMessages.RIDE_NOT_YOURS)

    patient = await session.get(Profile, appointment.patient_id)
    rider_id = ride.rider_id if ride is not None else appointment.rider_id
    rider = await session.get(Profile, rider_id) if rider_id else None
    return appointment, ride, patient, rider


# ============================================================================
# ACCEPTANCE
# ============================================================================

async def _raise_accept_rejection(session: AsyncSession, appointment_id: UUID) -> None:
    appointment = await session.get(Appointment, appointment_id, populate_existing=True)
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    if appointment.status in CLOSED_APPOINTMENT_STATUSES:
        raise PreconditionFailedError(
            GlobalMessages.APPOINTMENT_CLOSED.format(status=appointment.status.value)
        )
    logger.warning("Appointment %s was claimed by another rider first", appointment_id)
    raise ConcurrencyConflictError(GlobalMessages.APPOINTMENT_ALREADY_ACCEPTED)


async def accept_ride(
    session: AsyncSession,
    appointment_id: UUID,
    rider_id: UUID,
    round_trip_distance_km,
    round_trip_duration_minutes,
    assistance_enhanced: bool = False,
) -> Ride:
    """
    Claim a pending appointment for a rider and open its ride.

    The fare is fixed here from the round-trip estimate. Exactly one of any
    number of concurrent callers wins the claim; the others get a
    ``ConcurrencyConflictError`` and nothing is written for them.
    """
    distance_km, duration_minutes = normalize_trip(round_trip_distance_km, round_trip_duration_minutes)
    fare = compute_fare(distance_km, duration_minutes, enhanced_support=assistance_enhanced)
    now = _utcnow()

    claim = await session.execute(
        update(Appointment)
        .where(
            Appointment.id == appointment_id,
            Appointment.status == AppointmentStatus.PENDING,
            Appointment.rider_id.is_(None),
        )
        .values(rider_id=rider_id, status=AppointmentStatus.ACCEPTED, total_cost=fare.total, updated_at=now)
        .returning(Appointment.patient_id)
        .execution_options(synchronize_session=False)
    )
    claimed = claim.first()
    if claimed is None:
        await session.rollback()
        await _raise_accept_rejection(session, appointment_id)

    ride = Ride(
        appointment_id=appointment_id,
        patient_id=claimed.patient_id,
        rider_id=rider_id,
        status=RideStatus.ACCEPTED,
        distance_km=distance_km,
        duration_minutes=duration_minutes,
        assistance_enhanced=assistance_enhanced,
        base_fare=fare.base_fare,
        distance_fare=fare.distance_fare,
        time_fare=fare.time_fare,
        assistance_fee=fare.assistance_fee,
        total_fare=fare.total,
        created_at=now,
        updated_at=now,
    )
    session.add(ride)
    try:
        await session.flush()
        await append_status_update(session, ride.id, RideStatus.ACCEPTED, commit=False)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning("Ride for appointment %s already exists", appointment_id)
        raise ConcurrencyConflictError(GlobalMessages.APPOINTMENT_ALREADY_ACCEPTED)

    keys = _RideKeys.of(ride)
    logger.info("Rider %s accepted appointment %s (ride %s, fare %s)", rider_id, appointment_id, ride.id, fare.total)
    event_bus.publish(_ride_event(EventType.RIDE_ACCEPTED, keys, total_fare=str(fare.total)))
    return ride


# ============================================================================
# STAGES
# ============================================================================

async def advance_stage(
    session: AsyncSession,
    ride_id: UUID,
    rider_id: UUID,
    new_status: RideStatus,
    notes: Optional[str] = None,
    eta_minutes: Optional[int] = None,
) -> Ride:
    """
    Move a ride to the stage immediately after its current one.

    Only the ride's rider may do this, and only one stage at a time. The
    first move past ``accepted`` puts the appointment in progress. Entering
    ``pickup`` with an ``eta_minutes`` notifies the patient.
    """
    ride = await get_ride(session, ride_id)
    if ride.rider_id != rider_id:
        raise ForbiddenActionError(GlobalMessages.RIDER_ONLY)
    if new_status not in ADVANCEABLE_STAGES:
        raise InvalidTransitionError(f"A ride cannot be moved to {new_status.value} directly.")

    stage = await current_stage(session, ride.id)
    if stage == RideStatus.CANCELLED:
        raise PreconditionFailedError(GlobalMessages.RIDE_CANCELLED)
    expected = next_stage(stage)
    if expected != new_status:
        raise InvalidTransitionError(
            f"Cannot move a ride from {stage.value} to {new_status.value}."
        )

    keys = _RideKeys.of(ride)
    now = _utcnow()
    values = {"status": new_status, "updated_at": now}
    if new_status in STAGE_TIMESTAMPS:
        values[STAGE_TIMESTAMPS[new_status]] = now

    moved = await session.execute(
        update(Ride)
        .where(Ride.id == keys.id, Ride.status == stage)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount != 1:
        await session.rollback()
        raise ConcurrencyConflictError(GlobalMessages.RIDE_CHANGED)

    try:
        await append_status_update(session, keys.id, new_status, notes=notes, commit=False)
        if stage == RideStatus.ACCEPTED:
            await session.execute(
                update(Appointment)
                .where(
                    Appointment.id == keys.appointment_id,
                    Appointment.status == AppointmentStatus.ACCEPTED,
                )
                .values(status=AppointmentStatus.IN_PROGRESS, updated_at=now)
                .execution_options(synchronize_session=False)
            )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConcurrencyConflictError(GlobalMessages.RIDE_CHANGED)

    logger.info("Ride %s moved %s -> %s", keys.id, stage.value, new_status.value)
    event_bus.publish(
        _ride_event(EventType.STAGE_ADVANCED, keys, previous=stage.value, status=new_status.value)
    )

    if new_status == RideStatus.PICKUP and eta_minutes is not None:
        await notify(
            session,
            keys.patient_id,
            GlobalMessages.RIDE_STARTING_TITLE,
            f"Your rider is on the way and will arrive in about {eta_minutes} minutes.",
            NotificationType.RIDE,
            reference_id=keys.appointment_id,
            reference_type="appointment",
        )

    return await get_ride(session, keys.id)


# ============================================================================
# COMPLETION
# ============================================================================

def _completion_role(ride: Ride, user_id: UUID) -> CompletionRole:
    if user_id == ride.rider_id:
        return CompletionRole.RIDER
    if user_id == ride.patient_id:
        return CompletionRole.PATIENT
    raise ForbiddenActionError(GlobalMessages.RIDE_NOT_YOURS)


async def _record_completion(
    session: AsyncSession,
    keys: _RideKeys,
    role: CompletionRole,
    user_id: UUID,
    waiting_minutes: int,
    notes: Optional[str],
) -> bool:
    """
    Set one party's completion flag. False when that party had already confirmed.

    A repeat confirmation that carries waiting minutes raises
    ``PreconditionFailedError``.
    """
    existing = await session.execute(
        select(RideCompletion.id).where(RideCompletion.ride_id == keys.id, RideCompletion.role == role)
    )
    if existing.first() is not None:
        if waiting_minutes > 0:
            raise PreconditionFailedError(GlobalMessages.WAITING_AFTER_CONFIRMATION)
        logger.info("Ride %s: %s completion already recorded", keys.id, role.value)
        return False

    # The unique (ride_id, role) constraint settles a concurrent double submit
    now = _utcnow()
    session.add(RideCompletion(ride_id=keys.id, role=role, user_id=user_id, completed_at=now))
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        if waiting_minutes > 0:
            raise PreconditionFailedError(GlobalMessages.WAITING_AFTER_CONFIRMATION)
        logger.info("Ride %s: %s completion already recorded", keys.id, role.value)
        return False

    values = {"updated_at": now}
    if notes:
        values["rider_notes" if role == CompletionRole.RIDER else "patient_notes"] = notes
    if role == CompletionRole.RIDER and waiting_minutes > 0:
        charge = waiting_time_charge(waiting_minutes)
        values["total_fare"] = Ride.total_fare + charge
        values["waiting_minutes"] = waiting_minutes
        await session.execute(
            update(Appointment)
            .where(Appointment.id == keys.appointment_id)
            .values(total_cost=Appointment.total_cost + charge, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        logger.info("Ride %s: %s waiting minutes add Rs %s", keys.id, waiting_minutes, charge)

    await session.execute(
        update(Ride)
        .where(Ride.id == keys.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    event_bus.publish(
        _ride_event(EventType.COMPLETION_MARKED, keys, role=role.value, waiting_minutes=waiting_minutes)
    )
    return True


async def _finalize_if_complete(session: AsyncSession, keys: _RideKeys) -> List[Notification]:
    """
    Close the ride once both parties have confirmed.

    The finalizing update only matches while ``finalized_at`` is unset, so of
    two racing callers exactly one produces the earning and the invoice
    notifications.
    """
    now = _utcnow()
    confirmed = (
        select(func.count(RideCompletion.id))
        .where(
            RideCompletion.ride_id == keys.id,
            RideCompletion.role.in_(REQUIRED_COMPLETION_ROLES),
        )
        .scalar_subquery()
    )
    result = await session.execute(
        update(Ride)
        .where(
            Ride.id == keys.id,
            Ride.finalized_at.is_(None),
            Ride.status != RideStatus.CANCELLED,
            confirmed == len(REQUIRED_COMPLETION_ROLES),
        )
        .values(status=RideStatus.COMPLETED, finalized_at=now, completion_time=now, updated_at=now)
        .returning(Ride.total_fare)
        .execution_options(synchronize_session=False)
    )
    row = result.first()
    if row is None:
        # Nothing was written; end the transaction without expiring loaded objects
        await session.commit()
        return []

    total_fare = to_decimal(row.total_fare)
    commission = round2(total_fare * to_decimal(settings.PLATFORM_COMMISSION_RATE))

    await append_status_update(session, keys.id, RideStatus.COMPLETED, commit=False)
    await session.execute(
        update(Appointment)
        .where(Appointment.id == keys.appointment_id)
        .values(status=AppointmentStatus.COMPLETED, total_cost=total_fare, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.add(Earning(
        rider_id=keys.rider_id,
        ride_id=keys.id,
        amount=total_fare,
        commission=commission,
        net_amount=total_fare - commission,
        payment_status=PaymentStatus.PENDING,
        created_at=now,
    ))
    await session.execute(
        update(Profile)
        .where(Profile.id.in_([keys.rider_id, keys.patient_id]))
        .values(total_rides=Profile.total_rides + 1)
        .execution_options(synchronize_session=False)
    )

    notifications = []
    for user_id in (keys.rider_id, keys.patient_id):
        notifications.append(await notify(
            session,
            user_id,
            GlobalMessages.RIDE_COMPLETED_TITLE,
            invoice_message(keys.appointment_id),
            NotificationType.INVOICE,
            reference_id=keys.appointment_id,
            reference_type="appointment",
            commit=False,
        ))
    await session.commit()

    logger.info("Ride %s finalized, fare Rs %s", keys.id, total_fare)
    event_bus.publish_all(
        [_ride_event(EventType.RIDE_COMPLETED, keys, total_fare=str(total_fare))]
        + [notification_event(n) for n in notifications]
    )
    return notifications


async def mark_completed(
    session: AsyncSession,
    ride_id: UUID,
    user: Profile,
    waiting_minutes: int = 0,
    notes: Optional[str] = None,
) -> CompletionOutcome:
    """
    Record that ``user`` considers the trip concluded.

    Repeated calls by the same party change nothing. The call that supplies
    the second confirmation finalizes the ride: status log entry, appointment
    total, earning record and one invoice notification per party. Waiting
    minutes may only be reported by the rider, and only with the rider's own
    first confirmation; reporting them later raises ``PreconditionFailedError``.
    """
    ride = await get_ride(session, ride_id)
    role = _completion_role(ride, user.id)

    if waiting_minutes < 0:
        raise PreconditionFailedError(GlobalMessages.WAITING_NEGATIVE)
    if waiting_minutes and role != CompletionRole.RIDER:
        raise PreconditionFailedError(GlobalMessages.WAITING_RIDER_ONLY)
    if ride.status == RideStatus.CANCELLED:
        raise PreconditionFailedError(GlobalMessages.RIDE_CANCELLED)
    if ride.finalized_at is not None:
        if waiting_minutes > 0:
            raise PreconditionFailedError(GlobalMessages.WAITING_AFTER_CONFIRMATION)
        return CompletionOutcome(ride=ride, role=role, recorded=False, finalized=False)

    stage = await current_stage(session, ride.id)
    if stage != RideStatus.RETURNING:
        raise PreconditionFailedError(GlobalMessages.RIDE_NOT_RETURNING)

    keys = _RideKeys.of(ride)
    recorded = await _record_completion(session, keys, role, user.id, waiting_minutes, notes)
    notifications = await _finalize_if_complete(session, keys)

    return CompletionOutcome(
        ride=await get_ride(session, keys.id),
        role=role,
        recorded=recorded,
        finalized=bool(notifications),
        notifications=notifications,
    )


# ============================================================================
# CANCELLATION
# ============================================================================

def _cancelling_party(appointment: Appointment, user: Profile) -> str:
    if user.role == UserRole.ADMIN:
        return "admin"
    if user.id == appointment.patient_id:
        return "patient"
    if appointment.rider_id is not None and user.id == appointment.rider_id:
        return "rider"
    raise ForbiddenActionError(GlobalMessages.RIDE_NOT_YOURS)


async def cancel(
    session: AsyncSession,
    user: Profile,
    appointment_id: Optional[UUID] = None,
    ride_id: Optional[UUID] = None,
) -> Appointment:
    """
    Cancel a booking that has not concluded, by appointment or by ride.

    No fare is charged: the appointment's total and the ride's fare are
    cleared and the rider is released. The ride row is kept with status
    ``cancelled`` as history. Every party other than the one cancelling is
    notified.
    """
    if (appointment_id is None) == (ride_id is None):
        raise ValueError("Pass exactly one of appointment_id or ride_id")

    if ride_id is not None:
        ride = await get_ride(session, ride_id)
        appointment_id = ride.appointment_id
    else:
        ride = await get_ride_for_appointment(session, appointment_id)

    appointment = await get_appointment(session, appointment_id)
    party = _cancelling_party(appointment, user)
    if appointment.status in CLOSED_APPOINTMENT_STATUSES:
        raise PreconditionFailedError(
            GlobalMessages.APPOINTMENT_CLOSED.format(status=appointment.status.value)
        )

    read_status = appointment.status
    patient_id = appointment.patient_id
    rider_id = appointment.rider_id
    keys = _RideKeys.of(ride) if ride is not None else None
    now = _utcnow()

    cancelled = await session.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.status == read_status)
        .values(status=AppointmentStatus.CANCELLED, rider_id=None, total_cost=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if cancelled.rowcount != 1:
        await session.rollback()
        raise ConcurrencyConflictError(GlobalMessages.RIDE_CHANGED)

    if keys is not None:
        stopped = await session.execute(
            update(Ride)
            .where(
                Ride.id == keys.id,
                Ride.finalized_at.is_(None),
                Ride.status.not_in([RideStatus.COMPLETED, RideStatus.CANCELLED]),
            )
            .values(status=RideStatus.CANCELLED, total_fare=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if stopped.rowcount != 1:
            await session.rollback()
            raise ConcurrencyConflictError(GlobalMessages.RIDE_CHANGED)
        await append_status_update(
            session, keys.id, RideStatus.CANCELLED, notes=f"Cancelled by {party}", commit=False
        )

    recipients = [
        uid for uid in (patient_id, rider_id)
        if uid is not None and uid != user.id
    ]
    notifications = []
    for recipient in recipients:
        notifications.append(await notify(
            session,
            recipient,
            GlobalMessages.RIDE_CANCELLED_TITLE,
            f"The ride for your appointment on {appointment.appointment_date:%d %b %Y} was cancelled by the {party}.",
            NotificationType.RIDE,
            reference_id=appointment_id,
            reference_type="appointment",
            commit=False,
        ))
    await session.commit()

    logger.info("Appointment %s cancelled by %s %s", appointment_id, party, user.id)
    events = [notification_event(n) for n in notifications]
    if keys is not None:
        events.insert(0, _ride_event(EventType.RIDE_CANCELLED, keys, cancelled_by=party))
    event_bus.publish_all(events)

    return await get_appointment(session, appointment_id)


# ============================================================================
# RESPONSES
# ============================================================================

def build_ride_response(ride: Ride) -> RideResponse:
    """Build a ride response from a freshly loaded ride."""
    return RideResponse(
        id=ride.id,
        appointment_id=ride.appointment_id,
        patient_id=ride.patient_id,
        rider_id=ride.rider_id,
        status=RideStatusEnum(ride.status.value),
        distance_km=ride.distance_km,
        duration_minutes=ride.duration_minutes,
        assistance_enhanced=ride.assistance_enhanced,
        base_fare=ride.base_fare,
        distance_fare=ride.distance_fare,
        time_fare=ride.time_fare,
        assistance_fee=ride.assistance_fee,
        total_fare=ride.total_fare,
        waiting_minutes=ride.waiting_minutes,
        rider_completed=ride.rider_completed,
        patient_completed=ride.patient_completed,
        patient_notes=ride.patient_notes,
        rider_notes=ride.rider_notes,
        pickup_time=ride.pickup_time,
        dropoff_time=ride.dropoff_time,
        return_pickup_time=ride.return_pickup_time,
        completion_time=ride.completion_time,
        created_at=ride.created_at,
    )
