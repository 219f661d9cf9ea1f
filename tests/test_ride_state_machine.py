import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from src.common.events import EventType, event_bus
from src.common.utils.exceptions import (
    AppointmentNotFoundError,
    ConcurrencyConflictError,
    ForbiddenActionError,
    InvalidTransitionError,
    PreconditionFailedError,
)
from src.models.models import (
    Appointment, AppointmentStatus, Earning, Notification, NotificationType,
    Profile, Ride, RideStatus,
)
from src.modules.notifications.notifications_service import invoice_message
from src.modules.ride_status.ride_status_service import current_stage, get_timeline
from src.modules.rides import rides_service

from tests.conftest import advance_to


async def _fresh(session_factory, model, ident):
    async with session_factory() as s:
        return await s.get(model, ident)


async def _count(session_factory, model, *criteria):
    async with session_factory() as s:
        result = await s.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar()


async def _invoice_notifications(session_factory, appointment_id):
    async with session_factory() as s:
        result = await s.execute(
            select(Notification).where(
                Notification.type == NotificationType.INVOICE,
                Notification.reference_id == appointment_id,
            )
        )
        return result.scalars().all()


# ============================================================================
# ACCEPTANCE
# ============================================================================

async def test_accept_fixes_fare_and_claims_appointment(session, session_factory, appointment, rider):
    ride = await rides_service.accept_ride(session, appointment.id, rider.id, 10, 30)

    assert ride.status == RideStatus.ACCEPTED
    assert ride.total_fare == Decimal("810.00")
    assert ride.distance_km == Decimal("10.00")
    assert ride.duration_minutes == 30

    stored = await _fresh(session_factory, Appointment, appointment.id)
    assert stored.status == AppointmentStatus.ACCEPTED
    assert stored.rider_id == rider.id
    assert stored.total_cost == Decimal("810.00")

    timeline = await get_timeline(session, ride.id)
    assert [u.status for u in timeline] == [RideStatus.ACCEPTED]


async def test_accept_stores_the_figures_it_charged(session, appointment, rider):
    ride = await rides_service.accept_ride(session, appointment.id, rider.id, 10, 30.5)

    assert ride.duration_minutes == 31
    assert ride.time_fare == Decimal("186.00")
    assert ride.total_fare == Decimal("816.00")


async def test_accept_clamps_negative_figures(session, appointment, rider):
    ride = await rides_service.accept_ride(session, appointment.id, rider.id, -5, -10)

    assert ride.distance_km == Decimal("0")
    assert ride.duration_minutes == 0
    assert ride.total_fare == Decimal("230.00")


async def test_accept_publishes_event_for_both_parties(session, appointment, rider, patient):
    async with event_bus.subscribe(user_id=patient.id) as subscription:
        ride = await rides_service.accept_ride(session, appointment.id, rider.id, 10, 30)
        event = subscription.queue.get_nowait()

    assert event.type == EventType.RIDE_ACCEPTED
    assert event.ride_id == ride.id
    assert set(event.user_ids) == {patient.id, rider.id}


async def test_concurrent_accepts_have_exactly_one_winner(session_factory, appointment, rider, other_rider):
    async def attempt(rider_id):
        async with session_factory() as s:
            return await rides_service.accept_ride(s, appointment.id, rider_id, 10, 30)

    results = await asyncio.gather(
        attempt(rider.id), attempt(other_rider.id), return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, Ride)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConcurrencyConflictError)
    assert await _count(session_factory, Ride, Ride.appointment_id == appointment.id) == 1

    stored = await _fresh(session_factory, Appointment, appointment.id)
    assert stored.rider_id == winners[0].rider_id


async def test_accepting_a_taken_appointment_conflicts(session, appointment, accepted_ride, other_rider):
    with pytest.raises(ConcurrencyConflictError):
        await rides_service.accept_ride(session, appointment.id, other_rider.id, 10, 30)


async def test_accepting_unknown_appointment_is_not_found(session, rider):
    with pytest.raises(AppointmentNotFoundError):
        await rides_service.accept_ride(session, uuid.uuid4(), rider.id, 10, 30)


async def test_accepting_cancelled_appointment_is_rejected(session, appointment, patient, rider):
    await rides_service.cancel(session, patient, appointment_id=appointment.id)

    with pytest.raises(PreconditionFailedError):
        await rides_service.accept_ride(session, appointment.id, rider.id, 10, 30)


# ============================================================================
# STAGES
# ============================================================================

async def test_first_stage_puts_appointment_in_progress(session, session_factory, accepted_ride, rider):
    ride = await rides_service.advance_stage(session, accepted_ride.id, rider.id, RideStatus.PICKUP)

    assert ride.status == RideStatus.PICKUP
    assert ride.pickup_time is not None
    stored = await _fresh(session_factory, Appointment, accepted_ride.appointment_id)
    assert stored.status == AppointmentStatus.IN_PROGRESS


async def test_stages_cannot_be_skipped(session, accepted_ride, rider):
    with pytest.raises(InvalidTransitionError):
        await rides_service.advance_stage(session, accepted_ride.id, rider.id, RideStatus.EN_ROUTE)

    assert await current_stage(session, accepted_ride.id) == RideStatus.ACCEPTED


async def test_completed_is_not_a_stage_target(session, accepted_ride, rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    with pytest.raises(InvalidTransitionError):
        await rides_service.advance_stage(session, accepted_ride.id, rider.id, RideStatus.COMPLETED)


async def test_only_the_assigned_rider_moves_the_ride(session, accepted_ride, other_rider, patient):
    for actor in (other_rider, patient):
        with pytest.raises(ForbiddenActionError):
            await rides_service.advance_stage(session, accepted_ride.id, actor.id, RideStatus.PICKUP)


async def test_pickup_with_eta_notifies_patient(session, session_factory, accepted_ride, rider, patient):
    await rides_service.advance_stage(
        session, accepted_ride.id, rider.id, RideStatus.PICKUP, eta_minutes=12,
    )

    async with session_factory() as s:
        result = await s.execute(select(Notification).where(Notification.user_id == patient.id))
        notifications = result.scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.RIDE
    assert notifications[0].title == "Ride Starting"
    assert "12 minutes" in notifications[0].message


async def test_stage_timestamps_are_recorded(session, accepted_ride, rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    ride = await rides_service.get_ride(session, accepted_ride.id)

    assert ride.pickup_time is not None
    assert ride.dropoff_time is not None
    assert ride.return_pickup_time is not None
    timeline = await get_timeline(session, ride.id)
    assert [u.sequence for u in timeline] == list(range(1, 7))


# ============================================================================
# COMPLETION
# ============================================================================

async def test_completion_requires_returning_stage(session, accepted_ride, rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.IN_APPOINTMENT)
    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, rider)


async def test_rider_then_patient_finalizes_once(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    first = await rides_service.mark_completed(session, accepted_ride.id, rider)
    assert first.recorded and not first.finalized
    assert first.ride.rider_completed and not first.ride.patient_completed
    stored = await _fresh(session_factory, Appointment, accepted_ride.appointment_id)
    assert stored.status == AppointmentStatus.IN_PROGRESS
    assert await _invoice_notifications(session_factory, accepted_ride.appointment_id) == []

    second = await rides_service.mark_completed(session, accepted_ride.id, patient)
    assert second.finalized
    assert second.ride.status == RideStatus.COMPLETED
    assert second.ride.completion_time is not None

    stored = await _fresh(session_factory, Appointment, accepted_ride.appointment_id)
    assert stored.status == AppointmentStatus.COMPLETED
    assert stored.total_cost == second.ride.total_fare == Decimal("810.00")

    invoices = await _invoice_notifications(session_factory, accepted_ride.appointment_id)
    assert sorted(n.user_id for n in invoices) == sorted([rider.id, patient.id])
    assert all(n.message == invoice_message(accepted_ride.appointment_id) for n in invoices)

    assert await current_stage(session, accepted_ride.id) == RideStatus.COMPLETED


async def test_patient_then_rider_with_waiting_time(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    await rides_service.mark_completed(session, accepted_ride.id, patient, notes="Very careful driver")
    outcome = await rides_service.mark_completed(session, accepted_ride.id, rider, waiting_minutes=10)

    assert outcome.finalized
    assert outcome.ride.total_fare == Decimal("870.00")
    assert outcome.ride.waiting_minutes == 10
    assert outcome.ride.patient_notes == "Very careful driver"

    stored = await _fresh(session_factory, Appointment, accepted_ride.appointment_id)
    assert stored.total_cost == Decimal("870.00")
    assert len(await _invoice_notifications(session_factory, accepted_ride.appointment_id)) == 2

    async with session_factory() as s:
        earning = (await s.execute(select(Earning).where(Earning.ride_id == accepted_ride.id))).scalar_one()
    assert earning.amount == Decimal("870.00")
    assert earning.net_amount == Decimal("870.00")


async def test_repeated_completion_changes_nothing(session, accepted_ride, rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    first = await rides_service.mark_completed(session, accepted_ride.id, rider, waiting_minutes=10)
    again = await rides_service.mark_completed(session, accepted_ride.id, rider)

    assert first.recorded
    assert not again.recorded
    assert again.ride.total_fare == Decimal("870.00")
    assert again.ride.rider_completed and not again.ride.patient_completed


async def test_waiting_time_after_confirming_is_rejected(session, session_factory, accepted_ride, rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    await rides_service.mark_completed(session, accepted_ride.id, rider)

    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, rider, waiting_minutes=10)

    stored = await _fresh(session_factory, Ride, accepted_ride.id)
    assert stored.total_fare == Decimal("810.00")
    assert stored.waiting_minutes is None


async def test_waiting_time_after_finalization_is_rejected(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    await rides_service.mark_completed(session, accepted_ride.id, rider)
    await rides_service.mark_completed(session, accepted_ride.id, patient)

    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, rider, waiting_minutes=5)

    stored = await _fresh(session_factory, Appointment, accepted_ride.appointment_id)
    assert stored.total_cost == Decimal("810.00")


async def test_completion_after_finalization_is_a_no_op(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    await rides_service.mark_completed(session, accepted_ride.id, rider)
    await rides_service.mark_completed(session, accepted_ride.id, patient)

    again = await rides_service.mark_completed(session, accepted_ride.id, patient)

    assert not again.recorded and not again.finalized
    assert len(await _invoice_notifications(session_factory, accepted_ride.appointment_id)) == 2
    assert await _count(session_factory, Earning, Earning.ride_id == accepted_ride.id) == 1


async def test_concurrent_completions_finalize_exactly_once(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    async def complete(actor):
        async with session_factory() as s:
            return await rides_service.mark_completed(s, accepted_ride.id, actor)

    outcomes = await asyncio.gather(complete(rider), complete(patient))

    assert sum(o.finalized for o in outcomes) == 1
    assert len(await _invoice_notifications(session_factory, accepted_ride.appointment_id)) == 2
    assert await _count(session_factory, Earning, Earning.ride_id == accepted_ride.id) == 1


async def test_only_rider_reports_waiting_time(session, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, patient, waiting_minutes=5)
    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, rider, waiting_minutes=-1)


async def test_outsider_cannot_complete(session, accepted_ride, rider, other_rider):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)

    with pytest.raises(ForbiddenActionError):
        await rides_service.mark_completed(session, accepted_ride.id, other_rider)


async def test_finalization_counts_the_ride(session, session_factory, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    await rides_service.mark_completed(session, accepted_ride.id, rider)
    await rides_service.mark_completed(session, accepted_ride.id, patient)

    stored = await _fresh(session_factory, Profile, rider.id)
    assert stored.total_rides == 1


# ============================================================================
# CANCELLATION
# ============================================================================

async def test_patient_cancels_pending_booking_quietly(session, session_factory, appointment, patient):
    cancelled = await rides_service.cancel(session, patient, appointment_id=appointment.id)

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert await _count(session_factory, Notification) == 0


async def test_rider_cancel_releases_booking_and_notifies_patient(session, session_factory, accepted_ride, rider, patient):
    await rides_service.advance_stage(session, accepted_ride.id, rider.id, RideStatus.PICKUP)

    cancelled = await rides_service.cancel(session, rider, ride_id=accepted_ride.id)

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.rider_id is None
    assert cancelled.total_cost is None

    ride = await rides_service.get_ride(session, accepted_ride.id)
    assert ride.status == RideStatus.CANCELLED
    assert ride.total_fare is None
    assert await current_stage(session, ride.id) == RideStatus.CANCELLED

    async with session_factory() as s:
        result = await s.execute(select(Notification))
        notifications = result.scalars().all()
    assert [n.user_id for n in notifications] == [patient.id]
    assert notifications[0].type == NotificationType.RIDE


async def test_admin_cancel_notifies_both_parties(session, session_factory, accepted_ride, admin, rider, patient):
    await rides_service.cancel(session, admin, appointment_id=accepted_ride.appointment_id)

    async with session_factory() as s:
        result = await s.execute(select(Notification.user_id))
        recipients = sorted(result.scalars().all())
    assert recipients == sorted([rider.id, patient.id])


async def test_cancelled_ride_cannot_move_or_complete(session, accepted_ride, rider, patient):
    await rides_service.cancel(session, patient, ride_id=accepted_ride.id)

    with pytest.raises(PreconditionFailedError):
        await rides_service.advance_stage(session, accepted_ride.id, rider.id, RideStatus.PICKUP)
    with pytest.raises(PreconditionFailedError):
        await rides_service.mark_completed(session, accepted_ride.id, rider)


async def test_outsider_cannot_cancel(session, accepted_ride, other_rider):
    with pytest.raises(ForbiddenActionError):
        await rides_service.cancel(session, other_rider, ride_id=accepted_ride.id)


async def test_completed_booking_cannot_be_cancelled(session, accepted_ride, rider, patient):
    await advance_to(session, accepted_ride.id, rider.id, RideStatus.RETURNING)
    await rides_service.mark_completed(session, accepted_ride.id, rider)
    await rides_service.mark_completed(session, accepted_ride.id, patient)

    with pytest.raises(PreconditionFailedError):
        await rides_service.cancel(session, patient, appointment_id=accepted_ride.appointment_id)
