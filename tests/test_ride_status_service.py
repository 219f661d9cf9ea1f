import uuid
from datetime import datetime, timedelta, timezone

from src.models.models import RideStatus, RideStatusUpdate
from src.modules.ride_status.ride_status_service import (
    append_status_update, current_stage, get_timeline, next_stage, stage_index,
)


def test_next_stage_walks_the_forward_chain():
    assert next_stage(RideStatus.ACCEPTED) == RideStatus.PICKUP
    assert next_stage(RideStatus.IN_APPOINTMENT) == RideStatus.RETURNING
    assert next_stage(RideStatus.RETURNING) == RideStatus.COMPLETED
    assert next_stage(RideStatus.COMPLETED) is None
    assert next_stage(RideStatus.CANCELLED) is None


def test_stage_index():
    assert stage_index(RideStatus.ACCEPTED) == 1
    assert stage_index(RideStatus.CANCELLED) == -1


async def test_empty_timeline_reads_as_accepted(session):
    assert await current_stage(session, uuid.uuid4()) == RideStatus.ACCEPTED


async def test_appends_are_sequenced_and_current_stage_is_the_last(session, accepted_ride):
    await append_status_update(session, accepted_ride.id, RideStatus.PICKUP, notes="Leaving now")
    await append_status_update(session, accepted_ride.id, RideStatus.EN_ROUTE)

    timeline = await get_timeline(session, accepted_ride.id)

    assert [u.sequence for u in timeline] == [1, 2, 3]
    assert [u.status for u in timeline] == [RideStatus.ACCEPTED, RideStatus.PICKUP, RideStatus.EN_ROUTE]
    assert timeline[1].notes == "Leaving now"
    assert await current_stage(session, accepted_ride.id) == timeline[-1].status


async def test_timestamps_never_go_backwards(session, accepted_ride):
    # An entry written by a host whose clock runs ahead
    ahead = datetime.now(timezone.utc) + timedelta(hours=1)
    session.add(RideStatusUpdate(
        ride_id=accepted_ride.id, sequence=2, status=RideStatus.PICKUP, created_at=ahead,
    ))
    await session.commit()

    await append_status_update(session, accepted_ride.id, RideStatus.EN_ROUTE)
    timeline = await get_timeline(session, accepted_ride.id)

    stamps = [u.created_at for u in timeline]
    assert stamps == sorted(stamps)
    assert timeline[-1].status == RideStatus.EN_ROUTE
    assert await current_stage(session, accepted_ride.id) == RideStatus.EN_ROUTE
