# src/modules/ride_status/ride_status_service.py
"""Append-only ride timeline and the stage order it is read against."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.models import RideStatus, RideStatusUpdate


# Forward order of a ride; cancelled sits outside the chain
STAGE_ORDER = [
    RideStatus.REQUESTED,
    RideStatus.ACCEPTED,
    RideStatus.PICKUP,
    RideStatus.EN_ROUTE,
    RideStatus.AT_HOSPITAL,
    RideStatus.IN_APPOINTMENT,
    RideStatus.RETURNING,
    RideStatus.COMPLETED,
]

TERMINAL_STAGES = {RideStatus.COMPLETED, RideStatus.CANCELLED}

# Stages a rider may move a ride into; completion goes through the quorum instead
ADVANCEABLE_STAGES = {
    RideStatus.PICKUP,
    RideStatus.EN_ROUTE,
    RideStatus.AT_HOSPITAL,
    RideStatus.IN_APPOINTMENT,
    RideStatus.RETURNING,
}


def next_stage(stage: RideStatus) -> Optional[RideStatus]:
    """Immediate successor of ``stage``, or None for terminal stages."""
    if stage in TERMINAL_STAGES:
        return None
    return STAGE_ORDER[STAGE_ORDER.index(stage) + 1]


def stage_index(stage: RideStatus) -> int:
    """Position in the forward chain; -1 for cancelled."""
    if stage == RideStatus.CANCELLED:
        return -1
    return STAGE_ORDER.index(stage)


async def _latest_update(session: AsyncSession, ride_id: UUID) -> Optional[RideStatusUpdate]:
    result = await session.execute(
        select(RideStatusUpdate)
        .where(RideStatusUpdate.ride_id == ride_id)
        .order_by(desc(RideStatusUpdate.created_at), desc(RideStatusUpdate.sequence))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def append_status_update(
    session: AsyncSession,
    ride_id: UUID,
    status: RideStatus,
    notes: Optional[str] = None,
    location: Optional[str] = None,
    commit: bool = True,
) -> RideStatusUpdate:
    """
    Append one entry to a ride's timeline.

    The entry gets the next per-ride sequence number and a timestamp no
    earlier than the previous entry's. Two writers racing for the same
    sequence collide on ``uq_ride_status_sequence``; the loser's flush raises
    ``IntegrityError``.

    With ``commit=False`` the caller owns the transaction.
    """
    max_result = await session.execute(
        select(func.max(RideStatusUpdate.sequence)).where(RideStatusUpdate.ride_id == ride_id)
    )
    last_sequence = max_result.scalar() or 0

    created_at = datetime.now(timezone.utc)
    previous = await _latest_update(session, ride_id)
    if previous is not None:
        previous_at = previous.created_at
        if previous_at.tzinfo is None:
            previous_at = previous_at.replace(tzinfo=timezone.utc)
        created_at = max(created_at, previous_at)

    update = RideStatusUpdate(
        ride_id=ride_id,
        sequence=last_sequence + 1,
        status=status,
        notes=notes,
        location=location,
        created_at=created_at,
    )
    session.add(update)
    await session.flush()

    if commit:
        await session.commit()
    return update


async def get_timeline(session: AsyncSession, ride_id: UUID) -> List[RideStatusUpdate]:
    """All timeline entries for a ride, oldest first."""
    result = await session.execute(
        select(RideStatusUpdate)
        .where(RideStatusUpdate.ride_id == ride_id)
        .order_by(RideStatusUpdate.created_at, RideStatusUpdate.sequence)
    )
    return list(result.scalars().all())


async def current_stage(session: AsyncSession, ride_id: UUID) -> RideStatus:
    """Status of the latest timeline entry; ``accepted`` when the timeline is empty."""
    latest = await _latest_update(session, ride_id)
    if latest is None:
        return RideStatus.ACCEPTED
    return latest.status
