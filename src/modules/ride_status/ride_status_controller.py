# src/modules/ride_status/ride_status_controller.py
"""Read-only access to a ride's status timeline."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.database.database import get_db_session
from src.auth.dependencies import get_current_user
from src.models.models import Profile
from src.modules.rides import rides_service

from . import ride_status_service as service
from .schemas import CurrentStageResponse, RideStatusEnum, StatusUpdateResponse, TimelineResponse

router = APIRouter(prefix="/rides", tags=["Ride Status"])


@router.get("/{ride_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    ride_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """Status updates for a ride, oldest first."""
    ride = await rides_service.get_ride(db, ride_id)
    rides_service.ensure_ride_party(ride, current_user)

    updates = await service.get_timeline(db, ride.id)
    stage = await service.current_stage(db, ride.id)
    return TimelineResponse(
        ride_id=ride.id,
        current_stage=RideStatusEnum(stage.value),
        updates=[
            StatusUpdateResponse(
                id=u.id,
                sequence=u.sequence,
                status=RideStatusEnum(u.status.value),
                notes=u.notes,
                created_at=u.created_at,
            )
            for u in updates
        ]
    )


@router.get("/{ride_id}/stage", response_model=CurrentStageResponse)
async def get_current_stage(
    ride_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_user)
):
    """The ride's current stage as shown on the dashboards."""
    ride = await rides_service.get_ride(db, ride_id)
    rides_service.ensure_ride_party(ride, current_user)

    stage = await service.current_stage(db, ride.id)
    return CurrentStageResponse(
        ride_id=ride.id,
        current_stage=RideStatusEnum(stage.value),
        stage_index=service.stage_index(stage),
    )
