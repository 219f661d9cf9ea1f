# src/modules/ride_status/schemas.py
"""Ride status timeline schemas."""

from typing import List, Optional
from datetime import datetime
from uuid import UUID
from enum import Enum

from pydantic import BaseModel


class RideStatusEnum(str, Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    PICKUP = "pickup"
    EN_ROUTE = "en_route"
    AT_HOSPITAL = "at_hospital"
    IN_APPOINTMENT = "in_appointment"
    RETURNING = "returning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StatusUpdateResponse(BaseModel):
    id: UUID
    sequence: int
    status: RideStatusEnum
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TimelineResponse(BaseModel):
    ride_id: UUID
    current_stage: RideStatusEnum
    updates: List[StatusUpdateResponse]


class CurrentStageResponse(BaseModel):
    ride_id: UUID
    current_stage: RideStatusEnum
    # Stages completed so far out of the forward chain; -1 once cancelled
    stage_index: int
