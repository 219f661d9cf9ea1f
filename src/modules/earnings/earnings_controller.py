# src/modules/earnings/earnings_controller.py

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.database.database import get_db_session
from src.auth.dependencies import get_current_rider
from src.models.models import Profile

from . import earnings_service as service
from .schemas import EarningsListResponse

router = APIRouter(prefix="/earnings", tags=["Earnings"])


@router.get("", response_model=EarningsListResponse)
async def get_earnings(
    db: AsyncSession = Depends(get_db_session),
    current_user: Profile = Depends(get_current_rider)
):
    """Get the rider's earnings."""
    return await service.get_rider_earnings(db, current_user)
