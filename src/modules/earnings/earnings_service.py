# src/modules/earnings/earnings_service.py
"""Earnings service. Rows are written by ride finalization; this module only reads them."""

from decimal import Decimal

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.models import Earning, PaymentStatus as DBPaymentStatus, Profile
from .schemas import EarningResponse, EarningsListResponse, PaymentStatus


def _convert_status(db_status: DBPaymentStatus) -> PaymentStatus:
    """Convert database enum to schema enum."""
    if db_status == DBPaymentStatus.PAID:
        return PaymentStatus.PAID
    return PaymentStatus.PENDING


def _build_earning_response(earning: Earning) -> EarningResponse:
    return EarningResponse(
        id=earning.id,
        ride_id=earning.ride_id,
        amount=earning.amount,
        commission=earning.commission,
        net_amount=earning.net_amount,
        payment_status=_convert_status(earning.payment_status),
        paid_at=earning.paid_at,
        created_at=earning.created_at,
    )


async def get_rider_earnings(session: AsyncSession, user: Profile) -> EarningsListResponse:
    """All earnings for the current rider, newest first."""
    result = await session.execute(
        select(Earning)
        .where(Earning.rider_id == user.id)
        .order_by(desc(Earning.created_at))
    )
    earnings = result.scalars().all()

    return EarningsListResponse(
        earnings=[_build_earning_response(e) for e in earnings],
        total_net=sum((e.net_amount for e in earnings), Decimal("0.00")),
        total_rides=len(earnings),
    )
