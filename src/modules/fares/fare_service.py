# src/modules/fares/fare_service.py
"""Deterministic fare computation. No I/O."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

from .schemas import FareBreakdown


# Pricing constants (Rs)
BASE_FARE_RS = Decimal("80")
DISTANCE_FARE_PER_KM_RS = Decimal("40")
TIME_FARE_PER_MIN_RS = Decimal("6")
ASSISTANCE_STANDARD_RS = Decimal("150")
ASSISTANCE_ENHANCED_RS = Decimal("300")

_CENT = Decimal("0.01")

Number = Union[int, float, Decimal]


def to_decimal(value: Number) -> Decimal:
    """Convert through ``str`` so floats keep their shortest repr (0.1 -> 0.1)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    """Round a money amount to 2 places, halves away from zero."""
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _non_negative(value: Number) -> Decimal:
    amount = to_decimal(value)
    return amount if amount > 0 else Decimal("0")


def normalize_trip(distance_km: Number, duration_minutes: Number) -> Tuple[Decimal, int]:
    """
    The trip figures a ride is billed and stored with.

    Negative values become zero, distance is kept to 2 places and duration to
    whole minutes, halves rounded up.
    """
    distance = round2(_non_negative(distance_km))
    minutes = int(_non_negative(duration_minutes).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return distance, minutes


def compute_fare(
    distance_km_round_trip: Number,
    duration_minutes_round_trip: Number,
    enhanced_support: bool = False,
) -> FareBreakdown:
    """
    Compute the fare for a round trip.

    Args:
        distance_km_round_trip: Total driving distance, both legs.
        duration_minutes_round_trip: Total driving time, both legs.
        enhanced_support: Charge the enhanced assistance fee instead of the standard one.

    Negative distance or duration is treated as zero.
    """
    distance_km = _non_negative(distance_km_round_trip)
    duration_minutes = _non_negative(duration_minutes_round_trip)

    assistance_fee = ASSISTANCE_ENHANCED_RS if enhanced_support else ASSISTANCE_STANDARD_RS
    distance_fare = DISTANCE_FARE_PER_KM_RS * distance_km
    time_fare = TIME_FARE_PER_MIN_RS * duration_minutes
    total = BASE_FARE_RS + distance_fare + time_fare + assistance_fee

    return FareBreakdown(
        base_fare=round2(BASE_FARE_RS),
        distance_fare=round2(distance_fare),
        time_fare=round2(time_fare),
        assistance_fee=round2(assistance_fee),
        total=round2(total),
    )


def waiting_time_charge(waiting_minutes: Number) -> Decimal:
    """Charge for time spent waiting at the hospital, billed at the per-minute rate."""
    return round2(TIME_FARE_PER_MIN_RS * _non_negative(waiting_minutes))
