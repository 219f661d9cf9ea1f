from decimal import Decimal

import pytest

from src.modules.fares.fare_service import compute_fare, normalize_trip, round2, waiting_time_charge


def test_reference_fare_breakdown():
    fare = compute_fare(10, 30, enhanced_support=False)

    assert fare.base_fare == Decimal("80.00")
    assert fare.distance_fare == Decimal("400.00")
    assert fare.time_fare == Decimal("180.00")
    assert fare.assistance_fee == Decimal("150.00")
    assert fare.total == Decimal("810.00")


def test_enhanced_support_uses_higher_assistance_fee():
    fare = compute_fare(10, 30, enhanced_support=True)

    assert fare.assistance_fee == Decimal("300.00")
    assert fare.total == Decimal("960.00")


@pytest.mark.parametrize("distance, minutes, enhanced", [
    (0, 0, False),
    (0, 0, True),
    (3.7, 22, False),
    (12.35, 41, True),
    (48.125, 95, False),
])
def test_total_follows_the_pricing_formula(distance, minutes, enhanced):
    assistance = 300 if enhanced else 150
    expected = round2(Decimal("80") + Decimal("40") * Decimal(str(distance)) + Decimal("6") * minutes + assistance)

    assert compute_fare(distance, minutes, enhanced_support=enhanced).total == expected


def test_total_rounds_half_up_from_the_unrounded_sum():
    # 40 * 10.000125 = 400.005
    fare = compute_fare(10.000125, 30)

    assert fare.distance_fare == Decimal("400.01")
    assert fare.total == Decimal("810.01")


def test_negative_inputs_count_as_zero():
    fare = compute_fare(-5, -10)

    assert fare.distance_fare == Decimal("0.00")
    assert fare.time_fare == Decimal("0.00")
    assert fare.total == Decimal("230.00")


def test_waiting_time_is_billed_per_minute():
    assert waiting_time_charge(10) == Decimal("60.00")
    assert waiting_time_charge(0) == Decimal("0.00")


@pytest.mark.parametrize("distance, minutes, expected", [
    (10.004, 30.5, (Decimal("10.00"), 31)),
    (10.005, 30.4, (Decimal("10.01"), 30)),
    (-5, -10, (Decimal("0.00"), 0)),
])
def test_normalize_trip(distance, minutes, expected):
    assert normalize_trip(distance, minutes) == expected
