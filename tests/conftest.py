import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.common.config import settings
from src.common.routing import RoutingService
from src.models.models import Appointment, AppointmentStatus, Base, Profile, RideStatus, UserRole
from src.modules.ride_status.ride_status_service import STAGE_ORDER
from src.modules.rides import rides_service

# One-way 5 km / 15 min, so the round trip is 10 km / 30 min and the fare Rs 810.00
ONE_WAY_METERS = 5000.0
ONE_WAY_SECONDS = 900.0


def oracle_handler(request: httpx.Request) -> httpx.Response:
    if "nominatim" in request.url.host:
        return httpx.Response(200, json=[{"lat": "12.9716", "lon": "77.5946"}])
    return httpx.Response(200, json={
        "code": "Ok",
        "routes": [{"distance": ONE_WAY_METERS, "duration": ONE_WAY_SECONDS}],
    })


def make_routing(handler=oracle_handler) -> RoutingService:
    return RoutingService(
        geocoder_url="https://nominatim.test/search",
        router_url="https://osrm.test/route/v1/driving",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def token_for(profile: Profile) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(profile.id), "iat": now, "exp": now + timedelta(hours=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {token_for(profile)}"}


async def advance_to(session, ride_id, rider_id, target: RideStatus):
    """Walk a freshly accepted ride forward one stage at a time up to ``target``."""
    start = STAGE_ORDER.index(RideStatus.ACCEPTED) + 1
    for stage in STAGE_ORDER[start:STAGE_ORDER.index(target) + 1]:
        await rides_service.advance_stage(session, ride_id, rider_id, stage)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def _profile(session, role: UserRole, name: str) -> Profile:
    profile = Profile(role=role, full_name=name, phone="+91 90000 00000")
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return profile


@pytest.fixture
async def patient(session):
    return await _profile(session, UserRole.PATIENT, "Meera Iyer")


@pytest.fixture
async def rider(session):
    return await _profile(session, UserRole.RIDER, "Arjun Nair")


@pytest.fixture
async def other_rider(session):
    return await _profile(session, UserRole.RIDER, "Farhan Sheikh")


@pytest.fixture
async def admin(session):
    return await _profile(session, UserRole.ADMIN, "Operations Desk")


@pytest.fixture
async def appointment(session, patient):
    appointment = Appointment(
        patient_id=patient.id,
        hospital_name="Manipal Hospital",
        hospital_address="98 HAL Old Airport Road, Bengaluru",
        appointment_date=datetime.now(timezone.utc) + timedelta(days=1),
        estimated_duration="1 hour",
        pickup_location="14 Lavelle Road, Bengaluru",
        status=AppointmentStatus.PENDING,
    )
    session.add(appointment)
    await session.commit()
    await session.refresh(appointment)
    return appointment


@pytest.fixture
async def accepted_ride(session, appointment, rider):
    """A ride accepted at the 810.00 fare (10 km, 30 min, standard assistance)."""
    return await rides_service.accept_ride(session, appointment.id, rider.id, 10, 30)
