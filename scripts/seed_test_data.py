# scripts/seed_test_data.py
"""
Seed script for local RideCare testing.
Creates one patient, one rider and one admin, plus a few pending bookings,
and prints a bearer token for each profile.

Characters:
- PATIENT: Meera Iyer - 67, recovering from knee surgery, weekly physiotherapy
- RIDER: Arjun Nair - trained patient-transport rider with a wheelchair-ready car
- ADMIN: Operations desk

Run: python -m scripts.seed_test_data
"""

import asyncio
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.config import settings
from src.common.database.database import async_session
from src.models.models import (
    Profile, Appointment, Ride, RideStatusUpdate, RideCompletion, Earning, Notification,
    UserRole, AppointmentStatus,
)


TOKEN_LIFETIME = timedelta(days=7)


def issue_token(profile: Profile) -> str:
    """Bearer token in the shape the identity provider issues."""
    now = datetime.now(timezone.utc)
    payload = {"sub": str(profile.id), "role": profile.role.value, "iat": now, "exp": now + TOKEN_LIFETIME}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def clear_existing_data(db: AsyncSession):
    """Clear all test data (if needed for re-seeding)."""
    print("🧹 Clearing existing data...")

    # Delete in reverse order of dependencies
    tables_to_clear = [
        Notification,
        Earning,
        RideCompletion,
        RideStatusUpdate,
        Ride,
        Appointment,
        Profile,
    ]

    for table in tables_to_clear:
        await db.execute(delete(table))

    await db.commit()
    print("✅ Data cleared")


async def create_profiles(db: AsyncSession):
    """Create the three test profiles."""
    print("👤 Creating profiles...")

    patient = Profile(
        role=UserRole.PATIENT,
        full_name="Meera Iyer",
        phone="+91 98450 12345",
        address="14 Lavelle Road, Bengaluru",
        emergency_contact="Kavya Iyer (daughter) +91 98450 67890",
        medical_conditions="Post knee replacement, uses a walker",
        is_verified=True,
    )
    rider = Profile(
        role=UserRole.RIDER,
        full_name="Arjun Nair",
        phone="+91 99000 54321",
        is_verified=True,
    )
    admin = Profile(
        role=UserRole.ADMIN,
        full_name="Operations Desk",
        is_verified=True,
    )
    db.add_all([patient, rider, admin])
    await db.flush()
    return patient, rider, admin


async def create_appointments(db: AsyncSession, patient: Profile):
    """Create pending bookings for the patient."""
    print("📅 Creating appointments...")

    now = datetime.now(timezone.utc)
    bookings = [
        ("Manipal Hospital", "98 HAL Old Airport Road, Bengaluru", now + timedelta(days=1, hours=3), "1 hour",
         "Needs help getting in and out of the car"),
        ("St. John's Medical College Hospital", "Sarjapur Road, Koramangala, Bengaluru", now + timedelta(days=8), "2 hours",
         None),
    ]
    for hospital_name, hospital_address, when, duration, instructions in bookings:
        db.add(Appointment(
            patient_id=patient.id,
            hospital_name=hospital_name,
            hospital_address=hospital_address,
            appointment_date=when,
            estimated_duration=duration,
            pickup_location=patient.address,
            special_instructions=instructions,
            status=AppointmentStatus.PENDING,
        ))

    await db.flush()


async def seed_all_data(db: AsyncSession):
    """Main seeding function."""
    print("\n🌱 Starting RideCare Test Data Seed")
    print("=" * 50)

    patient, rider, admin = await create_profiles(db)
    await create_appointments(db, patient)

    await db.commit()

    print("\n" + "=" * 50)
    print("✅ Seed complete! Bearer tokens:")
    print(f"   Patient: {issue_token(patient)}")
    print(f"   Rider:   {issue_token(rider)}")
    print(f"   Admin:   {issue_token(admin)}")
    print("=" * 50 + "\n")


# =============================================================================
# MAIN
# =============================================================================

async def main():
    """Run the seed script."""
    async with async_session() as db:
        try:
            await clear_existing_data(db)
            await seed_all_data(db)
        except Exception as e:
            await db.rollback()
            print(f"\n❌ Error during seeding: {e}")
            raise


if __name__ == "__main__":
    asyncio.run(main())
