# src/models/models.py

import uuid
import enum

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, Uuid, Enum as SAEnum, UniqueConstraint, func,
)
from sqlalchemy.orm import declarative_base, relationship, backref

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class UserRole(enum.Enum):
    PATIENT = "patient"
    RIDER = "rider"
    ADMIN = "admin"


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RideStatus(enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    PICKUP = "pickup"
    EN_ROUTE = "en_route"
    AT_HOSPITAL = "at_hospital"
    IN_APPOINTMENT = "in_appointment"
    RETURNING = "returning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CompletionRole(enum.Enum):
    RIDER = "rider"
    PATIENT = "patient"


class NotificationType(enum.Enum):
    RIDE = "ride"
    INVOICE = "invoice"
    SYSTEM = "system"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"


# ============================================================================
# USER MODELS
# ============================================================================

class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity provider's user (JWT "sub")
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.PATIENT)
    full_name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    emergency_contact = Column(String(200), nullable=True)
    medical_conditions = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    rating = Column(Numeric(2, 1), default=5.0, nullable=False)
    total_rides = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Profile(id={self.id}, role={self.role.value})>"


# ============================================================================
# BOOKING MODELS
# ============================================================================

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    patient_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    # Non-null exactly while status is accepted, in_progress or completed
    rider_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    hospital_name = Column(String(255), nullable=False)
    hospital_address = Column(Text, nullable=False)
    appointment_date = Column(DateTime(timezone=True), nullable=False)
    estimated_duration = Column(String(50), nullable=True)
    pickup_location = Column(Text, nullable=False)
    special_instructions = Column(Text, nullable=True)
    status = Column(SAEnum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Profile", foreign_keys=[patient_id], backref=backref("appointments", lazy="dynamic"))
    rider = relationship("Profile", foreign_keys=[rider_id], backref=backref("assigned_appointments", lazy="dynamic"))

    __table_args__ = (
        Index("idx_appointments_status", "status"),
        Index("idx_appointments_rider", "rider_id"),
    )

    def __repr__(self):
        return f"<Appointment(id={self.id}, status={self.status.value})>"


class Ride(Base):
    __tablename__ = "rides"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    appointment_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False)
    patient_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    rider_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    status = Column(SAEnum(RideStatus), default=RideStatus.ACCEPTED, nullable=False)
    pickup_time = Column(DateTime(timezone=True), nullable=True)
    dropoff_time = Column(DateTime(timezone=True), nullable=True)
    return_pickup_time = Column(DateTime(timezone=True), nullable=True)
    completion_time = Column(DateTime(timezone=True), nullable=True)
    distance_km = Column(Numeric(10, 2), nullable=True)  # round trip
    duration_minutes = Column(Integer, nullable=True)  # round trip
    assistance_enhanced = Column(Boolean, default=False, nullable=False)
    base_fare = Column(Numeric(10, 2), default=0, nullable=False)
    distance_fare = Column(Numeric(10, 2), default=0, nullable=False)
    time_fare = Column(Numeric(10, 2), default=0, nullable=False)
    assistance_fee = Column(Numeric(10, 2), default=0, nullable=False)
    total_fare = Column(Numeric(10, 2), nullable=True)
    waiting_minutes = Column(Integer, nullable=True)
    patient_notes = Column(Text, nullable=True)
    rider_notes = Column(Text, nullable=True)
    # Set once, by whichever completion call closes the quorum
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    appointment = relationship("Appointment", backref=backref("ride", uselist=False))
    completions = relationship("RideCompletion", lazy="selectin", back_populates="ride")

    __table_args__ = (
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_patient", "patient_id"),
    )

    @property
    def rider_completed(self) -> bool:
        return any(c.role == CompletionRole.RIDER for c in self.completions)

    @property
    def patient_completed(self) -> bool:
        return any(c.role == CompletionRole.PATIENT for c in self.completions)

    def __repr__(self):
        return f"<Ride(id={self.id}, status={self.status.value})>"


class RideStatusUpdate(Base):
    """Append-only timeline entry. Never updated or deleted by the services."""
    __tablename__ = "ride_status_updates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    ride_id = Column(Uuid(as_uuid=True), ForeignKey("rides.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    status = Column(SAEnum(RideStatus), nullable=False)
    notes = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    ride = relationship("Ride", backref=backref("status_updates", lazy="dynamic"))

    __table_args__ = (
        UniqueConstraint("ride_id", "sequence", name="uq_ride_status_sequence"),
        Index("idx_ride_status_updates_ride_created", "ride_id", "created_at"),
    )

    def __repr__(self):
        return f"<RideStatusUpdate(ride_id={self.ride_id}, seq={self.sequence}, status={self.status.value})>"


class RideCompletion(Base):
    """One party's confirmation that the trip concluded safely."""
    __tablename__ = "ride_completions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    ride_id = Column(Uuid(as_uuid=True), ForeignKey("rides.id", ondelete="CASCADE"), nullable=False)
    role = Column(SAEnum(CompletionRole), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    ride = relationship("Ride", back_populates="completions")

    __table_args__ = (
        UniqueConstraint("ride_id", "role", name="uq_ride_completion_role"),
    )

    def __repr__(self):
        return f"<RideCompletion(ride_id={self.ride_id}, role={self.role.value})>"


# ============================================================================
# BILLING MODELS
# ============================================================================

class Earning(Base):
    __tablename__ = "earnings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    rider_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    ride_id = Column(Uuid(as_uuid=True), ForeignKey("rides.id", ondelete="CASCADE"), unique=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    commission = Column(Numeric(10, 2), default=0, nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(SAEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    rider = relationship("Profile", backref=backref("earnings", lazy="dynamic"))
    ride = relationship("Ride", backref=backref("earning", uselist=False))

    def __repr__(self):
        return f"<Earning(id={self.id}, net_amount={self.net_amount})>"


# ============================================================================
# NOTIFICATION MODELS
# ============================================================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SAEnum(NotificationType), nullable=False, default=NotificationType.SYSTEM)
    reference_id = Column(Uuid(as_uuid=True), nullable=True)
    reference_type = Column(String(50), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationship
    user = relationship("Profile", backref=backref("notifications", lazy="dynamic"))

    __table_args__ = (
        Index("idx_notifications_user", "user_id"),
        Index("idx_notifications_unread", "user_id", "is_read"),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, title={self.title})>"
