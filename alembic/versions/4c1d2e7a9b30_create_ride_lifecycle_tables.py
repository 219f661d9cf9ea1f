"""create ride lifecycle tables

Revision ID: 4c1d2e7a9b30
Revises:
Create Date: 2026-10-19 09:12:44.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1d2e7a9b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


userrole = sa.Enum('PATIENT', 'RIDER', 'ADMIN', name='userrole')
appointmentstatus = sa.Enum('PENDING', 'ACCEPTED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='appointmentstatus')
ridestatus = sa.Enum(
    'REQUESTED', 'ACCEPTED', 'PICKUP', 'EN_ROUTE', 'AT_HOSPITAL', 'IN_APPOINTMENT', 'RETURNING',
    'COMPLETED', 'CANCELLED', name='ridestatus'
)
completionrole = sa.Enum('RIDER', 'PATIENT', name='completionrole')
notificationtype = sa.Enum('RIDE', 'INVOICE', 'SYSTEM', name='notificationtype')
paymentstatus = sa.Enum('PENDING', 'PAID', name='paymentstatus')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('role', userrole, nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('emergency_contact', sa.String(length=200), nullable=True),
        sa.Column('medical_conditions', sa.Text(), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('rating', sa.Numeric(precision=2, scale=1), nullable=False),
        sa.Column('total_rides', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('rider_id', sa.Uuid(), nullable=True),
        sa.Column('hospital_name', sa.String(length=255), nullable=False),
        sa.Column('hospital_address', sa.Text(), nullable=False),
        sa.Column('appointment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('estimated_duration', sa.String(length=50), nullable=True),
        sa.Column('pickup_location', sa.Text(), nullable=False),
        sa.Column('special_instructions', sa.Text(), nullable=True),
        sa.Column('status', appointmentstatus, nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rider_id'], ['profiles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointments_status', 'appointments', ['status'])
    op.create_index('idx_appointments_rider', 'appointments', ['rider_id'])

    op.create_table(
        'rides',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('rider_id', sa.Uuid(), nullable=False),
        sa.Column('status', ridestatus, nullable=False),
        sa.Column('pickup_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dropoff_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_pickup_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('distance_km', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('assistance_enhanced', sa.Boolean(), nullable=False),
        sa.Column('base_fare', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('distance_fare', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('time_fare', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('assistance_fee', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_fare', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('waiting_minutes', sa.Integer(), nullable=True),
        sa.Column('patient_notes', sa.Text(), nullable=True),
        sa.Column('rider_notes', sa.Text(), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['patient_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rider_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id'),
    )
    op.create_index('idx_rides_rider', 'rides', ['rider_id'])
    op.create_index('idx_rides_patient', 'rides', ['patient_id'])

    op.create_table(
        'ride_status_updates',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ride_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', ridestatus, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['ride_id'], ['rides.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ride_id', 'sequence', name='uq_ride_status_sequence'),
    )
    op.create_index('idx_ride_status_updates_ride_created', 'ride_status_updates', ['ride_id', 'created_at'])

    op.create_table(
        'ride_completions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ride_id', sa.Uuid(), nullable=False),
        sa.Column('role', completionrole, nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['ride_id'], ['rides.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ride_id', 'role', name='uq_ride_completion_role'),
    )

    op.create_table(
        'earnings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('rider_id', sa.Uuid(), nullable=False),
        sa.Column('ride_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('commission', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('net_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('payment_status', paymentstatus, nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['rider_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ride_id'], ['rides.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ride_id'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', notificationtype, nullable=False),
        sa.Column('reference_id', sa.Uuid(), nullable=True),
        sa.Column('reference_type', sa.String(length=50), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_notifications_user', 'notifications', ['user_id'])
    op.create_index('idx_notifications_unread', 'notifications', ['user_id', 'is_read'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('earnings')
    op.drop_table('ride_completions')
    op.drop_table('ride_status_updates')
    op.drop_table('rides')
    op.drop_table('appointments')
    op.drop_table('profiles')

    # Drop the enum types
    for enum_type in (paymentstatus, notificationtype, completionrole, ridestatus, appointmentstatus, userrole):
        enum_type.drop(op.get_bind(), checkfirst=True)
