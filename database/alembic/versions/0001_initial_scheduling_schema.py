"""initial scheduling schema

Revision ID: 0001_initial
Revises:
Create Date: 2024-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ('scheduled', 'rescheduled', 'cancelled', 'completed', 'no-show')


def upgrade() -> None:
    # Create subjects table
    op.create_table(
        'subjects',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('phone IS NOT NULL OR email IS NOT NULL', name='subject_has_contact'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subjects_phone', 'subjects', ['phone'], unique=True)
    op.create_index('ix_subjects_email', 'subjects', ['email'], unique=True)

    # Create bookings table (booking_status enum is created with it)
    op.create_table(
        'bookings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('confirmation_code', sa.String(40), nullable=False),
        sa.Column('resource_id', sa.String(64), nullable=False),
        sa.Column('subject_id', sa.String(64), nullable=False),
        sa.Column('start', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('appointment_type', sa.String(100), nullable=False),
        sa.Column('status', sa.Enum(*BOOKING_STATUSES, name='booking_status'), nullable=False, server_default='scheduled'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('reschedule_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rescheduled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),

        # Constraints
        sa.CheckConstraint('"end" > start', name='check_booking_end_after_start'),
        sa.CheckConstraint('reschedule_count >= 0', name='check_reschedule_count_positive'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_confirmation_code', 'bookings', ['confirmation_code'], unique=True)
    op.create_index('ix_bookings_subject_id', 'bookings', ['subject_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('idx_bookings_resource_start', 'bookings', ['resource_id', 'start'])

    # Create appointment_types table
    op.create_table(
        'appointment_types',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),

        sa.CheckConstraint('duration_minutes > 0', name='check_appointment_type_duration_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='unique_appointment_type_name'),
    )

    # Create business_hours table
    op.create_table(
        'business_hours',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('start_hour', sa.Integer(), nullable=True),
        sa.Column('start_minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('end_hour', sa.Integer(), nullable=True),
        sa.Column('end_minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        # Constraints
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='valid_day_of_week'),
        sa.CheckConstraint('start_hour IS NULL OR (start_hour >= 0 AND start_hour <= 23)', name='valid_start_hour'),
        sa.CheckConstraint('start_minute >= 0 AND start_minute <= 59', name='valid_start_minute'),
        sa.CheckConstraint('end_hour IS NULL OR (end_hour >= 0 AND end_hour <= 23)', name='valid_end_hour'),
        sa.CheckConstraint('end_minute >= 0 AND end_minute <= 59', name='valid_end_minute'),

        # Primary key and unique constraint
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('day_of_week', name='unique_day_of_week'),
    )

    # Create break_windows table
    op.create_table(
        'break_windows',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False, server_default='Break'),
        sa.Column('start_time', sa.TIME(), nullable=False),
        sa.Column('end_time', sa.TIME(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),

        sa.CheckConstraint('day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)', name='valid_break_day'),
        sa.CheckConstraint('end_time > start_time', name='check_break_end_after_start'),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create holidays table
    op.create_table(
        'holidays',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('date', sa.DATE(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_holidays_date', 'holidays', ['date'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_holidays_date', table_name='holidays')
    op.drop_table('holidays')
    op.drop_table('break_windows')
    op.drop_table('business_hours')
    op.drop_table('appointment_types')

    op.drop_index('idx_bookings_resource_start', table_name='bookings')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_subject_id', table_name='bookings')
    op.drop_index('ix_bookings_confirmation_code', table_name='bookings')
    op.drop_table('bookings')
    op.execute('DROP TYPE IF EXISTS booking_status')

    op.drop_index('ix_subjects_email', table_name='subjects')
    op.drop_index('ix_subjects_phone', table_name='subjects')
    op.drop_table('subjects')
