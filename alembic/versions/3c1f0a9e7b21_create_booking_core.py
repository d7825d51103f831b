"""Create coaches, availability rules, booking requests and notification events

Revision ID: 3c1f0a9e7b21
Revises:
Create Date: 2026-10-19 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9e7b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Needed for "coach_id WITH =" inside a gist exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        'coaches',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('slug', sa.String(), nullable=False, unique=True),
        sa.Column('timezone', sa.String(), nullable=False, server_default='UTC'),
        sa.Column('min_notice_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('buffer_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'availability_rules',
        sa.Column('coach_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('coaches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.SmallInteger(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.PrimaryKeyConstraint('coach_id', 'day_of_week', 'start_time', 'end_time'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day'),
        sa.CheckConstraint('start_time < end_time', name='ck_availability_rules_window'),
    )

    op.create_table(
        'google_connections',
        sa.Column('coach_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('coaches.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('google_email', sa.String(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('needs_reconnect', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'booking_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('coach_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('coaches.id'), nullable=False),
        sa.Column('student_name', sa.String(), nullable=False),
        sa.Column('student_email', sa.String(), nullable=False),
        sa.Column('student_timezone', sa.String(), nullable=False, server_default='UTC'),
        sa.Column('requested_times', sa.JSON(), nullable=True),
        sa.Column('scheduled_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True, server_default='60'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('reschedule_of', postgresql.UUID(as_uuid=True), sa.ForeignKey('booking_requests.id'), nullable=True),
        sa.Column('calendar_event_id', sa.String(), nullable=True),
        sa.Column('calendar_provider', sa.String(), nullable=True),
        sa.Column('meeting_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'declined', 'cancelled', 'completed')",
            name='ck_booking_requests_status',
        ),
        sa.CheckConstraint(
            'scheduled_end IS NULL OR scheduled_start IS NULL OR scheduled_end > scheduled_start',
            name='ck_booking_requests_interval',
        ),
    )
    op.create_index('idx_booking_requests_coach_status', 'booking_requests', ['coach_id', 'status'])

    # One active booking per coach per instant. Rows without a scheduled
    # interval (legacy requested_times only) fall outside the constraint.
    op.execute(
        """
        ALTER TABLE booking_requests
        ADD CONSTRAINT booking_requests_no_overlap
        EXCLUDE USING gist (
            coach_id WITH =,
            tstzrange(scheduled_start, scheduled_end, '[)') WITH &&
        )
        WHERE (
            status IN ('pending', 'confirmed')
            AND scheduled_start IS NOT NULL
            AND scheduled_end IS NOT NULL
        )
        """
    )

    # At most one pending reschedule per original booking
    op.create_index(
        'uq_booking_requests_pending_reschedule',
        'booking_requests',
        ['reschedule_of'],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND reschedule_of IS NOT NULL"),
    )

    op.create_table(
        'notification_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('coach_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('coaches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('booking_requests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('student_name', sa.String(), nullable=True),
        sa.Column('student_email', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        'idx_notification_events_unprocessed',
        'notification_events',
        ['coach_id', 'created_at'],
        postgresql_where=sa.text('processed_at IS NULL'),
    )


def downgrade() -> None:
    op.drop_index('idx_notification_events_unprocessed', table_name='notification_events')
    op.drop_table('notification_events')

    op.drop_index('uq_booking_requests_pending_reschedule', table_name='booking_requests')
    op.execute("ALTER TABLE booking_requests DROP CONSTRAINT IF EXISTS booking_requests_no_overlap")
    op.drop_index('idx_booking_requests_coach_status', table_name='booking_requests')
    op.drop_table('booking_requests')

    op.drop_table('google_connections')
    op.drop_table('availability_rules')
    op.drop_table('coaches')
