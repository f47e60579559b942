"""001 Initial schema - vehicles, bookings, pricing, availability cache, sync runs,
conflicts, resolutions, notifications, sync jobs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'vehicles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('make', sa.String(100), nullable=False),
        sa.Column('model', sa.String(100), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_id', sa.String(36),
                  sa.ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', sa.String(36), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(36), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('modified_by', sa.String(36), nullable=True),
        sa.Column('modified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_booking_vehicle_dates', 'bookings', ['vehicle_id', 'start_date', 'end_date'])
    op.create_index('ix_booking_status', 'bookings', ['status'])

    op.create_table(
        'pricing_rules',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_id', sa.String(36),
                  sa.ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('daily_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_pricing_rule_vehicle_dates', 'pricing_rules', ['vehicle_id', 'start_date', 'end_date'])

    op.create_table(
        'availability_cache',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_id', sa.String(36),
                  sa.ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('source', sa.String(30), nullable=False, server_default='COMPUTED'),
        sa.Column('generation', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('vehicle_id', 'date', name='uq_availability_vehicle_date'),
    )
    op.create_index('ix_availability_vehicle_date', 'availability_cache', ['vehicle_id', 'date'])

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_ids', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('conflict_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('full_sync', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('date_start', sa.Date(), nullable=True),
        sa.Column('date_end', sa.Date(), nullable=True),
        sa.Column('triggered_by', sa.String(36), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sync_runs_created_at', 'sync_runs', ['created_at'])

    op.create_table(
        'sync_run_vehicles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sync_run_id', sa.String(36),
                  sa.ForeignKey('sync_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vehicle_id', sa.String(36), nullable=False),
        sa.Column('vehicle_name', sa.String(250), nullable=True),
        sa.Column('sync_status', sa.String(20), nullable=False),
        sa.Column('conflict_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('booking_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('revenue', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sync_run_vehicle_vehicle_created', 'sync_run_vehicles', ['vehicle_id', 'created_at'])
    op.create_index('ix_sync_run_vehicle_run', 'sync_run_vehicles', ['sync_run_id'])

    op.create_table(
        'sync_conflicts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sync_run_id', sa.String(36),
                  sa.ForeignKey('sync_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vehicle_id', sa.String(36), nullable=False),
        sa.Column('conflict_type', sa.String(30), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('local_value', sa.JSON(), nullable=True),
        sa.Column('remote_value', sa.JSON(), nullable=True),
        sa.Column('fingerprint', sa.String(64), nullable=False),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sync_conflict_vehicle_resolved', 'sync_conflicts', ['vehicle_id', 'resolved'])
    op.create_index('ix_sync_conflict_run', 'sync_conflicts', ['sync_run_id'])
    op.create_index('ix_sync_conflict_fingerprint', 'sync_conflicts', ['fingerprint'])

    op.create_table(
        'conflict_resolutions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('conflict_id', sa.String(36), nullable=False, unique=True),
        sa.Column('conflict_type', sa.String(30), nullable=False),
        sa.Column('vehicle_id', sa.String(36), nullable=False),
        sa.Column('resolved_by', sa.String(36), nullable=True),
        sa.Column('resolution', sa.String(10), nullable=False),
        sa.Column('resolution_data', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_conflict_resolutions_created_at', 'conflict_resolutions', ['created_at'])
    op.create_index('ix_conflict_resolution_vehicle_created', 'conflict_resolutions', ['vehicle_id', 'created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('customer_id', sa.String(36), nullable=True),
        sa.Column('booking_id', sa.String(36), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_delivered', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notification_customer', 'notifications', ['customer_id'])
    op.create_index('ix_notification_booking', 'notifications', ['booking_id'])

    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_ids', sa.JSON(), nullable=False),
        sa.Column('full_sync', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('date_start', sa.Date(), nullable=True),
        sa.Column('date_end', sa.Date(), nullable=True),
        sa.Column('requested_by', sa.String(36), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('max_attempts', sa.Integer(), server_default='3'),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sync_run_id', sa.String(36), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_sync_job_status_created', 'sync_jobs', ['status', 'created_at'])


def downgrade():
    op.drop_index('ix_sync_job_status_created', table_name='sync_jobs')
    op.drop_table('sync_jobs')
    op.drop_index('ix_notification_booking', table_name='notifications')
    op.drop_index('ix_notification_customer', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_conflict_resolution_vehicle_created', table_name='conflict_resolutions')
    op.drop_index('ix_conflict_resolutions_created_at', table_name='conflict_resolutions')
    op.drop_table('conflict_resolutions')
    op.drop_index('ix_sync_conflict_fingerprint', table_name='sync_conflicts')
    op.drop_index('ix_sync_conflict_run', table_name='sync_conflicts')
    op.drop_index('ix_sync_conflict_vehicle_resolved', table_name='sync_conflicts')
    op.drop_table('sync_conflicts')
    op.drop_index('ix_sync_run_vehicle_run', table_name='sync_run_vehicles')
    op.drop_index('ix_sync_run_vehicle_vehicle_created', table_name='sync_run_vehicles')
    op.drop_table('sync_run_vehicles')
    op.drop_index('ix_sync_runs_created_at', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_index('ix_availability_vehicle_date', table_name='availability_cache')
    op.drop_table('availability_cache')
    op.drop_index('ix_pricing_rule_vehicle_dates', table_name='pricing_rules')
    op.drop_table('pricing_rules')
    op.drop_index('ix_booking_status', table_name='bookings')
    op.drop_index('ix_booking_vehicle_dates', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('vehicles')
