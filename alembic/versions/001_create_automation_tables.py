"""Create review automation tables

Revision ID: 001_create_automation_tables
Revises:
Create Date: 2026-01-29

Businesses, customers, sequences (steps, enrollments, step executions),
scheduled jobs, templates, review requests, message sends and telemetry.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_automation_tables'
down_revision = None
branch_labels = None
depends_on = None


def _business_fk():
    return sa.Column(
        'business_id', sa.Integer(),
        sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False, index=True,
    )


def upgrade():
    """Create automation tables."""
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        sa.Column('google_review_url', sa.String(500)),
        # Safety rules; null falls back to settings defaults
        sa.Column('timezone', sa.String(64)),
        sa.Column('quiet_hours_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('quiet_hours_start', sa.Integer()),
        sa.Column('quiet_hours_end', sa.Integer()),
        sa.Column('hourly_send_limit', sa.Integer()),
        sa.Column('daily_send_limit', sa.Integer()),
        sa.Column('cooldown_days', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('full_name', sa.String(255)),
        sa.Column('email', sa.String(255), index=True),
        sa.Column('phone', sa.String(50)),
        sa.Column('external_id', sa.String(255)),
        sa.Column('source', sa.String(50)),
        sa.Column('status', sa.String(30)),
        sa.Column('unsubscribed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sms_opted_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dnc', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('hard_bounced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_review_request_at', sa.DateTime()),
        sa.Column('last_synced_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('business_id', 'source', 'external_id', name='uq_customers_source_external'),
    )

    op.create_table(
        'sequences',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column(
            'status',
            sa.Enum('draft', 'active', 'paused', name='sequence_status_enum'),
            nullable=False, server_default='draft',
        ),
        sa.Column('trigger_event_type', sa.String(100), index=True),
        sa.Column('allow_manual_enroll', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'sequence_steps',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('sequence_id', sa.Integer(), sa.ForeignKey('sequences.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('step_index', sa.Integer(), nullable=False),
        sa.Column(
            'kind',
            sa.Enum('send_email', 'send_sms', 'wait', 'branch', name='sequence_step_kind_enum'),
            nullable=False,
        ),
        sa.Column('wait_ms', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('message_config', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('sequence_id', 'step_index', name='uq_sequence_steps_index'),
    )

    op.create_table(
        'sequence_enrollments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('sequence_id', sa.Integer(), sa.ForeignKey('sequences.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column(
            'status',
            sa.Enum('active', 'completed', 'cancelled', 'failed', name='sequence_enrollment_status_enum'),
            nullable=False, server_default='active',
        ),
        sa.Column('current_step_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_run_at', sa.DateTime()),
        sa.Column('last_event_at', sa.DateTime()),
        sa.Column('claimed_at', sa.DateTime()),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('meta', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index(
        'uq_sequence_enrollments_active',
        'sequence_enrollments',
        ['sequence_id', 'customer_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index('ix_sequence_enrollments_due', 'sequence_enrollments', ['status', 'next_run_at'])

    op.create_table(
        'sequence_step_executions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('enrollment_id', sa.Integer(),
                  sa.ForeignKey('sequence_enrollments.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('step_index', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20)),
        sa.Column(
            'status',
            sa.Enum('processing', 'completed', 'failed', 'rescheduled',
                    name='sequence_step_execution_status_enum'),
            nullable=False, server_default='processing',
        ),
        sa.Column('outcome', sa.String(50)),
        sa.Column('error_message', sa.Text()),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime()),
    )

    op.create_table(
        'scheduled_jobs',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('run_at', sa.DateTime(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('queued', 'processing', 'completed', 'failed', name='scheduled_job_status_enum'),
            nullable=False, server_default='queued',
        ),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('claimed_at', sa.DateTime()),
        sa.Column('processed_at', sa.DateTime()),
        sa.Column('error_message', sa.Text()),
        sa.Column('result', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_scheduled_jobs_due', 'scheduled_jobs', ['status', 'run_at'])

    op.create_table(
        'automation_templates',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('channels', sa.JSON()),
        sa.Column('config_json', sa.JSON()),
        sa.Column('service_types', sa.JSON()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('business_id', 'key', name='uq_automation_templates_key'),
    )

    op.create_table(
        'review_requests',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        _business_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('template_id', sa.Integer(),
                  sa.ForeignKey('automation_templates.id', ondelete='SET NULL')),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('subject', sa.String(255)),
        sa.Column('message', sa.Text()),
        sa.Column('review_link', sa.String(500)),
        sa.Column(
            'status',
            sa.Enum('pending', 'scheduled', 'sent', 'failed', name='review_request_status_enum'),
            nullable=False, server_default='pending',
        ),
        sa.Column('send_at', sa.DateTime()),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('clicked_at', sa.DateTime()),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('reminder_sent_at', sa.DateTime()),
        sa.Column('error_message', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'message_sends',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('business_id', sa.Integer(), sa.ForeignKey('businesses.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL'), index=True),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('is_review_request', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enrollment_id', sa.Integer(),
                  sa.ForeignKey('sequence_enrollments.id', ondelete='SET NULL')),
        sa.Column('job_id', sa.Integer(), sa.ForeignKey('scheduled_jobs.id', ondelete='SET NULL')),
        sa.Column('provider_message_id', sa.String(255)),
        sa.Column('error_message', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_message_sends_business_created', 'message_sends', ['business_id', 'created_at'])

    op.create_table(
        'telemetry_events',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('business_id', sa.Integer(), sa.ForeignKey('businesses.id', ondelete='CASCADE'), index=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('event_data', sa.JSON()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    """Drop automation tables."""
    op.drop_table('telemetry_events')
    op.drop_index('ix_message_sends_business_created', table_name='message_sends')
    op.drop_table('message_sends')
    op.drop_table('review_requests')
    op.drop_table('automation_templates')
    op.drop_index('ix_scheduled_jobs_due', table_name='scheduled_jobs')
    op.drop_table('scheduled_jobs')
    op.drop_table('sequence_step_executions')
    op.drop_index('ix_sequence_enrollments_due', table_name='sequence_enrollments')
    op.drop_index('uq_sequence_enrollments_active', table_name='sequence_enrollments')
    op.drop_table('sequence_enrollments')
    op.drop_table('sequence_steps')
    op.drop_table('sequences')
    op.drop_table('customers')
    op.drop_table('businesses')

    for enum_name in (
        'review_request_status_enum',
        'scheduled_job_status_enum',
        'sequence_step_execution_status_enum',
        'sequence_enrollment_status_enum',
        'sequence_step_kind_enum',
        'sequence_status_enum',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
