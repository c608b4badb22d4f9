"""booking engine tables

Revision ID: a41c7e2d9b10
Revises:
Create Date: 2026-10-19 09:12:44.512093

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a41c7e2d9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

capacity_mode = sa.Enum('SINGLE', 'MULTIPLE', name='capacitymode')
resource_kind = sa.Enum('BUSINESS', 'EMPLOYEE', name='resourcekind')
appointment_status = sa.Enum('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'NO_SHOW', name='appointmentstatus')


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Collaborator tables: businesses, services, employees
    op.create_table(
        'businesses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String, nullable=True),
        sa.Column('capacity_mode', capacity_mode, nullable=False, server_default='SINGLE'),
        sa.Column('default_capacity', sa.Integer, server_default='1'),
        sa.Column('default_slot_interval', sa.Integer, nullable=True),
        sa.Column('auto_confirm', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('require_email_confirmation', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='Europe/Skopje'),
        sa.Column('booking_settings', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
    )

    op.create_table(
        'services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('custom_capacity', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_services_business_id', 'services', ['business_id'])
    op.create_index('ix_services_is_active', 'services', ['is_active'])

    op.create_table(
        'employees',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('max_daily_appointments', sa.Integer, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_employees_business_id', 'employees', ['business_id'])

    op.create_table(
        'employee_services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('employee_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('employee_id', 'service_id', name='uq_employee_services_employee_service'),
    )
    op.create_index('ix_employee_services_employee_id', 'employee_services', ['employee_id'])
    op.create_index('ix_employee_services_service_id', 'employee_services', ['service_id'])

    # 2. Rule layers
    op.create_table(
        'availability_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('resource_kind', resource_kind, nullable=False),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('capacity_override', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day_of_week'),
        sa.CheckConstraint('start_time < end_time', name='ck_availability_rules_window'),
    )
    op.create_index('ix_availability_rules_resource_id', 'availability_rules', ['resource_id'])
    op.create_index(
        'ix_availability_rules_resource_day', 'availability_rules',
        ['resource_kind', 'resource_id', 'day_of_week']
    )

    op.create_table(
        'availability_breaks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('rule_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('availability_rules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('break_start', sa.Time, nullable=False),
        sa.Column('break_end', sa.Time, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('break_start < break_end', name='ck_availability_breaks_window'),
    )
    op.create_index('ix_availability_breaks_rule_id', 'availability_breaks', ['rule_id'])

    op.create_table(
        'special_dates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('resource_kind', resource_kind, nullable=False),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('start_time', sa.Time, nullable=True),
        sa.Column('end_time', sa.Time, nullable=True),
        sa.Column('capacity_override', sa.Integer, nullable=True),
        sa.Column('reason', sa.String, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('resource_kind', 'resource_id', 'date', name='uq_special_dates_resource_date'),
    )
    op.create_index('ix_special_dates_resource_id', 'special_dates', ['resource_id'])

    # 3. Appointments and the per-resource lock rows
    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('businesses.id'), nullable=False),
        sa.Column('employee_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('employees.id'), nullable=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('client_first_name', sa.String, nullable=False),
        sa.Column('client_last_name', sa.String, nullable=False),
        sa.Column('client_email', sa.String, nullable=False),
        sa.Column('client_phone', sa.String, nullable=False),
        sa.Column('client_notes', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('status', appointment_status, nullable=False, server_default='PENDING'),
        sa.Column('booking_source', sa.String, server_default='web'),
        sa.Column('is_email_confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('email_confirmation_token', sa.String, nullable=True),
        sa.Column('completed_automatically', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.CheckConstraint('start_time < end_time', name='ck_appointments_window'),
    )
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index('ix_appointments_email_confirmation_token', 'appointments', ['email_confirmation_token'])
    op.create_index('ix_appointments_business_date', 'appointments', ['business_id', 'date'])
    op.create_index('ix_appointments_employee_date', 'appointments', ['employee_id', 'date'])

    op.create_table(
        'resource_locks',
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('resource_locks')

    op.drop_index('ix_appointments_employee_date', table_name='appointments')
    op.drop_index('ix_appointments_business_date', table_name='appointments')
    op.drop_index('ix_appointments_email_confirmation_token', table_name='appointments')
    op.drop_index('ix_appointments_status', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('ix_special_dates_resource_id', table_name='special_dates')
    op.drop_table('special_dates')
    op.drop_index('ix_availability_breaks_rule_id', table_name='availability_breaks')
    op.drop_table('availability_breaks')
    op.drop_index('ix_availability_rules_resource_day', table_name='availability_rules')
    op.drop_index('ix_availability_rules_resource_id', table_name='availability_rules')
    op.drop_table('availability_rules')

    op.drop_table('employee_services')
    op.drop_index('ix_employees_business_id', table_name='employees')
    op.drop_table('employees')
    op.drop_index('ix_services_is_active', table_name='services')
    op.drop_index('ix_services_business_id', table_name='services')
    op.drop_table('services')
    op.drop_table('businesses')

    appointment_status.drop(op.get_bind(), checkfirst=True)
    resource_kind.drop(op.get_bind(), checkfirst=True)
    capacity_mode.drop(op.get_bind(), checkfirst=True)
