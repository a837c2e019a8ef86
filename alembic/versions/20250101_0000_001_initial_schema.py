"""Initial schema - all tables

Revision ID: 001
Revises: 
Create Date: 2025-01-01 00:00:00.000000

This migration creates all initial tables for SiteTrack:
- admins: Tenant accounts (admin / super_admin)
- departments, areas: Named groupings owned by an admin
- work_sites: Geofenced locations
- employees: Field staff accounts
- attendance: Check-in / check-out records
- location_tracking: Position samples
- user_sessions: Bearer token sessions for admins and employees
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from sitetrack.config import get_settings

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Get schema from config
settings = get_settings()
SCHEMA = settings.db_schema  # None for the default schema

NOW = sa.text('CURRENT_TIMESTAMP')


def ref(target: str) -> str:
    return f'{SCHEMA}.{target}' if SCHEMA else target


def tenant_columns(table: str) -> list:
    """admin_id / is_active / created_at shared by every admin-owned table."""
    return [
        sa.Column('admin_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['admin_id'], [ref('admins.id')], name=f'fk_{table}_admin'),
    ]


def upgrade() -> None:
    # Admins table
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('company_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('profile_image', sa.String(length=500), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='admin'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verification_token', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_admins_email', 'admins', ['email'], unique=True, schema=SCHEMA)

    # Departments and areas
    for table in ('departments', 'areas'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('description', sa.String(length=500), nullable=True),
            *tenant_columns(table),
            sa.PrimaryKeyConstraint('id'),
            schema=SCHEMA,
        )
        op.create_index(f'ix_{table}_admin_id', table, ['admin_id'], schema=SCHEMA)

    # Work sites table
    op.create_table(
        'work_sites',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('latitude', sa.Numeric(10, 8), nullable=False),
        sa.Column('longitude', sa.Numeric(11, 8), nullable=False),
        sa.Column('geofence_radius', sa.Integer(), nullable=False, server_default='200'),
        sa.Column('site_image', sa.String(length=500), nullable=True),
        sa.Column('area_id', sa.Integer(), nullable=True),
        *tenant_columns('work_sites'),
        sa.ForeignKeyConstraint(['area_id'], [ref('areas.id')], name='fk_work_sites_area'),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_work_sites_admin_id', 'work_sites', ['admin_id'], schema=SCHEMA)
    op.create_index('ix_work_sites_area_id', 'work_sites', ['area_id'], schema=SCHEMA)

    # Employees table
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_code', sa.String(length=50), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=False, server_default=''),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('site_id', sa.Integer(), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('profile_image', sa.String(length=500), nullable=True),
        *tenant_columns('employees'),
        sa.ForeignKeyConstraint(['site_id'], [ref('work_sites.id')], name='fk_employees_site'),
        sa.ForeignKeyConstraint(['department_id'], [ref('departments.id')], name='fk_employees_department'),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_employees_email', 'employees', ['email'], unique=True, schema=SCHEMA)
    op.create_index('ix_employees_admin_id', 'employees', ['admin_id'], schema=SCHEMA)
    op.create_index('ix_employees_site_id', 'employees', ['site_id'], schema=SCHEMA)
    op.create_index('ix_employees_department_id', 'employees', ['department_id'], schema=SCHEMA)
    op.create_index('ix_employees_admin_active', 'employees', ['admin_id', 'is_active'], schema=SCHEMA)

    # Attendance table
    op.create_table(
        'attendance',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('site_id', sa.Integer(), nullable=False),
        sa.Column('check_in_time', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('check_in_latitude', sa.Numeric(10, 8), nullable=True),
        sa.Column('check_in_longitude', sa.Numeric(11, 8), nullable=True),
        sa.Column('check_out_time', sa.DateTime(), nullable=True),
        sa.Column('check_out_latitude', sa.Numeric(10, 8), nullable=True),
        sa.Column('check_out_longitude', sa.Numeric(11, 8), nullable=True),
        sa.ForeignKeyConstraint(['employee_id'], [ref('employees.id')], name='fk_attendance_employee'),
        sa.ForeignKeyConstraint(['site_id'], [ref('work_sites.id')], name='fk_attendance_site'),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_attendance_employee_id', 'attendance', ['employee_id'], schema=SCHEMA)
    op.create_index('ix_attendance_site_id', 'attendance', ['site_id'], schema=SCHEMA)
    op.create_index('ix_attendance_check_in_time', 'attendance', ['check_in_time'], schema=SCHEMA)
    op.create_index('ix_attendance_employee_open', 'attendance', ['employee_id', 'check_out_time'], schema=SCHEMA)

    # Location tracking table
    op.create_table(
        'location_tracking',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('latitude', sa.Numeric(10, 8), nullable=False),
        sa.Column('longitude', sa.Numeric(11, 8), nullable=False),
        sa.Column('is_on_site', sa.Boolean(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['employee_id'], [ref('employees.id')], name='fk_location_tracking_employee'),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_location_tracking_employee_time', 'location_tracking', ['employee_id', 'timestamp'], schema=SCHEMA)

    # User sessions table (user_id points at admins or employees depending on user_type)
    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_type', sa.String(length=20), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('session_token', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('logged_out_at', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        schema=SCHEMA,
    )
    op.create_index('ix_user_sessions_session_token', 'user_sessions', ['session_token'], unique=True, schema=SCHEMA)
    op.create_index('ix_user_sessions_user_active', 'user_sessions', ['user_type', 'user_id', 'is_active'], schema=SCHEMA)


def downgrade() -> None:
    op.drop_table('user_sessions', schema=SCHEMA)
    op.drop_table('location_tracking', schema=SCHEMA)
    op.drop_table('attendance', schema=SCHEMA)
    op.drop_table('employees', schema=SCHEMA)
    op.drop_table('work_sites', schema=SCHEMA)
    op.drop_table('areas', schema=SCHEMA)
    op.drop_table('departments', schema=SCHEMA)
    op.drop_table('admins', schema=SCHEMA)
