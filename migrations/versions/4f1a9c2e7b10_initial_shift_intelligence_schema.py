"""initial shift intelligence schema

Revision ID: 4f1a9c2e7b10
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'sites',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('geo_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('geo_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('requires_weapon', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('required_certifications', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'shift_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('required_employees', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('preferred_employees', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_shift_templates_site_id', 'shift_templates', ['site_id'])

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('has_weapon_license', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('weapon_license_expiry', sa.Date(), nullable=True),
        sa.Column('home_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('home_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(8, 2), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'employee_certifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cert_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_employee_certifications_employee_id', 'employee_certifications', ['employee_id'])

    op.create_table(
        'employee_availability',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('weekday', sa.SmallInteger(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('employee_id', 'weekday', name='uq_availability_employee_weekday'),
    )
    op.create_index('ix_employee_availability_employee_id', 'employee_availability', ['employee_id'])

    op.create_table(
        'employee_leaves',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='approved'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_employee_leaves_employee_id', 'employee_leaves', ['employee_id'])
    op.create_index('ix_leave_employee_range', 'employee_leaves', ['employee_id', 'start_date', 'end_date'])

    op.create_table(
        'shifts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('template_id', sa.Integer(), sa.ForeignKey('shift_templates.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('required_employees', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('requires_weapon', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_shifts_site_id', 'shifts', ['site_id'])
    op.create_index('ix_shifts_date', 'shifts', ['date'])
    op.create_index('ix_shift_site_date', 'shifts', ['site_id', 'date'])

    op.create_table(
        'shift_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shift_id', sa.Integer(), sa.ForeignKey('shifts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='assigned'),
        sa.Column('actual_hours', sa.Numeric(5, 2), nullable=True),
        sa.Column('rating', sa.SmallInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('rating IS NULL OR (rating >= 0 AND rating <= 5)', name='ck_assignment_rating_range'),
    )
    op.create_index('ix_shift_assignments_shift_id', 'shift_assignments', ['shift_id'])
    op.create_index('ix_shift_assignments_employee_id', 'shift_assignments', ['employee_id'])
    op.create_index('ix_assignment_employee_status', 'shift_assignments', ['employee_id', 'status'])

    op.create_table(
        'weekly_insights',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('analysis_date', sa.Date(), nullable=False),
        sa.Column('trigger', sa.String(length=16), nullable=False, server_default='manual'),
        sa.Column('shortage_sites', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fatigue_risk_employees', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('optimization_opportunities', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('high_no_show_sites', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('severity', sa.String(length=16), nullable=False, server_default='info'),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('warnings', sa.JSON(), nullable=True),
        sa.Column('config_version', sa.String(length=40), nullable=False),
        sa.Column('config_fingerprint', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_weekly_insights_analysis_date', 'weekly_insights', ['analysis_date'])
    op.create_index('ix_weekly_insights_created_at', 'weekly_insights', ['created_at'])


def downgrade() -> None:
    op.drop_table('weekly_insights')
    op.drop_table('shift_assignments')
    op.drop_table('shifts')
    op.drop_table('employee_leaves')
    op.drop_table('employee_availability')
    op.drop_table('employee_certifications')
    op.drop_table('employees')
    op.drop_table('shift_templates')
    op.drop_table('sites')
