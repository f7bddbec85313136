"""Initial maintenance schema

Revision ID: 001_initial_maintenance_schema
Revises:
Create Date: 2026-10-18

Equipment units, maintenance schedules, work orders and notes, maintenance
records and receipts, and downtime events. Every table carries company_id.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_maintenance_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEXES = {
    'equipment_units': ['id', 'company_id', 'equipment_code', 'equipment_type', 'status'],
    'maintenance_schedules': ['id', 'company_id', 'equipment_id', 'maintenance_type', 'is_active'],
    'maintenance_work_orders': [
        'id', 'company_id', 'work_order_number', 'equipment_id', 'schedule_id',
        'maintenance_type', 'status', 'priority', 'due_date', 'assigned_to',
    ],
    'work_order_notes': ['id', 'company_id', 'work_order_id'],
    'maintenance_records': [
        'id', 'company_id', 'equipment_id', 'work_order_id', 'schedule_id', 'record_type', 'performed_at',
    ],
    'maintenance_receipts': ['id', 'company_id', 'equipment_id', 'maintenance_record_id', 'receipt_date'],
    'equipment_downtime': ['id', 'company_id', 'equipment_id', 'started_at', 'ended_at', 'reason'],
}


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()'))]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')))
    return columns


def upgrade() -> None:
    """Upgrade schema - create maintenance tables."""
    op.create_table('equipment_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('equipment_code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('equipment_type', sa.String(length=100), nullable=False),
        sa.Column('current_usage_hours', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='active'),
        sa.Column('certifications_required', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('maintenance_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('maintenance_type', sa.String(length=50), nullable=False),
        sa.Column('frequency_value', sa.Integer(), nullable=True),
        sa.Column('frequency_unit', sa.String(length=20), nullable=True),
        sa.Column('hours_interval', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('warning_days', sa.Integer(), nullable=True),
        sa.Column('warning_hours', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('task_checklist', sa.JSON(), nullable=True),
        sa.Column('required_parts', sa.JSON(), nullable=True),
        sa.Column('required_certifications', sa.JSON(), nullable=True),
        sa.Column('assigned_to', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_regulatory_requirement', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('regulation_reference', sa.String(length=255), nullable=True),
        sa.Column('last_completed_at', sa.Date(), nullable=True),
        sa.Column('last_completed_hours', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('overdue_flagged_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment_units.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('maintenance_work_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('work_order_number', sa.String(length=30), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('schedule_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('maintenance_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='requested'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('safety_concern', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('requested_date', sa.Date(), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('requested_by', sa.String(length=100), nullable=True),
        sa.Column('assigned_to', sa.String(length=100), nullable=True),
        sa.Column('estimated_labor_hours', sa.Numeric(precision=8, scale=2), nullable=True),
        sa.Column('actual_labor_hours', sa.Numeric(precision=8, scale=2), nullable=True),
        sa.Column('estimated_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('actual_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('approval_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('problem_description', sa.Text(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment_units.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['schedule_id'], ['maintenance_schedules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('work_order_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('work_order_id', sa.Integer(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('author', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['work_order_id'], ['maintenance_work_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('maintenance_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('work_order_id', sa.Integer(), nullable=True),
        sa.Column('schedule_id', sa.Integer(), nullable=True),
        sa.Column('corrects_record_id', sa.Integer(), nullable=True),
        sa.Column('record_type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('performed_at', sa.Date(), nullable=False),
        sa.Column('performed_by', sa.String(length=100), nullable=True),
        sa.Column('hour_meter_reading', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('work_performed', sa.Text(), nullable=True),
        sa.Column('findings', sa.Text(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('is_certification_record', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('certification_type', sa.String(length=100), nullable=True),
        sa.Column('certification_expiry', sa.Date(), nullable=True),
        sa.Column('labor_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('parts_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('total_cost', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment_units.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['work_order_id'], ['maintenance_work_orders.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['schedule_id'], ['maintenance_schedules.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['corrects_record_id'], ['maintenance_records.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('maintenance_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('maintenance_record_id', sa.Integer(), nullable=True),
        sa.Column('work_order_id', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=30), nullable=False, server_default='manual_entry'),
        sa.Column('receipt_number', sa.String(length=100), nullable=True),
        sa.Column('receipt_date', sa.Date(), nullable=False),
        sa.Column('vendor_name', sa.String(length=255), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('tax_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('expense_category', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment_units.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['maintenance_record_id'], ['maintenance_records.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['work_order_id'], ['maintenance_work_orders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('equipment_downtime',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('equipment_id', sa.Integer(), nullable=False),
        sa.Column('work_order_id', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('reason_details', sa.Text(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('reported_by', sa.String(length=100), nullable=True),
        sa.Column('resolved_by', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['equipment_id'], ['equipment_units.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['work_order_id'], ['maintenance_work_orders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create indexes for better query performance
    for table, columns in INDEXES.items():
        for column in columns:
            op.create_index(op.f(f'ix_{table}_{column}'), table, [column], unique=False)


def downgrade() -> None:
    """Downgrade schema - remove maintenance tables."""
    for table, columns in reversed(list(INDEXES.items())):
        for column in columns:
            op.drop_index(op.f(f'ix_{table}_{column}'), table_name=table)

    op.drop_table('equipment_downtime')
    op.drop_table('maintenance_receipts')
    op.drop_table('maintenance_records')
    op.drop_table('work_order_notes')
    op.drop_table('maintenance_work_orders')
    op.drop_table('maintenance_schedules')
    op.drop_table('equipment_units')
