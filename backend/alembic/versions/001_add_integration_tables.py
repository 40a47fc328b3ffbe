"""Create claims & repairs job and cross-module integration tables

Revision ID: 001_add_integration_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_add_integration_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create jobs, module records, link tables and the integration event log."""
    op.create_table(
        'claims_repairs_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('job_type', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('yacht_id', sa.String(length=36), nullable=True),
        sa.Column('equipment_id', sa.String(length=36), nullable=True),
        sa.Column('estimated_cost', sa.Float(), nullable=True),
        sa.Column('actual_cost', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_claims_repairs_jobs_status', 'claims_repairs_jobs', ['status'], unique=False)
    op.create_index('ix_claims_repairs_jobs_yacht_id', 'claims_repairs_jobs', ['yacht_id'], unique=False)
    op.create_index('ix_claims_repairs_jobs_equipment_id', 'claims_repairs_jobs', ['equipment_id'], unique=False)

    op.create_table(
        'equipment',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('model_number', sa.String(length=100), nullable=True),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('yacht_id', sa.String(length=36), nullable=True),
        sa.Column('next_maintenance_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_equipment_yacht_id', 'equipment', ['yacht_id'], unique=False)

    op.create_table(
        'job_equipment_links',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('equipment_id', sa.String(length=36), nullable=False),
        sa.Column('relationship_type', sa.String(length=30), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'equipment_id', name='uq_job_equipment_link')
    )
    op.create_index('ix_job_equipment_links_job_id', 'job_equipment_links', ['job_id'], unique=False)
    op.create_index('ix_job_equipment_links_equipment_id', 'job_equipment_links', ['equipment_id'], unique=False)

    op.create_table(
        'maintenance_schedules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('equipment_id', sa.String(length=36), nullable=False),
        sa.Column('next_due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'equipment_id', name='uq_maintenance_job_equipment')
    )
    op.create_index('ix_maintenance_schedules_job_id', 'maintenance_schedules', ['job_id'], unique=False)
    op.create_index('ix_maintenance_schedules_equipment_id', 'maintenance_schedules', ['equipment_id'], unique=False)

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('part_number', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'inventory_reservations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('inventory_item_id', sa.String(length=36), nullable=False),
        sa.Column('quantity_reserved', sa.Integer(), nullable=False),
        sa.Column('reservation_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'inventory_item_id', name='uq_reservation_job_item')
    )
    op.create_index('ix_inventory_reservations_job_id', 'inventory_reservations', ['job_id'], unique=False)
    op.create_index('ix_inventory_reservations_inventory_item_id', 'inventory_reservations', ['inventory_item_id'], unique=False)

    op.create_table(
        'crew_members',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=100), nullable=True),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('certifications', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'crew_assignments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('crew_member_id', sa.String(length=36), nullable=False),
        sa.Column('role', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'crew_member_id', name='uq_crew_assignment')
    )
    op.create_index('ix_crew_assignments_job_id', 'crew_assignments', ['job_id'], unique=False)
    op.create_index('ix_crew_assignments_crew_member_id', 'crew_assignments', ['crew_member_id'], unique=False)

    op.create_table(
        'finance_transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reference_id', sa.String(length=36), nullable=False),
        sa.Column('source_module', sa.String(length=50), nullable=False),
        sa.Column('transaction_type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('supplier_contractor_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('integration_key', sa.String(length=100), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_id', 'integration_key', name='uq_finance_integration_key')
    )
    op.create_index('ix_finance_transactions_reference_id', 'finance_transactions', ['reference_id'], unique=False)

    op.create_table(
        'compliance_requirements',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('regulation_code', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=30), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('applicable_modules', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'job_compliance_checks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=False),
        sa.Column('requirement_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'requirement_id', name='uq_job_compliance_check')
    )
    op.create_index('ix_job_compliance_checks_job_id', 'job_compliance_checks', ['job_id'], unique=False)
    op.create_index('ix_job_compliance_checks_requirement_id', 'job_compliance_checks', ['requirement_id'], unique=False)

    op.create_table(
        'integration_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('module', sa.String(length=50), nullable=False),
        sa.Column('source_record_id', sa.String(length=36), nullable=True),
        sa.Column('target_modules', sa.JSON(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_integration_events_event_type', 'integration_events', ['event_type'], unique=False)
    op.create_index('ix_integration_events_source_record_id', 'integration_events', ['source_record_id'], unique=False)


def downgrade() -> None:
    """Drop integration tables."""
    op.drop_index('ix_integration_events_source_record_id', table_name='integration_events')
    op.drop_index('ix_integration_events_event_type', table_name='integration_events')
    op.drop_table('integration_events')
    op.drop_index('ix_job_compliance_checks_requirement_id', table_name='job_compliance_checks')
    op.drop_index('ix_job_compliance_checks_job_id', table_name='job_compliance_checks')
    op.drop_table('job_compliance_checks')
    op.drop_table('compliance_requirements')
    op.drop_index('ix_finance_transactions_reference_id', table_name='finance_transactions')
    op.drop_table('finance_transactions')
    op.drop_index('ix_crew_assignments_crew_member_id', table_name='crew_assignments')
    op.drop_index('ix_crew_assignments_job_id', table_name='crew_assignments')
    op.drop_table('crew_assignments')
    op.drop_table('crew_members')
    op.drop_index('ix_inventory_reservations_inventory_item_id', table_name='inventory_reservations')
    op.drop_index('ix_inventory_reservations_job_id', table_name='inventory_reservations')
    op.drop_table('inventory_reservations')
    op.drop_table('inventory_items')
    op.drop_index('ix_maintenance_schedules_equipment_id', table_name='maintenance_schedules')
    op.drop_index('ix_maintenance_schedules_job_id', table_name='maintenance_schedules')
    op.drop_table('maintenance_schedules')
    op.drop_index('ix_job_equipment_links_equipment_id', table_name='job_equipment_links')
    op.drop_index('ix_job_equipment_links_job_id', table_name='job_equipment_links')
    op.drop_table('job_equipment_links')
    op.drop_index('ix_equipment_yacht_id', table_name='equipment')
    op.drop_table('equipment')
    op.drop_index('ix_claims_repairs_jobs_equipment_id', table_name='claims_repairs_jobs')
    op.drop_index('ix_claims_repairs_jobs_yacht_id', table_name='claims_repairs_jobs')
    op.drop_index('ix_claims_repairs_jobs_status', table_name='claims_repairs_jobs')
    op.drop_table('claims_repairs_jobs')
