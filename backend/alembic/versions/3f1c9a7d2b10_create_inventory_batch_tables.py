"""create inventory, batch and audit tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-16 09:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=True),
    ]


def _item_columns(legacy_stock_column: str):
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('manufacturer', sa.String(length=255), nullable=True),
        sa.Column('minimum_stock', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Available'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('batch_number', sa.String(length=50), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column(legacy_stock_column, sa.Integer(), nullable=False, server_default='0'),
    ] + _timestamp_columns()


def _batch_columns(fk_column: str, item_table: str):
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            fk_column,
            sa.Integer(),
            sa.ForeignKey(f'{item_table}.id', onupdate='CASCADE', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('batch_number', sa.String(length=50), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('quantity_remaining', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('received_date', sa.Date(), nullable=False),
        sa.Column('supplier', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
    ] + _timestamp_columns()


def _batch_constraints(table: str, fk_column: str):
    return [
        sa.UniqueConstraint(fk_column, 'batch_number', name=f'uq_{table}_item_batch_number'),
        sa.CheckConstraint('quantity_received >= 0', name=f'ck_{table}_received_non_negative'),
        sa.CheckConstraint('quantity_remaining >= 0', name=f'ck_{table}_remaining_non_negative'),
        sa.CheckConstraint('quantity_remaining <= quantity_received', name=f'ck_{table}_remaining_within_received'),
    ]


def _batch_indexes(table: str, fk_column: str):
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_{fk_column}', table, [fk_column])
    op.create_index(f'ix_{table}_expiry_date', table, ['expiry_date'])
    op.create_index(f'ix_{table}_status', table, ['status'])
    op.create_index(f'ix_{table}_fifo', table, [fk_column, 'status', 'expiry_date'])


def _item_indexes(table: str):
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_name', table, ['name'])
    op.create_index(f'ix_{table}_category', table, ['category'])
    op.create_index(f'ix_{table}_status', table, ['status'])


def upgrade() -> None:
    """Create medication/vaccine catalog, batch and audit tables."""
    op.create_table(
        'medications',
        *_item_columns('units_in_stock'),
        sa.Column('generic_name', sa.String(length=255), nullable=True),
        sa.Column('brand_name', sa.String(length=255), nullable=True),
        sa.Column('dosage', sa.String(length=100), nullable=True),
        sa.Column('form', sa.String(length=50), nullable=True),
        sa.Column('strength', sa.String(length=100), nullable=True),
        sa.Column('selling_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_prescription_required', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    _item_indexes('medications')

    op.create_table(
        'vaccines',
        *_item_columns('doses_in_stock'),
        sa.Column('dosage', sa.String(length=100), nullable=True),
        sa.Column('administration_route', sa.String(length=50), nullable=True),
        sa.Column('doses_per_vial', sa.Integer(), nullable=True),
        sa.Column('storage_temperature', sa.String(length=30), nullable=True),
        sa.Column('age_group', sa.String(length=100), nullable=True),
    )
    _item_indexes('vaccines')

    op.create_table(
        'medication_batches',
        *_batch_columns('medication_id', 'medications'),
        *_batch_constraints('medication_batches', 'medication_id'),
    )
    _batch_indexes('medication_batches', 'medication_id')

    op.create_table(
        'vaccine_batches',
        *_batch_columns('vaccine_id', 'vaccines'),
        sa.Column('lot_number', sa.String(length=50), nullable=True),
        sa.Column('manufacturer', sa.String(length=100), nullable=True),
        sa.Column('storage_temperature', sa.String(length=30), nullable=True),
        *_batch_constraints('vaccine_batches', 'vaccine_id'),
    )
    _batch_indexes('vaccine_batches', 'vaccine_id')

    op.create_table(
        'stock_audit',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('item_type', sa.String(length=20), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=True),
        sa.Column('change_type', sa.String(length=30), nullable=False),
        sa.Column('change_amount', sa.Integer(), nullable=False),
        sa.Column('old_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('changed_by', sa.String(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.String(), nullable=True),
    )
    op.create_index('ix_stock_audit_id', 'stock_audit', ['id'])
    op.create_index('ix_stock_audit_item_type', 'stock_audit', ['item_type'])
    op.create_index('ix_stock_audit_item_id', 'stock_audit', ['item_id'])

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('table_name', sa.String(length=50), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('changed_by', sa.String(), nullable=True),
        sa.Column('action', sa.String(length=10), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
    )
    op.create_index('ix_audit_log_id', 'audit_log', ['id'])


def downgrade() -> None:
    """Drop all tables created by this revision, batches before their items."""
    op.drop_table('audit_log')
    op.drop_table('stock_audit')
    op.drop_table('vaccine_batches')
    op.drop_table('medication_batches')
    op.drop_table('vaccines')
    op.drop_table('medications')
