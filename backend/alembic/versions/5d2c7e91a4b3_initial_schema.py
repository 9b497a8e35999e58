"""initial schema

Revision ID: 5d2c7e91a4b3
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5d2c7e91a4b3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('plaid_items',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('item_id', sa.String(), nullable=False),
    sa.Column('access_token', sa.String(), nullable=False),
    sa.Column('institution_id', sa.String(), nullable=True),
    sa.Column('institution_name', sa.String(), nullable=True),
    sa.Column('cursor', sa.Text(), nullable=True),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('last_error', sa.String(), nullable=True),
    sa.Column('last_successful_sync', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plaid_items_item_id'), 'plaid_items', ['item_id'], unique=True)
    op.create_index(op.f('ix_plaid_items_owner_id'), 'plaid_items', ['owner_id'], unique=False)

    op.create_table('transaction_categories',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('color', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transaction_categories_owner_id'), 'transaction_categories', ['owner_id'], unique=False)

    op.create_table('bank_accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_item_id', sa.String(length=36), nullable=True),
    sa.Column('plaid_account_id', sa.String(), nullable=True),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('mask', sa.String(), nullable=True),
    sa.Column('type', sa.String(), nullable=False),
    sa.Column('current_balance', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('last_synced_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['plaid_item_id'], ['plaid_items.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('plaid_item_id', 'plaid_account_id', name='uix_item_plaid_account')
    )
    op.create_index(op.f('ix_bank_accounts_owner_id'), 'bank_accounts', ['owner_id'], unique=False)
    op.create_index(op.f('ix_bank_accounts_plaid_item_id'), 'bank_accounts', ['plaid_item_id'], unique=False)

    op.create_table('bank_transactions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_transaction_id', sa.String(), nullable=True),
    sa.Column('date', sa.Date(), nullable=False),
    sa.Column('description', sa.String(), nullable=False),
    sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('type', sa.String(), nullable=False),
    sa.Column('statement_month', sa.Integer(), nullable=True),
    sa.Column('statement_year', sa.Integer(), nullable=True),
    sa.Column('is_pending', sa.Boolean(), nullable=False),
    sa.Column('merchant_name', sa.String(), nullable=True),
    sa.Column('plaid_status', sa.String(), nullable=True),
    sa.Column('raw_plaid_data', sa.JSON(), nullable=True),
    sa.Column('category_id', sa.String(length=36), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['account_id'], ['bank_accounts.id'], ),
    sa.ForeignKeyConstraint(['category_id'], ['transaction_categories.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('plaid_transaction_id')
    )
    op.create_index(op.f('ix_bank_transactions_account_id'), 'bank_transactions', ['account_id'], unique=False)
    op.create_index(op.f('ix_bank_transactions_category_id'), 'bank_transactions', ['category_id'], unique=False)
    op.create_index(op.f('ix_bank_transactions_date'), 'bank_transactions', ['date'], unique=False)
    op.create_index(op.f('ix_bank_transactions_owner_id'), 'bank_transactions', ['owner_id'], unique=False)

    op.create_table('categorization_rules',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('pattern', sa.String(), nullable=False),
    sa.Column('category_id', sa.String(length=36), nullable=False),
    sa.Column('position', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['category_id'], ['transaction_categories.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_categorization_rules_owner_id'), 'categorization_rules', ['owner_id'], unique=False)

    op.create_table('deleted_plaid_transactions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('owner_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_transaction_id', sa.String(), nullable=False),
    sa.Column('transaction_data', sa.JSON(), nullable=True),
    sa.Column('deleted_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('owner_id', 'plaid_transaction_id', name='uix_deleted_owner_plaid_txn')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('deleted_plaid_transactions')
    op.drop_index(op.f('ix_categorization_rules_owner_id'), table_name='categorization_rules')
    op.drop_table('categorization_rules')
    op.drop_index(op.f('ix_bank_transactions_owner_id'), table_name='bank_transactions')
    op.drop_index(op.f('ix_bank_transactions_date'), table_name='bank_transactions')
    op.drop_index(op.f('ix_bank_transactions_category_id'), table_name='bank_transactions')
    op.drop_index(op.f('ix_bank_transactions_account_id'), table_name='bank_transactions')
    op.drop_table('bank_transactions')
    op.drop_index(op.f('ix_bank_accounts_plaid_item_id'), table_name='bank_accounts')
    op.drop_index(op.f('ix_bank_accounts_owner_id'), table_name='bank_accounts')
    op.drop_table('bank_accounts')
    op.drop_index(op.f('ix_transaction_categories_owner_id'), table_name='transaction_categories')
    op.drop_table('transaction_categories')
    op.drop_index(op.f('ix_plaid_items_owner_id'), table_name='plaid_items')
    op.drop_index(op.f('ix_plaid_items_item_id'), table_name='plaid_items')
    op.drop_table('plaid_items')
