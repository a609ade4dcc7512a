"""tokens_and_trades

Create tokens and trades tables.

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tokens',
        sa.Column('token_address', sa.String(64), primary_key=True),
        sa.Column('init_tx', sa.String(128), nullable=True),
        sa.Column('pool_id', sa.String(64), nullable=True),
        sa.Column('pool_state', sa.JSON(), nullable=True),
        sa.Column('lp_reserve', sa.Numeric(24, 0), nullable=True),
        sa.Column('mint_authority', sa.String(64), nullable=True),
        sa.Column('freeze_authority', sa.String(64), nullable=True),
        sa.Column('supply', sa.Numeric(24, 0), nullable=True),
        sa.Column('decimals', sa.Integer(), nullable=True),
        sa.Column('holders_distribution', sa.JSON(), nullable=True),
        sa.Column('burned_lp_percentage', sa.Float(), nullable=True),
        sa.Column('parsed_pool_info', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('pool_created_at', sa.BigInteger(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_tokens_first_seen', 'tokens', ['first_seen_at'])

    op.create_table(
        'trades',
        sa.Column('tx_id', sa.String(128), primary_key=True),
        sa.Column('token_address', sa.String(64), nullable=False),
        sa.Column('input_mint', sa.String(64), nullable=False),
        sa.Column('output_mint', sa.String(64), nullable=False),
        sa.Column('input_amount', sa.Float(), nullable=True),
        sa.Column('output_amount', sa.Float(), nullable=True),
        sa.Column('status', sa.String(10), nullable=False, server_default='pending'),
        sa.Column('elapsed_sec', sa.Float(), nullable=True),
        sa.Column('is_simulation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_trades_token_created', 'trades', ['token_address', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_trades_token_created', 'trades')
    op.drop_table('trades')
    op.drop_index('idx_tokens_first_seen', 'tokens')
    op.drop_table('tokens')
