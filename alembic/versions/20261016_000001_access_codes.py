"""Access codes and redemption log

Revision ID: 20261016_000001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261016_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === ACCESS CODES ===
    op.create_table(
        'access_codes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('target_id', sa.Uuid(), nullable=False),
        sa.Column('required_role', sa.String(length=30), nullable=True),
        sa.Column('required_email', sa.String(length=255), nullable=True),
        sa.Column('issuer_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('current_uses >= 0', name='ck_access_codes_uses_non_negative'),
        sa.CheckConstraint('max_uses IS NULL OR max_uses >= 1', name='ck_access_codes_max_uses_positive'),
        sa.CheckConstraint('max_uses IS NULL OR current_uses <= max_uses', name='ck_access_codes_uses_within_limit'),
        sa.CheckConstraint('expires_at IS NULL OR expires_at > created_at', name='ck_access_codes_expiry_after_creation'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('idx_access_codes_target', 'access_codes', ['kind', 'target_id'], unique=False)
    op.create_index('idx_access_codes_pending_email', 'access_codes', ['required_email', 'target_id'], unique=False, postgresql_where=sa.text("status = 'PENDING'"))
    op.create_index(op.f('ix_access_codes_issuer_id'), 'access_codes', ['issuer_id'], unique=False)

    # === CODE REDEMPTIONS ===
    op.create_table(
        'code_redemptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code_id', sa.Uuid(), nullable=False),
        sa.Column('redeemer_key', sa.String(length=255), nullable=False),
        sa.Column('redeemer_id', sa.Uuid(), nullable=True),
        sa.Column('redeemer_email', sa.String(length=255), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['code_id'], ['access_codes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code_id', 'redeemer_key', name='uq_code_redemptions_code_redeemer'),
    )
    op.create_index(op.f('ix_code_redemptions_code_id'), 'code_redemptions', ['code_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_code_redemptions_code_id'), table_name='code_redemptions')
    op.drop_table('code_redemptions')
    op.drop_index(op.f('ix_access_codes_issuer_id'), table_name='access_codes')
    op.drop_index('idx_access_codes_pending_email', table_name='access_codes', postgresql_where=sa.text("status = 'PENDING'"))
    op.drop_index('idx_access_codes_target', table_name='access_codes')
    op.drop_table('access_codes')
