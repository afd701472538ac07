"""create player and guess tables

Revision ID: 4c2a9e1f7b3d
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e1f7b3d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'player',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_active', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'guess',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('player_id', sa.String(length=36), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('snapshot_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolve_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolve_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_guess_player_status', 'guess', ['player_id', 'status'])
    op.create_index('ix_guess_player_created', 'guess', ['player_id', 'created_at'])
    # One ACTIVE guess per player
    op.create_index(
        'uq_guess_player_active', 'guess', ['player_id'], unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )


def downgrade():
    op.drop_index('uq_guess_player_active', table_name='guess')
    op.drop_index('ix_guess_player_created', table_name='guess')
    op.drop_index('ix_guess_player_status', table_name='guess')
    op.drop_table('guess')
    op.drop_table('player')
