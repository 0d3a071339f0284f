"""create score, attempt_session and round_closure tables

Revision ID: 4c7a9e1f2b3d
Revises:
Create Date: 2025-11-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7a9e1f2b3d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'score' not in existing_tables:
        op.create_table(
            'score',
            sa.Column('round_id', sa.Integer(), nullable=False),
            sa.Column('wallet', sa.String(length=42), nullable=False),
            sa.Column('best_score_ms', sa.BigInteger(), nullable=False),
            sa.Column('updated_at_ms', sa.BigInteger(), nullable=False),
            sa.PrimaryKeyConstraint('round_id', 'wallet'),
        )
        op.create_index('ix_score_round_rank', 'score', ['round_id', 'best_score_ms', 'updated_at_ms'])

    if 'attempt_session' not in existing_tables:
        op.create_table(
            'attempt_session',
            sa.Column('wallet', sa.String(length=42), nullable=False),
            sa.Column('token', sa.String(length=64), nullable=False),
            sa.Column('round_id', sa.Integer(), nullable=False),
            sa.Column('started_at_ms', sa.BigInteger(), nullable=False),
            sa.PrimaryKeyConstraint('wallet'),
            sa.UniqueConstraint('token'),
        )

    if 'round_closure' not in existing_tables:
        op.create_table(
            'round_closure',
            sa.Column('round_id', sa.Integer(), autoincrement=False, nullable=False),
            sa.Column('winner', sa.String(length=42), nullable=False),
            sa.Column('final_pot_wei', sa.String(length=78), nullable=False),
            sa.Column('tx_hash', sa.String(length=66), nullable=True),
            sa.Column('closed_at_ms', sa.BigInteger(), nullable=False),
            sa.PrimaryKeyConstraint('round_id'),
        )


def downgrade():
    op.drop_table('round_closure')
    op.drop_table('attempt_session')
    op.drop_index('ix_score_round_rank', table_name='score')
    op.drop_table('score')
