"""initial team, player, match_record and match_event tables

Revision ID: 5b2e9c1d7a40
Revises:
Create Date: 2026-09-02 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b2e9c1d7a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'team',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('emblem_url', sa.String(length=256), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('jersey_number', sa.Integer(), nullable=True),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['team.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_player_team_id', 'player', ['team_id'])
    op.create_table(
        'match_record',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('team_a_id', sa.Integer(), nullable=False),
        sa.Column('team_b_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('scorer_id', sa.Integer(), nullable=True),
        sa.Column('first_raiding_side', sa.String(length=1), nullable=False),
        sa.Column('half_duration', sa.Integer(), nullable=False),
        sa.Column('halves', sa.Integer(), nullable=False),
        sa.Column('raid_duration', sa.Integer(), nullable=False),
        sa.Column('halftime_break', sa.Integer(), nullable=False),
        sa.Column('max_timeouts_per_half', sa.Integer(), nullable=False),
        sa.Column('timeout_duration', sa.Integer(), nullable=False),
        sa.Column('team_a_score', sa.Integer(), nullable=False),
        sa.Column('team_b_score', sa.Integer(), nullable=False),
        sa.Column('current_half', sa.Integer(), nullable=False),
        sa.Column('active_side', sa.String(length=1), nullable=False),
        sa.Column('out_player_ids', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('ended_at', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['team_a_id'], ['team.id']),
        sa.ForeignKeyConstraint(['team_b_id'], ['team.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'match_event',
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('match_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=True),
        sa.Column('player_id', sa.Integer(), nullable=True),
        sa.Column('points_awarded', sa.Integer(), nullable=False),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['match_record.id']),
        sa.PrimaryKeyConstraint('seq'),
    )
    op.create_index('ix_match_event_event_id', 'match_event', ['event_id'], unique=True)
    op.create_index('ix_match_event_match_id', 'match_event', ['match_id'])


def downgrade():
    op.drop_index('ix_match_event_match_id', table_name='match_event')
    op.drop_index('ix_match_event_event_id', table_name='match_event')
    op.drop_table('match_event')
    op.drop_table('match_record')
    op.drop_index('ix_player_team_id', table_name='player')
    op.drop_table('player')
    op.drop_table('team')
