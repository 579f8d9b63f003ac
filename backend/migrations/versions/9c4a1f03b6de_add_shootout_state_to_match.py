"""add shootout_state to match_record

Revision ID: 9c4a1f03b6de
Revises: 5b2e9c1d7a40
Create Date: 2026-09-18 16:40:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9c4a1f03b6de'
down_revision = '5b2e9c1d7a40'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    cols = {c['name'] for c in insp.get_columns('match_record')}
    with op.batch_alter_table('match_record') as batch_op:
        if 'shootout_state' not in cols:
            batch_op.add_column(sa.Column('shootout_state', sa.Text(), nullable=True))


def downgrade():
    with op.batch_alter_table('match_record') as batch_op:
        batch_op.drop_column('shootout_state')
