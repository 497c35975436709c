"""create voting_session and identity_binding tables

Revision ID: 1a7c3e9d2b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())
    if 'voting_session' not in tables:
        op.create_table(
            'voting_session',
            sa.Column('code', sa.String(length=4), primary_key=True),
            sa.Column('payload', sa.Text(), nullable=False),
            sa.Column('expires_at', sa.Float(), nullable=False),
        )
        op.create_index('ix_voting_session_expires_at', 'voting_session', ['expires_at'])
    if 'identity_binding' not in tables:
        op.create_table(
            'identity_binding',
            sa.Column('identity', sa.String(length=64), primary_key=True),
            sa.Column('session_code', sa.String(length=4), nullable=False),
            sa.Column('expires_at', sa.Float(), nullable=False),
        )
        op.create_index('ix_identity_binding_session_code', 'identity_binding', ['session_code'])
        op.create_index('ix_identity_binding_expires_at', 'identity_binding', ['expires_at'])


def downgrade():
    op.drop_index('ix_identity_binding_expires_at', table_name='identity_binding')
    op.drop_index('ix_identity_binding_session_code', table_name='identity_binding')
    op.drop_table('identity_binding')
    op.drop_index('ix_voting_session_expires_at', table_name='voting_session')
    op.drop_table('voting_session')
