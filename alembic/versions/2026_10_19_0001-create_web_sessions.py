"""create web sessions

Revision ID: 2026_10_19_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the browser session table."""

    # ========================================================================
    # Create web_sessions table
    # ========================================================================
    op.create_table(
        'web_sessions',
        sa.Column('sid', sa.String(64), primary_key=True),
        sa.Column('identity', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Expired-row purge scans by expiry
    op.create_index('idx_web_sessions_expires_at', 'web_sessions', ['expires_at'])


def downgrade() -> None:
    """Drop the browser session table."""
    op.drop_index('idx_web_sessions_expires_at', table_name='web_sessions')
    op.drop_table('web_sessions')
