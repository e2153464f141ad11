"""System messages: authorless messages with a payload, project channels

Revision ID: 8b2d4e6f1a33
Revises: 3f1c2a9e7b10
Create Date: 2026-10-19 15:40:02.118409
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '8b2d4e6f1a33'
down_revision: Union[str, None] = '3f1c2a9e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    with op.batch_alter_table('messages') as batch_op:
        batch_op.alter_column('user_id', existing_type=sa.Uuid(), nullable=True)
        batch_op.add_column(
            sa.Column('payload', JSONType, nullable=False, server_default='{}')
        )
    with op.batch_alter_table('projects') as batch_op:
        batch_op.add_column(sa.Column('channel_id', sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            'fk_projects_channel_id', 'channels', ['channel_id'], ['id'], ondelete='SET NULL'
        )


def downgrade() -> None:
    with op.batch_alter_table('projects') as batch_op:
        batch_op.drop_constraint('fk_projects_channel_id', type_='foreignkey')
        batch_op.drop_column('channel_id')
    op.execute("DELETE FROM messages WHERE user_id IS NULL")
    with op.batch_alter_table('messages') as batch_op:
        batch_op.drop_column('payload')
        batch_op.alter_column('user_id', existing_type=sa.Uuid(), nullable=False)
