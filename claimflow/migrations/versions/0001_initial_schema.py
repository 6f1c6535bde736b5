"""Initial schema: claims, approval chains, audit trail, chat, directory, used tokens

Revision ID: 0001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create approvals table
    op.create_table(
        'approvals',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('unique_number', sa.String(64), nullable=False),
        sa.Column('is_draft', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('budget', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('reimbursement_type', sa.String(100), nullable=False, server_default=''),
        sa.Column('purpose', sa.Text(), nullable=False, server_default=''),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('department', sa.String(255), nullable=True),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approvals_unique_number', 'approvals', ['unique_number'], unique=True)
    op.create_index('ix_approvals_is_draft', 'approvals', ['is_draft'])
    op.create_index('ix_approvals_created_by', 'approvals', ['created_by'])
    op.create_index('ix_approvals_created_at', 'approvals', ['created_at'])

    # Create approver_steps table
    op.create_table(
        'approver_steps',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('approval_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('comment', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['approval_id'], ['approvals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approver_steps_approval_id', 'approver_steps', ['approval_id'])
    op.create_index('ix_approver_steps_name', 'approver_steps', ['name'])
    op.create_index('ix_approver_steps_status', 'approver_steps', ['status'])

    # Create approval_events table (audit trail, survives claim deletion)
    op.create_table(
        'approval_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('approval_id', sa.Uuid(), nullable=True),
        sa.Column('unique_number', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('actor', sa.String(255), nullable=False),
        sa.Column('step_position', sa.Integer(), nullable=True),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['approval_id'], ['approvals.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_events_approval_id', 'approval_events', ['approval_id'])
    op.create_index('ix_approval_events_unique_number', 'approval_events', ['unique_number'])
    op.create_index('ix_approval_events_created_at', 'approval_events', ['created_at'])

    # Create chat tables
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('unique_number', sa.String(64), nullable=False),
        sa.Column('author', sa.String(255), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_messages_unique_number', 'chat_messages', ['unique_number'])
    op.create_index('ix_chat_messages_created_at', 'chat_messages', ['created_at'])

    op.create_table(
        'chat_mentions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('message_id', sa.Uuid(), nullable=False),
        sa.Column('unique_number', sa.String(64), nullable=False),
        sa.Column('identity', sa.String(255), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['message_id'], ['chat_messages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_mentions_message_id', 'chat_mentions', ['message_id'])
    op.create_index('ix_chat_mentions_unique_number', 'chat_mentions', ['unique_number'])
    op.create_index('ix_chat_mentions_identity', 'chat_mentions', ['identity'])

    # Create directory_entries table
    op.create_table(
        'directory_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('emp_code', sa.String(50), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('designation', sa.String(255), nullable=True),
        sa.Column('department', sa.String(255), nullable=True),
        sa.Column('manager_name', sa.String(255), nullable=True),
        sa.Column('manager_email', sa.String(255), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_directory_entries_email', 'directory_entries', ['email'], unique=True)
    op.create_index('ix_directory_entries_name', 'directory_entries', ['name'])

    # Create used_tokens table (one-click link registry)
    op.create_table(
        'used_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('jti', sa.String(64), nullable=False),
        sa.Column('unique_number', sa.String(64), nullable=False),
        sa.Column('approver', sa.String(255), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_used_tokens_jti', 'used_tokens', ['jti'], unique=True)
    op.create_index('ix_used_tokens_expires_at', 'used_tokens', ['expires_at'])


def downgrade() -> None:
    op.drop_table('used_tokens')
    op.drop_table('directory_entries')
    op.drop_table('chat_mentions')
    op.drop_table('chat_messages')
    op.drop_table('approval_events')
    op.drop_table('approver_steps')
    op.drop_table('approvals')
