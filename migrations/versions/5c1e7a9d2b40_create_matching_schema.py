"""create matching schema

Revision ID: 5c1e7a9d2b40
Revises:
Create Date: 2026-10-18 10:12:44.218391

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e7a9d2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1: Extensions used for defaults
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Step 2: Create tables (skip if they already exist)
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            username VARCHAR(50) NOT NULL,
            bio TEXT,
            avatar_url VARCHAR(500),
            is_online BOOLEAN NOT NULL DEFAULT FALSE,
            last_seen TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS random_chat_queue (
            user_id VARCHAR(64) PRIMARY KEY,
            interests VARCHAR(50)[] NOT NULL DEFAULT '{}',
            is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
            joined_queue_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            type VARCHAR(10) NOT NULL DEFAULT 'direct' CHECK (type IN ('direct', 'random')),
            creator_id VARCHAR(64) NOT NULL,
            status VARCHAR(10) NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'accepted', 'rejected')),
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            last_message_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS conversation_participants (
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            joined_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            is_archived BOOLEAN NOT NULL DEFAULT FALSE,
            unread_count INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (conversation_id, user_id)
        )
    """)

    # Step 3: Create indexes (skip if they already exist)
    op.execute('CREATE INDEX IF NOT EXISTS ix_random_chat_queue_joined_queue_at ON random_chat_queue(joined_queue_at)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_random_chat_queue_interests ON random_chat_queue USING GIN (interests)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_conversations_last_message ON conversations(last_message_at DESC)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_participants_user ON conversation_participants(user_id)')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('conversation_participants')
    op.drop_table('conversations')
    op.drop_table('random_chat_queue')
    op.drop_table('users')
