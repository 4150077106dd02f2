"""Notification queue schema - delivery history and persistent retry queue.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

This migration adds:
- notification_history table for per-notification delivery state
- notification_queue table holding one row per pending delivery
- Indexes for claiming (status, next_attempt_at), sweeping (expires_at)
  and per-user listing (user_id)
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create notification_history table
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_history (
            id UUID PRIMARY KEY,
            user_id VARCHAR(255) NOT NULL,
            notification_type VARCHAR(50) NOT NULL,
            destination_type VARCHAR(50) NOT NULL,
            destination_id VARCHAR(255) NOT NULL,
            content TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'sent',
            error_message TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS ix_notification_history_user_id ON notification_history(user_id);
        CREATE INDEX IF NOT EXISTS ix_notification_history_notification_type ON notification_history(notification_type);
        CREATE INDEX IF NOT EXISTS ix_notification_history_created_at ON notification_history(created_at);
    """)

    # Create notification_queue table
    # Removing a history row must not take its queue task down with it
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_queue (
            id UUID PRIMARY KEY,
            notification_log_id UUID REFERENCES notification_history(id) ON DELETE SET NULL,
            user_id VARCHAR(255) NOT NULL,
            notification_type VARCHAR(32) NOT NULL
                CHECK (notification_type IN ('stream_online', 'stream_offline', 'title_change', 'category_change', 'reward_redemption')),
            content JSONB NOT NULL DEFAULT '{}'::jsonb,
            message TEXT NOT NULL,
            destination_type VARCHAR(32) NOT NULL
                CHECK (destination_type IN ('telegram', 'discord')),
            destination_id VARCHAR(255) NOT NULL,
            webhook_url TEXT,
            attempts INTEGER NOT NULL DEFAULT 0 CHECK (attempts >= 0),
            max_attempts INTEGER NOT NULL DEFAULT 5 CHECK (max_attempts >= 1),
            next_attempt_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            expires_at TIMESTAMP,
            last_error TEXT,
            status VARCHAR(32) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'processing', 'succeeded', 'dead')),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            claim_token UUID,
            CHECK (attempts <= max_attempts)
        );
        CREATE INDEX IF NOT EXISTS ix_notification_queue_status ON notification_queue(status);
        CREATE INDEX IF NOT EXISTS ix_notification_queue_next_attempt_at ON notification_queue(next_attempt_at);
        CREATE INDEX IF NOT EXISTS ix_notification_queue_expires_at ON notification_queue(expires_at);
        CREATE INDEX IF NOT EXISTS ix_notification_queue_user_id ON notification_queue(user_id);
    """)

    # Claim query: pending tasks ordered by next_attempt_at
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notification_queue_claim
            ON notification_queue(next_attempt_at)
            WHERE status = 'pending';
    """)


def downgrade() -> None:
    # notification_history is shared with the event producers and stays
    op.execute("DROP TABLE IF EXISTS notification_queue CASCADE")
