"""Initial migration - projection tables, watermark and applied-event ledger

Revision ID: 001
Revises: 
Create Date: 2026-10-17 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from storychain_sync.models.base import Uint256

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Create stories table
    op.create_table('stories',
        sa.Column('id', sa.String(length=80), nullable=False, comment='On-chain story id'),
        sa.Column('author', sa.String(length=42), nullable=False, comment='Lower-cased author address'),
        sa.Column('ipfs_hash', sa.String(length=255), nullable=False, comment='Content reference'),
        sa.Column('created_time', sa.BigInteger(), nullable=False, comment='Block timestamp (unix seconds)'),
        sa.Column('likes', sa.Integer(), nullable=False, comment='Absolute like count from the latest StoryLiked event'),
        sa.Column('fork_count', sa.Integer(), nullable=False, comment="Number of forks across the story's chapters"),
        sa.Column('total_tips', Uint256(), nullable=False, comment='Accumulated tips in wei'),
        sa.Column('total_tip_count', sa.Integer(), nullable=False, comment='Number of tips received'),
        sa.Column('likes_block', sa.BigInteger(), nullable=False),
        sa.Column('likes_log_index', sa.Integer(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False, comment='Block of the StoryCreated event'),
        sa.Column('transaction_hash', sa.String(length=66), nullable=False, comment='Transaction of the StoryCreated event'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_story_author', 'stories', ['author'])
    op.create_index('idx_story_created_time', 'stories', ['created_time'])
    op.create_index('idx_story_likes', 'stories', ['likes'])

    # Create chapters table
    op.create_table('chapters',
        sa.Column('id', sa.String(length=80), nullable=False, comment='On-chain chapter id'),
        sa.Column('story_id', sa.String(length=80), nullable=False, comment='Owning story id'),
        sa.Column('parent_id', sa.String(length=80), nullable=False, comment="Parent chapter id, '0' for a root chapter"),
        sa.Column('author', sa.String(length=42), nullable=False, comment='Lower-cased author address'),
        sa.Column('ipfs_hash', sa.String(length=255), nullable=False, comment='Content reference'),
        sa.Column('created_time', sa.BigInteger(), nullable=False, comment='Block timestamp (unix seconds)'),
        sa.Column('likes', sa.Integer(), nullable=False),
        sa.Column('fork_count', sa.Integer(), nullable=False, comment='Number of chapters forked from this one'),
        sa.Column('chapter_number', sa.Integer(), nullable=False, comment='Depth of the chapter in its story (root = 1)'),
        sa.Column('fork_fee', Uint256(), nullable=False, comment='Fee to fork this chapter in wei'),
        sa.Column('total_tips', Uint256(), nullable=False, comment='Accumulated tips in wei'),
        sa.Column('total_tip_count', sa.Integer(), nullable=False),
        sa.Column('likes_block', sa.BigInteger(), nullable=False),
        sa.Column('likes_log_index', sa.Integer(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('transaction_hash', sa.String(length=66), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_chapter_story', 'chapters', ['story_id'])
    op.create_index('idx_chapter_parent', 'chapters', ['parent_id'])
    op.create_index('idx_chapter_author', 'chapters', ['author'])
    op.create_index('idx_chapter_created_time', 'chapters', ['created_time'])

    # Create comments table
    op.create_table('comments',
        sa.Column('id', sa.String(length=80), nullable=False),
        sa.Column('token_id', sa.String(length=80), nullable=False, comment='Chapter id the comment belongs to'),
        sa.Column('commenter', sa.String(length=42), nullable=False),
        sa.Column('ipfs_hash', sa.String(length=255), nullable=False, comment='Content reference, empty until resolved from the contract'),
        sa.Column('created_time', sa.BigInteger(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('transaction_hash', sa.String(length=66), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_comment_token', 'comments', ['token_id'])
    op.create_index('idx_comment_created_time', 'comments', ['created_time'])

    # Create chain_metadata table
    op.create_table('chain_metadata',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('last_update_block', sa.BigInteger(), nullable=False),
        sa.Column('last_update_time', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('id = 1', name='ck_chain_metadata_single_row'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create applied_events table
    op.create_table('applied_events',
        sa.Column('transaction_hash', sa.String(length=66), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        sa.Column('target', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('transaction_hash', 'log_index', 'target')
    )
    op.create_index('idx_applied_event_block', 'applied_events', ['block_number'])


def downgrade() -> None:
    op.drop_index('idx_applied_event_block', table_name='applied_events')
    op.drop_table('applied_events')

    op.drop_table('chain_metadata')

    op.drop_index('idx_comment_created_time', table_name='comments')
    op.drop_index('idx_comment_token', table_name='comments')
    op.drop_table('comments')

    op.drop_index('idx_chapter_created_time', table_name='chapters')
    op.drop_index('idx_chapter_author', table_name='chapters')
    op.drop_index('idx_chapter_parent', table_name='chapters')
    op.drop_index('idx_chapter_story', table_name='chapters')
    op.drop_table('chapters')

    op.drop_index('idx_story_likes', table_name='stories')
    op.drop_index('idx_story_created_time', table_name='stories')
    op.drop_index('idx_story_author', table_name='stories')
    op.drop_table('stories')
