"""Add video and transcode job models.

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'videos',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('original_name', sa.String(255), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=True),
        sa.Column('mimetype', sa.String(100), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('filename'),
    )
    op.create_index('ix_videos_user_id', 'videos', ['user_id'])

    # No foreign key to videos: jobs outlive their source video
    op.create_table(
        'transcode_jobs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('video_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('input_path', sa.String(1024), nullable=False),
        sa.Column('output_path', sa.String(1024), nullable=False),
        sa.Column('output_filename', sa.String(255), nullable=False),
        sa.Column('format', sa.String(16), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('output_filename'),
    )
    op.create_index('ix_transcode_jobs_video_id', 'transcode_jobs', ['video_id'])
    op.create_index('ix_transcode_jobs_user_id', 'transcode_jobs', ['user_id'])
    op.create_index(
        'uq_transcode_jobs_in_flight',
        'transcode_jobs',
        ['video_id', 'format'],
        unique=True,
        sqlite_where=sa.text("status = 'processing'"),
        postgresql_where=sa.text("status = 'processing'"),
    )


def downgrade() -> None:
    op.drop_index('uq_transcode_jobs_in_flight', table_name='transcode_jobs')
    op.drop_index('ix_transcode_jobs_user_id', table_name='transcode_jobs')
    op.drop_index('ix_transcode_jobs_video_id', table_name='transcode_jobs')
    op.drop_table('transcode_jobs')
    op.drop_index('ix_videos_user_id', table_name='videos')
    op.drop_table('videos')
