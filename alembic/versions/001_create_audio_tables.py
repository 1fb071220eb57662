"""Create audio_recording and audio_chunk tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "audio_recording",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("original_name", sa.String(length=512), nullable=True),
        sa.Column("audio_data", sa.LargeBinary(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(length=128), nullable=True),
        sa.Column("upload_date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audio_recording_created_at"), "audio_recording", ["created_at"])

    op.create_table(
        "audio_chunk",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recording_id", sa.String(length=128), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("chunk_data", sa.LargeBinary(), nullable=False),
        sa.Column("chunk_size", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audio_chunk_recording_id"), "audio_chunk", ["recording_id"])


def downgrade() -> None:
    op.drop_index(op.f("ix_audio_chunk_recording_id"), table_name="audio_chunk")
    op.drop_table("audio_chunk")
    op.drop_index(op.f("ix_audio_recording_created_at"), table_name="audio_recording")
    op.drop_table("audio_recording")
