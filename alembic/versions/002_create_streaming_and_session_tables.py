"""Create streaming_chunk and upload_session tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "streaming_chunk",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recording_id", sa.String(length=128), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("chunk_data", sa.LargeBinary(), nullable=False),
        sa.Column("chunk_size", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_streaming_chunk_recording_id"), "streaming_chunk", ["recording_id"])

    op.create_table(
        "upload_session",
        sa.Column("recording_id", sa.String(length=128), nullable=False),
        sa.Column("variant", sa.String(length=16), nullable=False, server_default="upload"),
        sa.Column("state", sa.String(length=32), nullable=False, server_default="awaiting_chunks"),
        sa.Column("chunks_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bytes_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("recording_id", "variant"),
    )


def downgrade() -> None:
    op.drop_table("upload_session")
    op.drop_index(op.f("ix_streaming_chunk_recording_id"), table_name="streaming_chunk")
    op.drop_table("streaming_chunk")
