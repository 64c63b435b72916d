"""Create recordings table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "recordings",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column("camera_id", sa.Text(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("file_path", name="uq_recordings_file_path"),
    )
    op.create_index(
        "idx_recordings_camera_end_time", "recordings", ["camera_id", "end_time"]
    )
    op.create_index("idx_recordings_end_time", "recordings", ["end_time"])


def downgrade() -> None:
    op.drop_index("idx_recordings_end_time", table_name="recordings")
    op.drop_index("idx_recordings_camera_end_time", table_name="recordings")
    op.drop_table("recordings")
