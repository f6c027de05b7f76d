"""create topic queue and promo thread tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "topic_queue",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("affiliate_url", sa.String(), nullable=True),
        sa.Column("affiliate_text", sa.Text(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_topic_queue_status"), "topic_queue", ["status"], unique=False)
    op.create_index(op.f("ix_topic_queue_created_at"), "topic_queue", ["created_at"], unique=False)

    op.create_table(
        "promo_threads",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("product_name", sa.String(), nullable=False),
        sa.Column("source_url", sa.String(), nullable=True),
        sa.Column("affiliate_url", sa.String(), nullable=True),
        sa.Column("key_features", sa.Text(), nullable=False, server_default=""),
        sa.Column("og_image_url", sa.String(), nullable=True),
        sa.Column("cast_profiles", sa.JSON(), nullable=False),
        sa.Column("transcript", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_promo_threads_created_at"), "promo_threads", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_promo_threads_created_at"), table_name="promo_threads")
    op.drop_table("promo_threads")
    op.drop_index(op.f("ix_topic_queue_created_at"), table_name="topic_queue")
    op.drop_index(op.f("ix_topic_queue_status"), table_name="topic_queue")
    op.drop_table("topic_queue")
