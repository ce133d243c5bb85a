"""token ledger, anonymous accounts and moderation audit schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "anon_users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("previous_usernames", sa.JSON(), nullable=False),
        sa.Column("username_color", sa.String(), nullable=True),
        sa.Column("username_color_gradient", sa.JSON(), nullable=True),
        sa.Column("purchased_solid_colors", sa.JSON(), nullable=False),
        sa.Column("purchased_gradient_colors", sa.JSON(), nullable=False),
        sa.Column("purchased_gradient_color_slots", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("animated_gradient_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("gif_profile_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_anon_users_username", "anon_users", ["username"], unique=True)

    op.create_table(
        "user_tokens",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_type", sa.String(), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_awarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("balance >= 0", name="ck_user_tokens_balance_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "user_type", name="uq_user_tokens_subject"),
    )
    op.create_index("ix_user_tokens_user_id", "user_tokens", ["user_id"], unique=False)

    op.create_table(
        "token_ledger",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_type", sa.String(), nullable=False),
        sa.Column("entry_type", sa.String(), nullable=False),
        sa.Column("delta_tokens", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=True),
        sa.Column("feature", sa.String(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_token_ledger_user_id", "token_ledger", ["user_id"], unique=False)
    op.create_index("ix_token_ledger_created_at", "token_ledger", ["created_at"], unique=False)

    op.create_table(
        "moderation_audit_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("actor_email", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("subject_type", sa.String(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_moderation_audit_log_action", "moderation_audit_log", ["action"], unique=False)
    op.create_index("ix_moderation_audit_log_subject_id", "moderation_audit_log", ["subject_id"], unique=False)
    op.create_index("ix_moderation_audit_log_created_at", "moderation_audit_log", ["created_at"], unique=False)

    op.create_table(
        "confessions_posts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_type", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_confessions_posts_author", "confessions_posts", ["user_id", "user_type"], unique=False)

    op.create_table(
        "confessions_comments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("post_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_type", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["post_id"], ["confessions_posts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_confessions_comments_post_id", "confessions_comments", ["post_id"], unique=False)
    op.create_index("ix_confessions_comments_author", "confessions_comments", ["user_id", "user_type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_confessions_comments_author", table_name="confessions_comments")
    op.drop_index("ix_confessions_comments_post_id", table_name="confessions_comments")
    op.drop_table("confessions_comments")
    op.drop_index("ix_confessions_posts_author", table_name="confessions_posts")
    op.drop_table("confessions_posts")
    op.drop_index("ix_moderation_audit_log_created_at", table_name="moderation_audit_log")
    op.drop_index("ix_moderation_audit_log_subject_id", table_name="moderation_audit_log")
    op.drop_index("ix_moderation_audit_log_action", table_name="moderation_audit_log")
    op.drop_table("moderation_audit_log")
    op.drop_index("ix_token_ledger_created_at", table_name="token_ledger")
    op.drop_index("ix_token_ledger_user_id", table_name="token_ledger")
    op.drop_table("token_ledger")
    op.drop_index("ix_user_tokens_user_id", table_name="user_tokens")
    op.drop_table("user_tokens")
    op.drop_index("ix_anon_users_username", table_name="anon_users")
    op.drop_table("anon_users")
