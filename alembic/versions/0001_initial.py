"""Initial schema: users and roles, bulletins, messaging, files, maintenance.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def _stored_file_columns() -> list[sa.Column]:
    return [
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_filename", sa.String(500), nullable=False),
        sa.Column("file_path", sa.String(1000), nullable=False),
        sa.Column("file_size", sa.BigInteger, nullable=False),
        sa.Column("mime_type", sa.String(200), nullable=False),
    ]


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("status", sa.String(7), nullable=False, server_default="pending"),
        sa.Column("must_change_password", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("primary_role", sa.String(50), nullable=False, server_default="firefighter"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_status", "users", ["status"])
    op.create_index("ix_users_created_at", "users", ["created_at"])
    op.create_index(
        "uq_users_username_lower", "users", [sa.text("lower(username)")], unique=True
    )

    # user_roles
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_user_roles_user_id_users"),
            nullable=False,
        ),
        sa.Column("role", sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_user_roles"),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # password_reset_requests
    op.create_table(
        "password_reset_requests",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey(
                "users.id",
                ondelete="CASCADE",
                name="fk_password_reset_requests_user_id_users",
            ),
            nullable=False,
        ),
        sa.Column("status", sa.String(8), nullable=False, server_default="pending"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "resolved_by",
            sa.Integer,
            sa.ForeignKey(
                "users.id",
                ondelete="SET NULL",
                name="fk_password_reset_requests_resolved_by_users",
            ),
            nullable=True,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_password_reset_requests"),
    )
    op.create_index("ix_password_reset_requests_user_id", "password_reset_requests", ["user_id"])
    op.create_index("ix_password_reset_requests_status", "password_reset_requests", ["status"])
    op.create_index(
        "ix_password_reset_requests_created_at", "password_reset_requests", ["created_at"]
    )
    op.create_index(
        "uq_password_reset_requests_pending_user",
        "password_reset_requests",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    # bulletins
    op.create_table(
        "bulletins",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column(
            "author_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_bulletins_author_id_users"),
            nullable=False,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_bulletins"),
    )
    op.create_index("ix_bulletins_category", "bulletins", ["category"])
    op.create_index("ix_bulletins_author_id", "bulletins", ["author_id"])
    op.create_index("ix_bulletins_created_at", "bulletins", ["created_at"])

    # bulletin_reads
    op.create_table(
        "bulletin_reads",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_bulletin_reads_user_id_users"),
            nullable=False,
        ),
        sa.Column(
            "bulletin_id",
            sa.Integer,
            sa.ForeignKey(
                "bulletins.id",
                ondelete="CASCADE",
                name="fk_bulletin_reads_bulletin_id_bulletins",
            ),
            nullable=False,
        ),
        sa.Column(
            "read_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id", name="pk_bulletin_reads"),
        sa.UniqueConstraint("user_id", "bulletin_id", name="uq_bulletin_reads_user_bulletin"),
    )
    op.create_index("ix_bulletin_reads_user_id", "bulletin_reads", ["user_id"])
    op.create_index("ix_bulletin_reads_bulletin_id", "bulletin_reads", ["bulletin_id"])

    # messages
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column(
            "sender_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_messages_sender_id_users"),
            nullable=False,
        ),
        sa.Column(
            "recipient_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_messages_recipient_id_users"),
            nullable=False,
        ),
        sa.Column("subject", sa.String(300), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("thread_id", sa.Integer, nullable=True),
        sa.Column(
            "parent_message_id",
            sa.Integer,
            sa.ForeignKey(
                "messages.id",
                ondelete="SET NULL",
                name="fk_messages_parent_message_id_messages",
            ),
            nullable=True,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_messages"),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_recipient_id", "messages", ["recipient_id"])
    op.create_index("ix_messages_thread_id", "messages", ["thread_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    # thread_participants
    op.create_table(
        "thread_participants",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("thread_id", sa.Integer, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey(
                "users.id", ondelete="CASCADE", name="fk_thread_participants_user_id_users"
            ),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_thread_participants"),
        sa.UniqueConstraint("thread_id", "user_id", name="uq_thread_participants_thread_user"),
    )
    op.create_index("ix_thread_participants_thread_id", "thread_participants", ["thread_id"])
    op.create_index("ix_thread_participants_user_id", "thread_participants", ["user_id"])

    # message_reads
    op.create_table(
        "message_reads",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_message_reads_user_id_users"),
            nullable=False,
        ),
        sa.Column(
            "message_id",
            sa.Integer,
            sa.ForeignKey(
                "messages.id",
                ondelete="CASCADE",
                name="fk_message_reads_message_id_messages",
            ),
            nullable=False,
        ),
        sa.Column(
            "read_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id", name="pk_message_reads"),
        sa.UniqueConstraint("user_id", "message_id", name="uq_message_reads_user_message"),
    )
    op.create_index("ix_message_reads_user_id", "message_reads", ["user_id"])
    op.create_index("ix_message_reads_message_id", "message_reads", ["message_id"])

    # attachments
    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        *_stored_file_columns(),
        sa.Column(
            "bulletin_id",
            sa.Integer,
            sa.ForeignKey(
                "bulletins.id", ondelete="CASCADE", name="fk_attachments_bulletin_id_bulletins"
            ),
            nullable=True,
        ),
        sa.Column(
            "message_id",
            sa.Integer,
            sa.ForeignKey(
                "messages.id", ondelete="CASCADE", name="fk_attachments_message_id_messages"
            ),
            nullable=True,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_attachments"),
        sa.UniqueConstraint("filename", name="uq_attachments_filename"),
        sa.CheckConstraint(
            "(bulletin_id IS NULL) <> (message_id IS NULL)",
            name="ck_attachments_single_owner",
        ),
    )
    op.create_index("ix_attachments_bulletin_id", "attachments", ["bulletin_id"])
    op.create_index("ix_attachments_message_id", "attachments", ["message_id"])
    op.create_index("ix_attachments_created_at", "attachments", ["created_at"])

    # library_files
    op.create_table(
        "library_files",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        *_stored_file_columns(),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column(
            "uploaded_by",
            sa.Integer,
            sa.ForeignKey(
                "users.id", ondelete="RESTRICT", name="fk_library_files_uploaded_by_users"
            ),
            nullable=False,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_library_files"),
        sa.UniqueConstraint("filename", name="uq_library_files_filename"),
    )
    op.create_index("ix_library_files_category", "library_files", ["category"])
    op.create_index("ix_library_files_uploaded_by", "library_files", ["uploaded_by"])
    op.create_index("ix_library_files_created_at", "library_files", ["created_at"])

    # maintenance_runs
    op.create_table(
        "maintenance_runs",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("job_name", sa.String(100), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_maintenance_runs"),
        sa.UniqueConstraint("job_name", name="uq_maintenance_runs_job_name"),
    )


def downgrade() -> None:
    op.drop_table("maintenance_runs")
    op.drop_table("library_files")
    op.drop_table("attachments")
    op.drop_table("message_reads")
    op.drop_table("thread_participants")
    op.drop_table("messages")
    op.drop_table("bulletin_reads")
    op.drop_table("bulletins")
    op.drop_table("password_reset_requests")
    op.drop_table("user_roles")
    op.drop_table("users")
