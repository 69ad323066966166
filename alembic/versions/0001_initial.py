"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "admin_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=100)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_admin_users_username", "admin_users", ["username"], unique=True)

    op.create_table(
        "voucher_batches",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("batch_name", sa.String(length=100)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("admin_users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "vouchers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("remaining_minutes", sa.Integer(), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("device_id", sa.String(length=100)),
        sa.Column("used_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("batch_id", sa.Uuid(), sa.ForeignKey("voucher_batches.id")),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("admin_users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("duration_minutes > 0", name="ck_vouchers_duration_positive"),
        sa.CheckConstraint(
            "remaining_minutes >= 0 AND remaining_minutes <= duration_minutes",
            name="ck_vouchers_remaining_bounds",
        ),
    )
    op.create_index("ix_vouchers_code", "vouchers", ["code"], unique=True)
    op.create_index("ix_vouchers_is_used", "vouchers", ["is_used"])
    op.create_index("ix_vouchers_is_active", "vouchers", ["is_active"])
    op.create_index("ix_vouchers_device_id", "vouchers", ["device_id"])
    op.create_index("ix_vouchers_created_at", "vouchers", ["created_at"])

    op.create_table(
        "call_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("call_id", sa.String(length=50), nullable=False),
        sa.Column("voucher_id", sa.Uuid(), sa.ForeignKey("vouchers.id", ondelete="SET NULL")),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("country_code", sa.String(length=5), nullable=False),
        sa.Column("call_type", sa.String(length=20), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
        sa.Column("device_id", sa.String(length=100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_call_logs_call_id", "call_logs", ["call_id"], unique=True)
    op.create_index("ix_call_logs_voucher_id", "call_logs", ["voucher_id"])
    op.create_index("ix_call_logs_status", "call_logs", ["status"])
    op.create_index("ix_call_logs_started_at", "call_logs", ["started_at"])
    op.create_index("ix_call_logs_device_id", "call_logs", ["device_id"])

    op.create_table(
        "system_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=20)),
        sa.Column("entity_id", sa.String(length=64)),
        sa.Column("details", sa.JSON()),
        sa.Column("ip_address", sa.String(length=45)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("admin_user_id", sa.Uuid(), sa.ForeignKey("admin_users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_system_logs_action", "system_logs", ["action"])
    op.create_index("ix_system_logs_created_at", "system_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("system_logs")
    op.drop_table("call_logs")
    op.drop_table("vouchers")
    op.drop_table("voucher_batches")
    op.drop_index("ix_admin_users_username", table_name="admin_users")
    op.drop_table("admin_users")
