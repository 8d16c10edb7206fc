"""initial telemetry dashboard schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


VALUE_COLUMNS = (
    [f"Analog{i}Value" for i in range(1, 17)]
    + [f"Digital{i}Value" for i in range(1, 9)]
    + [f"Output{i}Value" for i in range(1, 9)]
)


def upgrade() -> None:
    op.create_table(
        "node_status_table",
        sa.Column("NodeName", sa.String(length=150), nullable=False),
        sa.Column("NodeBaseStationName", sa.String(length=150), nullable=False),
        sa.Column("time", sa.DateTime(timezone=True), nullable=False),
        *[sa.Column(name, sa.Float(), nullable=True) for name in VALUE_COLUMNS],
        sa.PrimaryKeyConstraint("NodeName", "NodeBaseStationName", "time", name="pk_node_status_table"),
    )
    op.create_index(op.f("ix_node_status_table_NodeName"), "node_status_table", ["NodeName"], unique=False)
    op.create_index(
        op.f("ix_node_status_table_NodeBaseStationName"), "node_status_table", ["NodeBaseStationName"], unique=False
    )
    op.create_index(op.f("ix_node_status_table_time"), "node_status_table", ["time"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=500), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default=sa.text("'viewer'")),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("access_all_nodes", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("role IN ('admin','manager','viewer')", name="ck_users_role"),
    )
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "user_node_assignments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("node_name", sa.String(length=150), nullable=False),
        sa.Column("base_station_name", sa.String(length=150), nullable=True),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "node_name", "base_station_name", name="uq_user_node_assignment"),
    )
    op.create_index(op.f("ix_user_node_assignments_user_id"), "user_node_assignments", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_node_assignments_node_name"), "user_node_assignments", ["node_name"], unique=False)

    op.create_table(
        "metric_mappings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("node_name", sa.String(length=150), nullable=False),
        sa.Column("base_station_name", sa.String(length=150), nullable=False),
        sa.Column("metric_name", sa.String(length=100), nullable=False),
        sa.Column("column_name", sa.String(length=100), nullable=False),
        sa.Column("unit", sa.String(length=30), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_metric_mappings_node_name"), "metric_mappings", ["node_name"], unique=False)
    op.create_index(op.f("ix_metric_mappings_base_station_name"), "metric_mappings", ["base_station_name"], unique=False)
    op.create_index(op.f("ix_metric_mappings_is_active"), "metric_mappings", ["is_active"], unique=False)

    op.create_table(
        "metric_mapping_audit",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mapping_id", sa.Integer(), nullable=False),
        sa.Column("node_name", sa.String(length=150), nullable=False),
        sa.Column("base_station_name", sa.String(length=150), nullable=False),
        sa.Column("metric_name", sa.String(length=100), nullable=True),
        sa.Column("column_name", sa.String(length=100), nullable=True),
        sa.Column("unit", sa.String(length=30), nullable=True),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("changed_by", sa.Integer(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["mapping_id"], ["metric_mappings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["changed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("action IN ('CREATE','UPDATE','DELETE')", name="ck_metric_mapping_audit_action"),
    )
    op.create_index(op.f("ix_metric_mapping_audit_mapping_id"), "metric_mapping_audit", ["mapping_id"], unique=False)
    op.create_index(op.f("ix_metric_mapping_audit_action"), "metric_mapping_audit", ["action"], unique=False)
    op.create_index(op.f("ix_metric_mapping_audit_changed_at"), "metric_mapping_audit", ["changed_at"], unique=False)

    op.create_table(
        "user_activity_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_activity_log_user_id"), "user_activity_log", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_activity_log_action"), "user_activity_log", ["action"], unique=False)
    op.create_index(op.f("ix_user_activity_log_created_at"), "user_activity_log", ["created_at"], unique=False)

    op.create_table(
        "server_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("logger", sa.String(length=200), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_server_logs_ts"), "server_logs", ["ts"], unique=False)
    op.create_index(op.f("ix_server_logs_level"), "server_logs", ["level"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_server_logs_level"), table_name="server_logs")
    op.drop_index(op.f("ix_server_logs_ts"), table_name="server_logs")
    op.drop_table("server_logs")

    op.drop_index(op.f("ix_user_activity_log_created_at"), table_name="user_activity_log")
    op.drop_index(op.f("ix_user_activity_log_action"), table_name="user_activity_log")
    op.drop_index(op.f("ix_user_activity_log_user_id"), table_name="user_activity_log")
    op.drop_table("user_activity_log")

    op.drop_index(op.f("ix_metric_mapping_audit_changed_at"), table_name="metric_mapping_audit")
    op.drop_index(op.f("ix_metric_mapping_audit_action"), table_name="metric_mapping_audit")
    op.drop_index(op.f("ix_metric_mapping_audit_mapping_id"), table_name="metric_mapping_audit")
    op.drop_table("metric_mapping_audit")

    op.drop_index(op.f("ix_metric_mappings_is_active"), table_name="metric_mappings")
    op.drop_index(op.f("ix_metric_mappings_base_station_name"), table_name="metric_mappings")
    op.drop_index(op.f("ix_metric_mappings_node_name"), table_name="metric_mappings")
    op.drop_table("metric_mappings")

    op.drop_index(op.f("ix_user_node_assignments_node_name"), table_name="user_node_assignments")
    op.drop_index(op.f("ix_user_node_assignments_user_id"), table_name="user_node_assignments")
    op.drop_table("user_node_assignments")

    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_table("users")

    op.drop_index(op.f("ix_node_status_table_time"), table_name="node_status_table")
    op.drop_index(op.f("ix_node_status_table_NodeBaseStationName"), table_name="node_status_table")
    op.drop_index(op.f("ix_node_status_table_NodeName"), table_name="node_status_table")
    op.drop_table("node_status_table")
