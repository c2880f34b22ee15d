"""initial schema: workflows, versions, grants, node status, logs, users

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 10:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

workflow_status = sa.Enum("draft", "active", "paused", "archived", name="workflowstatus")
version_type = sa.Enum("minor", "major", name="versiontype")
permission = sa.Enum("view", "edit", "admin", name="permission")
node_state = sa.Enum("idle", "running", "success", "error", name="nodestate")
log_level = sa.Enum("debug", "info", "warning", "error", name="loglevel")


def upgrade() -> None:
    op.create_table(
        "useraccount",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
    )
    op.create_index("ix_useraccount_id", "useraccount", ["id"])
    op.create_index("ix_useraccount_username", "useraccount", ["username"], unique=True)

    op.create_table(
        "workflowdefinition",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("status", workflow_status, nullable=False),
        sa.Column("nodes", sa.JSON(), nullable=False),
        sa.Column("connections", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("owner_name", sa.String(), nullable=False),
        sa.Column("shared_with", sa.JSON(), nullable=False),
        sa.Column("is_template", sa.Boolean(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("template_id", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("last_versioned_at", sa.DateTime(), nullable=True),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("owner_id", "name", name="uq_workflow_owner_name"),
    )
    for column in ("id", "created_at", "name", "status", "owner_id", "is_template", "is_public",
                   "template_id", "last_updated"):
        op.create_index(f"ix_workflowdefinition_{column}", "workflowdefinition", [column])

    op.create_table(
        "versionsnapshot",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("workflow_id", sa.String(), sa.ForeignKey("workflowdefinition.id"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("type", version_type, nullable=False),
        sa.Column("tag", sa.String(), nullable=True),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_by_name", sa.String(), nullable=False),
        sa.UniqueConstraint("workflow_id", "version_number", name="uq_version_number"),
    )
    for column in ("id", "created_at", "workflow_id", "version_number"):
        op.create_index(f"ix_versionsnapshot_{column}", "versionsnapshot", [column])
    op.create_index(
        "uq_version_current",
        "versionsnapshot",
        ["workflow_id"],
        unique=True,
        sqlite_where=sa.text("is_current = 1"),
        postgresql_where=sa.text("is_current"),
    )

    op.create_table(
        "sharinggrant",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("workflow_id", sa.String(), sa.ForeignKey("workflowdefinition.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_name", sa.String(), nullable=False),
        sa.Column("user_email", sa.String(), nullable=True),
        sa.Column("permission", permission, nullable=False),
        sa.Column("shared_at", sa.DateTime(), nullable=False),
        sa.Column("shared_by", sa.String(), nullable=False),
        sa.UniqueConstraint("workflow_id", "user_id", name="uq_grant_workflow_user"),
    )
    for column in ("id", "workflow_id", "user_id"):
        op.create_index(f"ix_sharinggrant_{column}", "sharinggrant", [column])

    # sin foreign keys: el borrado en cascada es best-effort
    op.create_table(
        "noderuntimestatus",
        sa.Column("agent_id", sa.String(), primary_key=True),
        sa.Column("node_id", sa.String(), primary_key=True),
        sa.Column("status", node_state, nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_noderuntimestatus_status", "noderuntimestatus", ["status"])

    op.create_table(
        "executionlogentry",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("execution_id", sa.String(), nullable=True),
        sa.Column("level", log_level, nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=True),
    )
    for column in ("created_at", "agent_id", "execution_id", "level", "user_id"):
        op.create_index(f"ix_executionlogentry_{column}", "executionlogentry", [column])


def downgrade() -> None:
    op.drop_table("executionlogentry")
    op.drop_table("noderuntimestatus")
    op.drop_table("sharinggrant")
    op.drop_table("versionsnapshot")
    op.drop_table("workflowdefinition")
    op.drop_table("useraccount")
    for enum in (log_level, node_state, permission, version_type, workflow_status):
        enum.drop(op.get_bind(), checkfirst=True)
