"""alerting migration schema

Revision ID: 4c2a9e1b7d30
Revises:
Create Date: 2026-10-19 09:12:44.118302
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "4c2a9e1b7d30"
down_revision = None
branch_labels = None
depends_on = None


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True, autoincrement=True)


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # --- legacy alerting (normally present already) ---
    if not insp.has_table("org"):
        op.create_table(
            "org",
            _pk(),
            sa.Column("name", sa.String(length=190), nullable=False),
            sa.UniqueConstraint("name", name="uq_org_name"),
        )

    if not insp.has_table("dashboard"):
        op.create_table(
            "dashboard",
            _pk(),
            sa.Column("org_id", sa.BigInteger(), nullable=False),
            sa.Column("uid", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=189), nullable=False),
            sa.Column("folder_id", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("is_folder", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.UniqueConstraint("org_id", "uid", name="uq_dashboard_org_uid"),
        )
        op.create_index("ix_dashboard_org_id", "dashboard", ["org_id"])

    if not insp.has_table("dashboard_provisioning"):
        op.create_table(
            "dashboard_provisioning",
            _pk(),
            sa.Column("dashboard_id", sa.BigInteger(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("external_id", sa.String(length=2048), nullable=False, server_default=""),
        )
        op.create_index("ix_dashboard_provisioning_dashboard_id", "dashboard_provisioning", ["dashboard_id"])

    if not insp.has_table("data_source"):
        op.create_table(
            "data_source",
            _pk(),
            sa.Column("org_id", sa.BigInteger(), nullable=False),
            sa.Column("uid", sa.String(length=40), nullable=False),
            sa.Column("name", sa.String(length=190), nullable=False),
            sa.Column("type", sa.String(length=255), nullable=False),
        )
        op.create_index("ix_data_source_org_id", "data_source", ["org_id"])

    if not insp.has_table("alert"):
        op.create_table(
            "alert",
            _pk(),
            sa.Column("version", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("org_id", sa.BigInteger(), nullable=False),
            sa.Column("dashboard_id", sa.BigInteger(), nullable=False),
            sa.Column("panel_id", sa.BigInteger(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False, server_default=""),
            sa.Column("state", sa.String(length=190), nullable=False, server_default="unknown"),
            sa.Column("settings", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("frequency", sa.BigInteger(), nullable=False, server_default="60"),
            sa.Column("for", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("silenced", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("execution_error", sa.Text(), nullable=False, server_default=""),
            sa.Column("created", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_alert_org_id", "alert", ["org_id"])
        op.create_index("ix_alert_dashboard_id", "alert", ["dashboard_id"])

    if not insp.has_table("alert_notification"):
        op.create_table(
            "alert_notification",
            _pk(),
            sa.Column("org_id", sa.BigInteger(), nullable=False),
            sa.Column("uid", sa.String(length=40), nullable=False),
            sa.Column("name", sa.String(length=190), nullable=False),
            sa.Column("type", sa.String(length=255), nullable=False),
            sa.Column("settings", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("secure_settings", sa.Text(), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("send_reminder", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("frequency", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("disable_resolve_message", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("org_id", "uid", name="uq_alert_notification_org_uid"),
        )
        op.create_index("ix_alert_notification_org_id", "alert_notification", ["org_id"])

    # --- unified alerting ---
    op.create_table(
        "alert_rule",
        _pk(),
        sa.Column("org_id", sa.BigInteger(), nullable=False),
        sa.Column("uid", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=190), nullable=False),
        sa.Column("condition", sa.String(length=190), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("interval_seconds", sa.BigInteger(), nullable=False, server_default="60"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("namespace_uid", sa.String(length=40), nullable=False),
        sa.Column("rule_group", sa.String(length=190), nullable=False),
        sa.Column("rule_group_idx", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("dashboard_uid", sa.String(length=40), nullable=True),
        sa.Column("panel_id", sa.BigInteger(), nullable=True),
        sa.Column("no_data_state", sa.String(length=15), nullable=False, server_default="NoData"),
        sa.Column("exec_err_state", sa.String(length=15), nullable=False, server_default="Alerting"),
        sa.Column("for", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("annotations", sa.JSON(), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("org_id", "uid", name="uq_alert_rule_org_uid"),
        sa.UniqueConstraint("org_id", "namespace_uid", "title", name="uq_alert_rule_org_namespace_title"),
    )
    op.create_index("ix_alert_rule_org_id", "alert_rule", ["org_id"])

    op.create_table(
        "alert_rule_version",
        _pk(),
        sa.Column("rule_org_id", sa.BigInteger(), nullable=False),
        sa.Column("rule_uid", sa.String(length=40), nullable=False),
        sa.Column("rule_namespace_uid", sa.String(length=40), nullable=False),
        sa.Column("rule_group", sa.String(length=190), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("title", sa.String(length=190), nullable=False),
        sa.Column("condition", sa.String(length=190), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("interval_seconds", sa.BigInteger(), nullable=False, server_default="60"),
        sa.Column("annotations", sa.JSON(), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_alert_rule_version_rule_org_id", "alert_rule_version", ["rule_org_id"])

    op.create_table(
        "provenance_type",
        _pk(),
        sa.Column("org_id", sa.BigInteger(), nullable=False),
        sa.Column("record_key", sa.String(length=190), nullable=False),
        sa.Column("record_type", sa.String(length=190), nullable=False),
        sa.Column("provenance", sa.String(length=190), nullable=False),
        sa.UniqueConstraint("record_type", "record_key", "org_id", name="uq_provenance_type"),
    )

    op.create_table(
        "alert_configuration",
        _pk(),
        sa.Column("org_id", sa.BigInteger(), nullable=False),
        sa.Column("alertmanager_configuration", sa.Text(), nullable=False),
        sa.Column("configuration_version", sa.String(length=3), nullable=False, server_default="v1"),
        sa.Column("configuration_hash", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_alert_configuration_org_id", "alert_configuration", ["org_id"])

    op.create_table(
        "ngalert_configuration",
        _pk(),
        sa.Column("org_id", sa.BigInteger(), nullable=False),
        sa.Column("alertmanagers", sa.Text(), nullable=True),
        sa.Column("send_alerts_to", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("org_id", name="uq_ngalert_configuration_org_id"),
    )

    op.create_table(
        "alert_instance",
        sa.Column("rule_org_id", sa.BigInteger(), primary_key=True),
        sa.Column("rule_uid", sa.String(length=40), primary_key=True),
        sa.Column("labels_hash", sa.String(length=190), primary_key=True),
        sa.Column("labels", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("current_state", sa.String(length=190), nullable=False, server_default="Normal"),
    )

    # --- shared ---
    if not insp.has_table("kv_store"):
        op.create_table(
            "kv_store",
            _pk(),
            sa.Column("org_id", sa.BigInteger(), nullable=False),
            sa.Column("namespace", sa.String(length=190), nullable=False),
            sa.Column("key", sa.String(length=190), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("created", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("org_id", "namespace", "key", name="uq_kv_store_org_namespace_key"),
        )

    if not insp.has_table("server_lock"):
        op.create_table(
            "server_lock",
            _pk(),
            sa.Column("operation_uid", sa.String(length=100), nullable=False),
            sa.Column("version", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("last_execution", sa.BigInteger(), nullable=False, server_default="0"),
            sa.UniqueConstraint("operation_uid", name="uq_server_lock_operation_uid"),
        )


def downgrade() -> None:
    # Only the unified alerting tables; legacy and shared tables predate this revision.
    for name in (
        "alert_instance",
        "ngalert_configuration",
        "alert_configuration",
        "provenance_type",
        "alert_rule_version",
        "alert_rule",
    ):
        op.drop_table(name)
