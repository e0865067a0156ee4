"""Initial correlation schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ENUM = sa.String(32)
_SCOPE_KEY = sa.String(300)
_REF = sa.String(512)


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column[object]:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "correlation_rule",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("scope_key", _SCOPE_KEY, nullable=False),
        sa.Column("source_attribute", sa.String(255), nullable=False),
        sa.Column("target_attribute", sa.String(255), nullable=True),
        sa.Column("match_type", _ENUM, nullable=False),
        sa.Column("algorithm", _ENUM, nullable=True),
        sa.Column("expression", sa.Text(), nullable=True),
        sa.Column("threshold", sa.Float(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("is_definitive", sa.Boolean(), nullable=False),
        sa.Column("normalize", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_correlation_rule"),
    )
    op.create_index("ix_correlation_rule_scope_key", "correlation_rule", ["scope_key"])

    op.create_table(
        "correlation_threshold",
        sa.Column("scope_key", _SCOPE_KEY, nullable=False),
        sa.Column("auto_confirm_threshold", sa.Float(), nullable=False),
        sa.Column("manual_review_threshold", sa.Float(), nullable=False),
        sa.Column("tuning_mode", sa.Boolean(), nullable=False),
        sa.Column("include_deactivated", sa.Boolean(), nullable=False),
        sa.Column("batch_size", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("scope_key", name="pk_correlation_threshold"),
    )

    op.create_table(
        "correlation_case",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("scope_key", _SCOPE_KEY, nullable=False),
        sa.Column("source_ref", _REF, nullable=False),
        sa.Column("source_attributes", sa.Text(), nullable=False),
        sa.Column("candidates", sa.Text(), nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("assigned_to", sa.String(255), nullable=True),
        sa.Column("trigger_type", _ENUM, nullable=False),
        sa.Column("rules_version", sa.Integer(), nullable=False),
        sa.Column("selected_candidate_id", sa.Uuid(), nullable=True),
        sa.Column("identity_ref", _REF, nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
        _timestamp("resolved_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_correlation_case"),
    )
    op.create_index("ix_correlation_case_scope_key", "correlation_case", ["scope_key"])
    op.create_index("ix_correlation_case_source_ref", "correlation_case", ["source_ref"])
    op.create_index("ix_correlation_case_status", "correlation_case", ["status"])

    op.create_table(
        "identity_link",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_ref", _REF, nullable=False),
        sa.Column("identity_ref", _REF, nullable=False),
        sa.Column("origin", _ENUM, nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("case_id", sa.Uuid(), nullable=True),
        sa.Column("candidate_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_identity_link"),
        sa.ForeignKeyConstraint(
            ["case_id"],
            ["correlation_case.id"],
            name="fk_identity_link_case_id_correlation_case",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint(
            "source_ref", "identity_ref", name="uq_identity_link_source_ref_identity_ref"
        ),
    )
    op.create_index("ix_identity_link_source_ref", "identity_link", ["source_ref"])

    op.create_table(
        "provisioned_identity",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_ref", _REF, nullable=False),
        sa.Column("attributes", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_provisioned_identity"),
    )

    op.create_table(
        "correlation_audit_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_type", _ENUM, nullable=False),
        sa.Column("outcome", _ENUM, nullable=False),
        sa.Column("scope_key", _SCOPE_KEY, nullable=False),
        sa.Column("case_id", sa.Uuid(), nullable=True),
        sa.Column("source_ref", _REF, nullable=True),
        sa.Column("identity_ref", _REF, nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("candidate_count", sa.Integer(), nullable=True),
        sa.Column("rules_version", sa.Integer(), nullable=True),
        sa.Column("thresholds_snapshot", sa.Text(), nullable=True),
        sa.Column("actor_type", _ENUM, nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_correlation_audit_event"),
    )
    op.create_index(
        "ix_correlation_audit_event_event_type", "correlation_audit_event", ["event_type"]
    )
    op.create_index("ix_correlation_audit_event_case_id", "correlation_audit_event", ["case_id"])

    op.create_table(
        "correlation_job",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("scope_key", _SCOPE_KEY, nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("tuning_mode", sa.Boolean(), nullable=False),
        sa.Column("total_pairs", sa.Integer(), nullable=False),
        sa.Column("processed_pairs", sa.Integer(), nullable=False),
        sa.Column("auto_confirmed", sa.Integer(), nullable=False),
        sa.Column("queued_for_review", sa.Integer(), nullable=False),
        sa.Column("no_match", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("average_confidence", sa.Float(), nullable=True),
        _timestamp("started_at"),
        _timestamp("completed_at", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_correlation_job"),
    )
    op.create_index("ix_correlation_job_scope_key", "correlation_job", ["scope_key"])


def downgrade() -> None:
    op.drop_index("ix_correlation_job_scope_key", table_name="correlation_job")
    op.drop_table("correlation_job")
    op.drop_index("ix_correlation_audit_event_case_id", table_name="correlation_audit_event")
    op.drop_index("ix_correlation_audit_event_event_type", table_name="correlation_audit_event")
    op.drop_table("correlation_audit_event")
    op.drop_table("provisioned_identity")
    op.drop_index("ix_identity_link_source_ref", table_name="identity_link")
    op.drop_table("identity_link")
    op.drop_index("ix_correlation_case_status", table_name="correlation_case")
    op.drop_index("ix_correlation_case_source_ref", table_name="correlation_case")
    op.drop_index("ix_correlation_case_scope_key", table_name="correlation_case")
    op.drop_table("correlation_case")
    op.drop_table("correlation_threshold")
    op.drop_index("ix_correlation_rule_scope_key", table_name="correlation_rule")
    op.drop_table("correlation_rule")
