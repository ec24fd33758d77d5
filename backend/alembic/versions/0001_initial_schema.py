"""Initial leave ledger schema.

Revision ID: 0001
Revises:
Create Date: 2025-01-06 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _days(name: str, *, nullable: bool = False, server_default: str | None = "0") -> sa.Column:  # type: ignore[type-arg]
    return sa.Column(name, sa.Numeric(12, 4), nullable=nullable, server_default=server_default)


def _created_at() -> sa.Column:  # type: ignore[type-arg]
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at() -> sa.Column:  # type: ignore[type-arg]
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _leave_type_fk() -> sa.Column:  # type: ignore[type-arg]
    return sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id"), nullable=False)


def upgrade() -> None:
    # -- Catalog --------------------------------------------------------------
    op.create_table(
        "leave_type",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("paid", sa.Boolean(), nullable=False),
        sa.Column("payroll_code", sa.String(length=50), nullable=True),
        sa.Column("requires_hr_review", sa.Boolean(), nullable=False),
        sa.Column("insufficient_balance_policy", sa.String(length=50), server_default="REJECT", nullable=False),
        sa.Column("allow_hr_override", sa.Boolean(), nullable=False),
        sa.Column("grace_period_hours", sa.Integer(), nullable=True),
        sa.Column("requires_attachment", sa.Boolean(), nullable=False),
        sa.Column("max_duration_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("code", name="uq_leave_type_code"),
    )
    op.create_index(op.f("ix_leave_type_created_at"), "leave_type", ["created_at"])

    op.create_table(
        "holiday_calendar",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.UniqueConstraint("year", name="uq_holiday_calendar_year"),
    )
    op.create_index(op.f("ix_holiday_calendar_created_at"), "holiday_calendar", ["created_at"])

    op.create_table(
        "calendar_holiday",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "calendar_id", sa.Uuid(), sa.ForeignKey("holiday_calendar.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_index(op.f("ix_calendar_holiday_calendar_id"), "calendar_holiday", ["calendar_id"])

    # -- Ledger ---------------------------------------------------------------
    op.create_table(
        "ledger_transaction",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        _leave_type_fk(),
        _days("amount_days", server_default=None),
        sa.Column("transaction_type", sa.String(length=50), nullable=False),
        sa.Column("origin_request_id", sa.Uuid(), nullable=True),
        sa.Column("performed_by", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_idempotency_key"),
    )
    op.create_index(op.f("ix_ledger_transaction_created_at"), "ledger_transaction", ["created_at"])
    op.create_index(op.f("ix_ledger_transaction_employee_id"), "ledger_transaction", ["employee_id"])
    op.create_index(op.f("ix_ledger_transaction_leave_type_id"), "ledger_transaction", ["leave_type_id"])
    op.create_index(op.f("ix_ledger_transaction_origin_request_id"), "ledger_transaction", ["origin_request_id"])
    op.create_index(
        "ix_ledger_employee_leave_type_created",
        "ledger_transaction",
        ["employee_id", "leave_type_id", "created_at"],
    )

    op.create_table(
        "balance_projection",
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        _leave_type_fk(),
        _days("balance_days"),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        _updated_at(),
        sa.PrimaryKeyConstraint("employee_id", "leave_type_id"),
    )
    op.create_index(op.f("ix_balance_projection_leave_type_id"), "balance_projection", ["leave_type_id"])

    # -- Entitlements and accrual ---------------------------------------------
    op.create_table(
        "entitlement_rule",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        _leave_type_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        _days("yearly_entitlement_days", server_default=None),
        sa.Column("min_tenure_months", sa.Integer(), nullable=False),
        sa.Column("grades", sa.JSON(), nullable=False),
        sa.Column("contract_types", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_entitlement_rule_created_at"), "entitlement_rule", ["created_at"])
    op.create_index(op.f("ix_entitlement_rule_leave_type_id"), "entitlement_rule", ["leave_type_id"])

    op.create_table(
        "personalized_entitlement",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        _leave_type_fk(),
        sa.Column("employee_id", sa.Uuid(), nullable=True),
        sa.Column("group_criteria", sa.JSON(), nullable=True),
        _days("yearly_entitlement_days", server_default=None),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_personalized_entitlement_created_at"), "personalized_entitlement", ["created_at"])
    op.create_index(op.f("ix_personalized_entitlement_employee_id"), "personalized_entitlement", ["employee_id"])
    op.create_index(
        op.f("ix_personalized_entitlement_leave_type_id"), "personalized_entitlement", ["leave_type_id"]
    )

    op.create_table(
        "accrual_rule",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("lineage_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("previous_version_id", sa.Uuid(), nullable=True),
        _leave_type_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("frequency", sa.String(length=20), nullable=False),
        _days("rate_per_period", server_default=None),
        sa.Column("rounding_method", sa.String(length=20), nullable=False),
        _days("max_carryover_days", nullable=True, server_default=None),
        sa.Column("carryover_expiry_years", sa.Integer(), nullable=True),
        sa.Column("suspend_during_unpaid_leave", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_accrual_rule_created_at"), "accrual_rule", ["created_at"])
    op.create_index(op.f("ix_accrual_rule_lineage_id"), "accrual_rule", ["lineage_id"])
    op.create_index(op.f("ix_accrual_rule_leave_type_id"), "accrual_rule", ["leave_type_id"])

    op.create_table(
        "accrual_period_marker",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("rule_id", sa.Uuid(), nullable=False),
        sa.Column("rule_version_id", sa.Uuid(), nullable=False),
        sa.Column("period", sa.String(length=10), nullable=False),
        _days("accrued_days"),
        sa.Column("suspended", sa.Boolean(), nullable=False),
        sa.Column("transaction_id", sa.Uuid(), nullable=True),
        sa.UniqueConstraint("employee_id", "rule_id", "period", name="uq_accrual_period_marker"),
    )
    op.create_index(op.f("ix_accrual_period_marker_created_at"), "accrual_period_marker", ["created_at"])
    op.create_index(op.f("ix_accrual_period_marker_employee_id"), "accrual_period_marker", ["employee_id"])

    op.create_table(
        "carryover_record",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("rule_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), nullable=False),
        sa.Column("plan_year", sa.Integer(), nullable=False),
        _days("carried_days"),
        _days("forfeited_days"),
        sa.Column("expires_on", sa.Date(), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        _days("expired_days"),
        sa.UniqueConstraint("employee_id", "rule_id", "plan_year", name="uq_carryover_plan_year"),
    )
    op.create_index(op.f("ix_carryover_record_created_at"), "carryover_record", ["created_at"])
    op.create_index(op.f("ix_carryover_record_employee_id"), "carryover_record", ["employee_id"])
    op.create_index(op.f("ix_carryover_record_leave_type_id"), "carryover_record", ["leave_type_id"])
    op.create_index(op.f("ix_carryover_record_expires_on"), "carryover_record", ["expires_on"])

    # -- Requests and delegation ----------------------------------------------
    op.create_table(
        "leave_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        _updated_at(),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        _leave_type_fk(),
        sa.Column("rule_id", sa.Uuid(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        _days("requested_days", server_default=None),
        _days("net_days", server_default=None),
        sa.Column("justification", sa.String(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=50), server_default="SUBMITTED", nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("is_post_leave_request", sa.Boolean(), nullable=False),
        sa.Column("has_overlap_with_approved_leave", sa.Boolean(), nullable=False),
        sa.Column("overlapping_leave_request_ids", sa.JSON(), nullable=False),
        sa.Column("exceeds_entitlement", sa.Boolean(), nullable=False),
        _days("converted_to_unpaid_days"),
        sa.Column("payroll_sync_status", sa.String(length=20), nullable=True),
        sa.Column("time_sync_status", sa.String(length=20), nullable=True),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("current_approver", sa.Uuid(), nullable=True),
        sa.Column("grace_period_hours", sa.Integer(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_by", sa.Uuid(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_leave_request_created_at"), "leave_request", ["created_at"])
    op.create_index(op.f("ix_leave_request_employee_id"), "leave_request", ["employee_id"])
    op.create_index(op.f("ix_leave_request_leave_type_id"), "leave_request", ["leave_type_id"])
    op.create_index(op.f("ix_leave_request_status"), "leave_request", ["status"])
    op.create_index(op.f("ix_leave_request_current_approver"), "leave_request", ["current_approver"])
    op.create_index(
        "ix_leave_request_employee_dates", "leave_request", ["employee_id", "start_date", "end_date"]
    )
    op.create_index("ix_leave_request_status_submitted", "leave_request", ["status", "submitted_at"])

    op.create_table(
        "approval_record",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "request_id", sa.Uuid(), sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("approver_role", sa.String(length=20), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("is_override", sa.Boolean(), nullable=False),
        sa.Column("override_reason", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("request_id", "step_number", name="uq_approval_record_step"),
    )
    op.create_index(op.f("ix_approval_record_request_id"), "approval_record", ["request_id"])

    op.create_table(
        "unpaid_leave_marker",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), nullable=False),
        _days("days", server_default=None),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.UniqueConstraint("request_id", name="uq_unpaid_leave_marker_request"),
    )
    op.create_index(op.f("ix_unpaid_leave_marker_created_at"), "unpaid_leave_marker", ["created_at"])
    op.create_index(op.f("ix_unpaid_leave_marker_employee_id"), "unpaid_leave_marker", ["employee_id"])

    op.create_table(
        "delegation",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("manager_id", sa.Uuid(), nullable=False),
        sa.Column("delegate_id", sa.Uuid(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_delegation_created_at"), "delegation", ["created_at"])
    op.create_index(op.f("ix_delegation_delegate_id"), "delegation", ["delegate_id"])
    op.create_index("ix_delegation_manager_status", "delegation", ["manager_id", "status"])

    # -- Integration, audit, jobs ---------------------------------------------
    op.create_table(
        "integration_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        _updated_at(),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("external_system", sa.String(length=50), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("payload_summary", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True),
    )
    op.create_index(op.f("ix_integration_log_created_at"), "integration_log", ["created_at"])
    op.create_index(op.f("ix_integration_log_status"), "integration_log", ["status"])
    op.create_index("ix_integration_log_entity", "integration_log", ["entity_type", "entity_id"])
    op.create_index("ix_integration_log_due", "integration_log", ["status", "next_attempt_at"])

    op.create_table(
        "leave_audit",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("target_type", sa.String(length=50), nullable=False),
        sa.Column("target_id", sa.Uuid(), nullable=False),
        sa.Column("changed_by", sa.Uuid(), nullable=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
    )
    op.create_index(op.f("ix_leave_audit_created_at"), "leave_audit", ["created_at"])
    op.create_index(op.f("ix_leave_audit_changed_by"), "leave_audit", ["changed_by"])
    op.create_index("ix_leave_audit_target", "leave_audit", ["target_type", "target_id"])

    op.create_table(
        "job_run_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("run_type", sa.String(length=50), nullable=False),
        sa.Column("period", sa.String(length=32), nullable=True),
        sa.Column("executed_by", sa.Uuid(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("summary", sa.JSON(), nullable=True),
    )
    op.create_index(op.f("ix_job_run_log_run_type"), "job_run_log", ["run_type"])


def downgrade() -> None:
    for table in (
        "job_run_log",
        "leave_audit",
        "integration_log",
        "delegation",
        "unpaid_leave_marker",
        "approval_record",
        "leave_request",
        "carryover_record",
        "accrual_period_marker",
        "accrual_rule",
        "personalized_entitlement",
        "entitlement_rule",
        "balance_projection",
        "ledger_transaction",
        "calendar_holiday",
        "holiday_calendar",
        "leave_type",
    ):
        op.drop_table(table)
