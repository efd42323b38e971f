from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision = "5b2e7c9a1d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # 1) factories / users
    op.create_table(
        "factories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("industry", sa.String(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_factories_name", "factories", ["name"], unique=False)
    op.create_index("ix_factories_code", "factories", ["code"], unique=True)
    op.create_index("ix_factories_country", "factories", ["country"], unique=False)
    op.create_index("ix_factories_industry", "factories", ["industry"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=True),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    # 2) audits / findings / caps
    op.create_table(
        "audits",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("standard_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("audit_type", sa.String(), nullable=True),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("planned_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("planned_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lead_auditor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_audits_factory_id", "audits", ["factory_id"], unique=False)
    op.create_index("ix_audits_standard_id", "audits", ["standard_id"], unique=False)
    op.create_index("ix_audits_status", "audits", ["status"], unique=False)

    op.create_table(
        "audit_findings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("finding_type", sa.String(), nullable=True),
        sa.Column("severity", sa.String(), nullable=True),
        sa.Column("requirement_code", sa.String(), nullable=True),
        sa.Column("evidence", sa.Text(), nullable=True),
        sa.Column("non_compliance", sa.Boolean(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("recommendation", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "caps",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("audit_id", sa.Integer(), sa.ForeignKey("audits.id"), nullable=True),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=True),
        sa.Column("standard_id", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assignee", sa.String(), nullable=True),
        sa.Column("findings", sa.JSON(), nullable=True),
        sa.Column("non_compliances", sa.JSON(), nullable=True),
        sa.Column("action_plan", sa.JSON(), nullable=True),
        sa.Column("verification_plan", sa.JSON(), nullable=True),
        sa.Column("stakeholders", sa.JSON(), nullable=True),
        sa.Column("risk_assessment", sa.JSON(), nullable=True),
        sa.Column("cost_estimate", sa.JSON(), nullable=True),
        sa.Column("timeline", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_caps_audit_id", "caps", ["audit_id"], unique=False)
    op.create_index("ix_caps_factory_id", "caps", ["factory_id"], unique=False)
    op.create_index("ix_caps_standard_id", "caps", ["standard_id"], unique=False)

    # 3) grievances
    op.create_table(
        "grievances",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("case_number", sa.String(), nullable=True),
        sa.Column("worker_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("worker_name", sa.String(), nullable=True),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=True),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("confidential", sa.Boolean(), nullable=True),
        sa.Column("risk_level", sa.String(), nullable=True),
        sa.Column("sla_days", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("timeline", sa.JSON(), nullable=True),
        sa.Column("triage_result", sa.JSON(), nullable=True),
        sa.Column("investigator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assignment", sa.JSON(), nullable=True),
        sa.Column("notes", sa.JSON(), nullable=True),
        sa.Column("escalation_history", sa.JSON(), nullable=True),
        sa.Column("sla_breach", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_grievances_case_number", "grievances", ["case_number"], unique=True)
    op.create_index("ix_grievances_factory_id", "grievances", ["factory_id"], unique=False)
    op.create_index("ix_grievances_category", "grievances", ["category"], unique=False)
    op.create_index("ix_grievances_status", "grievances", ["status"], unique=False)

    # 4) requirements / checklists / evidence
    op.create_table(
        "requirements",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("standard_id", sa.String(), nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=True),
        sa.Column("requirement_code", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("compliance_score", sa.Float(), nullable=True),
        sa.Column("risk_level", sa.String(), nullable=True),
        sa.Column("evidence_count", sa.Integer(), nullable=True),
        sa.Column("last_audit_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_audit_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_requirements_standard_id", "requirements", ["standard_id"], unique=False)
    op.create_index("ix_requirements_factory_id", "requirements", ["factory_id"], unique=False)
    op.create_index("ix_requirements_requirement_code", "requirements", ["requirement_code"], unique=False)

    op.create_table(
        "audit_checklists",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("standard_id", sa.String(), nullable=True),
        sa.Column("standard_name", sa.String(), nullable=True),
        sa.Column("standard_version", sa.String(), nullable=True),
        sa.Column("audit_type", sa.String(), nullable=True),
        sa.Column("focus_areas", sa.JSON(), nullable=True),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=True),
        sa.Column("items", sa.JSON(), nullable=True),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("generated_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_audit_checklists_standard_id", "audit_checklists", ["standard_id"], unique=False)
    op.create_index("ix_audit_checklists_factory_id", "audit_checklists", ["factory_id"], unique=False)

    op.create_table(
        "evidence_documents",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("standard_id", sa.String(), nullable=True),
        sa.Column("requirement_code", sa.String(), nullable=True),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("stored_path", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
        sa.Column("sha256", sa.String(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("uploaded_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_evidence_documents_factory_id", "evidence_documents", ["factory_id"], unique=False)
    op.create_index("ix_evidence_documents_standard_id", "evidence_documents", ["standard_id"], unique=False)
    op.create_index("ix_evidence_documents_sha256", "evidence_documents", ["sha256"], unique=False)

    # 5) audit_logs (append-only)
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_role", sa.String(), nullable=False),
        sa.Column("user_email", sa.String(), nullable=True),
        sa.Column("factory_id", sa.String(), nullable=True),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("context", sa.JSON(), nullable=False),
        sa.Column("evidence_hash", sa.String(64), nullable=False),
        sa.Column("session_id", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("severity", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("immutable", sa.Boolean(), nullable=False),
        sa.Column("version", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    for column in ("timestamp", "action", "user_id", "factory_id", "organization_id", "severity", "category"):
        op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column], unique=False)


def downgrade():
    for column in ("category", "severity", "organization_id", "factory_id", "user_id", "action", "timestamp"):
        op.drop_index(f"ix_audit_logs_{column}", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_evidence_documents_sha256", table_name="evidence_documents")
    op.drop_index("ix_evidence_documents_standard_id", table_name="evidence_documents")
    op.drop_index("ix_evidence_documents_factory_id", table_name="evidence_documents")
    op.drop_table("evidence_documents")

    op.drop_index("ix_audit_checklists_factory_id", table_name="audit_checklists")
    op.drop_index("ix_audit_checklists_standard_id", table_name="audit_checklists")
    op.drop_table("audit_checklists")

    op.drop_index("ix_requirements_requirement_code", table_name="requirements")
    op.drop_index("ix_requirements_factory_id", table_name="requirements")
    op.drop_index("ix_requirements_standard_id", table_name="requirements")
    op.drop_table("requirements")

    op.drop_index("ix_grievances_status", table_name="grievances")
    op.drop_index("ix_grievances_category", table_name="grievances")
    op.drop_index("ix_grievances_factory_id", table_name="grievances")
    op.drop_index("ix_grievances_case_number", table_name="grievances")
    op.drop_table("grievances")

    op.drop_index("ix_caps_standard_id", table_name="caps")
    op.drop_index("ix_caps_factory_id", table_name="caps")
    op.drop_index("ix_caps_audit_id", table_name="caps")
    op.drop_table("caps")
    op.drop_table("audit_findings")

    op.drop_index("ix_audits_status", table_name="audits")
    op.drop_index("ix_audits_standard_id", table_name="audits")
    op.drop_index("ix_audits_factory_id", table_name="audits")
    op.drop_table("audits")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.drop_index("ix_factories_industry", table_name="factories")
    op.drop_index("ix_factories_country", table_name="factories")
    op.drop_index("ix_factories_code", table_name="factories")
    op.drop_index("ix_factories_name", table_name="factories")
    op.drop_table("factories")
