from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision = "8c4f1e2d7a93"
down_revision = "5b2e7c9a1d40"
branch_labels = None
depends_on = None


def upgrade():
    # 1) permits / certificates
    op.create_table(
        "permits",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("permit_type", sa.String(), nullable=False),
        sa.Column("number", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("issued_by", sa.String(), nullable=False),
        sa.Column("issued_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("renewal_required", sa.Boolean(), nullable=True),
        sa.Column("renewal_period", sa.Integer(), nullable=True),
        sa.Column("requirements", sa.JSON(), nullable=True),
        sa.Column("documents", sa.JSON(), nullable=True),
        sa.Column("contact_info", sa.String(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("renewals", sa.JSON(), nullable=True),
        sa.Column("revocation", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    for column in ("factory_id", "permit_type", "number", "expiry_date", "status"):
        op.create_index(f"ix_permits_{column}", "permits", [column], unique=False)

    # 2) trainings + attendance
    op.create_table(
        "trainings",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("training_type", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("target_audience", sa.JSON(), nullable=True),
        sa.Column("objectives", sa.JSON(), nullable=True),
        sa.Column("prerequisites", sa.JSON(), nullable=True),
        sa.Column("assessment_required", sa.Boolean(), nullable=True),
        sa.Column("passing_score", sa.Integer(), nullable=True),
        sa.Column("validity_period", sa.Integer(), nullable=True),
        sa.Column("instructor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("materials", sa.JSON(), nullable=True),
        sa.Column("assessments", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    for column in ("factory_id", "training_type", "category", "status"):
        op.create_index(f"ix_trainings_{column}", "trainings", [column], unique=False)

    op.create_table(
        "training_attendances",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("training_id", sa.String(), sa.ForeignKey("trainings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("attended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recorded_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("submissions", sa.JSON(), nullable=True),
        sa.Column("best_score", sa.Integer(), nullable=True),
        sa.Column("certificate_number", sa.String(), nullable=True, unique=True),
        sa.Column("certificate_valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_issued_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_training_attendances_training_id", "training_attendances", ["training_id"], unique=False)
    op.create_index("ix_training_attendances_user_id", "training_attendances", ["user_id"], unique=False)


def downgrade():
    op.drop_index("ix_training_attendances_user_id", table_name="training_attendances")
    op.drop_index("ix_training_attendances_training_id", table_name="training_attendances")
    op.drop_table("training_attendances")

    for column in ("status", "category", "training_type", "factory_id"):
        op.drop_index(f"ix_trainings_{column}", table_name="trainings")
    op.drop_table("trainings")

    for column in ("status", "expiry_date", "number", "permit_type", "factory_id"):
        op.drop_index(f"ix_permits_{column}", table_name="permits")
    op.drop_table("permits")
