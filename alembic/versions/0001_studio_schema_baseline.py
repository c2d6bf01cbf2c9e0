"""
Studio schema baseline.
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_studio_schema_baseline"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(), server_default=sa.func.current_timestamp())


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("phone", sa.String(50)),
        _created_at(),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        _created_at(),
        sa.CheckConstraint("role IN ('admin', 'trainer', 'client')", name="ck_user_roles_role"),
    )
    op.create_index("idx_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "trainers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("phone", sa.String(50)),
        sa.Column("specialization", sa.String(255)),
        sa.Column("bio", sa.Text()),
        sa.Column("hourly_rate", sa.Numeric(10, 2)),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _created_at(),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), unique=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("phone", sa.String(50)),
        sa.Column("date_of_birth", sa.Date()),
        sa.Column("emergency_contact", sa.String(255)),
        sa.Column("medical_notes", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("referral_code_used", sa.String(32)),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('confirmed', 'pending', 'approved', 'enrolled', 'declined')",
            name="ck_clients_status",
        ),
    )
    op.create_index("idx_clients_trainer_id", "clients", ["trainer_id"])

    op.create_table(
        "client_trainer_relationships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _created_at("assigned_at"),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text()),
        sa.UniqueConstraint("client_id", "trainer_id", name="uq_client_trainer"),
    )
    op.create_index("idx_client_trainer_trainer_id", "client_trainer_relationships", ["trainer_id"])

    op.create_table(
        "classes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255)),
        sa.Column("description", sa.Text()),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer()),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("current_enrollment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("class_type", sa.String(20), nullable=False, server_default="group"),
        sa.Column("level", sa.String(20), nullable=False, server_default="all"),
        sa.Column("location", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_pattern", sa.String(50)),
        sa.Column("recurring_end_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("membership_type", sa.String(50)),
        sa.Column("lessons_per_package", sa.Integer()),
        _created_at(),
        sa.CheckConstraint("max_capacity >= 1", name="ck_classes_max_capacity"),
        sa.CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= max_capacity",
            name="ck_classes_enrollment_range",
        ),
        sa.CheckConstraint("price >= 0", name="ck_classes_price"),
    )
    op.create_index("idx_classes_trainer_id", "classes", ["trainer_id"])
    op.create_index("idx_classes_date", "classes", ["date"])

    op.create_table(
        "class_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("classes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="enrolled"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        _created_at("enrollment_date"),
        sa.Column("notes", sa.Text()),
        sa.UniqueConstraint("class_id", "client_id", name="uq_class_enrollments_class_client"),
    )
    op.create_index("idx_class_enrollments_client_id", "class_enrollments", ["client_id"])

    op.create_table(
        "attendance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("classes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="present"),
        sa.Column("check_in_time", sa.Time()),
        sa.Column("notes", sa.Text()),
        sa.Column("marked_at", sa.DateTime()),
        sa.Column("marked_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.UniqueConstraint("class_id", "client_id", "date", name="uq_attendance_class_client_date"),
        sa.CheckConstraint("status IN ('present', 'absent', 'late')", name="ck_attendance_status"),
    )
    op.create_index("idx_attendance_date", "attendance", ["date"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(32), nullable=False, unique=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="SET NULL")),
        sa.Column(
            "enrollment_id", sa.Integer(), sa.ForeignKey("class_enrollments.id", ondelete="SET NULL")
        ),
        sa.Column("stripe_invoice_id", sa.String(255), unique=True),
        sa.Column("stripe_customer_id", sa.String(255)),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("due_date", sa.Date()),
        sa.Column("paid_date", sa.DateTime()),
        sa.Column("metadata", sa.JSON()),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_invoices_amount"),
    )
    op.create_index("idx_invoices_client_id", "invoices", ["client_id"])
    op.create_index("idx_invoices_status", "invoices", ["status"])

    op.create_table(
        "stripe_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("amount", sa.Numeric(10, 2)),
        sa.Column("currency", sa.String(3)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "stripe_webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(255), nullable=False, unique=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("error", sa.Text()),
        _created_at("received_at"),
        sa.Column("processed_at", sa.DateTime()),
    )

    op.create_table(
        "community_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("location", sa.String(255)),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("max_participants", sa.Integer()),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_reward", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        _created_at(),
        sa.CheckConstraint("current_participants >= 0", name="ck_community_events_participants"),
    )

    op.create_table(
        "community_event_participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id", sa.Integer(), sa.ForeignKey("community_events.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("stripe_session_id", sa.String(255)),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        _created_at("registered_at"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_community_event_participant"),
    )

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_uses", sa.Integer()),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_per_referral", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime()),
        _created_at(),
        sa.CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="ck_referral_codes_uses"),
    )
    op.create_index("idx_referral_codes_user_id", "referral_codes", ["user_id"])

    op.create_table(
        "referral_tracking",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "referral_code_id", sa.Integer(), sa.ForeignKey("referral_codes.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referred_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column("completed_at", sa.DateTime()),
        sa.UniqueConstraint("referral_code_id", "referred_user_id", name="uq_referral_tracking_use"),
    )
    op.create_index("idx_referral_tracking_referrer_id", "referral_tracking", ["referrer_id"])
    op.create_index("idx_referral_tracking_referred_user_id", "referral_tracking", ["referred_user_id"])

    op.create_table(
        "client_points",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("reference_id", sa.String(255)),
        _created_at(),
    )
    op.create_index("idx_points_transactions_user_id", "points_transactions", ["user_id"])

    op.create_table(
        "client_rewards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reward_type", sa.String(20), nullable=False),
        sa.Column("reward_value", sa.Integer()),
        sa.Column("milestone_points", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime()),
        _created_at(),
        sa.UniqueConstraint("user_id", "milestone_points", name="uq_client_rewards_milestone"),
    )

    op.create_table(
        "trainer_availability",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text()),
        sa.UniqueConstraint(
            "trainer_id", "day_of_week", "start_time", "end_time", name="uq_trainer_availability_slot"
        ),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_trainer_availability_day"),
    )

    op.create_table(
        "training_instructions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("idx_training_instructions_client_id", "training_instructions", ["client_id"])

    op.create_table(
        "set_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("exercise_id", sa.String(64), nullable=False),
        sa.Column("training_day_id", sa.String(64), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("set_number", sa.Integer(), nullable=False),
        sa.Column("weight", sa.Numeric(8, 2)),
        sa.Column("reps", sa.Integer()),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint(
            "exercise_id", "training_day_id", "client_id", "set_number", name="uq_set_progress_set"
        ),
        sa.CheckConstraint("set_number >= 1", name="ck_set_progress_set_number"),
    )


def downgrade():
    for table in (
        "set_progress",
        "training_instructions",
        "trainer_availability",
        "client_rewards",
        "points_transactions",
        "client_points",
        "referral_tracking",
        "referral_codes",
        "community_event_participants",
        "community_events",
        "stripe_webhook_events",
        "stripe_payments",
        "invoices",
        "attendance",
        "class_enrollments",
        "classes",
        "client_trainer_relationships",
        "clients",
        "trainers",
        "user_roles",
        "users",
    ):
        op.drop_table(table)
