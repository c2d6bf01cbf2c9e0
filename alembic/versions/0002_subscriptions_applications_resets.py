"""
Subscriptions, trainer applications, body weight entries and password reset tokens.
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_subscriptions_applications_resets"
down_revision = "0001_studio_schema_baseline"
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp())


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("package_id", sa.String(50), nullable=False),
        sa.Column("plan_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("sessions_total", sa.Integer()),
        sa.Column("sessions_remaining", sa.Integer()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("expiry_alert_sent_at", sa.DateTime()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime()),
        sa.CheckConstraint(
            "status IN ('active', 'inactive', 'suspended', 'expired', 'cancelled')",
            name="ck_subscriptions_status",
        ),
        sa.CheckConstraint(
            "sessions_remaining IS NULL OR sessions_remaining >= 0",
            name="ck_subscriptions_sessions_remaining",
        ),
    )
    op.create_index("idx_subscriptions_client_id", "subscriptions", ["client_id"])

    op.create_table(
        "trainer_applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("date_of_birth", sa.Date()),
        sa.Column("gender", sa.String(20)),
        sa.Column("availability", sa.Text()),
        sa.Column("experience", sa.Text()),
        sa.Column("background_check_consent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("reviewed_at", sa.DateTime()),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_trainer_applications_status"
        ),
    )
    op.create_index("idx_trainer_applications_email", "trainer_applications", ["email"])

    op.create_table(
        "body_weight_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("weight", sa.Numeric(6, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        _created_at(),
        sa.UniqueConstraint("client_id", "date", name="uq_body_weight_entries_day"),
        sa.CheckConstraint("weight > 0", name="ck_body_weight_entries_weight"),
    )

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used_at", sa.DateTime()),
        _created_at(),
    )
    op.create_index("idx_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"])


def downgrade() -> None:
    for table in ("password_reset_tokens", "body_weight_entries", "trainer_applications", "subscriptions"):
        op.drop_table(table)
