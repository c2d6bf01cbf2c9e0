from typing import List, Optional
from datetime import datetime, date, time
from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    Date,
    Time,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    CheckConstraint,
    JSON,
    func,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# --- Users and roles ---


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    roles: Mapped[List["UserRole"]] = relationship(
        "UserRole", back_populates="user", cascade="all, delete-orphan"
    )
    trainer_profile: Mapped[Optional["Trainer"]] = relationship(
        "Trainer", back_populates="user", uselist=False
    )
    client_profile: Mapped[Optional["Client"]] = relationship(
        "Client", back_populates="user", uselist=False, foreign_keys="[Client.user_id]"
    )


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    user: Mapped["User"] = relationship("User", back_populates="roles")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'trainer', 'client')", name="ck_user_roles_role"),
        Index("idx_user_roles_user_id", "user_id"),
    )


# --- Profiles ---


class Trainer(Base):
    __tablename__ = "trainers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), unique=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    specialization: Mapped[Optional[str]] = mapped_column(String(255))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    hourly_rate: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    user: Mapped[Optional["User"]] = relationship("User", back_populates="trainer_profile")


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), unique=True
    )
    trainer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    emergency_contact: Mapped[Optional[str]] = mapped_column(String(255))
    medical_notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    referral_code_used: Mapped[Optional[str]] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    user: Mapped[Optional["User"]] = relationship(
        "User", back_populates="client_profile", foreign_keys=[user_id]
    )
    trainer_user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[trainer_id])
    enrollments: Mapped[List["ClassEnrollment"]] = relationship(
        "ClassEnrollment", back_populates="client", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'pending', 'approved', 'enrolled', 'declined')",
            name="ck_clients_status",
        ),
        Index("idx_clients_trainer_id", "trainer_id"),
    )


class ClientTrainerRelationship(Base):
    __tablename__ = "client_trainer_relationships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    trainer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("client_id", "trainer_id", name="uq_client_trainer"),
        Index("idx_client_trainer_trainer_id", "trainer_id"),
    )


# --- Classes, enrollments and attendance ---


class StudioClass(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    trainer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    class_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    current_enrollment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    class_type: Mapped[str] = mapped_column(String(20), nullable=False, default="group")
    level: Mapped[str] = mapped_column(String(20), nullable=False, default="all")
    location: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_pattern: Mapped[Optional[str]] = mapped_column(String(50))
    recurring_end_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    membership_type: Mapped[Optional[str]] = mapped_column(String(50))
    lessons_per_package: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    trainer: Mapped[Optional["User"]] = relationship("User")
    enrollments: Mapped[List["ClassEnrollment"]] = relationship(
        "ClassEnrollment", back_populates="studio_class", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("max_capacity >= 1", name="ck_classes_max_capacity"),
        CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= max_capacity",
            name="ck_classes_enrollment_range",
        ),
        CheckConstraint("price >= 0", name="ck_classes_price"),
        Index("idx_classes_trainer_id", "trainer_id"),
        Index("idx_classes_date", "date"),
    )


class ClassEnrollment(Base):
    __tablename__ = "class_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="enrolled")
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    enrollment_date: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    studio_class: Mapped["StudioClass"] = relationship("StudioClass", back_populates="enrollments")
    client: Mapped["Client"] = relationship("Client", back_populates="enrollments")
    invoices: Mapped[List["Invoice"]] = relationship("Invoice", back_populates="enrollment")

    __table_args__ = (
        UniqueConstraint("class_id", "client_id", name="uq_class_enrollments_class_client"),
        Index("idx_class_enrollments_client_id", "client_id"),
    )


class Attendance(Base):
    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    attendance_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="present")
    check_in_time: Mapped[Optional[time]] = mapped_column(Time)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    marked_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    studio_class: Mapped["StudioClass"] = relationship("StudioClass")
    client: Mapped["Client"] = relationship("Client")

    __table_args__ = (
        UniqueConstraint("class_id", "client_id", "date", name="uq_attendance_class_client_date"),
        CheckConstraint("status IN ('present', 'absent', 'late')", name="ck_attendance_status"),
        Index("idx_attendance_date", "date"),
    )


# --- Billing ---


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    client_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL")
    )
    enrollment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("class_enrollments.id", ondelete="SET NULL")
    )
    stripe_invoice_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255))
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    client: Mapped[Optional["Client"]] = relationship("Client")
    enrollment: Mapped[Optional["ClassEnrollment"]] = relationship(
        "ClassEnrollment", back_populates="invoices"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoices_amount"),
        Index("idx_invoices_client_id", "client_id"),
        Index("idx_invoices_status", "status"),
    )


class StripePayment(Base):
    __tablename__ = "stripe_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    stripe_payment_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    amount: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class StripeWebhookEvent(Base):
    __tablename__ = "stripe_webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    error: Mapped[Optional[str]] = mapped_column(Text)
    received_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


# --- Community events ---


class CommunityEvent(Base):
    __tablename__ = "community_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[Optional[time]] = mapped_column(Time)
    end_time: Mapped[Optional[time]] = mapped_column(Time)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    participants: Mapped[List["CommunityEventParticipant"]] = relationship(
        "CommunityEventParticipant", back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("current_participants >= 0", name="ck_community_events_participants"),
    )


class CommunityEventParticipant(Base):
    __tablename__ = "community_event_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("community_events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255))
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255))
    registered_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    event: Mapped["CommunityEvent"] = relationship("CommunityEvent", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_community_event_participant"),
    )


# --- Referrals and points ---


class ReferralCode(Base):
    __tablename__ = "referral_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_per_referral: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    tracking: Mapped[List["ReferralTracking"]] = relationship(
        "ReferralTracking", back_populates="referral_code", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses", name="ck_referral_codes_uses"
        ),
        Index("idx_referral_codes_user_id", "user_id"),
    )


class ReferralTracking(Base):
    __tablename__ = "referral_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referral_code_id: Mapped[int] = mapped_column(
        ForeignKey("referral_codes.id", ondelete="CASCADE"), nullable=False
    )
    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    referred_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    referral_code: Mapped["ReferralCode"] = relationship("ReferralCode", back_populates="tracking")

    __table_args__ = (
        UniqueConstraint("referral_code_id", "referred_user_id", name="uq_referral_tracking_use"),
        Index("idx_referral_tracking_referrer_id", "referrer_id"),
        Index("idx_referral_tracking_referred_user_id", "referred_user_id"),
    )


class ClientPoints(Base):
    __tablename__ = "client_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    points_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    reference_id: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (Index("idx_points_transactions_user_id", "user_id"),)


class ClientReward(Base):
    __tablename__ = "client_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reward_value: Mapped[Optional[int]] = mapped_column(Integer)
    milestone_points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "milestone_points", name="uq_client_rewards_milestone"),
    )


# --- Training ---


class TrainerAvailability(Base):
    __tablename__ = "trainer_availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trainer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    trainer: Mapped["User"] = relationship("User")

    __table_args__ = (
        UniqueConstraint(
            "trainer_id", "day_of_week", "start_time", "end_time", name="uq_trainer_availability_slot"
        ),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_trainer_availability_day"),
    )


class TrainingInstruction(Base):
    __tablename__ = "training_instructions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trainer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (Index("idx_training_instructions_client_id", "client_id"),)


class SetProgress(Base):
    __tablename__ = "set_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exercise_id: Mapped[str] = mapped_column(String(64), nullable=False)
    training_day_id: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    set_number: Mapped[int] = mapped_column(Integer, nullable=False)
    weight: Mapped[Optional[float]] = mapped_column(Numeric(8, 2))
    reps: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint(
            "exercise_id", "training_day_id", "client_id", "set_number", name="uq_set_progress_set"
        ),
        CheckConstraint("set_number >= 1", name="ck_set_progress_set_number"),
    )


class BodyWeightEntry(Base):
    __tablename__ = "body_weight_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    trainer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    weight: Mapped[float] = mapped_column(Numeric(6, 2), nullable=False)
    entry_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (
        UniqueConstraint("client_id", "date", name="uq_body_weight_entries_day"),
        CheckConstraint("weight > 0", name="ck_body_weight_entries_weight"),
    )


# --- Subscriptions ---


class ClientSubscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    package_id: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    sessions_total: Mapped[Optional[int]] = mapped_column(Integer)
    sessions_remaining: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    expiry_alert_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    client: Mapped["Client"] = relationship("Client")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'suspended', 'expired', 'cancelled')",
            name="ck_subscriptions_status",
        ),
        CheckConstraint(
            "sessions_remaining IS NULL OR sessions_remaining >= 0",
            name="ck_subscriptions_sessions_remaining",
        ),
        Index("idx_subscriptions_client_id", "client_id"),
    )


# --- Trainer applications ---


class TrainerApplication(Base):
    __tablename__ = "trainer_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    gender: Mapped[Optional[str]] = mapped_column(String(20))
    availability: Mapped[Optional[str]] = mapped_column(Text)
    experience: Mapped[Optional[str]] = mapped_column(Text)
    background_check_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    reviewed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_trainer_applications_status"
        ),
        Index("idx_trainer_applications_email", "email"),
    )


# --- Password resets ---


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    __table_args__ = (Index("idx_password_reset_tokens_user_id", "user_id"),)
