"""
Request payload models.

Bodies are accepted in snake_case or camelCase. ``parse_payload`` turns a
pydantic failure into a 400 "Validation failed" with the field errors.
"""

from datetime import date, datetime, time
from typing import Any, Dict, Literal, Optional, Type, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from studio_api.exceptions import ValidationFailed

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

ClassType = Literal["group", "private", "semi-private"]
ClassLevel = Literal["beginner", "intermediate", "advanced", "all"]
ClassStatus = Literal["scheduled", "in_progress", "completed", "cancelled"]
ClientStatus = Literal["confirmed", "pending", "approved", "enrolled", "declined"]
EnrollmentStatus = Literal["enrolled", "active", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "overdue"]
AttendanceStatus = Literal["present", "absent", "late"]
InvoiceStatus = Literal["draft", "sent", "open", "paid", "overdue", "cancelled"]
EventStatus = Literal["active", "cancelled", "completed"]
SubscriptionStatus = Literal["active", "inactive", "suspended", "expired", "cancelled"]
ApplicationDecision = Literal["approved", "rejected"]
ExpiryAlertType = Literal[
    "subscription_expiry", "payment_due", "top_up_reminder", "membership_expiry", "package_expiry"
]

ModelT = TypeVar("ModelT", bound=BaseModel)


def _normalize_time(value: Any) -> Any:
    # "09:00" -> "09:00:00"
    if isinstance(value, str):
        v = value.strip()
        if len(v) == 5 and v[2] == ":":
            return f"{v}:00"
        return v
    return value


class StudioModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def parse_payload(model: Type[ModelT], data: Any) -> ModelT:
    if not isinstance(data, dict):
        raise ValidationFailed(
            "Validation failed", details=[{"loc": [], "msg": "Request body must be a JSON object"}]
        )
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(
            "Validation failed", details=e.errors(include_url=False, include_context=False)
        )


# --- Auth ---


class LoginPayload(StudioModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class RegisterPayload(StudioModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    referral_code: Optional[str] = None


class PasswordResetRequest(StudioModel):
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    user_id: Optional[int] = None
    is_admin_reset: bool = False

    @model_validator(mode="after")
    def _email_or_user(self):
        if not self.email and self.user_id is None:
            raise ValueError("Email or user ID is required")
        return self


class PasswordResetConfirm(StudioModel):
    password: str = Field(..., min_length=6)
    token: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("token", "accessToken", "access_token")
    )


# --- Classes ---


class ClassBase(StudioModel):
    description: Optional[str] = None
    trainer_id: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("trainer_id", "trainerId", "instructor_id", "instructorId"),
    )
    class_date: Optional[date] = Field(None, alias="date")
    duration_minutes: Optional[int] = Field(None, ge=1)
    max_capacity: Optional[int] = Field(None, ge=1)
    class_type: Optional[ClassType] = None
    level: Optional[ClassLevel] = None
    location: Optional[str] = None
    status: Optional[ClassStatus] = None
    recurring: Optional[bool] = None
    recurring_pattern: Optional[str] = None
    recurring_end_date: Optional[date] = None
    notes: Optional[str] = None
    title: Optional[str] = None
    membership_type: Optional[str] = None
    lessons_per_package: Optional[int] = Field(None, ge=1)

    @field_validator("start_time", "end_time", mode="before", check_fields=False)
    @classmethod
    def _times(cls, v):
        return _normalize_time(v)


class ClassCreate(ClassBase):
    name: str = Field(..., min_length=1, max_length=255)
    start_time: time
    end_time: time
    price: float = Field(..., ge=0)
    max_capacity: int = Field(10, ge=1)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ClassUpdate(ClassBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    price: Optional[float] = Field(None, ge=0)


class ClassEnrollmentCreate(StudioModel):
    client_id: int
    notes: Optional[str] = None


class ClassAttendanceMark(StudioModel):
    client_id: int
    status: AttendanceStatus
    attendance_date: Optional[date] = Field(None, alias="date")
    notes: Optional[str] = None


class ReminderPayload(StudioModel):
    reminder_type: Literal["all", "email"] = "all"
    message: Optional[str] = None


# --- Clients and trainers ---


class ClientCreate(StudioModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    emergency_contact: Optional[str] = None
    medical_notes: Optional[str] = None
    status: ClientStatus = "pending"
    trainer_id: Optional[int] = None
    user_id: Optional[int] = None


class ClientUpdate(StudioModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    emergency_contact: Optional[str] = None
    medical_notes: Optional[str] = None
    status: Optional[ClientStatus] = None
    trainer_id: Optional[int] = None


class AddClientPayload(StudioModel):
    client_id: int
    notes: Optional[str] = None


class ClientReminderPayload(StudioModel):
    client_id: int
    subject: Optional[str] = None
    message: Optional[str] = None


class TrainerCreate(StudioModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    status: Literal["active", "inactive"] = "active"
    user_id: Optional[int] = None


class TrainerUpdate(StudioModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    status: Optional[Literal["active", "inactive"]] = None


class TrainerApplicationCreate(StudioModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    availability: Optional[str] = None
    experience: Optional[str] = None
    background_check_consent: bool = False


class TrainerApplicationReview(StudioModel):
    status: ApplicationDecision


# --- Enrollments and attendance ---


class EnrollmentCreate(StudioModel):
    class_id: int
    client_id: int
    notes: Optional[str] = None


class EnrollmentUpdate(StudioModel):
    status: Optional[EnrollmentStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None


class AttendanceCreate(StudioModel):
    class_id: int
    client_id: int
    attendance_date: date = Field(..., alias="date")
    status: AttendanceStatus = "present"
    check_in_time: Optional[time] = None
    notes: Optional[str] = None

    @field_validator("check_in_time", mode="before")
    @classmethod
    def _check_in(cls, v):
        return _normalize_time(v)


# --- Trainer availability, instructions and set progress ---


class AvailabilityPayload(StudioModel):
    id: Optional[int] = None
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    is_available: bool = True
    notes: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _times(cls, v):
        return _normalize_time(v)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class InstructionCreate(StudioModel):
    client_id: int
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)


class SetEntry(StudioModel):
    weight: Optional[float] = Field(None, ge=0)
    reps: Optional[int] = Field(None, ge=0)


class SetProgressPayload(StudioModel):
    exercise_id: str
    training_day_id: str
    client_id: int
    set_progress: Dict[int, SetEntry]

    @field_validator("exercise_id", "training_day_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v):
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("set_progress")
    @classmethod
    def _non_negative_indexes(cls, v):
        for idx in v:
            if idx < 0:
                raise ValueError("set index must be >= 0")
        return v


# --- Billing ---


class InvoiceCreate(StudioModel):
    client_id: int
    amount: float = Field(..., gt=0)
    description: Optional[str] = None
    enrollment_id: Optional[int] = None
    due_date: Optional[date] = None
    currency: str = Field("usd", min_length=3, max_length=3)
    send_to_stripe: bool = False
    metadata: Optional[Dict[str, Any]] = None


class InvoiceUpdate(StudioModel):
    status: Optional[InvoiceStatus] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    due_date: Optional[date] = None


class InvoicePaymentPayload(StudioModel):
    invoice_id: str = Field(..., min_length=1)


# --- Community events ---


class CommunityEventCreate(StudioModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    event_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    location: Optional[str] = None
    price: float = Field(0, ge=0)
    max_participants: Optional[int] = Field(None, ge=1)
    points_reward: int = Field(0, ge=0)
    is_public: bool = True

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _times(cls, v):
        return _normalize_time(v)


class CommunityEventUpdate(StudioModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    event_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    location: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    max_participants: Optional[int] = Field(None, ge=1)
    points_reward: Optional[int] = Field(None, ge=0)
    status: Optional[EventStatus] = None
    is_public: Optional[bool] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _times(cls, v):
        return _normalize_time(v)


# --- Referrals ---


class ReferralCodeCreate(StudioModel):
    max_uses: Optional[int] = Field(None, ge=1, le=1000)
    points_per_referral: int = Field(100, ge=1, le=10000)
    expires_at: Optional[datetime] = None
    custom_code: Optional[str] = None


class ReferralCodeUpdate(StudioModel):
    is_active: Optional[bool] = None
    max_uses: Optional[int] = Field(None, ge=1, le=1000)
    points_per_referral: Optional[int] = Field(None, ge=1, le=10000)
    expires_at: Optional[datetime] = None


class CustomCodeCheck(StudioModel):
    custom_code: str = Field(..., validation_alias=AliasChoices("customCode", "custom_code", "code"))


class ReferralTrackPayload(StudioModel):
    referral_code: str = Field(..., min_length=1)
    referred_user_id: Optional[int] = None


class ReferralTrackingUpdate(StudioModel):
    tracking_id: int
    action: Literal["complete", "cancel"] = "complete"


class ReferralCompletePayload(StudioModel):
    referral_code: str = Field(..., min_length=1)


# --- Subscriptions and expiry alerts ---


class SubscriptionCreate(StudioModel):
    client_id: int
    package_id: str = Field(..., min_length=1)
    start_date: Optional[date] = None
    # Overrides the catalogue price
    amount: Optional[float] = Field(None, ge=0)
    currency: str = Field("usd", min_length=3, max_length=3)
    notes: Optional[str] = None


class SubscriptionUpdate(StudioModel):
    status: Optional[SubscriptionStatus] = None
    sessions_remaining: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[date] = None
    amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class ExpirySweepPayload(StudioModel):
    within_days: int = Field(7, ge=1, le=90)


class ExpiryAlertPayload(StudioModel):
    to: str = Field(..., pattern=EMAIL_PATTERN)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    alert_type: ExpiryAlertType
    days_remaining: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[date] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    package_name: Optional[str] = None
    membership_type: Optional[str] = None
    action_url: Optional[str] = None


# --- Weight tracker ---


class WeightEntryCreate(StudioModel):
    weight: float = Field(..., gt=0, le=1000)
    entry_date: date = Field(..., alias="date")
    notes: Optional[str] = None
