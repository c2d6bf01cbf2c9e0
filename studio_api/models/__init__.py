# Studio API Models Package
from studio_api.models.orm_models import (
    # Base
    Base,
    # Users
    User,
    UserRole,
    Trainer,
    Client,
    ClientTrainerRelationship,
    # Classes
    StudioClass,
    ClassEnrollment,
    Attendance,
    # Billing
    Invoice,
    StripePayment,
    StripeWebhookEvent,
    # Community events
    CommunityEvent,
    CommunityEventParticipant,
    # Referrals and points
    ReferralCode,
    ReferralTracking,
    ClientPoints,
    PointsTransaction,
    ClientReward,
    # Training
    TrainerAvailability,
    TrainingInstruction,
    SetProgress,
    BodyWeightEntry,
    # Subscriptions, applications and password resets
    ClientSubscription,
    TrainerApplication,
    PasswordResetToken,
)

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Trainer",
    "Client",
    "ClientTrainerRelationship",
    "StudioClass",
    "ClassEnrollment",
    "Attendance",
    "Invoice",
    "StripePayment",
    "StripeWebhookEvent",
    "CommunityEvent",
    "CommunityEventParticipant",
    "ReferralCode",
    "ReferralTracking",
    "ClientPoints",
    "PointsTransaction",
    "ClientReward",
    "TrainerAvailability",
    "TrainingInstruction",
    "SetProgress",
    "BodyWeightEntry",
    "ClientSubscription",
    "TrainerApplication",
    "PasswordResetToken",
]
