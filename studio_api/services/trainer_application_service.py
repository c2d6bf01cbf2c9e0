"""
Trainer Application Service - SQLAlchemy ORM Implementation

Public applications to join as a trainer and the admin review that turns an
approved applicant into a trainer user with a trainer profile.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from studio_api.exceptions import Conflict, NotFound
from studio_api.models.orm_models import Trainer, TrainerApplication, User, UserRole
from studio_api.schemas import TrainerApplicationCreate
from studio_api.security.session_claims import ADMIN_ROLE, TRAINER_ROLE
from studio_api.services.auth_service import AuthService
from studio_api.services.base import BaseService
from studio_api.utils import iso, utcnow

logger = logging.getLogger(__name__)


class TrainerApplicationService(BaseService):
    """Service for trainer applications."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.auth = AuthService(db)

    @staticmethod
    def application_to_dict(a: TrainerApplication) -> Dict[str, Any]:
        return {
            "id": a.id,
            "user_id": a.user_id,
            "first_name": a.first_name,
            "last_name": a.last_name,
            "email": a.email,
            "phone": a.phone,
            "date_of_birth": iso(a.date_of_birth),
            "gender": a.gender,
            "availability": a.availability,
            "experience": a.experience,
            "background_check_consent": bool(a.background_check_consent),
            "status": a.status,
            "reviewed_by": a.reviewed_by,
            "reviewed_at": iso(a.reviewed_at),
            "created_at": iso(a.created_at),
        }

    def list_applications(self, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(TrainerApplication)
        if status:
            stmt = stmt.where(TrainerApplication.status == status)
        stmt = stmt.order_by(TrainerApplication.created_at.desc(), TrainerApplication.id.desc())
        return [self.application_to_dict(a) for a in self.db.scalars(stmt).all()]

    def submit(self, payload: TrainerApplicationCreate) -> Dict[str, Any]:
        email = payload.email.strip().lower()
        if self.db.scalars(select(Trainer).where(Trainer.email == email)).first() is not None:
            raise Conflict("A trainer with this email already exists")
        pending = self.db.scalars(
            select(TrainerApplication).where(
                TrainerApplication.email == email, TrainerApplication.status == "pending"
            )
        ).first()
        if pending is not None:
            raise Conflict("An application for this email is already pending")

        user = self.auth.get_user_by_email(email)
        a = TrainerApplication(
            user_id=user.id if user is not None else None,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            phone=payload.phone,
            date_of_birth=payload.date_of_birth,
            gender=payload.gender,
            availability=payload.availability,
            experience=payload.experience,
            background_check_consent=payload.background_check_consent,
            status="pending",
        )
        try:
            self.db.add(a)
            self.db.commit()
            self.db.refresh(a)
        except Exception as e:
            logger.error(f"Error saving trainer application for {email}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Trainer application {a.id} received from {email}")
        return self.application_to_dict(a)

    def review(self, application_id: int, status: str, *, reviewer_id: int) -> Dict[str, Any]:
        """
        Approve or reject a pending application.

        Approval gives the applicant's user the trainer role (creating a
        passwordless user when none exists) and a trainer profile. The
        returned ``user`` is set on approval so the caller can send an invite.
        """
        a = self.db.get(TrainerApplication, application_id)
        if a is None:
            raise NotFound("Application not found")
        if a.status != "pending":
            raise Conflict(f"Application already {a.status}")

        user: Optional[User] = None
        try:
            if status == "approved":
                user = self._promote(a)
                a.user_id = user.id
            a.status = status
            a.reviewed_by = reviewer_id
            a.reviewed_at = utcnow()
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error reviewing trainer application {application_id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Trainer application {application_id} {status} by user {reviewer_id}")
        return {"application": self.application_to_dict(a), "user": user}

    def _promote(self, a: TrainerApplication) -> User:
        """Trainer role and profile for the applicant. Flushes, does not commit."""
        user = self.auth.get_user_by_email(a.email)
        if user is None:
            user = self.auth.create_user(
                email=a.email,
                password=None,
                role=TRAINER_ROLE,
                first_name=a.first_name,
                last_name=a.last_name,
                phone=a.phone,
            )
        else:
            role = self.auth.get_user_role(user.id)
            if role == ADMIN_ROLE:
                raise Conflict("Applicant is already an admin")
            if role != TRAINER_ROLE:
                self.db.execute(delete(UserRole).where(UserRole.user_id == user.id))
                self.db.add(UserRole(user_id=user.id, role=TRAINER_ROLE))

        trainer = self.db.scalars(select(Trainer).where(Trainer.email == a.email)).first()
        if trainer is None:
            self.db.add(
                Trainer(
                    user_id=user.id,
                    first_name=a.first_name,
                    last_name=a.last_name,
                    email=a.email,
                    phone=a.phone,
                    status="active",
                )
            )
        elif trainer.user_id is None:
            trainer.user_id = user.id
        self.db.flush()
        return user
