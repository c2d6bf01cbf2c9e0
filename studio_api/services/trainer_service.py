"""
Trainer Service - SQLAlchemy ORM Implementation
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_api.exceptions import Conflict, NotFound
from studio_api.models.orm_models import Client, Trainer, User
from studio_api.schemas import TrainerCreate, TrainerUpdate
from studio_api.services.base import BaseService
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)


class TrainerService(BaseService):
    """Service for trainer profiles."""

    def __init__(self, db: Session):
        super().__init__(db)

    @staticmethod
    def trainer_to_dict(t: Trainer) -> Dict[str, Any]:
        return {
            "id": t.id,
            "user_id": t.user_id,
            "first_name": t.first_name,
            "last_name": t.last_name,
            "email": t.email,
            "phone": t.phone,
            "specialization": t.specialization,
            "bio": t.bio,
            "hourly_rate": money(t.hourly_rate),
            "status": t.status,
            "created_at": iso(t.created_at),
        }

    def get_trainer_model(self, trainer_id: int) -> Trainer:
        t = self.db.get(Trainer, trainer_id)
        if t is None:
            raise NotFound("Trainer not found")
        return t

    def list_trainers(self, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(Trainer)
        if status:
            stmt = stmt.where(Trainer.status == status)
        stmt = stmt.order_by(Trainer.last_name.asc(), Trainer.first_name.asc())
        trainers = self.db.scalars(stmt).all()
        out = []
        for t in trainers:
            d = self.trainer_to_dict(t)
            if t.user_id:
                d["client_count"] = len(
                    self.db.scalars(select(Client.id).where(Client.trainer_id == t.user_id)).all()
                )
            else:
                d["client_count"] = 0
            out.append(d)
        return out

    def get_trainer(self, trainer_id: int) -> Dict[str, Any]:
        return self.trainer_to_dict(self.get_trainer_model(trainer_id))

    def create_trainer(self, payload: TrainerCreate) -> Dict[str, Any]:
        email = payload.email.strip().lower()
        if self.db.scalars(select(Trainer).where(Trainer.email == email)).first() is not None:
            raise Conflict("A trainer with this email already exists")
        user_id = payload.user_id
        if user_id is None:
            user = self.db.scalars(select(User).where(User.email == email)).first()
            user_id = user.id if user is not None else None
        t = Trainer(
            user_id=user_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            phone=payload.phone,
            specialization=payload.specialization,
            bio=payload.bio,
            hourly_rate=payload.hourly_rate,
            status=payload.status,
        )
        try:
            self.db.add(t)
            self.db.commit()
            self.db.refresh(t)
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Trainer profile already exists for this user")
        except Exception as e:
            logger.error(f"Error creating trainer {email}: {e}")
            self.db.rollback()
            raise
        return self.trainer_to_dict(t)

    def update_trainer(self, trainer_id: int, payload: TrainerUpdate) -> Dict[str, Any]:
        t = self.get_trainer_model(trainer_id)
        changes = payload.model_dump(exclude_unset=True)
        for key in ("first_name", "last_name", "email", "status"):
            if key in changes and changes[key] is None:
                changes.pop(key)
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
        for key, value in changes.items():
            setattr(t, key, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A trainer with this email already exists")
        except Exception as e:
            logger.error(f"Error updating trainer {trainer_id}: {e}")
            self.db.rollback()
            raise
        return self.trainer_to_dict(t)

    def delete_trainer(self, trainer_id: int) -> None:
        t = self.get_trainer_model(trainer_id)
        try:
            self.db.delete(t)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting trainer {trainer_id}: {e}")
            self.db.rollback()
            raise
