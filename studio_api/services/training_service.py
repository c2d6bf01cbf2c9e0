"""
Training Service - SQLAlchemy ORM Implementation

Training instructions written by trainers and per-set progress logging.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_api.exceptions import NotFound, PermissionDenied, ValidationFailed
from studio_api.models.orm_models import Client, SetProgress, TrainingInstruction
from studio_api.schemas import InstructionCreate, SetProgressPayload
from studio_api.security.session_claims import ADMIN_ROLE, CLIENT_ROLE, TRAINER_ROLE
from studio_api.services.base import BaseService
from studio_api.services.client_service import ClientService
from studio_api.utils import iso, money, utcnow

logger = logging.getLogger(__name__)


class TrainingService(BaseService):
    """Service for training instructions and set progress."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.clients = ClientService(db)

    # =========================================================================
    # Access
    # =========================================================================

    def ensure_client_access(self, client_id: int, *, user_id: int, role: str) -> Client:
        """Admins reach any client, trainers their own, clients only themselves."""
        client = self.db.get(Client, client_id)
        if client is None:
            raise NotFound("Client not found")
        if role == ADMIN_ROLE:
            return client
        if role == TRAINER_ROLE:
            if not self.clients.trainer_owns_client(user_id, client_id):
                raise PermissionDenied("Access denied. Client is not assigned to you.")
            return client
        if role == CLIENT_ROLE and client.user_id == user_id:
            return client
        raise PermissionDenied("Access denied")

    def own_client_id(self, user_id: int) -> int:
        client = self.clients.get_client_by_user(user_id)
        if client is None:
            raise NotFound("Client profile not found")
        return client.id

    # =========================================================================
    # Training instructions
    # =========================================================================

    @staticmethod
    def instruction_to_dict(i: TrainingInstruction) -> Dict[str, Any]:
        return {
            "id": i.id,
            "trainer_id": i.trainer_id,
            "client_id": i.client_id,
            "title": i.title,
            "content": i.content,
            "created_at": iso(i.created_at),
        }

    def list_instructions(self, *, client_id: Optional[int], user_id: int, role: str) -> List[Dict[str, Any]]:
        stmt = select(TrainingInstruction)
        if role == CLIENT_ROLE:
            stmt = stmt.where(TrainingInstruction.client_id == self.own_client_id(user_id))
        else:
            if not client_id:
                raise ValidationFailed("client_id is required")
            stmt = stmt.where(TrainingInstruction.client_id == client_id)
            if role == TRAINER_ROLE:
                stmt = stmt.where(TrainingInstruction.trainer_id == user_id)
        stmt = stmt.order_by(TrainingInstruction.created_at.desc(), TrainingInstruction.id.desc())
        return [self.instruction_to_dict(i) for i in self.db.scalars(stmt).all()]

    def create_instruction(self, trainer_id: int, payload: InstructionCreate) -> Dict[str, Any]:
        self.ensure_client_access(payload.client_id, user_id=trainer_id, role=TRAINER_ROLE)
        instruction = TrainingInstruction(
            trainer_id=trainer_id,
            client_id=payload.client_id,
            title=payload.title,
            content=payload.content,
        )
        try:
            self.db.add(instruction)
            self.db.commit()
            self.db.refresh(instruction)
        except Exception as e:
            logger.error(f"Error creating training instruction: {e}")
            self.db.rollback()
            raise
        return self.instruction_to_dict(instruction)

    def delete_instruction(self, instruction_id: int, *, user_id: int, role: str) -> None:
        instruction = self.db.get(TrainingInstruction, instruction_id)
        if instruction is None:
            raise NotFound("Training instruction not found")
        if role != ADMIN_ROLE and instruction.trainer_id != user_id:
            raise PermissionDenied("Access denied. You can only delete your own instructions.")
        try:
            self.db.delete(instruction)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting training instruction {instruction_id}: {e}")
            self.db.rollback()
            raise

    # =========================================================================
    # Set progress
    # =========================================================================

    def get_set_progress(
        self, *, exercise_id: str, training_day_id: str, client_id: int, user_id: int, role: str
    ) -> Dict[str, Dict[str, Any]]:
        """Progress keyed by 0-based set index."""
        self.ensure_client_access(client_id, user_id=user_id, role=role)
        rows = self.db.scalars(
            select(SetProgress)
            .where(
                SetProgress.exercise_id == str(exercise_id),
                SetProgress.training_day_id == str(training_day_id),
                SetProgress.client_id == client_id,
            )
            .order_by(SetProgress.set_number.asc())
        ).all()
        return {
            str(r.set_number - 1): {"weight": money(r.weight), "reps": r.reps, "updated_at": iso(r.updated_at)}
            for r in rows
        }

    def save_set_progress(self, payload: SetProgressPayload, *, user_id: int, role: str) -> Dict[str, Any]:
        self.ensure_client_access(payload.client_id, user_id=user_id, role=role)
        now = utcnow()
        saved = 0
        try:
            existing = {
                r.set_number: r
                for r in self.db.scalars(
                    select(SetProgress).where(
                        SetProgress.exercise_id == payload.exercise_id,
                        SetProgress.training_day_id == payload.training_day_id,
                        SetProgress.client_id == payload.client_id,
                    )
                ).all()
            }
            for idx, entry in sorted(payload.set_progress.items()):
                set_number = int(idx) + 1
                row = existing.get(set_number)
                if row is None:
                    row = SetProgress(
                        exercise_id=payload.exercise_id,
                        training_day_id=payload.training_day_id,
                        client_id=payload.client_id,
                        set_number=set_number,
                    )
                    self.db.add(row)
                row.weight = entry.weight
                row.reps = entry.reps
                row.updated_at = now
                saved += 1
            self.db.commit()
        except Exception as e:
            logger.error(f"Error saving set progress for client {payload.client_id}: {e}")
            self.db.rollback()
            raise
        return {"success": True, "saved": saved}
