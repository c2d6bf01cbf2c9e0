"""
Trainer availability slots (weekly, day_of_week 0 = Sunday).
"""

import logging
from datetime import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import NotFound, PermissionDenied, ValidationFailed
from studio_api.models.orm_models import TrainerAvailability
from studio_api.schemas import AvailabilityPayload
from studio_api.services.base import BaseService
from studio_api.utils import iso

logger = logging.getLogger(__name__)


def parse_hhmm(value: Optional[str]) -> Optional[time]:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) query value."""
    if not value:
        return None
    try:
        return time.fromisoformat(value if value.count(":") == 2 else f"{value}:00")
    except ValueError:
        raise ValidationFailed(f"Invalid time: {value}. Expected HH:MM")


class AvailabilityService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)

    @staticmethod
    def slot_to_dict(s: TrainerAvailability, *, with_trainer: bool = False) -> Dict[str, Any]:
        d = {
            "id": s.id,
            "trainer_id": s.trainer_id,
            "day_of_week": s.day_of_week,
            "start_time": iso(s.start_time),
            "end_time": iso(s.end_time),
            "is_available": bool(s.is_available),
            "notes": s.notes,
        }
        if with_trainer and s.trainer is not None:
            d["trainer"] = {
                "id": s.trainer.id,
                "first_name": s.trainer.first_name,
                "last_name": s.trainer.last_name,
                "email": s.trainer.email,
            }
        return d

    def list_slots(
        self,
        *,
        trainer_id: Optional[int] = None,
        day_of_week: Optional[int] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        with_trainer: bool = False,
    ) -> List[Dict[str, Any]]:
        stmt = select(TrainerAvailability).options(joinedload(TrainerAvailability.trainer))
        if trainer_id:
            stmt = stmt.where(TrainerAvailability.trainer_id == trainer_id)
        if day_of_week is not None:
            if day_of_week < 0 or day_of_week > 6:
                raise ValidationFailed("day_of_week must be between 0 and 6")
            stmt = stmt.where(TrainerAvailability.day_of_week == day_of_week)
        # Either bound may be omitted
        if start_time is not None:
            stmt = stmt.where(TrainerAvailability.start_time >= start_time)
        if end_time is not None:
            stmt = stmt.where(TrainerAvailability.end_time <= end_time)
        stmt = stmt.order_by(TrainerAvailability.day_of_week.asc(), TrainerAvailability.start_time.asc())
        return [self.slot_to_dict(s, with_trainer=with_trainer) for s in self.db.scalars(stmt).all()]

    def save_slot(self, trainer_id: int, payload: AvailabilityPayload) -> Dict[str, Any]:
        """Update by id, or upsert on (trainer, day, start, end)."""
        try:
            if payload.id:
                slot = self.db.get(TrainerAvailability, payload.id)
                if slot is None:
                    raise NotFound("Availability slot not found")
                if slot.trainer_id != trainer_id:
                    raise PermissionDenied("Access denied. Slot belongs to another trainer.")
            else:
                slot = self.db.scalars(
                    select(TrainerAvailability).where(
                        TrainerAvailability.trainer_id == trainer_id,
                        TrainerAvailability.day_of_week == payload.day_of_week,
                        TrainerAvailability.start_time == payload.start_time,
                        TrainerAvailability.end_time == payload.end_time,
                    )
                ).first()
                if slot is None:
                    slot = TrainerAvailability(trainer_id=trainer_id)
                    self.db.add(slot)
            slot.day_of_week = payload.day_of_week
            slot.start_time = payload.start_time
            slot.end_time = payload.end_time
            slot.is_available = payload.is_available
            slot.notes = payload.notes
            self.db.commit()
        except (NotFound, PermissionDenied):
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error saving availability for trainer {trainer_id}: {e}")
            self.db.rollback()
            raise
        self.db.refresh(slot)
        return self.slot_to_dict(slot)

    def delete_slot(self, slot_id: int, *, actor_id: int, is_admin: bool) -> None:
        slot = self.db.get(TrainerAvailability, slot_id)
        if slot is None:
            raise NotFound("Availability slot not found")
        if not is_admin and slot.trainer_id != actor_id:
            raise PermissionDenied("Access denied. Slot belongs to another trainer.")
        try:
            self.db.delete(slot)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting availability slot {slot_id}: {e}")
            self.db.rollback()
            raise
