"""
Class Service - SQLAlchemy ORM Implementation

Handles scheduled classes and the calendar view over them.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_api.exceptions import NotFound, ValidationFailed
from studio_api.models.orm_models import StudioClass, Trainer, User
from studio_api.schemas import ClassCreate, ClassUpdate
from studio_api.services.base import BaseService
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)

DATE_RANGES = ("today", "week", "month")

_REQUIRED_COLUMNS = (
    "name",
    "class_date",
    "start_time",
    "end_time",
    "price",
    "max_capacity",
    "class_type",
    "level",
    "status",
    "recurring",
)


class ClassService(BaseService):
    """Service for managing studio classes."""

    def __init__(self, db: Session):
        super().__init__(db)

    # =========================================================================
    # Serialization
    # =========================================================================

    def _instructors_for(self, trainer_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        if not trainer_ids:
            return {}
        users = self.db.scalars(select(User).where(User.id.in_(trainer_ids))).all()
        profiles = {
            t.user_id: t
            for t in self.db.scalars(select(Trainer).where(Trainer.user_id.in_(trainer_ids))).all()
        }
        out: Dict[int, Dict[str, Any]] = {}
        for u in users:
            profile = profiles.get(u.id)
            out[u.id] = {
                "id": u.id,
                "first_name": profile.first_name if profile else u.first_name,
                "last_name": profile.last_name if profile else u.last_name,
                "email": u.email,
            }
        return out

    @staticmethod
    def class_to_dict(c: StudioClass, instructor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "id": c.id,
            "name": c.name,
            "title": c.title,
            "description": c.description,
            "trainer_id": c.trainer_id,
            "instructor_id": c.trainer_id,
            "instructor": instructor,
            "date": iso(c.class_date),
            "start_time": iso(c.start_time),
            "end_time": iso(c.end_time),
            "duration_minutes": c.duration_minutes,
            "max_capacity": c.max_capacity,
            "current_enrollment": c.current_enrollment,
            "price": money(c.price),
            "class_type": c.class_type,
            "level": c.level,
            "location": c.location,
            "status": c.status,
            "recurring": bool(c.recurring),
            "recurring_pattern": c.recurring_pattern,
            "recurring_end_date": iso(c.recurring_end_date),
            "notes": c.notes,
            "membership_type": c.membership_type,
            "lessons_per_package": c.lessons_per_package,
            "created_at": iso(c.created_at),
        }

    def _serialize(self, classes: List[StudioClass]) -> List[Dict[str, Any]]:
        instructors = self._instructors_for(sorted({c.trainer_id for c in classes if c.trainer_id}))
        return [self.class_to_dict(c, instructors.get(c.trainer_id)) for c in classes]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_class_model(self, class_id: int) -> StudioClass:
        c = self.db.get(StudioClass, class_id)
        if c is None:
            raise NotFound("Class not found")
        return c

    def list_classes(
        self,
        *,
        trainer_id: Optional[int] = None,
        status: Optional[str] = None,
        date_range: Optional[str] = None,
        order_by: str = "date",
        today: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(StudioClass)
        if trainer_id:
            stmt = stmt.where(StudioClass.trainer_id == trainer_id)
        if status:
            stmt = stmt.where(StudioClass.status == status)
        if date_range:
            if date_range not in DATE_RANGES:
                raise ValidationFailed(f"Invalid date_range: {date_range}")
            start = today or date.today()
            if date_range == "today":
                end = start
            elif date_range == "week":
                end = start + timedelta(days=7)
            else:
                end = start + timedelta(days=30)
            stmt = stmt.where(StudioClass.class_date >= start, StudioClass.class_date <= end)
        if order_by == "created_at":
            stmt = stmt.order_by(StudioClass.created_at.desc(), StudioClass.id.desc())
        else:
            stmt = stmt.order_by(StudioClass.class_date.asc(), StudioClass.start_time.asc())
        return self._serialize(list(self.db.scalars(stmt).all()))

    def get_class(self, class_id: int) -> Dict[str, Any]:
        return self._serialize([self.get_class_model(class_id)])[0]

    def calendar_events(
        self,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        trainer_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(StudioClass)
        if start_date and end_date:
            stmt = stmt.where(StudioClass.class_date >= start_date, StudioClass.class_date <= end_date)
        if trainer_id:
            stmt = stmt.where(StudioClass.trainer_id == trainer_id)
        classes = list(self.db.scalars(stmt.order_by(StudioClass.class_date.asc())).all())
        instructors = self._instructors_for(sorted({c.trainer_id for c in classes if c.trainer_id}))
        events = []
        for c in classes:
            instructor = instructors.get(c.trainer_id)
            events.append(
                {
                    "id": c.id,
                    "title": c.title or c.name,
                    "start": datetime.combine(c.class_date, c.start_time).isoformat(),
                    "end": datetime.combine(c.class_date, c.end_time).isoformat(),
                    "status": c.status,
                    "location": c.location,
                    "max_capacity": c.max_capacity,
                    "current_enrollment": c.current_enrollment,
                    "instructor": instructor,
                }
            )
        return events

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_class(self, payload: ClassCreate, *, created_by: Optional[int] = None) -> Dict[str, Any]:
        trainer_id = payload.trainer_id or created_by
        c = StudioClass(
            name=payload.name,
            title=payload.title,
            description=payload.description,
            trainer_id=trainer_id,
            class_date=payload.class_date or date.today(),
            start_time=payload.start_time,
            end_time=payload.end_time,
            duration_minutes=payload.duration_minutes or _minutes_between(payload.start_time, payload.end_time),
            max_capacity=payload.max_capacity,
            current_enrollment=0,
            price=payload.price,
            class_type=payload.class_type or "group",
            level=payload.level or "all",
            location=payload.location,
            status=payload.status or "scheduled",
            recurring=bool(payload.recurring),
            recurring_pattern=payload.recurring_pattern,
            recurring_end_date=payload.recurring_end_date,
            notes=payload.notes,
            membership_type=payload.membership_type,
            lessons_per_package=payload.lessons_per_package,
        )
        try:
            self.db.add(c)
            self.db.commit()
            self.db.refresh(c)
        except Exception as e:
            logger.error(f"Error creating class: {e}")
            self.db.rollback()
            raise
        logger.info(f"Created class {c.id} '{c.name}' on {c.class_date}")
        return self.get_class(c.id)

    def update_class(self, class_id: int, payload: ClassUpdate) -> Dict[str, Any]:
        c = self.get_class_model(class_id)
        changes = payload.model_dump(exclude_unset=True)
        for key in _REQUIRED_COLUMNS:
            if key in changes and changes[key] is None:
                changes.pop(key)
        for key, value in changes.items():
            setattr(c, key, value)
        if c.end_time <= c.start_time:
            self.db.rollback()
            raise ValidationFailed("Validation failed", details=[{"loc": ["end_time"], "msg": "end_time must be after start_time"}])
        if c.max_capacity < c.current_enrollment:
            self.db.rollback()
            raise ValidationFailed("max_capacity cannot be lower than current enrollment")
        try:
            self.db.commit()
        except Exception as e:
            logger.error(f"Error updating class {class_id}: {e}")
            self.db.rollback()
            raise
        return self.get_class(class_id)

    def delete_class(self, class_id: int) -> None:
        c = self.get_class_model(class_id)
        try:
            self.db.delete(c)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting class {class_id}: {e}")
            self.db.rollback()
            raise


def _minutes_between(start, end) -> Optional[int]:
    try:
        delta = datetime.combine(date.min, end) - datetime.combine(date.min, start)
        minutes = int(delta.total_seconds() // 60)
        return minutes if minutes > 0 else None
    except Exception:
        return None
