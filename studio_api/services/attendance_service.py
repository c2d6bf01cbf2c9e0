"""
Attendance Service - SQLAlchemy ORM Implementation

One attendance row per (class, client, date). Marking twice updates the row.
"""

import logging
from datetime import date, time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import NotFound, ValidationFailed
from studio_api.models.orm_models import Attendance, Client, StudioClass
from studio_api.services.base import BaseService
from studio_api.utils import iso, utcnow

logger = logging.getLogger(__name__)

ATTENDANCE_STATUSES = ("present", "absent", "late")


class AttendanceService(BaseService):
    """Service for marking and listing class attendance."""

    def __init__(self, db: Session):
        super().__init__(db)

    @staticmethod
    def attendance_to_dict(a: Attendance, *, expand: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": a.id,
            "class_id": a.class_id,
            "client_id": a.client_id,
            "date": iso(a.attendance_date),
            "status": a.status,
            "check_in_time": iso(a.check_in_time),
            "notes": a.notes,
            "marked_at": iso(a.marked_at),
            "marked_by": a.marked_by,
        }
        if expand:
            c = a.client
            sc = a.studio_class
            d["client"] = (
                {"id": c.id, "first_name": c.first_name, "last_name": c.last_name, "email": c.email}
                if c is not None
                else None
            )
            d["class"] = {"id": sc.id, "name": sc.name, "date": iso(sc.class_date)} if sc is not None else None
        return d

    def list_attendance(
        self,
        *,
        class_id: Optional[int] = None,
        client_id: Optional[int] = None,
        on_date: Optional[date] = None,
        trainer_user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(Attendance).options(
            joinedload(Attendance.client), joinedload(Attendance.studio_class)
        )
        if class_id:
            stmt = stmt.where(Attendance.class_id == class_id)
        if client_id:
            stmt = stmt.where(Attendance.client_id == client_id)
        if on_date:
            stmt = stmt.where(Attendance.attendance_date == on_date)
        if trainer_user_id:
            stmt = stmt.join(StudioClass, StudioClass.id == Attendance.class_id).where(
                StudioClass.trainer_id == trainer_user_id
            )
        stmt = stmt.order_by(Attendance.attendance_date.desc(), Attendance.id.desc())
        return [self.attendance_to_dict(a, expand=True) for a in self.db.scalars(stmt).all()]

    def mark(
        self,
        *,
        class_id: int,
        client_id: Optional[int],
        status: Optional[str],
        on_date: Optional[date] = None,
        marked_by: Optional[int] = None,
        notes: Optional[str] = None,
        check_in_time: Optional[time] = None,
    ) -> Dict[str, Any]:
        """Insert or update the attendance row for (class, client, date)."""
        if not client_id:
            raise ValidationFailed("client_id is required")
        if status not in ATTENDANCE_STATUSES:
            raise ValidationFailed("status must be one of: present, absent, late")
        if self.db.get(StudioClass, class_id) is None:
            raise NotFound("Class not found")
        if self.db.get(Client, client_id) is None:
            raise NotFound("Client not found")

        on_date = on_date or date.today()
        now = utcnow()
        try:
            record = self._find(class_id, client_id, on_date)
            created = record is None
            if record is None:
                record = Attendance(class_id=class_id, client_id=client_id, attendance_date=on_date)
                self.db.add(record)
            record.status = status
            record.marked_at = now
            record.marked_by = marked_by
            if notes is not None:
                record.notes = notes
            if check_in_time is not None:
                record.check_in_time = check_in_time
            elif status in ("present", "late") and record.check_in_time is None:
                record.check_in_time = now.time().replace(microsecond=0)
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent insert; update the winner instead
            self.db.rollback()
            record = self._find(class_id, client_id, on_date)
            if record is None:
                raise
            created = False
            record.status = status
            record.marked_at = now
            record.marked_by = marked_by
            if notes is not None:
                record.notes = notes
            self._commit()
        except Exception as e:
            logger.error(f"Error marking attendance class={class_id} client={client_id}: {e}")
            self.db.rollback()
            raise
        self.db.refresh(record)
        result = self.attendance_to_dict(record)
        result["created"] = created
        return result

    def _find(self, class_id: int, client_id: int, on_date: date) -> Optional[Attendance]:
        return self.db.scalars(
            select(Attendance).where(
                Attendance.class_id == class_id,
                Attendance.client_id == client_id,
                Attendance.attendance_date == on_date,
            )
        ).first()
