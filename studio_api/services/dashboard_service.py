import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studio_api.models.orm_models import Attendance, Client, Invoice, StudioClass, Trainer
from studio_api.services.base import BaseService
from studio_api.services.client_service import ClientService
from studio_api.utils import money

logger = logging.getLogger(__name__)


class DashboardService(BaseService):
    """Headline counts for the staff dashboard."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.clients = ClientService(db)

    def stats(self, *, trainer_user_id: Optional[int] = None, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()

        client_ids = select(Client.id)
        if trainer_user_id:
            client_ids = self.clients.scope_to_trainer(client_ids, trainer_user_id)

        total_clients = self.db.scalar(select(func.count()).select_from(client_ids.subquery())) or 0

        upcoming = select(func.count(StudioClass.id)).where(
            StudioClass.class_date >= today, StudioClass.status == "scheduled"
        )
        attendance = (
            select(func.count(Attendance.id))
            .join(StudioClass, StudioClass.id == Attendance.class_id)
            .where(Attendance.attendance_date == today, Attendance.status.in_(("present", "late")))
        )
        pending = select(func.count(Invoice.id)).where(Invoice.status.in_(("draft", "sent", "open", "overdue")))
        revenue = select(func.coalesce(func.sum(Invoice.amount), 0)).where(Invoice.status == "paid")
        if trainer_user_id:
            upcoming = upcoming.where(StudioClass.trainer_id == trainer_user_id)
            attendance = attendance.where(StudioClass.trainer_id == trainer_user_id)
            pending = pending.where(Invoice.client_id.in_(client_ids))
            revenue = revenue.where(Invoice.client_id.in_(client_ids))

        out = {
            "total_clients": int(total_clients),
            "upcoming_classes": int(self.db.scalar(upcoming) or 0),
            "todays_attendance": int(self.db.scalar(attendance) or 0),
            "pending_invoices": int(self.db.scalar(pending) or 0),
            "revenue": money(self.db.scalar(revenue)) or 0.0,
        }
        if not trainer_user_id:
            out["total_trainers"] = int(
                self.db.scalar(select(func.count(Trainer.id)).where(Trainer.status == "active")) or 0
            )
        return out
