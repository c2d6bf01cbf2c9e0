"""
Enrollment Service - SQLAlchemy ORM Implementation

Class seats are reserved with a conditional UPDATE on
``classes.current_enrollment`` so concurrent enrollments cannot overbook a class.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import CapacityError, NotFound, ValidationFailed
from studio_api.models.orm_models import ClassEnrollment, Client, Invoice, StudioClass
from studio_api.schemas import EnrollmentUpdate
from studio_api.services.base import BaseService
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)

# Every status except this one holds a seat in the class
RELEASED_STATUS = "cancelled"

# Enrollments still expecting to attend; reminders go to these
UPCOMING_STATUSES = ("enrolled", "active")


class EnrollmentService(BaseService):
    """Service for class enrollments."""

    def __init__(self, db: Session):
        super().__init__(db)

    # =========================================================================
    # Seats
    # =========================================================================

    def _reserve_seat(self, class_id: int) -> None:
        result = self.db.execute(
            update(StudioClass)
            .where(
                StudioClass.id == class_id,
                StudioClass.current_enrollment < StudioClass.max_capacity,
            )
            .values(current_enrollment=StudioClass.current_enrollment + 1)
            .execution_options(synchronize_session="fetch")
        )
        if not result.rowcount:
            raise CapacityError("Class is at full capacity")

    def _release_seat(self, class_id: int) -> None:
        self.db.execute(
            update(StudioClass)
            .where(StudioClass.id == class_id, StudioClass.current_enrollment > 0)
            .values(current_enrollment=StudioClass.current_enrollment - 1)
            .execution_options(synchronize_session="fetch")
        )

    # =========================================================================
    # Serialization
    # =========================================================================

    @staticmethod
    def enrollment_to_dict(e: ClassEnrollment, *, expand: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": e.id,
            "class_id": e.class_id,
            "client_id": e.client_id,
            "status": e.status,
            "payment_status": e.payment_status,
            "enrollment_date": iso(e.enrollment_date),
            "notes": e.notes,
        }
        if expand:
            c = e.client
            sc = e.studio_class
            d["client"] = (
                {"id": c.id, "first_name": c.first_name, "last_name": c.last_name, "email": c.email}
                if c is not None
                else None
            )
            d["class"] = (
                {
                    "id": sc.id,
                    "name": sc.name,
                    "date": iso(sc.class_date),
                    "start_time": iso(sc.start_time),
                    "end_time": iso(sc.end_time),
                    "price": money(sc.price),
                }
                if sc is not None
                else None
            )
            inv: Optional[Invoice] = max(e.invoices, key=lambda i: i.id) if e.invoices else None
            d["invoice"] = (
                {
                    "id": inv.id,
                    "invoice_number": inv.invoice_number,
                    "status": inv.status,
                    "amount": money(inv.amount),
                    "stripe_invoice_id": inv.stripe_invoice_id,
                }
                if inv is not None
                else None
            )
        return d

    # =========================================================================
    # Queries
    # =========================================================================

    def get_enrollment_model(self, enrollment_id: int) -> ClassEnrollment:
        e = self.db.get(ClassEnrollment, enrollment_id)
        if e is None:
            raise NotFound("Enrollment not found")
        return e

    def list_enrollments(
        self,
        *,
        class_id: Optional[int] = None,
        client_id: Optional[int] = None,
        trainer_user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(ClassEnrollment).options(
            joinedload(ClassEnrollment.client),
            joinedload(ClassEnrollment.studio_class),
            joinedload(ClassEnrollment.invoices),
        )
        if class_id:
            stmt = stmt.where(ClassEnrollment.class_id == class_id)
        if client_id:
            stmt = stmt.where(ClassEnrollment.client_id == client_id)
        if trainer_user_id:
            stmt = stmt.join(StudioClass, StudioClass.id == ClassEnrollment.class_id).where(
                StudioClass.trainer_id == trainer_user_id
            )
        stmt = stmt.order_by(ClassEnrollment.enrollment_date.desc(), ClassEnrollment.id.desc())
        rows = self.db.scalars(stmt).unique().all()
        return [self.enrollment_to_dict(e, expand=True) for e in rows]

    # =========================================================================
    # Mutations
    # =========================================================================

    def enroll(self, class_id: int, client_id: Optional[int], notes: Optional[str] = None) -> Dict[str, Any]:
        if not client_id:
            raise ValidationFailed("client_id is required")
        if self.db.get(StudioClass, class_id) is None:
            raise NotFound("Class not found")
        if self.db.get(Client, client_id) is None:
            raise NotFound("Client not found")

        existing = self.db.scalars(
            select(ClassEnrollment).where(
                ClassEnrollment.class_id == class_id, ClassEnrollment.client_id == client_id
            )
        ).first()
        if existing is not None and existing.status != "cancelled":
            raise ValidationFailed("Client is already enrolled in this class")

        try:
            self._reserve_seat(class_id)
            if existing is not None:
                existing.status = "enrolled"
                existing.payment_status = "pending"
                existing.notes = notes if notes is not None else existing.notes
                enrollment = existing
            else:
                enrollment = ClassEnrollment(
                    class_id=class_id,
                    client_id=client_id,
                    status="enrolled",
                    payment_status="pending",
                    notes=notes,
                )
                self.db.add(enrollment)
            self.db.flush()
            self.db.commit()
        except CapacityError:
            self.db.rollback()
            logger.info(f"Enrollment rejected: class {class_id} is full")
            raise
        except IntegrityError:
            self.db.rollback()
            raise ValidationFailed("Client is already enrolled in this class")
        except Exception as e:
            logger.error(f"Error enrolling client {client_id} in class {class_id}: {e}")
            self.db.rollback()
            raise
        self.db.refresh(enrollment)
        logger.info(f"Client {client_id} enrolled in class {class_id} (enrollment {enrollment.id})")
        return self.enrollment_to_dict(enrollment)

    def update_enrollment(self, enrollment_id: int, payload: EnrollmentUpdate) -> Dict[str, Any]:
        e = self.get_enrollment_model(enrollment_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        try:
            new_status = changes.get("status")
            if new_status and new_status != e.status:
                if new_status == RELEASED_STATUS:
                    self._release_seat(e.class_id)
                elif e.status == RELEASED_STATUS:
                    self._reserve_seat(e.class_id)
            for key, value in changes.items():
                setattr(e, key, value)
            self.db.commit()
        except CapacityError:
            self.db.rollback()
            raise
        except Exception as ex:
            logger.error(f"Error updating enrollment {enrollment_id}: {ex}")
            self.db.rollback()
            raise
        return self.enrollment_to_dict(e)

    def delete_enrollment(self, enrollment_id: int) -> None:
        e = self.get_enrollment_model(enrollment_id)
        try:
            if e.status != RELEASED_STATUS:
                self._release_seat(e.class_id)
            self.db.delete(e)
            self.db.commit()
        except Exception as ex:
            logger.error(f"Error deleting enrollment {enrollment_id}: {ex}")
            self.db.rollback()
            raise
