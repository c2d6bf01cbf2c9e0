"""
Client Service - SQLAlchemy ORM Implementation

Client profiles, trainer assignment and the client-trainer relationship table.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import Conflict, NotFound, PermissionDenied
from studio_api.models.orm_models import (
    ClassEnrollment,
    Client,
    ClientTrainerRelationship,
)
from studio_api.schemas import ClientCreate, ClientUpdate
from studio_api.services.base import BaseService
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)


class ClientService(BaseService):
    """Service for managing studio clients."""

    def __init__(self, db: Session):
        super().__init__(db)

    @staticmethod
    def client_to_dict(c: Client) -> Dict[str, Any]:
        return {
            "id": c.id,
            "user_id": c.user_id,
            "trainer_id": c.trainer_id,
            "first_name": c.first_name,
            "last_name": c.last_name,
            "email": c.email,
            "phone": c.phone,
            "date_of_birth": iso(c.date_of_birth),
            "emergency_contact": c.emergency_contact,
            "medical_notes": c.medical_notes,
            "status": c.status,
            "referral_code_used": c.referral_code_used,
            "created_at": iso(c.created_at),
        }

    def scope_to_trainer(self, stmt, trainer_user_id: int):
        related = select(ClientTrainerRelationship.client_id).where(
            ClientTrainerRelationship.trainer_id == trainer_user_id,
            ClientTrainerRelationship.status == "active",
        )
        return stmt.where(or_(Client.trainer_id == trainer_user_id, Client.id.in_(related)))

    # ========== Queries ==========

    def get_client_model(self, client_id: int) -> Client:
        c = self.db.get(Client, client_id)
        if c is None:
            raise NotFound("Client not found")
        return c

    def get_client_by_user(self, user_id: int) -> Optional[Client]:
        return self.db.scalars(select(Client).where(Client.user_id == user_id)).first()

    def trainer_owns_client(self, trainer_user_id: int, client_id: int) -> bool:
        stmt = self.scope_to_trainer(select(Client.id).where(Client.id == client_id), trainer_user_id)
        return self.db.scalars(stmt).first() is not None

    def list_clients(
        self,
        *,
        trainer_user_id: Optional[int] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(Client)
        if trainer_user_id:
            stmt = self.scope_to_trainer(stmt, trainer_user_id)
        if status:
            stmt = stmt.where(Client.status == status)
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(Client.first_name.ilike(like), Client.last_name.ilike(like), Client.email.ilike(like))
            )
        stmt = stmt.order_by(Client.last_name.asc(), Client.first_name.asc())
        return [self.client_to_dict(c) for c in self.db.scalars(stmt).all()]

    def get_client(self, client_id: int, *, trainer_user_id: Optional[int] = None) -> Dict[str, Any]:
        c = self.get_client_model(client_id)
        if trainer_user_id and not self.trainer_owns_client(trainer_user_id, client_id):
            raise PermissionDenied("Access denied. Client is not assigned to you.")
        return self.client_to_dict(c)

    def available_clients(self) -> List[Dict[str, Any]]:
        stmt = select(Client).where(Client.trainer_id.is_(None)).order_by(Client.last_name.asc())
        return [self.client_to_dict(c) for c in self.db.scalars(stmt).all()]

    def client_profile(self, user_id: int) -> Dict[str, Any]:
        c = self.get_client_by_user(user_id)
        if c is None:
            raise NotFound("Client profile not found")
        enrollments = self.db.scalars(
            select(ClassEnrollment)
            .options(joinedload(ClassEnrollment.studio_class))
            .where(ClassEnrollment.client_id == c.id)
            .order_by(ClassEnrollment.enrollment_date.desc())
        ).all()
        return {
            "client": self.client_to_dict(c),
            "enrollments": [
                {
                    "id": e.id,
                    "status": e.status,
                    "payment_status": e.payment_status,
                    "class": {
                        "id": e.studio_class.id,
                        "name": e.studio_class.name,
                        "date": iso(e.studio_class.class_date),
                        "start_time": iso(e.studio_class.start_time),
                        "end_time": iso(e.studio_class.end_time),
                        "price": money(e.studio_class.price),
                    },
                }
                for e in enrollments
            ],
        }

    # ========== Mutations ==========

    def create_client(self, payload: ClientCreate) -> Dict[str, Any]:
        email = payload.email.strip().lower()
        if self.db.scalars(select(Client).where(Client.email == email)).first() is not None:
            raise Conflict("A client with this email already exists")
        c = Client(
            user_id=payload.user_id,
            trainer_id=payload.trainer_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            phone=payload.phone,
            date_of_birth=payload.date_of_birth,
            emergency_contact=payload.emergency_contact,
            medical_notes=payload.medical_notes,
            status=payload.status,
        )
        try:
            self.db.add(c)
            self.db.flush()
            if c.trainer_id:
                self._ensure_relationship(c.id, c.trainer_id, is_primary=True)
            self.db.commit()
            self.db.refresh(c)
        except Exception as e:
            logger.error(f"Error creating client {email}: {e}")
            self.db.rollback()
            raise
        return self.client_to_dict(c)

    def update_client(
        self, client_id: int, payload: ClientUpdate, *, trainer_user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        c = self.get_client_model(client_id)
        if trainer_user_id and not self.trainer_owns_client(trainer_user_id, client_id):
            raise PermissionDenied("Access denied. Client is not assigned to you.")
        changes = payload.model_dump(exclude_unset=True)
        for key in ("first_name", "last_name", "email", "status"):
            if key in changes and changes[key] is None:
                changes.pop(key)
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
        for key, value in changes.items():
            setattr(c, key, value)
        try:
            if c.trainer_id:
                self._ensure_relationship(c.id, c.trainer_id, is_primary=True)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A client with this email already exists")
        except Exception as e:
            logger.error(f"Error updating client {client_id}: {e}")
            self.db.rollback()
            raise
        return self.client_to_dict(c)

    def delete_client(self, client_id: int) -> None:
        c = self.get_client_model(client_id)
        try:
            self.db.delete(c)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting client {client_id}: {e}")
            self.db.rollback()
            raise

    def assign_to_trainer(self, client_id: int, trainer_user_id: int, notes: Optional[str] = None) -> Dict[str, Any]:
        """A trainer claims a client that has no trainer yet."""
        c = self.get_client_model(client_id)
        if c.trainer_id and c.trainer_id != trainer_user_id:
            raise Conflict("Client is already assigned to another trainer")
        c.trainer_id = trainer_user_id
        try:
            self._ensure_relationship(c.id, trainer_user_id, is_primary=True, notes=notes)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error assigning client {client_id} to trainer {trainer_user_id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Client {client_id} assigned to trainer {trainer_user_id}")
        return self.client_to_dict(c)

    def _ensure_relationship(
        self, client_id: int, trainer_user_id: int, *, is_primary: bool = False, notes: Optional[str] = None
    ) -> ClientTrainerRelationship:
        rel = self.db.scalars(
            select(ClientTrainerRelationship).where(
                ClientTrainerRelationship.client_id == client_id,
                ClientTrainerRelationship.trainer_id == trainer_user_id,
            )
        ).first()
        if rel is None:
            rel = ClientTrainerRelationship(
                client_id=client_id,
                trainer_id=trainer_user_id,
                is_primary=is_primary,
                status="active",
                notes=notes,
            )
            self.db.add(rel)
            self.db.flush()
        elif rel.status != "active" or (is_primary and not rel.is_primary):
            rel.status = "active"
            rel.is_primary = rel.is_primary or is_primary
        return rel

    def repair_relationships(self, *, dry_run: bool = False) -> Dict[str, Any]:
        """Make sure every client with a trainer has a primary, active relationship row."""
        clients = self.db.scalars(select(Client).where(Client.trainer_id.is_not(None))).all()
        existing = {
            (r.client_id, r.trainer_id): r
            for r in self.db.scalars(select(ClientTrainerRelationship)).all()
        }
        created: List[Dict[str, int]] = []
        reactivated: List[Dict[str, int]] = []
        for c in clients:
            key = (c.id, c.trainer_id)
            rel = existing.get(key)
            if rel is None:
                created.append({"client_id": c.id, "trainer_id": c.trainer_id})
                if not dry_run:
                    self.db.add(
                        ClientTrainerRelationship(
                            client_id=c.id, trainer_id=c.trainer_id, is_primary=True, status="active"
                        )
                    )
            elif rel.status != "active" or not rel.is_primary:
                reactivated.append({"client_id": c.id, "trainer_id": c.trainer_id})
                if not dry_run:
                    rel.status = "active"
                    rel.is_primary = True
        if dry_run:
            self.db.rollback()
        else:
            self._commit()
        return {
            "checked": len(clients),
            "created": created,
            "reactivated": reactivated,
            "dry_run": dry_run,
        }
