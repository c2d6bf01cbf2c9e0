"""Body weight log kept by clients, one entry per day."""

import logging
from datetime import date
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_api.exceptions import Conflict, NotFound, ValidationFailed
from studio_api.models.orm_models import BodyWeightEntry, Client
from studio_api.schemas import WeightEntryCreate
from studio_api.services.base import BaseService
from studio_api.services.client_service import ClientService
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)


class WeightService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.clients = ClientService(db)

    @staticmethod
    def entry_to_dict(e: BodyWeightEntry) -> Dict[str, Any]:
        return {
            "id": e.id,
            "client_id": e.client_id,
            "trainer_id": e.trainer_id,
            "weight": money(e.weight),
            "date": iso(e.entry_date),
            "notes": e.notes,
            "created_at": iso(e.created_at),
        }

    def _client_for(self, user_id: int) -> Client:
        client = self.clients.get_client_by_user(user_id)
        if client is None:
            raise NotFound("Client not found")
        return client

    def add_entry(self, user_id: int, payload: WeightEntryCreate) -> Dict[str, Any]:
        client = self._client_for(user_id)
        entry = BodyWeightEntry(
            client_id=client.id,
            trainer_id=client.trainer_id,
            weight=payload.weight,
            entry_date=payload.entry_date,
            notes=payload.notes,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Weight entry for this date already exists")
        except Exception as e:
            logger.error(f"Error adding weight entry for client {client.id}: {e}")
            self.db.rollback()
            raise
        self.db.refresh(entry)
        return self.entry_to_dict(entry)

    def client_entries(self, user_id: int, start: date, end: date) -> List[Dict[str, Any]]:
        if end < start:
            raise ValidationFailed("endDate must not be before startDate")
        client = self._client_for(user_id)
        entries = self.db.scalars(
            select(BodyWeightEntry)
            .where(
                BodyWeightEntry.client_id == client.id,
                BodyWeightEntry.entry_date >= start,
                BodyWeightEntry.entry_date <= end,
            )
            .order_by(BodyWeightEntry.entry_date.desc())
        ).all()
        return [self.entry_to_dict(e) for e in entries]
