"""
Community Event Service - SQLAlchemy ORM Implementation

Free events register immediately; paid events go through Stripe Checkout and
are confirmed by the webhook. ``current_participants`` only counts
registered participants.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import CapacityError, NotFound, ValidationFailed
from studio_api.models.orm_models import CommunityEvent, CommunityEventParticipant, User
from studio_api.schemas import CommunityEventCreate, CommunityEventUpdate
from studio_api.services.base import BaseService
from studio_api.services.points_service import PointsService
from studio_api.services.stripe_gateway import StripeGateway
from studio_api.utils import iso, money

logger = logging.getLogger(__name__)

EVENT_REGISTRATION_TYPE = "community_event_registration"


class CommunityEventService(BaseService):
    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        super().__init__(db)
        self.gateway = gateway or StripeGateway()
        self.points = PointsService(db)

    @staticmethod
    def event_to_dict(e: CommunityEvent) -> Dict[str, Any]:
        spots_left = None
        if e.max_participants is not None:
            spots_left = max(0, e.max_participants - (e.current_participants or 0))
        return {
            "id": e.id,
            "title": e.title,
            "description": e.description,
            "event_date": iso(e.event_date),
            "start_time": iso(e.start_time),
            "end_time": iso(e.end_time),
            "location": e.location,
            "price": money(e.price),
            "max_participants": e.max_participants,
            "current_participants": e.current_participants,
            "spots_left": spots_left,
            "points_reward": e.points_reward,
            "status": e.status,
            "is_public": bool(e.is_public),
            "created_by": e.created_by,
            "created_at": iso(e.created_at),
        }

    @staticmethod
    def participant_to_dict(p: CommunityEventParticipant, *, with_event: bool = False) -> Dict[str, Any]:
        d = {
            "id": p.id,
            "event_id": p.event_id,
            "user_id": p.user_id,
            "status": p.status,
            "payment_status": p.payment_status,
            "registered_at": iso(p.registered_at),
        }
        if with_event and p.event is not None:
            d["event"] = CommunityEventService.event_to_dict(p.event)
        return d

    def get_event_model(self, event_id: int) -> CommunityEvent:
        e = self.db.get(CommunityEvent, event_id)
        if e is None:
            raise NotFound("Event not found")
        return e

    def _participant(self, event_id: int, user_id: int) -> Optional[CommunityEventParticipant]:
        return self.db.scalars(
            select(CommunityEventParticipant).where(
                CommunityEventParticipant.event_id == event_id,
                CommunityEventParticipant.user_id == user_id,
            )
        ).first()

    # ========== Queries ==========

    def list_public(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        stmt = (
            select(CommunityEvent)
            .where(
                CommunityEvent.status == "active",
                CommunityEvent.is_public.is_(True),
                CommunityEvent.event_date >= (today or date.today()),
            )
            .order_by(CommunityEvent.event_date.asc(), CommunityEvent.start_time.asc())
        )
        return [self.event_to_dict(e) for e in self.db.scalars(stmt).all()]

    def list_events(self, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(CommunityEvent)
        if status:
            stmt = stmt.where(CommunityEvent.status == status)
        stmt = stmt.order_by(CommunityEvent.event_date.desc(), CommunityEvent.id.desc())
        return [self.event_to_dict(e) for e in self.db.scalars(stmt).all()]

    def get_event(self, event_id: int) -> Dict[str, Any]:
        e = self.get_event_model(event_id)
        d = self.event_to_dict(e)
        d["participants"] = [self.participant_to_dict(p) for p in e.participants]
        return d

    def user_registrations(self, user_id: int) -> List[Dict[str, Any]]:
        rows = self.db.scalars(
            select(CommunityEventParticipant)
            .options(joinedload(CommunityEventParticipant.event))
            .where(CommunityEventParticipant.user_id == user_id)
            .order_by(CommunityEventParticipant.registered_at.desc())
        ).all()
        return [self.participant_to_dict(p, with_event=True) for p in rows]

    # ========== Event CRUD ==========

    def create_event(self, payload: CommunityEventCreate, *, created_by: Optional[int] = None) -> Dict[str, Any]:
        e = CommunityEvent(
            title=payload.title,
            description=payload.description,
            event_date=payload.event_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            location=payload.location,
            price=payload.price,
            max_participants=payload.max_participants,
            current_participants=0,
            points_reward=payload.points_reward,
            status="active",
            is_public=payload.is_public,
            created_by=created_by,
        )
        try:
            self.db.add(e)
            self.db.commit()
            self.db.refresh(e)
        except Exception as ex:
            logger.error(f"Error creating community event: {ex}")
            self.db.rollback()
            raise
        return self.event_to_dict(e)

    def update_event(self, event_id: int, payload: CommunityEventUpdate) -> Dict[str, Any]:
        e = self.get_event_model(event_id)
        changes = payload.model_dump(exclude_unset=True)
        for key in ("title", "event_date", "price", "points_reward", "status", "is_public"):
            if key in changes and changes[key] is None:
                changes.pop(key)
        max_participants = changes.get("max_participants")
        if max_participants is not None and max_participants < (e.current_participants or 0):
            raise ValidationFailed("max_participants cannot be lower than current participants")
        for key, value in changes.items():
            setattr(e, key, value)
        try:
            self.db.commit()
        except Exception as ex:
            logger.error(f"Error updating community event {event_id}: {ex}")
            self.db.rollback()
            raise
        return self.event_to_dict(e)

    def delete_event(self, event_id: int) -> None:
        e = self.get_event_model(event_id)
        try:
            self.db.delete(e)
            self.db.commit()
        except Exception as ex:
            logger.error(f"Error deleting community event {event_id}: {ex}")
            self.db.rollback()
            raise

    # ========== Participant counter ==========

    def _claim_spot(self, event_id: int, *, enforce_capacity: bool = True) -> None:
        stmt = update(CommunityEvent).where(CommunityEvent.id == event_id)
        if enforce_capacity:
            stmt = stmt.where(
                or_(
                    CommunityEvent.max_participants.is_(None),
                    CommunityEvent.current_participants < CommunityEvent.max_participants,
                )
            )
        result = self.db.execute(
            stmt.values(current_participants=CommunityEvent.current_participants + 1).execution_options(
                synchronize_session="fetch"
            )
        )
        if not result.rowcount:
            raise CapacityError("Event is full")

    def _release_spot(self, event_id: int) -> None:
        self.db.execute(
            update(CommunityEvent)
            .where(CommunityEvent.id == event_id, CommunityEvent.current_participants > 0)
            .values(current_participants=CommunityEvent.current_participants - 1)
            .execution_options(synchronize_session="fetch")
        )

    def _award_event_points(self, e: CommunityEvent, user_id: int) -> int:
        if not e.points_reward:
            return 0
        self.points.add_points(
            user_id,
            e.points_reward,
            "event",
            f"Registered for {e.title}",
            reference_id=f"event:{e.id}",
            commit=False,
        )
        return int(e.points_reward)

    # ========== Registration ==========

    def register(self, event_id: int, user_id: int) -> Dict[str, Any]:
        """Returns ``{"status_code", "body"}``: 201 for free events, 200 with a checkout URL for paid ones."""
        e = self.db.get(CommunityEvent, event_id)
        if e is None or e.status != "active":
            raise NotFound("Event not found or not active")
        if e.max_participants and (e.current_participants or 0) >= e.max_participants:
            raise CapacityError("Event is full")
        existing = self._participant(event_id, user_id)
        if existing is not None and existing.status == "registered":
            raise ValidationFailed("Already registered for this event")

        if not money(e.price):
            return {"status_code": 201, "body": self._register_free(e, user_id, existing)}
        return {"status_code": 200, "body": self._register_paid(e, user_id, existing)}

    def _register_free(
        self, e: CommunityEvent, user_id: int, existing: Optional[CommunityEventParticipant]
    ) -> Dict[str, Any]:
        try:
            self._claim_spot(e.id)
            participant = existing or CommunityEventParticipant(event_id=e.id, user_id=user_id)
            participant.status = "registered"
            participant.payment_status = "free"
            self.db.add(participant)
            self.db.flush()
            points = self._award_event_points(e, user_id)
            self.db.commit()
        except CapacityError:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ValidationFailed("Already registered for this event")
        except Exception as ex:
            logger.error(f"Error registering user {user_id} for event {e.id}: {ex}")
            self.db.rollback()
            raise
        self.db.refresh(e)
        logger.info(f"User {user_id} registered for free event {e.id}")
        return {
            "registration": self.participant_to_dict(participant),
            "status": "confirmed",
            "current_participants": e.current_participants,
            "points_awarded": points,
        }

    def _register_paid(
        self, e: CommunityEvent, user_id: int, existing: Optional[CommunityEventParticipant]
    ) -> Dict[str, Any]:
        user = self.db.get(User, user_id)
        metadata = {
            "type": EVENT_REGISTRATION_TYPE,
            "event_id": str(e.id),
            "event_title": e.title,
            "user_id": str(user_id),
        }
        session = self.gateway.create_checkout_session(
            name=f"Registration for {e.title}",
            amount=e.price,
            metadata=metadata,
            customer_email=user.email if user is not None else None,
            success_path=f"/client/community-events?payment=success&session_id={{CHECKOUT_SESSION_ID}}&event_id={e.id}",
            cancel_path="/client/community-events?payment=cancelled",
        )
        try:
            participant = existing or CommunityEventParticipant(event_id=e.id, user_id=user_id)
            participant.status = "pending"
            participant.payment_status = "pending"
            participant.stripe_session_id = session["id"]
            self.db.add(participant)
            self.db.commit()
        except Exception as ex:
            logger.error(f"Error saving pending registration user={user_id} event={e.id}: {ex}")
            self.db.rollback()
            raise
        self.db.refresh(participant)
        return {
            "registration": self.participant_to_dict(participant),
            "checkout_url": session["url"],
            "status": "pending",
        }

    def cancel_registration(self, event_id: int, user_id: int) -> Dict[str, Any]:
        participant = self._participant(event_id, user_id)
        if participant is None:
            raise NotFound("Not registered for this event")
        try:
            if participant.status == "registered":
                self._release_spot(event_id)
            self.db.delete(participant)
            self.db.commit()
        except Exception as ex:
            logger.error(f"Error cancelling registration user={user_id} event={event_id}: {ex}")
            self.db.rollback()
            raise
        return {"message": "Registration cancelled successfully"}

    def confirm_registration(
        self,
        event_id: int,
        user_id: int,
        *,
        session_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> bool:
        """Mark a paid registration confirmed. Does not commit; False when already registered."""
        e = self.db.get(CommunityEvent, event_id)
        if e is None:
            logger.warning(f"Payment for unknown community event {event_id}")
            return False
        participant = self._participant(event_id, user_id)
        if participant is not None and participant.status == "registered":
            return False
        if participant is None:
            participant = CommunityEventParticipant(event_id=event_id, user_id=user_id)
            self.db.add(participant)
        participant.status = "registered"
        participant.payment_status = "paid"
        if session_id:
            participant.stripe_session_id = session_id
        if payment_intent_id:
            participant.stripe_payment_intent_id = payment_intent_id
        # Payment is already taken, so the spot is granted even past capacity
        self._claim_spot(event_id, enforce_capacity=False)
        self.db.flush()
        self._award_event_points(e, user_id)
        logger.info(f"Community event {event_id} registration confirmed for user {user_id}")
        return True
