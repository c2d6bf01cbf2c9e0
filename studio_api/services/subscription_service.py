"""
Subscription Service - SQLAlchemy ORM Implementation

Client subscriptions to catalogue packages: session counts, expiry dates and
the expiry alert sweep.
"""

import logging
import os
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import NotFound, PermissionDenied, ValidationFailed
from studio_api.models.orm_models import Client, ClientSubscription
from studio_api.pricing import get_package
from studio_api.schemas import SubscriptionCreate, SubscriptionUpdate
from studio_api.services.base import BaseService
from studio_api.services.client_service import ClientService
from studio_api.services.email_service import EmailService
from studio_api.utils import add_months, iso, money, utcnow

logger = logging.getLogger(__name__)


class SubscriptionService(BaseService):
    """Service for client subscriptions."""

    def __init__(self, db: Session, email: Optional[EmailService] = None):
        super().__init__(db)
        self.clients = ClientService(db)
        self.email = email or EmailService(db)

    @staticmethod
    def subscription_to_dict(s: ClientSubscription) -> Dict[str, Any]:
        c = s.client
        return {
            "id": s.id,
            "client_id": s.client_id,
            "package_id": s.package_id,
            "plan_name": s.plan_name,
            "status": s.status,
            "amount": money(s.amount),
            "currency": s.currency,
            "sessions_total": s.sessions_total,
            "sessions_remaining": s.sessions_remaining,
            "start_date": iso(s.start_date),
            "expiry_date": iso(s.expiry_date),
            "notes": s.notes,
            "expiry_alert_sent_at": iso(s.expiry_alert_sent_at),
            "created_at": iso(s.created_at),
            "updated_at": iso(s.updated_at),
            "client": (
                {"id": c.id, "first_name": c.first_name, "last_name": c.last_name, "email": c.email}
                if c is not None
                else None
            ),
        }

    def get_subscription_model(
        self, subscription_id: int, *, trainer_user_id: Optional[int] = None
    ) -> ClientSubscription:
        s = self.db.get(ClientSubscription, subscription_id)
        if s is None:
            raise NotFound("Subscription not found")
        if trainer_user_id and not self.clients.trainer_owns_client(trainer_user_id, s.client_id):
            raise PermissionDenied("Access denied. Client is not assigned to you.")
        return s

    # =========================================================================
    # Queries
    # =========================================================================

    def list_subscriptions(
        self,
        *,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        trainer_user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(ClientSubscription).options(joinedload(ClientSubscription.client))
        if status:
            stmt = stmt.where(ClientSubscription.status == status)
        if client_id:
            stmt = stmt.where(ClientSubscription.client_id == client_id)
        if trainer_user_id:
            owned = self.clients.scope_to_trainer(select(Client.id), trainer_user_id)
            stmt = stmt.where(ClientSubscription.client_id.in_(owned))
        stmt = stmt.order_by(ClientSubscription.created_at.desc(), ClientSubscription.id.desc())
        return [self.subscription_to_dict(s) for s in self.db.scalars(stmt).all()]

    def get_subscription(self, subscription_id: int, *, trainer_user_id: Optional[int] = None) -> Dict[str, Any]:
        return self.subscription_to_dict(
            self.get_subscription_model(subscription_id, trainer_user_id=trainer_user_id)
        )

    def client_subscriptions(self, user_id: int) -> List[Dict[str, Any]]:
        client = self.clients.get_client_by_user(user_id)
        if client is None:
            return []
        return self.list_subscriptions(client_id=client.id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_subscription(self, payload: SubscriptionCreate) -> Dict[str, Any]:
        package = get_package(payload.package_id)
        if package is None:
            raise ValidationFailed(f"Unknown service package: {payload.package_id}")
        client = self.db.get(Client, payload.client_id)
        if client is None:
            raise NotFound("Client not found")

        start = payload.start_date or date.today()
        s = ClientSubscription(
            client_id=client.id,
            package_id=package.id,
            plan_name=package.name,
            status="active",
            amount=payload.amount if payload.amount is not None else package.price,
            currency=payload.currency.lower(),
            sessions_total=package.sessions,
            sessions_remaining=package.sessions,
            start_date=start,
            expiry_date=add_months(start, package.validity_months),
            notes=payload.notes,
        )
        try:
            self.db.add(s)
            self.db.commit()
            self.db.refresh(s)
        except Exception as e:
            logger.error(f"Error creating subscription for client {client.id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Subscription {s.id} ({package.id}) created for client {client.id}")
        return self.subscription_to_dict(s)

    def update_subscription(
        self, subscription_id: int, payload: SubscriptionUpdate, *, trainer_user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        s = self.get_subscription_model(subscription_id, trainer_user_id=trainer_user_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        remaining = changes.get("sessions_remaining")
        if remaining is not None:
            if s.sessions_total is None:
                raise ValidationFailed("Unlimited subscriptions do not track sessions")
            if remaining > s.sessions_total:
                raise ValidationFailed("sessions_remaining cannot exceed sessions_total")
        if "expiry_date" in changes and changes["expiry_date"] != s.expiry_date:
            # A new expiry date earns a new alert
            s.expiry_alert_sent_at = None
        for key, value in changes.items():
            setattr(s, key, value)
        s.updated_at = utcnow()
        try:
            self.db.commit()
        except Exception as e:
            logger.error(f"Error updating subscription {subscription_id}: {e}")
            self.db.rollback()
            raise
        return self.subscription_to_dict(s)

    def delete_subscription(self, subscription_id: int, *, trainer_user_id: Optional[int] = None) -> None:
        s = self.get_subscription_model(subscription_id, trainer_user_id=trainer_user_id)
        try:
            self.db.delete(s)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting subscription {subscription_id}: {e}")
            self.db.rollback()
            raise

    def use_session(self, subscription_id: int, *, trainer_user_id: Optional[int] = None) -> Dict[str, Any]:
        """Take one session off an active, unexpired subscription."""
        s = self.get_subscription_model(subscription_id, trainer_user_id=trainer_user_id)
        if s.status != "active" or s.expiry_date < date.today():
            raise ValidationFailed("Subscription is not active")
        if s.sessions_total is None:
            return self.subscription_to_dict(s)
        result = self.db.execute(
            update(ClientSubscription)
            .where(
                ClientSubscription.id == s.id,
                ClientSubscription.status == "active",
                ClientSubscription.sessions_remaining > 0,
            )
            .values(sessions_remaining=ClientSubscription.sessions_remaining - 1, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if not result.rowcount:
            self.db.rollback()
            raise ValidationFailed("No sessions remaining on this subscription")
        self._commit()
        self.db.refresh(s)
        return self.subscription_to_dict(s)

    # =========================================================================
    # Expiry
    # =========================================================================

    def expire_lapsed(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        result = self.db.execute(
            update(ClientSubscription)
            .where(ClientSubscription.status == "active", ClientSubscription.expiry_date < today)
            .values(status="expired", updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        self._commit()
        if result.rowcount:
            logger.info(f"Marked {result.rowcount} subscriptions expired")
        return result.rowcount or 0

    def send_expiry_alerts(self, *, within_days: int = 7, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Expire lapsed subscriptions, then alert clients whose active subscription
        ends within ``within_days``. Each subscription is alerted once per expiry date.
        """
        today = today or date.today()
        expired = self.expire_lapsed(today)
        due = self.db.scalars(
            select(ClientSubscription)
            .options(joinedload(ClientSubscription.client))
            .where(
                ClientSubscription.status == "active",
                ClientSubscription.expiry_alert_sent_at.is_(None),
                ClientSubscription.expiry_date > today,
                ClientSubscription.expiry_date <= today + timedelta(days=within_days),
            )
            .order_by(ClientSubscription.expiry_date.asc())
        ).all()

        site_url = (os.getenv("SITE_URL") or "").strip().rstrip("/")
        sent = 0
        errors = 0
        details: List[Dict[str, Any]] = []
        for s in due:
            client = s.client
            try:
                self.email.send_expiry_alert(
                    client.email,
                    client.first_name,
                    client.last_name,
                    "package_expiry",
                    package_name=s.plan_name,
                    days_remaining=(s.expiry_date - today).days,
                    expiry_date=s.expiry_date,
                    action_url=f"{site_url}/account/packages",
                )
                s.expiry_alert_sent_at = utcnow()
                self._commit()
                sent += 1
                details.append({"subscription_id": s.id, "email": client.email, "status": "sent"})
            except Exception as e:
                logger.error(f"Error sending expiry alert for subscription {s.id}: {e}")
                errors += 1
                details.append(
                    {"subscription_id": s.id, "email": client.email, "status": "failed", "error": str(e)}
                )

        logger.info(f"Expiry sweep: expired={expired} sent={sent} errors={errors}")
        return {"expired": expired, "sent": sent, "errors": errors, "details": details}
