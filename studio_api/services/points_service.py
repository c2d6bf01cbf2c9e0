"""
Points Service - client points ledger and milestone rewards.

Each credit updates ``client_points`` and appends a ``points_transactions`` row;
crossing a milestone on ``total_earned`` grants a reward once per user.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_api.exceptions import ValidationFailed
from studio_api.models.orm_models import ClientPoints, ClientReward, PointsTransaction
from studio_api.services.base import BaseService
from studio_api.utils import iso, utcnow

logger = logging.getLogger(__name__)

# (milestone on total_earned, reward_type, reward_value, description)
MILESTONES = (
    (500, "discount_percentage", 10, "10% discount on next event"),
    (1000, "discount_percentage", 15, "15% discount on next event"),
    (2000, "discount_percentage", 20, "20% discount on next event"),
    (5000, "free_event", 0, "Free event registration"),
)
REWARD_VALIDITY = timedelta(days=365)
TRANSACTION_TYPES = ("referral", "event", "purchase", "bonus", "redeem", "adjustment")


class PointsService(BaseService):
    """Ledger operations. ``add_points(commit=False)`` lets callers batch it into their transaction."""

    def __init__(self, db: Session):
        super().__init__(db)

    def _ledger(self, user_id: int) -> ClientPoints:
        row = self.db.scalars(select(ClientPoints).where(ClientPoints.user_id == user_id)).first()
        if row is None:
            row = ClientPoints(user_id=user_id, points_balance=0, total_earned=0, total_spent=0)
            self.db.add(row)
            self.db.flush()
        return row

    def add_points(
        self,
        user_id: int,
        points: int,
        transaction_type: str,
        description: Optional[str] = None,
        reference_id: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> Dict[str, Any]:
        if not points or int(points) <= 0:
            raise ValidationFailed("points must be a positive integer")
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationFailed(f"Invalid transaction_type: {transaction_type}")
        points = int(points)
        try:
            ledger = self._ledger(user_id)
            ledger.points_balance = int(ledger.points_balance or 0) + points
            ledger.total_earned = int(ledger.total_earned or 0) + points
            ledger.updated_at = utcnow()
            self.db.add(
                PointsTransaction(
                    user_id=user_id,
                    points=points,
                    transaction_type=transaction_type,
                    description=description,
                    reference_id=str(reference_id) if reference_id is not None else None,
                )
            )
            self.db.flush()
            awarded = self.check_and_award_rewards(user_id, total_earned=ledger.total_earned)
            if commit:
                self.db.commit()
        except Exception as e:
            logger.error(f"Error adding {points} points to user {user_id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"User {user_id} earned {points} points ({transaction_type})")
        return {
            "points_balance": ledger.points_balance,
            "total_earned": ledger.total_earned,
            "rewards_awarded": awarded,
        }

    def check_and_award_rewards(self, user_id: int, *, total_earned: Optional[int] = None) -> List[Dict[str, Any]]:
        """Grant every milestone reached and not yet granted. Does not commit."""
        if total_earned is None:
            ledger = self.db.scalars(select(ClientPoints).where(ClientPoints.user_id == user_id)).first()
            total_earned = int(ledger.total_earned or 0) if ledger is not None else 0
        granted = set(
            self.db.scalars(
                select(ClientReward.milestone_points).where(ClientReward.user_id == user_id)
            ).all()
        )
        now = utcnow()
        awarded = []
        for milestone, reward_type, value, description in MILESTONES:
            if total_earned < milestone or milestone in granted:
                continue
            reward = ClientReward(
                user_id=user_id,
                reward_type=reward_type,
                reward_value=value,
                milestone_points=milestone,
                description=description,
                is_used=False,
                expires_at=now + REWARD_VALIDITY,
            )
            self.db.add(reward)
            awarded.append({"milestone": milestone, "reward_type": reward_type, "reward_value": value})
        if awarded:
            self.db.flush()
            logger.info(f"User {user_id} reached milestones {[a['milestone'] for a in awarded]}")
        return awarded

    def get_summary(self, user_id: int) -> Dict[str, Any]:
        ledger = self.db.scalars(select(ClientPoints).where(ClientPoints.user_id == user_id)).first()
        points = {
            "points_balance": int(ledger.points_balance or 0) if ledger else 0,
            "total_earned": int(ledger.total_earned or 0) if ledger else 0,
            "total_spent": int(ledger.total_spent or 0) if ledger else 0,
        }
        transactions = self.db.scalars(
            select(PointsTransaction)
            .where(PointsTransaction.user_id == user_id)
            .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
            .limit(10)
        ).all()
        now = utcnow()
        rewards = self.db.scalars(
            select(ClientReward)
            .where(
                ClientReward.user_id == user_id,
                ClientReward.is_used.is_(False),
                (ClientReward.expires_at.is_(None)) | (ClientReward.expires_at > now),
            )
            .order_by(ClientReward.milestone_points.asc())
        ).all()
        return {
            "points": points,
            "transactions": [
                {
                    "id": t.id,
                    "points": t.points,
                    "transaction_type": t.transaction_type,
                    "description": t.description,
                    "reference_id": t.reference_id,
                    "created_at": iso(t.created_at),
                }
                for t in transactions
            ],
            "rewards": [
                {
                    "id": r.id,
                    "reward_type": r.reward_type,
                    "reward_value": r.reward_value,
                    "milestone_points": r.milestone_points,
                    "description": r.description,
                    "expires_at": iso(r.expires_at),
                }
                for r in rewards
            ],
        }
