"""
Referral Service - SQLAlchemy ORM Implementation

Referral codes are owned by one user. Using a code consumes one use through a
conditional UPDATE on ``current_uses``; completing the referral credits the
referrer through the points ledger.
"""

import logging
import re
import secrets
import string
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_api.exceptions import NotFound, PermissionDenied, ValidationFailed
from studio_api.models.orm_models import ReferralCode, ReferralTracking, User
from studio_api.schemas import ReferralCodeCreate, ReferralCodeUpdate, ReferralTrackPayload
from studio_api.services.base import BaseService
from studio_api.services.points_service import PointsService
from studio_api.utils import iso, utcnow

logger = logging.getLogger(__name__)

CUSTOM_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{4,20}$")
GENERATED_CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits
SUGGESTION_COUNT = 5
NOT_FOUND_OR_DENIED = "Referral code not found or access denied"
MAX_USES_REACHED = "Referral code has reached its maximum uses"


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def custom_code_error(code: str) -> Optional[str]:
    if len(code) < 4 or len(code) > 20:
        return "Referral code must be between 4 and 20 characters"
    if not CUSTOM_CODE_PATTERN.match(code):
        return "Referral code may only contain letters, numbers, hyphens and underscores"
    return None


class ReferralService(BaseService):
    """Service for referral codes and referral tracking."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.points = PointsService(db)

    # =========================================================================
    # Serialization
    # =========================================================================

    @staticmethod
    def code_to_dict(c: ReferralCode) -> Dict[str, Any]:
        completed = sum(1 for t in c.tracking if t.status == "completed")
        pending = sum(1 for t in c.tracking if t.status == "pending")
        return {
            "id": c.id,
            "user_id": c.user_id,
            "code": c.code,
            "is_custom": bool(c.is_custom),
            "is_active": bool(c.is_active),
            "max_uses": c.max_uses,
            "current_uses": c.current_uses,
            "points_per_referral": c.points_per_referral,
            "expires_at": iso(c.expires_at),
            "created_at": iso(c.created_at),
            "completed_referrals": completed,
            "pending_referrals": pending,
        }

    @staticmethod
    def tracking_to_dict(t: ReferralTracking) -> Dict[str, Any]:
        return {
            "id": t.id,
            "referral_code_id": t.referral_code_id,
            "code": t.referral_code.code if t.referral_code is not None else None,
            "referrer_id": t.referrer_id,
            "referred_user_id": t.referred_user_id,
            "status": t.status,
            "points_awarded": t.points_awarded,
            "created_at": iso(t.created_at),
            "completed_at": iso(t.completed_at),
        }

    # =========================================================================
    # Code lookup and validation
    # =========================================================================

    def _find_code(self, code: str) -> Optional[ReferralCode]:
        return self.db.scalars(select(ReferralCode).where(ReferralCode.code == normalize_code(code))).first()

    def _owned_code(self, code_id: int, user_id: int) -> ReferralCode:
        c = self.db.get(ReferralCode, code_id)
        if c is None or c.user_id != user_id:
            raise NotFound(NOT_FOUND_OR_DENIED)
        return c

    def _unusable_reason(self, c: Optional[ReferralCode]) -> Optional[str]:
        if c is None:
            return "Referral code not found"
        if not c.is_active:
            return "Referral code is inactive"
        if c.expires_at is not None and c.expires_at <= utcnow():
            return "Referral code has expired"
        if c.max_uses is not None and c.current_uses >= c.max_uses:
            return MAX_USES_REACHED
        return None

    def validate_code(self, code: str) -> Dict[str, Any]:
        c = self._find_code(code)
        reason = self._unusable_reason(c)
        if reason:
            return {"valid": False, "reason": reason}
        return {"valid": True, "code": c.code, "points_per_referral": c.points_per_referral}

    def code_exists(self, code: str) -> bool:
        return self.db.scalars(select(ReferralCode.id).where(ReferralCode.code == code)).first() is not None

    def suggest_codes(self, base: str, count: int = SUGGESTION_COUNT) -> List[str]:
        """Free alternatives derived from ``base``, padded with random codes."""
        stem = re.sub(r"[^A-Z0-9_-]", "", normalize_code(base))[:16] or "REF"
        if len(stem) < 4:
            stem = (stem + "FIT")[:4]
        candidates = [f"{stem}{n}" for n in (1, 2, 7, 10, 21, 99)]
        candidates += [f"{stem}-{secrets.choice(CODE_ALPHABET)}{secrets.choice(CODE_ALPHABET)}" for _ in range(4)]
        out: List[str] = []
        for candidate in candidates:
            candidate = candidate[:20]
            if candidate in out or custom_code_error(candidate) or self.code_exists(candidate):
                continue
            out.append(candidate)
            if len(out) >= count:
                return out
        while len(out) < count:
            generated = self._random_code()
            if generated not in out and not self.code_exists(generated):
                out.append(generated)
        return out

    def validate_custom(self, code: str) -> Dict[str, Any]:
        normalized = normalize_code(code)
        error = custom_code_error(normalized)
        if error is None and self.code_exists(normalized):
            error = "This referral code is already taken. Please choose a different one."
        if error:
            return {"is_valid": False, "error": error, "suggestions": self.suggest_codes(normalized)}
        return {"is_valid": True, "error": None, "suggestions": []}

    @staticmethod
    def _random_code() -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(GENERATED_CODE_LENGTH))

    def _generate_unique_code(self, attempts: int = 20) -> str:
        for _ in range(attempts):
            code = self._random_code()
            if not self.code_exists(code):
                return code
        raise RuntimeError("Could not generate a unique referral code")

    # =========================================================================
    # Codes CRUD
    # =========================================================================

    def list_codes(self, user_id: int) -> List[Dict[str, Any]]:
        codes = self.db.scalars(
            select(ReferralCode)
            .where(ReferralCode.user_id == user_id)
            .order_by(ReferralCode.created_at.desc(), ReferralCode.id.desc())
        ).all()
        return [self.code_to_dict(c) for c in codes]

    def create_code(self, user_id: int, payload: ReferralCodeCreate) -> Dict[str, Any]:
        if payload.custom_code:
            code = normalize_code(payload.custom_code)
            check = self.validate_custom(code)
            if not check["is_valid"]:
                raise ValidationFailed(check["error"], details={"suggestions": check["suggestions"]})
            is_custom = True
        else:
            code = self._generate_unique_code()
            is_custom = False

        c = ReferralCode(
            user_id=user_id,
            code=code,
            is_custom=is_custom,
            max_uses=payload.max_uses,
            current_uses=0,
            points_per_referral=payload.points_per_referral,
            is_active=True,
            expires_at=payload.expires_at.replace(tzinfo=None) if payload.expires_at else None,
        )
        try:
            self.db.add(c)
            self.db.commit()
            self.db.refresh(c)
        except IntegrityError:
            self.db.rollback()
            raise ValidationFailed(
                "This referral code is already taken. Please choose a different one.",
                details={"suggestions": self.suggest_codes(code)},
            )
        except Exception as e:
            logger.error(f"Error creating referral code for user {user_id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Referral code {c.code} created for user {user_id}")
        return self.code_to_dict(c)

    def update_code(self, code_id: int, user_id: int, payload: ReferralCodeUpdate) -> Dict[str, Any]:
        c = self._owned_code(code_id, user_id)
        changes = payload.model_dump(exclude_unset=True)
        if "max_uses" in changes and changes["max_uses"] is not None and changes["max_uses"] < c.current_uses:
            raise ValidationFailed("max_uses cannot be lower than current uses")
        if changes.get("expires_at") is not None:
            changes["expires_at"] = changes["expires_at"].replace(tzinfo=None)
        for key in ("is_active", "points_per_referral"):
            if key in changes and changes[key] is None:
                changes.pop(key)
        for key, value in changes.items():
            setattr(c, key, value)
        try:
            self.db.commit()
        except Exception as e:
            logger.error(f"Error updating referral code {code_id}: {e}")
            self.db.rollback()
            raise
        return self.code_to_dict(c)

    def delete_code(self, code_id: int, user_id: int) -> None:
        c = self._owned_code(code_id, user_id)
        try:
            self.db.delete(c)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error deleting referral code {code_id}: {e}")
            self.db.rollback()
            raise

    # =========================================================================
    # Tracking
    # =========================================================================

    def list_tracking(self, user_id: int, kind: str = "sent") -> List[Dict[str, Any]]:
        if kind not in ("sent", "received"):
            raise ValidationFailed("type must be 'sent' or 'received'")
        column = ReferralTracking.referrer_id if kind == "sent" else ReferralTracking.referred_user_id
        rows = self.db.scalars(
            select(ReferralTracking)
            .where(column == user_id)
            .order_by(ReferralTracking.created_at.desc(), ReferralTracking.id.desc())
        ).all()
        return [self.tracking_to_dict(t) for t in rows]

    def track(self, payload: ReferralTrackPayload, *, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        referred_user_id = payload.referred_user_id or user_id
        if referred_user_id != user_id and not is_admin:
            raise PermissionDenied("Access denied. You can only track referrals for yourself.")
        if self.db.get(User, referred_user_id) is None:
            raise NotFound("Referred user not found")

        c = self._find_code(payload.referral_code)
        reason = self._unusable_reason(c)
        if reason:
            raise ValidationFailed(reason)
        if c.user_id == referred_user_id:
            raise ValidationFailed("You cannot use your own referral code")
        duplicate = self.db.scalars(
            select(ReferralTracking.id).where(
                ReferralTracking.referral_code_id == c.id,
                ReferralTracking.referred_user_id == referred_user_id,
            )
        ).first()
        if duplicate is not None:
            raise ValidationFailed("This referral code has already been used by this user")

        try:
            self._consume_use(c.id)
            tracking = ReferralTracking(
                referral_code_id=c.id,
                referrer_id=c.user_id,
                referred_user_id=referred_user_id,
                status="pending",
                points_awarded=0,
            )
            self.db.add(tracking)
            self.db.commit()
        except ValidationFailed:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ValidationFailed("This referral code has already been used by this user")
        except Exception as e:
            logger.error(f"Error tracking referral {payload.referral_code}: {e}")
            self.db.rollback()
            raise
        self.db.refresh(tracking)
        logger.info(f"Referral {c.code} used by user {referred_user_id}")
        return self.tracking_to_dict(tracking)

    def _consume_use(self, code_id: int) -> None:
        result = self.db.execute(
            update(ReferralCode)
            .where(
                ReferralCode.id == code_id,
                ReferralCode.is_active.is_(True),
                or_(ReferralCode.max_uses.is_(None), ReferralCode.current_uses < ReferralCode.max_uses),
            )
            .values(current_uses=ReferralCode.current_uses + 1)
            .execution_options(synchronize_session="fetch")
        )
        if not result.rowcount:
            raise ValidationFailed(MAX_USES_REACHED)

    def _complete(self, tracking: ReferralTracking) -> int:
        """Mark completed and credit the referrer. Caller commits."""
        points = int(tracking.referral_code.points_per_referral or 0)
        tracking.status = "completed"
        tracking.points_awarded = points
        tracking.completed_at = utcnow()
        if points > 0:
            self.points.add_points(
                tracking.referrer_id,
                points,
                "referral",
                f"Referral completed ({tracking.referral_code.code})",
                reference_id=f"referral:{tracking.id}",
                commit=False,
            )
        return points

    def update_tracking(self, tracking_id: int, action: str, *, user_id: int, is_admin: bool) -> Dict[str, Any]:
        tracking = self.db.get(ReferralTracking, tracking_id)
        if tracking is None:
            raise NotFound("Referral tracking record not found")
        if not is_admin and tracking.referrer_id != user_id:
            raise PermissionDenied("Access denied")
        if tracking.status != "pending":
            raise ValidationFailed(f"Referral is already {tracking.status}")
        try:
            if action == "complete":
                self._complete(tracking)
            elif action == "cancel":
                tracking.status = "cancelled"
            else:
                raise ValidationFailed("action must be 'complete' or 'cancel'")
            self.db.commit()
        except ValidationFailed:
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error updating referral tracking {tracking_id}: {e}")
            self.db.rollback()
            raise
        return self.tracking_to_dict(tracking)

    def _tracking_for(self, user_id: int, code: str, *, pending_only: bool) -> Optional[ReferralTracking]:
        stmt = (
            select(ReferralTracking)
            .join(ReferralCode, ReferralCode.id == ReferralTracking.referral_code_id)
            .where(ReferralTracking.referred_user_id == user_id, ReferralCode.code == normalize_code(code))
        )
        if pending_only:
            stmt = stmt.where(ReferralTracking.status == "pending")
        return self.db.scalars(stmt).first()

    def complete_by_code(self, user_id: int, code: str) -> Dict[str, Any]:
        tracking = self._tracking_for(user_id, code, pending_only=True)
        if tracking is None:
            raise NotFound("Referral tracking record not found or already completed")
        try:
            points = self._complete(tracking)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error completing referral {code} for user {user_id}: {e}")
            self.db.rollback()
            raise
        logger.info(f"Referral completed: {normalize_code(code)} for user {user_id}, {points} points awarded")
        return {
            "success": True,
            "points_awarded": points,
            "message": f"Referral completed! {points} points awarded to referrer.",
        }

    def referral_status(self, user_id: int, code: str) -> Dict[str, Any]:
        tracking = self._tracking_for(user_id, code, pending_only=False)
        if tracking is None:
            raise NotFound("No referral found for this code and user")
        return {
            "tracking": self.tracking_to_dict(tracking),
            "is_completed": tracking.status == "completed",
            "points_awarded": tracking.points_awarded,
        }

    # =========================================================================
    # Reporting
    # =========================================================================

    def analytics(self, user_id: int) -> Dict[str, Any]:
        codes = self.db.scalars(
            select(ReferralCode).where(ReferralCode.user_id == user_id).order_by(ReferralCode.created_at.desc())
        ).all()
        counts = dict(
            self.db.execute(
                select(ReferralTracking.status, func.count(ReferralTracking.id))
                .where(ReferralTracking.referrer_id == user_id)
                .group_by(ReferralTracking.status)
            ).all()
        )
        points_earned = self.db.scalar(
            select(func.coalesce(func.sum(ReferralTracking.points_awarded), 0)).where(
                ReferralTracking.referrer_id == user_id, ReferralTracking.status == "completed"
            )
        )
        recent = self.db.scalars(
            select(ReferralTracking)
            .where(ReferralTracking.referrer_id == user_id)
            .order_by(ReferralTracking.created_at.desc(), ReferralTracking.id.desc())
            .limit(10)
        ).all()
        return {
            "analytics": {
                "total_codes": len(codes),
                "active_codes": sum(1 for c in codes if c.is_active),
                "total_uses": sum(int(c.current_uses or 0) for c in codes),
                "completed_referrals": int(counts.get("completed", 0)),
                "pending_referrals": int(counts.get("pending", 0)),
                "cancelled_referrals": int(counts.get("cancelled", 0)),
                "total_points_earned": int(points_earned or 0),
            },
            "referral_codes": [self.code_to_dict(c) for c in codes],
            "recent_activity": [self.tracking_to_dict(t) for t in recent],
        }

    def admin_overview(self) -> Dict[str, Any]:
        codes = self.db.scalars(select(ReferralCode).order_by(ReferralCode.created_at.desc())).all()
        tracking = self.db.scalars(
            select(ReferralTracking).order_by(ReferralTracking.created_at.desc(), ReferralTracking.id.desc())
        ).all()
        return {
            "codes": [self.code_to_dict(c) for c in codes],
            "tracking": [self.tracking_to_dict(t) for t in tracking],
        }
