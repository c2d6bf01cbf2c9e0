"""
Password Reset Service - SQLAlchemy ORM Implementation

Single-use reset tokens. Only the SHA-256 of a token is stored; the raw value
travels in the emailed link.
"""

import hashlib
import logging
import os
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from studio_api.exceptions import NotFound, ValidationFailed
from studio_api.models.orm_models import PasswordResetToken, User
from studio_api.services.auth_service import AuthService
from studio_api.services.base import BaseService
from studio_api.utils import parse_int, utcnow

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid or expired reset link. Please request a new password reset."


def hash_token(token: str) -> str:
    return hashlib.sha256(str(token).encode("utf-8")).hexdigest()


class PasswordResetService(BaseService):
    """Issues and redeems password reset tokens."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.auth = AuthService(db)

    def _ttl(self) -> timedelta:
        minutes = parse_int(os.getenv("PASSWORD_RESET_TTL_MINUTES")) or 60
        return timedelta(minutes=max(1, minutes))

    @staticmethod
    def reset_link(token: str) -> str:
        site_url = (os.getenv("SITE_URL") or "").strip().rstrip("/")
        return f"{site_url}/auth/reset-password?token={token}"

    def issue_token(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        self.db.add(
            PasswordResetToken(user_id=user.id, token_hash=hash_token(token), expires_at=utcnow() + self._ttl())
        )
        self._commit()
        logger.info(f"Password reset token issued for user {user.id}")
        return token

    def resolve_user(self, *, email: Optional[str] = None, user_id: Optional[int] = None) -> Optional[User]:
        if user_id is not None:
            return self.auth.get_user(user_id)
        return self.auth.get_user_by_email(email or "")

    def admin_reset_link(self, *, email: Optional[str] = None, user_id: Optional[int] = None) -> str:
        user = self.resolve_user(email=email, user_id=user_id)
        if user is None:
            raise NotFound("User not found")
        return self.reset_link(self.issue_token(user))

    def reset_password(self, token: str, new_password: str) -> User:
        """Redeem ``token`` once and set the new password. Other open tokens of the user are spent too."""
        now = utcnow()
        token_hash = hash_token(token)
        try:
            claimed = self.db.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.token_hash == token_hash,
                    PasswordResetToken.used_at.is_(None),
                    PasswordResetToken.expires_at > now,
                )
                .values(used_at=now)
                .execution_options(synchronize_session="fetch")
            )
            if not claimed.rowcount:
                raise ValidationFailed(INVALID_TOKEN)
            row = self.db.scalars(
                select(PasswordResetToken).where(PasswordResetToken.token_hash == token_hash)
            ).one()
            user = self.auth.get_user(row.user_id)
            if user is None:
                raise ValidationFailed(INVALID_TOKEN)
            user.password_hash = AuthService.hash_password(new_password)
            self.db.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
                .values(used_at=now)
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except ValidationFailed:
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error resetting password: {e}")
            self.db.rollback()
            raise
        logger.info(f"Password updated for user {user.id}")
        return user
