"""
Auth Service - SQLAlchemy ORM Implementation

Password login, user lookup and role resolution.
"""

import logging
from typing import Any, Dict, Optional

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from studio_api.exceptions import Conflict, ValidationFailed
from studio_api.models.orm_models import Client, Trainer, User, UserRole
from studio_api.security.session_claims import VALID_ROLES, normalize_role
from studio_api.services.base import BaseService

logger = logging.getLogger(__name__)


class AuthService(BaseService):
    """Service for authentication, users and their roles."""

    def __init__(self, db: Session):
        super().__init__(db)

    # ========== Passwords ==========

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(str(password).encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def verify_password(password: str, stored: Optional[str]) -> bool:
        if not stored or password is None:
            return False
        try:
            return bool(bcrypt.checkpw(str(password).encode("utf-8"), stored.encode("utf-8")))
        except ValueError:
            # Not a bcrypt hash
            return False

    # ========== Users ==========

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = str(email or "").strip().lower()
        if not email:
            return None
        return self.db.scalars(select(User).where(User.email == email)).first()

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.get_user_by_email(email)
        if user is None or not self.verify_password(password, user.password_hash):
            logger.info(f"Failed login for {str(email or '').strip().lower()}")
            return None
        return user

    def create_user(
        self,
        *,
        email: str,
        password: Optional[str],
        role: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        """Create a user with a single role row. Flushes, does not commit."""
        role = normalize_role(role)
        if role not in VALID_ROLES:
            raise ValidationFailed(f"Invalid role: {role}")
        email = str(email or "").strip().lower()
        if self.get_user_by_email(email) is not None:
            raise Conflict("A user with this email already exists")
        user = User(
            email=email,
            password_hash=self.hash_password(password) if password else None,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        self.db.add(user)
        self.db.flush()
        self.db.add(UserRole(user_id=user.id, role=role))
        self.db.flush()
        return user

    def register_client(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Self sign-up: user, client role and a pending client profile."""
        try:
            user = self.create_user(
                email=email,
                password=password,
                role="client",
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
            existing = self.db.scalars(select(Client).where(Client.email == user.email)).first()
            if existing is not None and existing.user_id is None:
                # Profile created earlier by staff; link it
                existing.user_id = user.id
                client = existing
            else:
                client = Client(
                    user_id=user.id,
                    first_name=first_name,
                    last_name=last_name,
                    email=user.email,
                    phone=phone,
                    status="pending",
                    referral_code_used=(referral_code or "").strip().upper() or None,
                )
                self.db.add(client)
            self.db.commit()
            self.db.refresh(user)
            return {"user": self.user_to_dict(user), "client_id": client.id}
        except (Conflict, ValidationFailed):
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error registering client {email}: {e}")
            self.db.rollback()
            raise

    # ========== Roles ==========

    def get_user_role(self, user_id: int) -> Optional[str]:
        """
        Return the user's role.

        Only one role row is expected per user. When several exist, the newest
        one wins and the older rows are removed.
        """
        rows = self.db.scalars(
            select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.id.desc())
        ).all()
        if not rows:
            return None
        current = rows[0]
        if len(rows) > 1:
            stale_ids = [r.id for r in rows[1:]]
            logger.warning(
                f"User {user_id} has {len(rows)} role rows; keeping {current.id}, removing {stale_ids}"
            )
            try:
                self.db.execute(delete(UserRole).where(UserRole.id.in_(stale_ids)))
                self.db.commit()
            except Exception as e:
                logger.error(f"Error removing duplicate roles for user {user_id}: {e}")
                self.db.rollback()
        return normalize_role(current.role) or None

    def get_profile(self, user: User, role: Optional[str]) -> Optional[Dict[str, Any]]:
        if role == "trainer":
            trainer = self.db.scalars(select(Trainer).where(Trainer.user_id == user.id)).first()
            if trainer is not None:
                return {"trainer_id": trainer.id, "specialization": trainer.specialization}
        if role == "client":
            client = self.db.scalars(select(Client).where(Client.user_id == user.id)).first()
            if client is not None:
                return {"client_id": client.id, "status": client.status, "trainer_id": client.trainer_id}
        return None

    @staticmethod
    def user_to_dict(user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "phone": user.phone,
        }
